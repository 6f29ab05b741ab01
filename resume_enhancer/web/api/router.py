"""Top-level AI API router."""

from __future__ import annotations

from fastapi import APIRouter

from .endpoints.ai import router as ai_router
from .endpoints.estimates import router as estimates_router
from .endpoints.history import router as history_router
from .endpoints.proxy import router as proxy_router
from .endpoints.review import router as review_router
from .endpoints.usage import router as usage_router

api_router = APIRouter(prefix="/api/ai")
api_router.include_router(ai_router)
api_router.include_router(estimates_router)
api_router.include_router(review_router)
api_router.include_router(history_router)
api_router.include_router(usage_router)
api_router.include_router(proxy_router)
