"""FastAPI app entrypoint for the resume enhancement API."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from time import perf_counter
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config import Settings, load_settings
from ..errors import EnhancerError
from ..factory import create_history, create_orchestrator, create_usage_tracker
from ..history import EnhancementHistory
from ..orchestrator import EnhancementOrchestrator
from ..usage import UsageTracker
from .api.router import api_router
from .errors import (
    APIError,
    api_error_handler,
    enhancer_error_handler,
    http_error_handler,
    unhandled_error_handler,
    validation_error_handler,
)

logger = logging.getLogger("resume_enhancer.web.api")

PROXY_TIMEOUT_SECONDS = 15.0


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[EnhancementOrchestrator] = None,
    usage_tracker: Optional[UsageTracker] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    history: Optional[EnhancementHistory] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators can be injected for tests; anything omitted is built from
    ``settings`` (loaded from config/config.yaml when not given).
    """
    settings = settings or load_settings()
    usage_tracker = usage_tracker or (orchestrator.usage_tracker if orchestrator else None) or create_usage_tracker(settings)
    history = history or (orchestrator.history if orchestrator else None)
    history = history or create_history(settings, usage_tracker.storage)
    orchestrator = orchestrator or create_orchestrator(settings, usage_tracker, history)
    if orchestrator.usage_tracker is None:
        orchestrator.usage_tracker = usage_tracker
    if orchestrator.history is None:
        orchestrator.history = history

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = http_client is None
        app.state.http_client = http_client or httpx.AsyncClient(
            timeout=PROXY_TIMEOUT_SECONDS,
            follow_redirects=True,
        )
        try:
            yield
        finally:
            if owned:
                await app.state.http_client.aclose()

    app = FastAPI(title="Resume Enhancer API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.state.usage_tracker = usage_tracker
    app.state.history = history
    app.state.http_client = http_client
    app.include_router(api_router)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        start = perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.info(
                "api_request method=%s path=%s status=%s duration_ms=%.2f",
                request.method,
                request.url.path,
                500,
                (perf_counter() - start) * 1000,
            )
            raise

        logger.info(
            "api_request method=%s path=%s status=%s duration_ms=%.2f",
            request.method,
            request.url.path,
            response.status_code,
            (perf_counter() - start) * 1000,
        )
        return response

    @app.get("/healthz", tags=["system"])
    async def healthz() -> dict:
        return {"status": "ok"}

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(EnhancerError, enhancer_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    return app


def main(host: str = "127.0.0.1", port: int = 8000) -> None:
    """Run development API server."""
    import uvicorn

    uvicorn.run("resume_enhancer.web.app:create_app", host=host, port=port, factory=True)
