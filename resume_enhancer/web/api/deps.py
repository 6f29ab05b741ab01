"""Dependency providers for the AI API."""

from __future__ import annotations

import httpx
from fastapi import Request

from ...config import Settings
from ...estimator import CostEstimator
from ...history import EnhancementHistory
from ...orchestrator import EnhancementOrchestrator
from ...usage import UsageTracker


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_orchestrator(request: Request) -> EnhancementOrchestrator:
    return request.app.state.orchestrator


def get_estimator(request: Request) -> CostEstimator:
    return request.app.state.orchestrator.estimator


def get_usage_tracker(request: Request) -> UsageTracker:
    return request.app.state.usage_tracker


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Shared outbound client opened by the app lifespan."""
    return request.app.state.http_client


def get_history(request: Request) -> EnhancementHistory:
    return request.app.state.history
