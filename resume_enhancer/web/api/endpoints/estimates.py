"""Cost estimation endpoints."""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from ....config import Settings
from ....errors import UnsupportedModelError, UnsupportedProviderError
from ....estimator import CostEstimator, format_cost
from ....models import ENHANCEMENT_LEVELS
from ....usage import COMPARISON_MODEL, COMPARISON_PROVIDER, UsageTracker
from ...errors import bad_request
from ..deps import get_estimator, get_settings, get_usage_tracker

router = APIRouter(prefix="/estimate", tags=["estimates"])


class CompareRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    original_text: str = Field(default="", alias="originalText")
    job_description: Optional[str] = Field(default=None, alias="jobDescription")
    user_instructions: Optional[str] = Field(default=None, alias="userInstructions")
    enhancement_level: str = Field(default="moderate", alias="enhancementLevel")


class EstimateRequest(CompareRequest):
    provider: Optional[str] = None
    model: Optional[str] = None


def _check_level(level: str) -> None:
    if level not in ENHANCEMENT_LEVELS:
        raise bad_request(f"Unsupported enhancement level: {level}")


@router.post("")
async def estimate(
    request: EstimateRequest,
    estimator: CostEstimator = Depends(get_estimator),
    settings: Settings = Depends(get_settings),
    tracker: UsageTracker = Depends(get_usage_tracker),
) -> Dict[str, Any]:
    if not request.provider:
        raise bad_request("Missing required fields: provider")
    _check_level(request.enhancement_level)
    provider = request.provider.lower()
    if provider not in estimator.get_supported_providers():
        raise UnsupportedProviderError(provider)
    model = request.model or settings.default_models.get(provider, "")

    started = time.perf_counter()
    result = estimator.estimate_enhancement_cost(
        provider,
        model,
        request.original_text,
        request.job_description,
        request.user_instructions,
        request.enhancement_level,
    )
    tracker.record_cost_estimation(
        provider,
        model,
        success=result is not None,
        processing_time=int((time.perf_counter() - started) * 1000),
        content_length=len(request.original_text),
        enhancement_level=request.enhancement_level,
    )
    if result is None:
        raise UnsupportedModelError(provider, model)

    payload = result.to_dict()
    payload["formatted"] = format_cost(result.total_cost, result.currency)
    return payload


@router.post("/compare")
async def compare(
    request: CompareRequest,
    estimator: CostEstimator = Depends(get_estimator),
    tracker: UsageTracker = Depends(get_usage_tracker),
) -> Dict[str, Any]:
    _check_level(request.enhancement_level)

    started = time.perf_counter()
    estimates = estimator.compare_providers_for_request(
        request.original_text,
        request.job_description,
        request.user_instructions,
        request.enhancement_level,
    )
    tracker.record_cost_estimation(
        COMPARISON_PROVIDER,
        COMPARISON_MODEL,
        success=bool(estimates),
        processing_time=int((time.perf_counter() - started) * 1000),
        content_length=len(request.original_text),
        enhancement_level=request.enhancement_level,
    )
    return {"estimates": [item.to_dict() for item in estimates]}
