"""Usage history, statistics and cost-monitoring endpoints."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field

from ....usage import UsageTracker
from ...errors import bad_request
from ..deps import get_usage_tracker

router = APIRouter(prefix="/usage", tags=["usage"])


class AlertThresholds(BaseModel):
    daily: Optional[float] = Field(default=None, ge=0)
    monthly: Optional[float] = Field(default=None, ge=0)


class CostMonitoringUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    daily_limit: Optional[float] = Field(default=None, alias="dailyLimit", ge=0)
    monthly_limit: Optional[float] = Field(default=None, alias="monthlyLimit", ge=0)
    alert_thresholds: Optional[AlertThresholds] = Field(default=None, alias="alertThresholds")


@router.get("/stats")
async def stats(
    days: float = Query(default=30, gt=0),
    tracker: UsageTracker = Depends(get_usage_tracker),
) -> Dict[str, Any]:
    return tracker.get_stats(days).to_dict()


@router.get("/events")
async def events(
    limit: int = Query(default=50, ge=0, le=1000),
    tracker: UsageTracker = Depends(get_usage_tracker),
) -> Dict[str, Any]:
    return {"events": [event.to_dict() for event in tracker.get_recent_events(limit)]}


@router.delete("/events")
async def clear_events(
    older_than_days: float = Query(default=90, ge=0, alias="olderThanDays"),
    tracker: UsageTracker = Depends(get_usage_tracker),
) -> Dict[str, int]:
    return {"removed": tracker.clear_old_data(older_than_days)}


@router.get("/cost-monitoring")
async def get_cost_monitoring(tracker: UsageTracker = Depends(get_usage_tracker)) -> Dict[str, Any]:
    return tracker.get_cost_monitoring().to_dict()


@router.put("/cost-monitoring")
async def put_cost_monitoring(
    request: CostMonitoringUpdate,
    tracker: UsageTracker = Depends(get_usage_tracker),
) -> Dict[str, Any]:
    # only fields present in the body are changed; explicit null clears one
    update = request.model_dump(by_alias=True, exclude_unset=True)
    return tracker.set_cost_monitoring(update).to_dict()


@router.get("/export")
async def export(
    format: str = Query(default="json"),
    tracker: UsageTracker = Depends(get_usage_tracker),
) -> PlainTextResponse:
    if format not in ("json", "csv"):
        raise bad_request(f"Unsupported export format: {format}")
    media_type = "text/csv" if format == "csv" else "application/json"
    return PlainTextResponse(
        tracker.export_data(format),
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="ai-usage.{format}"'},
    )
