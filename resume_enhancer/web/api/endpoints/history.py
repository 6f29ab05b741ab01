"""Enhancement history: browse, annotate, compare and export past runs."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field

from ....errors import HistoryEntryNotFoundError
from ....history import DEFAULT_DAYS_TO_KEEP, EnhancementHistory, HistoryFilters
from ...errors import bad_request
from ..deps import get_history

router = APIRouter(prefix="/history", tags=["history"])


class MetadataUpdate(BaseModel):
    tags: Optional[List[str]] = None
    notes: Optional[str] = None


class ManualEditBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    field: str
    section: str = ""
    original_value: str = Field(default="", alias="originalValue")
    new_value: str = Field(alias="newValue")


class ActionsUpdate(BaseModel):
    """Either one suggestion decision or a manual edit."""

    model_config = ConfigDict(populate_by_name=True)

    suggestion_id: Optional[str] = Field(default=None, alias="suggestionId")
    action: Optional[str] = None
    manual_edit: Optional[ManualEditBody] = Field(default=None, alias="manualEdit")


def _filters(
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
    providers: Optional[List[str]] = Query(default=None, alias="provider"),
    levels: Optional[List[str]] = Query(default=None, alias="enhancementLevel"),
    tags: Optional[List[str]] = Query(default=None, alias="tag"),
    min_confidence: Optional[float] = Query(default=None, ge=0, le=1, alias="minConfidence"),
    has_job_description: Optional[bool] = Query(default=None, alias="hasJobDescription"),
) -> HistoryFilters:
    return HistoryFilters(
        start=start.astimezone() if start is not None else None,
        end=end.astimezone() if end is not None else None,
        providers=providers or [],
        enhancement_levels=levels or [],
        tags=tags or [],
        min_confidence=min_confidence,
        has_job_description=has_job_description,
    )


@router.get("")
async def list_history(
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    filters: HistoryFilters = Depends(_filters),
    history: EnhancementHistory = Depends(get_history),
) -> Dict[str, Any]:
    return {"entries": [entry.to_dict() for entry in history.get_history(filters, limit)]}


@router.get("/stats")
async def stats(
    filters: HistoryFilters = Depends(_filters),
    history: EnhancementHistory = Depends(get_history),
) -> Dict[str, Any]:
    return history.get_stats(filters).to_dict()


@router.get("/export")
async def export(
    format: str = Query(default="json"),
    history: EnhancementHistory = Depends(get_history),
) -> PlainTextResponse:
    if format not in ("json", "csv"):
        raise bad_request(f"Unsupported export format: {format}")
    media_type = "text/csv" if format == "csv" else "application/json"
    return PlainTextResponse(
        history.export_history(format),
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="ai-enhancement-history.{format}"'},
    )


@router.get("/compare")
async def compare(
    first: str = Query(alias="id1"),
    second: str = Query(alias="id2"),
    history: EnhancementHistory = Depends(get_history),
) -> Dict[str, Any]:
    return history.compare_enhancements(first, second)


@router.delete("")
async def clear_old(
    older_than_days: float = Query(default=DEFAULT_DAYS_TO_KEEP, ge=0, alias="olderThanDays"),
    history: EnhancementHistory = Depends(get_history),
) -> Dict[str, int]:
    return {"removed": history.clear_old_entries(older_than_days)}


@router.get("/{entry_id}")
async def get_entry(entry_id: str, history: EnhancementHistory = Depends(get_history)) -> Dict[str, Any]:
    entry = history.get_enhancement(entry_id)
    if entry is None:
        raise HistoryEntryNotFoundError(entry_id)
    return entry.to_dict()


@router.delete("/{entry_id}")
async def delete_entry(entry_id: str, history: EnhancementHistory = Depends(get_history)) -> Dict[str, bool]:
    if not history.delete_enhancement(entry_id):
        raise HistoryEntryNotFoundError(entry_id)
    return {"deleted": True}


@router.patch("/{entry_id}")
async def update_entry(
    entry_id: str,
    request: MetadataUpdate,
    history: EnhancementHistory = Depends(get_history),
) -> Dict[str, Any]:
    return history.update_metadata(entry_id, tags=request.tags, notes=request.notes).to_dict()


@router.post("/{entry_id}/actions")
async def record_action(
    entry_id: str,
    request: ActionsUpdate,
    history: EnhancementHistory = Depends(get_history),
) -> Dict[str, Any]:
    if request.manual_edit is not None:
        edit = request.manual_edit
        entry = history.record_manual_edit(entry_id, edit.field, edit.section, edit.original_value, edit.new_value)
        return entry.to_dict()
    if not request.suggestion_id or request.action not in ("accepted", "rejected"):
        raise bad_request("Provide suggestionId with action 'accepted' or 'rejected', or a manualEdit")
    return history.record_suggestion_action(entry_id, request.suggestion_id, request.action).to_dict()
