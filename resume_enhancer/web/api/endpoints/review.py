"""Apply reviewed suggestions to a resume snapshot."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from ....history import EnhancementHistory
from ....models import AISuggestion, SuggestionStatus
from ....review import SuggestionReview
from ...errors import bad_request
from ..deps import get_history

router = APIRouter(prefix="/review", tags=["review"])


class ApplyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    resume_data: Optional[Dict[str, Any]] = Field(default=None, alias="resumeData")
    suggestions: Optional[List[Dict[str, Any]]] = None
    annotate: bool = False
    history_id: Optional[str] = Field(default=None, alias="historyId")


@router.post("/apply")
async def apply(request: ApplyRequest, history: EnhancementHistory = Depends(get_history)) -> Dict[str, Any]:
    if request.resume_data is None or request.suggestions is None:
        raise bad_request("Missing required fields: resumeData, suggestions")

    try:
        suggestions = [AISuggestion.from_dict(item) for item in request.suggestions]
    except (TypeError, ValueError) as exc:
        raise bad_request(f"Invalid suggestions payload: {exc}") from exc
    review = SuggestionReview(suggestions)

    outcome = review.apply(request.resume_data)
    if request.history_id:
        # the merged snapshot becomes the entry's enhanced data
        history.update_user_actions(
            request.history_id,
            accepted=[s.id for s in suggestions if s.status is SuggestionStatus.ACCEPTED],
            rejected=[s.id for s in suggestions if s.status is SuggestionStatus.REJECTED],
            enhanced_data=outcome.resume_data,
        )
    payload = outcome.to_dict()
    payload["counts"] = review.counts().to_dict()
    if request.annotate:
        payload["annotations"] = review.annotate()
    return payload
