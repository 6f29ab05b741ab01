"""Domain records for enhancement requests, suggestions and results."""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .providers.types import Message

SUPPORTED_PROVIDERS = ("openai", "anthropic", "gemini")
ENHANCEMENT_LEVELS = ("light", "moderate", "comprehensive")
SUGGESTION_TYPES = ("improvement", "correction", "enhancement", "addition")


def utc_now_iso() -> str:
    """Return current UTC time in ISO-8601 format."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def make_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class SuggestionStatus(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass
class EnhancementOptions:
    provider: str
    model: str = ""
    enhancement_level: str = "moderate"
    job_description: Optional[str] = None
    user_instructions: Optional[str] = None
    focus_areas: List[str] = field(default_factory=list)
    enable_fallback: bool = False

    def __post_init__(self) -> None:
        # ordered set: keep the first occurrence of each area
        seen: Dict[str, None] = {}
        for area in self.focus_areas or []:
            area = str(area).strip()
            if area:
                seen.setdefault(area, None)
        self.focus_areas = list(seen)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EnhancementOptions":
        return cls(
            provider=str(data.get("provider") or "").lower(),
            model=str(data.get("model") or ""),
            enhancement_level=str(data.get("enhancementLevel") or "moderate"),
            job_description=data.get("jobDescription") or None,
            user_instructions=data.get("userInstructions") or None,
            focus_areas=list(data.get("focusAreas") or []),
            enable_fallback=bool(data.get("enableFallback", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "model": self.model,
            "enhancementLevel": self.enhancement_level,
            "jobDescription": self.job_description,
            "userInstructions": self.user_instructions,
            "focusAreas": list(self.focus_areas),
            "enableFallback": self.enable_fallback,
        }


@dataclass
class AISuggestion:
    id: str
    type: str
    field: str
    original_value: str
    suggested_value: str
    confidence: float
    reasoning: str
    section: Optional[str] = None
    status: SuggestionStatus = SuggestionStatus.PENDING

    @property
    def accepted(self) -> Optional[bool]:
        """Legacy tri-state view: None while pending."""
        if self.status is SuggestionStatus.PENDING:
            return None
        return self.status is SuggestionStatus.ACCEPTED

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AISuggestion":
        status_value = data.get("status")
        if status_value in {status.value for status in SuggestionStatus}:
            status = SuggestionStatus(status_value)
        elif data.get("accepted") is True:
            status = SuggestionStatus.ACCEPTED
        elif data.get("accepted") is False:
            status = SuggestionStatus.REJECTED
        else:
            status = SuggestionStatus.PENDING
        return cls(
            id=str(data.get("id") or make_id("sugg")),
            type=str(data.get("type") or "improvement"),
            field=str(data.get("field") or ""),
            original_value=str(data.get("originalValue") or ""),
            suggested_value=str(data.get("suggestedValue") or ""),
            confidence=float(data.get("confidence") or 0.0),
            reasoning=str(data.get("reasoning") or ""),
            section=data.get("section"),
            status=status,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "field": self.field,
            "section": self.section,
            "originalValue": self.original_value,
            "suggestedValue": self.suggested_value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "status": self.status.value,
            "accepted": self.accepted,
        }


@dataclass
class EnhancementMetadata:
    tokens_used: int = 0
    cost: float = 0.0
    processing_time_ms: int = 0
    estimated_cost: Optional[float] = None
    attempts: int = 0
    fallback_from: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "tokensUsed": self.tokens_used,
            "cost": self.cost,
            "processingTimeMs": self.processing_time_ms,
            "estimatedCost": self.estimated_cost,
            "attempts": self.attempts,
        }
        if self.fallback_from:
            payload["fallbackFrom"] = self.fallback_from
        return payload


@dataclass
class EnhancementRequest:
    """What an enhancement was asked for; kept for refinement, never serialized."""

    options: EnhancementOptions
    original_text: str
    parsed_data: Dict[str, Any]
    messages: List[Message] = field(default_factory=list)


@dataclass
class AIEnhancementResult:
    success: bool
    provider: str
    model: str
    suggestions: List[AISuggestion] = field(default_factory=list)
    confidence: float = 0.0
    metadata: EnhancementMetadata = field(default_factory=EnhancementMetadata)
    error: Optional[Dict[str, Any]] = None
    original_data: Dict[str, Any] = field(default_factory=dict)
    enhanced_data: Optional[Dict[str, Any]] = None
    timestamp: str = field(default_factory=utc_now_iso)
    history_id: Optional[str] = None
    request: Optional[EnhancementRequest] = field(default=None, repr=False, compare=False)

    @classmethod
    def failure(
        cls,
        provider: str,
        model: str,
        error: Dict[str, Any],
        request: Optional[EnhancementRequest] = None,
    ) -> "AIEnhancementResult":
        return cls(
            success=False,
            provider=provider,
            model=model,
            error=error,
            original_data=copy.deepcopy(request.parsed_data) if request else {},
            request=request,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AIEnhancementResult":
        """Rebuild a result posted back by a client (request context is lost)."""
        metadata = data.get("metadata") or {}
        return cls(
            success=bool(data.get("success", False)),
            provider=str(data.get("provider") or ""),
            model=str(data.get("model") or ""),
            suggestions=[AISuggestion.from_dict(item) for item in data.get("suggestions") or []],
            confidence=float(data.get("confidence") or 0.0),
            metadata=EnhancementMetadata(
                tokens_used=int(metadata.get("tokensUsed") or 0),
                cost=float(metadata.get("cost") or 0.0),
                processing_time_ms=int(metadata.get("processingTimeMs") or 0),
                estimated_cost=metadata.get("estimatedCost"),
                attempts=int(metadata.get("attempts") or 0),
                fallback_from=metadata.get("fallbackFrom"),
            ),
            error=data.get("error"),
            original_data=dict(data.get("originalData") or {}),
            enhanced_data=data.get("enhancedData"),
            timestamp=str(data.get("timestamp") or utc_now_iso()),
            history_id=data.get("historyId") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.success,
            "suggestions": [suggestion.to_dict() for suggestion in self.suggestions],
            "confidence": self.confidence,
            "provider": self.provider,
            "model": self.model,
            "metadata": self.metadata.to_dict(),
            "originalData": self.original_data,
            "enhancedData": self.enhanced_data,
            "timestamp": self.timestamp,
        }
        if self.error is not None:
            payload["error"] = self.error
        if self.history_id:
            payload["historyId"] = self.history_id
        return payload
