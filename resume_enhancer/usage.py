"""Usage history, aggregate statistics and cost alerts."""

from __future__ import annotations

import calendar
import csv
import io
import json
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from .models import AIEnhancementResult, EnhancementOptions, SuggestionStatus
from .storage import InMemoryStore, KeyValueStore

logger = logging.getLogger("resume_enhancer.usage")

USAGE_HISTORY_KEY = "ai-usage-history"
COST_MONITORING_KEY = "ai-cost-monitoring"
DEFAULT_MAX_EVENTS = 1000
WARNING_RATIO = 0.8
CONNECTION_TEST_TOKENS = 10
CONNECTION_TEST_COST = 0.001
OPERATIONS = ("enhancement", "test_connection", "cost_estimation")
# provider recorded for a cross-provider comparison; not a real provider
COMPARISON_PROVIDER = "all"
COMPARISON_MODEL = "comparison"

CSV_COLUMNS = [
    "timestamp",
    "provider",
    "model",
    "operation",
    "tokensUsed",
    "estimatedCost",
    "processingTime",
    "success",
    "suggestionsCount",
    "acceptedCount",
    "confidence",
]

# optional fields serialized only when set: python name -> wire name
_OPTIONAL_FIELDS = {
    "error_type": "errorType",
    "enhancement_level": "enhancementLevel",
    "suggestions_count": "suggestionsCount",
    "accepted_count": "acceptedCount",
    "rejected_count": "rejectedCount",
    "confidence": "confidence",
    "content_length": "contentLength",
    "has_job_description": "hasJobDescription",
    "focus_areas": "focusAreas",
}

Clock = Callable[[], datetime]


def local_now() -> datetime:
    return datetime.now().astimezone()


@dataclass
class UsageEvent:
    id: str
    timestamp: datetime
    provider: str
    model: str
    operation: str
    tokens_used: int = 0
    estimated_cost: float = 0.0
    processing_time: int = 0
    success: bool = True
    error_type: Optional[str] = None
    enhancement_level: Optional[str] = None
    suggestions_count: Optional[int] = None
    accepted_count: Optional[int] = None
    rejected_count: Optional[int] = None
    confidence: Optional[float] = None
    content_length: Optional[int] = None
    has_job_description: Optional[bool] = None
    focus_areas: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "provider": self.provider,
            "model": self.model,
            "operation": self.operation,
            "tokensUsed": self.tokens_used,
            "estimatedCost": self.estimated_cost,
            "processingTime": self.processing_time,
            "success": self.success,
        }
        for attr, wire in _OPTIONAL_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                payload[wire] = list(value) if isinstance(value, list) else value
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UsageEvent":
        timestamp = datetime.fromisoformat(str(data["timestamp"]).replace("Z", "+00:00"))
        if timestamp.tzinfo is None:
            timestamp = timestamp.astimezone()
        optional = {attr: data.get(wire) for attr, wire in _OPTIONAL_FIELDS.items()}
        return cls(
            id=str(data.get("id") or _event_id(timestamp)),
            timestamp=timestamp,
            provider=str(data.get("provider") or ""),
            model=str(data.get("model") or ""),
            operation=str(data.get("operation") or "enhancement"),
            tokens_used=int(data.get("tokensUsed") or 0),
            estimated_cost=float(data.get("estimatedCost") or 0.0),
            processing_time=int(data.get("processingTime") or 0),
            success=bool(data.get("success", False)),
            **optional,
        )


@dataclass
class UsageStats:
    total_events: int
    total_tokens: int
    total_cost: float
    total_processing_time: int
    success_rate: float
    avg_confidence: float
    avg_processing_time: float
    provider_usage: Dict[str, int]
    operation_counts: Dict[str, int]
    enhancement_level_usage: Dict[str, int]
    start: datetime
    end: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalEvents": self.total_events,
            "totalTokens": self.total_tokens,
            "totalCost": self.total_cost,
            "totalProcessingTime": self.total_processing_time,
            "successRate": self.success_rate,
            "avgConfidence": self.avg_confidence,
            "avgProcessingTime": self.avg_processing_time,
            "providerUsage": dict(self.provider_usage),
            "operationCounts": dict(self.operation_counts),
            "enhancementLevelUsage": dict(self.enhancement_level_usage),
            "timeRange": {"start": self.start.isoformat(), "end": self.end.isoformat()},
        }


@dataclass
class CostMonitoring:
    daily_limit: Optional[float] = None
    monthly_limit: Optional[float] = None
    daily_threshold: Optional[float] = None
    monthly_threshold: Optional[float] = None
    spent_today: float = 0.0
    spent_this_month: float = 0.0
    projected_daily: float = 0.0
    projected_monthly: float = 0.0

    def settings_dict(self) -> Dict[str, Any]:
        return {
            "dailyLimit": self.daily_limit,
            "monthlyLimit": self.monthly_limit,
            "alertThresholds": {"daily": self.daily_threshold, "monthly": self.monthly_threshold},
        }

    def to_dict(self) -> Dict[str, Any]:
        payload = self.settings_dict()
        payload["currentSpending"] = {"today": self.spent_today, "thisMonth": self.spent_this_month}
        payload["projectedSpending"] = {"daily": self.projected_daily, "monthly": self.projected_monthly}
        return payload


@dataclass(frozen=True)
class CostAlert:
    type: str  # daily | monthly | daily_warning | monthly_warning
    current_spending: float
    threshold: float

    @property
    def percentage(self) -> float:
        return (self.current_spending / self.threshold) * 100 if self.threshold else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "currentSpending": self.current_spending, "threshold": self.threshold}


AlertListener = Callable[[CostAlert], Any]


def _event_id(timestamp: datetime) -> str:
    return f"event-{int(timestamp.timestamp() * 1000)}-{uuid.uuid4().hex[:9]}"


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


class UsageTracker:
    """Single writer for usage history and cost-monitoring settings.

    Events are kept most-recent-first and capped at ``max_events``. Storage
    failures are logged and never surface to the operation being recorded.
    """

    def __init__(
        self,
        storage: Optional[KeyValueStore] = None,
        clock: Clock = local_now,
        max_events: int = DEFAULT_MAX_EVENTS,
    ) -> None:
        self.storage = storage if storage is not None else InMemoryStore()
        self.clock = clock
        self.max_events = max(1, int(max_events))
        self._lock = threading.Lock()
        self._listeners: List[AlertListener] = []
        self._events: List[UsageEvent] = self._load_events()
        self._settings: CostMonitoring = self._load_settings()

    # -- recording -----------------------------------------------------------

    def add_alert_listener(self, listener: AlertListener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def record_event(
        self,
        provider: str,
        model: str,
        operation: str,
        tokens_used: int = 0,
        estimated_cost: float = 0.0,
        processing_time: int = 0,
        success: bool = True,
        **extra: Any,
    ) -> UsageEvent:
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown usage operation: {operation}")
        unknown = set(extra) - set(_OPTIONAL_FIELDS)
        if unknown:
            raise TypeError(f"Unknown usage event fields: {', '.join(sorted(unknown))}")

        timestamp = self._now()
        event = UsageEvent(
            id=_event_id(timestamp),
            timestamp=timestamp,
            provider=provider,
            model=model,
            operation=operation,
            tokens_used=int(tokens_used),
            estimated_cost=float(estimated_cost),
            processing_time=int(processing_time),
            success=bool(success),
            **extra,
        )

        with self._lock:
            self._events.insert(0, event)
            if len(self._events) > self.max_events:
                del self._events[self.max_events:]
            self._save_events()
            alerts = self._pending_alerts()

        logger.info(
            "usage_recorded operation=%s provider=%s model=%s success=%s tokens=%s cost=%.6f",
            operation,
            provider,
            model,
            event.success,
            event.tokens_used,
            event.estimated_cost,
        )
        for alert in alerts:
            self._emit(alert)
        return event

    def record_enhancement(
        self,
        result: AIEnhancementResult,
        options: Optional[EnhancementOptions] = None,
        processing_time: Optional[int] = None,
        content_length: int = 0,
    ) -> UsageEvent:
        suggestions = result.suggestions
        accepted = sum(1 for s in suggestions if s.status is SuggestionStatus.ACCEPTED)
        rejected = sum(1 for s in suggestions if s.status is SuggestionStatus.REJECTED)
        confidence = sum(s.confidence for s in suggestions) / len(suggestions) if suggestions else 0.0
        error_type = (result.error or {}).get("type")

        return self.record_event(
            provider=result.provider or (options.provider if options else ""),
            model=result.model or (options.model if options else "") or "default",
            operation="enhancement",
            tokens_used=result.metadata.tokens_used,
            estimated_cost=result.metadata.cost,
            processing_time=result.metadata.processing_time_ms if processing_time is None else processing_time,
            success=result.success,
            error_type=error_type,
            enhancement_level=options.enhancement_level if options else None,
            suggestions_count=len(suggestions),
            accepted_count=accepted,
            rejected_count=rejected,
            confidence=confidence,
            content_length=content_length,
            has_job_description=bool(options and options.job_description),
            focus_areas=list(options.focus_areas) if options and options.focus_areas else None,
        )

    def record_connection_test(
        self,
        provider: str,
        model: str,
        success: bool,
        processing_time: int,
        error_type: Optional[str] = None,
    ) -> UsageEvent:
        return self.record_event(
            provider=provider,
            model=model,
            operation="test_connection",
            tokens_used=CONNECTION_TEST_TOKENS,
            estimated_cost=CONNECTION_TEST_COST,
            processing_time=processing_time,
            success=success,
            error_type=error_type,
        )

    def record_cost_estimation(
        self,
        provider: str,
        model: str,
        success: bool = True,
        processing_time: int = 0,
        content_length: Optional[int] = None,
        enhancement_level: Optional[str] = None,
    ) -> UsageEvent:
        """Estimation is local arithmetic, so it spends no tokens."""
        return self.record_event(
            provider=provider,
            model=model,
            operation="cost_estimation",
            processing_time=processing_time,
            success=success,
            content_length=content_length,
            enhancement_level=enhancement_level,
        )

    # -- queries ---------------------------------------------------------------

    def get_stats(self, days: float = 30) -> UsageStats:
        end = self._now()
        start = end - timedelta(days=days)
        with self._lock:
            events = [event for event in self._events if start <= event.timestamp <= end]

        provider_usage: Dict[str, int] = {}
        operation_counts: Dict[str, int] = {}
        level_usage: Dict[str, int] = {}
        for event in events:
            if event.provider != COMPARISON_PROVIDER:
                provider_usage[event.provider] = provider_usage.get(event.provider, 0) + 1
            operation_counts[event.operation] = operation_counts.get(event.operation, 0) + 1
            if event.operation == "enhancement" and event.enhancement_level:
                level_usage[event.enhancement_level] = level_usage.get(event.enhancement_level, 0) + 1

        count = len(events)
        enhancements = [event for event in events if event.operation == "enhancement"]
        total_time = sum(event.processing_time for event in events)
        return UsageStats(
            total_events=count,
            total_tokens=sum(event.tokens_used for event in events),
            total_cost=sum(event.estimated_cost for event in events),
            total_processing_time=total_time,
            success_rate=(sum(1 for event in events if event.success) / count) if count else 0.0,
            avg_confidence=(
                sum(event.confidence or 0.0 for event in enhancements) / len(enhancements) if enhancements else 0.0
            ),
            avg_processing_time=(total_time / count) if count else 0.0,
            provider_usage=provider_usage,
            operation_counts=operation_counts,
            enhancement_level_usage=level_usage,
            start=start,
            end=end,
        )

    def get_recent_events(self, limit: int = 50) -> List[UsageEvent]:
        with self._lock:
            return list(self._events[: max(0, limit)])

    def get_cost_monitoring(self) -> CostMonitoring:
        with self._lock:
            return self._cost_monitoring()

    def set_cost_monitoring(self, settings: Dict[str, Any]) -> CostMonitoring:
        """Merge camelCase settings (``dailyLimit``, ``alertThresholds`` ...)."""
        with self._lock:
            current = self._settings
            thresholds = settings.get("alertThresholds") or {}
            if "dailyLimit" in settings:
                current.daily_limit = _optional_float(settings["dailyLimit"])
            if "monthlyLimit" in settings:
                current.monthly_limit = _optional_float(settings["monthlyLimit"])
            if "daily" in thresholds:
                current.daily_threshold = _optional_float(thresholds["daily"])
            if "monthly" in thresholds:
                current.monthly_threshold = _optional_float(thresholds["monthly"])
            self._persist(COST_MONITORING_KEY, current.settings_dict())
            return self._cost_monitoring()

    def export_data(self, fmt: str = "json") -> str:
        with self._lock:
            events = list(self._events)

        if fmt == "csv":
            buffer = io.StringIO()
            writer = csv.writer(buffer, lineterminator="\n")
            writer.writerow(CSV_COLUMNS)
            for event in events:
                writer.writerow(
                    [
                        event.timestamp.isoformat(),
                        event.provider,
                        event.model,
                        event.operation,
                        event.tokens_used,
                        event.estimated_cost,
                        event.processing_time,
                        "true" if event.success else "false",
                        "" if event.suggestions_count is None else event.suggestions_count,
                        "" if event.accepted_count is None else event.accepted_count,
                        "" if event.confidence is None else event.confidence,
                    ]
                )
            return buffer.getvalue().rstrip("\n")
        if fmt != "json":
            raise ValueError(f"Unsupported export format: {fmt}")
        return json.dumps([event.to_dict() for event in events], indent=2, ensure_ascii=False)

    def clear_old_data(self, days_to_keep: float = 90) -> int:
        """Drop events older than ``days_to_keep``; returns how many were removed."""
        cutoff = self._now() - timedelta(days=days_to_keep)
        with self._lock:
            before = len(self._events)
            self._events = [event for event in self._events if event.timestamp >= cutoff]
            removed = before - len(self._events)
            self._save_events()
        logger.info("usage_cleared removed=%s kept=%s", removed, before - removed)
        return removed

    # -- internals -------------------------------------------------------------

    def _now(self) -> datetime:
        now = self.clock()
        return now if now.tzinfo is not None else now.astimezone()

    def _cost_monitoring(self) -> CostMonitoring:
        now = self._now()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        start_of_month = start_of_day.replace(day=1)
        today = sum(event.estimated_cost for event in self._events if event.timestamp >= start_of_day)
        month = sum(event.estimated_cost for event in self._events if event.timestamp >= start_of_month)
        days_in_month = calendar.monthrange(now.year, now.month)[1]

        settings = self._settings
        return CostMonitoring(
            daily_limit=settings.daily_limit,
            monthly_limit=settings.monthly_limit,
            daily_threshold=settings.daily_threshold,
            monthly_threshold=settings.monthly_threshold,
            spent_today=today,
            spent_this_month=month,
            projected_daily=today,
            projected_monthly=(month / now.day) * days_in_month,
        )

    def _pending_alerts(self) -> List[CostAlert]:
        monitoring = self._cost_monitoring()
        alerts: List[CostAlert] = []
        if monitoring.daily_threshold and monitoring.spent_today >= monitoring.daily_threshold:
            alerts.append(CostAlert("daily", monitoring.spent_today, monitoring.daily_threshold))
        if monitoring.monthly_threshold and monitoring.spent_this_month >= monitoring.monthly_threshold:
            alerts.append(CostAlert("monthly", monitoring.spent_this_month, monitoring.monthly_threshold))
        if monitoring.daily_limit and monitoring.spent_today >= monitoring.daily_limit * WARNING_RATIO:
            alerts.append(CostAlert("daily_warning", monitoring.spent_today, monitoring.daily_limit))
        if monitoring.monthly_limit and monitoring.spent_this_month >= monitoring.monthly_limit * WARNING_RATIO:
            alerts.append(CostAlert("monthly_warning", monitoring.spent_this_month, monitoring.monthly_limit))
        return alerts

    def _emit(self, alert: CostAlert) -> None:
        logger.warning(
            "cost_alert type=%s spending=%.6f threshold=%.6f percentage=%.1f",
            alert.type,
            alert.current_spending,
            alert.threshold,
            alert.percentage,
        )
        for listener in list(self._listeners):
            try:
                listener(alert)
            except Exception as exc:
                logger.error("cost_alert_listener_failed type=%s error=%s", alert.type, exc)

    def _save_events(self) -> None:
        self._persist(USAGE_HISTORY_KEY, [event.to_dict() for event in self._events])

    def _persist(self, key: str, value: Any) -> None:
        try:
            self.storage.set(key, value)
        except Exception as exc:
            logger.warning("usage_persist_failed key=%s error=%s", key, exc)

    def _load_events(self) -> List[UsageEvent]:
        try:
            raw = self.storage.get(USAGE_HISTORY_KEY)
        except Exception as exc:
            logger.warning("usage_load_failed key=%s error=%s", USAGE_HISTORY_KEY, exc)
            return []
        if not isinstance(raw, list):
            return []

        events: List[UsageEvent] = []
        for item in raw:
            try:
                events.append(UsageEvent.from_dict(item))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("usage_event_skipped error=%s", exc)
        return events[: self.max_events]

    def _load_settings(self) -> CostMonitoring:
        try:
            raw = self.storage.get(COST_MONITORING_KEY)
        except Exception as exc:
            logger.warning("usage_load_failed key=%s error=%s", COST_MONITORING_KEY, exc)
            return CostMonitoring()
        if not isinstance(raw, dict):
            return CostMonitoring()
        thresholds = raw.get("alertThresholds") or {}
        try:
            return CostMonitoring(
                daily_limit=_optional_float(raw.get("dailyLimit")),
                monthly_limit=_optional_float(raw.get("monthlyLimit")),
                daily_threshold=_optional_float(thresholds.get("daily")),
                monthly_threshold=_optional_float(thresholds.get("monthly")),
            )
        except (TypeError, ValueError) as exc:
            logger.warning("cost_settings_invalid error=%s", exc)
            return CostMonitoring()
