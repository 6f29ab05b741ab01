"""Enhancement history: past results, the user's decisions on them, and trends."""

from __future__ import annotations

import copy
import csv
import io
import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from .errors import HistoryEntryNotFoundError
from .models import AIEnhancementResult, EnhancementOptions
from .storage import InMemoryStore, KeyValueStore
from .usage import Clock, local_now

logger = logging.getLogger("resume_enhancer.history")

HISTORY_KEY = "ai-enhancement-history"
DEFAULT_MAX_ENTRIES = 500
DEFAULT_DAYS_TO_KEEP = 180
HISTORY_VERSION = "1.0"
TOP_TAGS_LIMIT = 10

CSV_COLUMNS = [
    "timestamp",
    "provider",
    "enhancementLevel",
    "confidence",
    "costEstimate",
    "processingTime",
    "suggestionsCount",
    "acceptedCount",
    "rejectedCount",
    "tags",
    "hasJobDescription",
]


def _entry_id(timestamp: datetime) -> str:
    return f"enhancement-{int(timestamp.timestamp() * 1000)}-{uuid.uuid4().hex[:9]}"


def _parse_timestamp(value: Any) -> datetime:
    timestamp = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return timestamp if timestamp.tzinfo is not None else timestamp.astimezone()


def _confidence(suggestions: List[Dict[str, Any]]) -> float:
    if not suggestions:
        return 0.0
    return sum(float(s.get("confidence") or 0.0) for s in suggestions) / len(suggestions)


def _week_start(timestamp: datetime) -> datetime:
    # weeks start on Sunday
    start = timestamp - timedelta(days=(timestamp.weekday() + 1) % 7)
    return start.replace(hour=0, minute=0, second=0, microsecond=0)


def _most_common(counts: Dict[str, int]) -> str:
    if not counts:
        return ""
    return sorted(counts.items(), key=lambda item: -item[1])[0][0]


@dataclass
class ManualEdit:
    field: str
    section: str
    original_value: str
    new_value: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "section": self.section,
            "originalValue": self.original_value,
            "newValue": self.new_value,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ManualEdit":
        return cls(
            field=str(data.get("field") or ""),
            section=str(data.get("section") or ""),
            original_value=str(data.get("originalValue") or ""),
            new_value=str(data.get("newValue") or ""),
            timestamp=_parse_timestamp(data["timestamp"]),
        )


@dataclass
class HistoryEntry:
    """One enhancement run as the user saw it, plus what they did with it.

    ``result`` and ``options`` hold the wire (camelCase) form of the
    ``AIEnhancementResult`` and ``EnhancementOptions``; the request context of
    the result is not kept.
    """

    id: str
    timestamp: datetime
    original_data: Dict[str, Any]
    enhanced_data: Dict[str, Any]
    result: Dict[str, Any]
    options: Dict[str, Any]
    accepted_suggestions: List[str] = field(default_factory=list)
    rejected_suggestions: List[str] = field(default_factory=list)
    manual_edits: List[ManualEdit] = field(default_factory=list)
    processing_time: int = 0
    confidence: float = 0.0
    cost_estimate: float = 0.0
    file_info: Optional[Dict[str, Any]] = None
    version: str = HISTORY_VERSION
    tags: List[str] = field(default_factory=list)
    notes: str = ""

    @property
    def provider(self) -> str:
        return str(self.options.get("provider") or "")

    @property
    def enhancement_level(self) -> str:
        return str(self.options.get("enhancementLevel") or "moderate")

    @property
    def has_job_description(self) -> bool:
        return bool(self.options.get("jobDescription"))

    @property
    def suggestions_count(self) -> int:
        return len(self.result.get("suggestions") or [])

    @property
    def acceptance_rate(self) -> float:
        total = self.suggestions_count
        return len(self.accepted_suggestions) / total if total else 0.0

    def to_dict(self) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {
            "processingTime": self.processing_time,
            "confidence": self.confidence,
            "costEstimate": self.cost_estimate,
            "version": self.version,
        }
        if self.file_info:
            metadata["fileInfo"] = dict(self.file_info)
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "originalData": self.original_data,
            "enhancedData": self.enhanced_data,
            "aiResult": self.result,
            "settings": self.options,
            "userActions": {
                "acceptedSuggestions": list(self.accepted_suggestions),
                "rejectedSuggestions": list(self.rejected_suggestions),
                "manualEdits": [edit.to_dict() for edit in self.manual_edits],
            },
            "metadata": metadata,
            "tags": list(self.tags),
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        actions = data.get("userActions") or {}
        metadata = data.get("metadata") or {}
        return cls(
            id=str(data["id"]),
            timestamp=_parse_timestamp(data["timestamp"]),
            original_data=dict(data.get("originalData") or {}),
            enhanced_data=dict(data.get("enhancedData") or {}),
            result=dict(data.get("aiResult") or {}),
            options=dict(data.get("settings") or {}),
            accepted_suggestions=[str(item) for item in actions.get("acceptedSuggestions") or []],
            rejected_suggestions=[str(item) for item in actions.get("rejectedSuggestions") or []],
            manual_edits=[ManualEdit.from_dict(item) for item in actions.get("manualEdits") or []],
            processing_time=int(metadata.get("processingTime") or 0),
            confidence=float(metadata.get("confidence") or 0.0),
            cost_estimate=float(metadata.get("costEstimate") or 0.0),
            file_info=metadata.get("fileInfo"),
            version=str(metadata.get("version") or HISTORY_VERSION),
            tags=[str(tag) for tag in data.get("tags") or []],
            notes=str(data.get("notes") or ""),
        )


@dataclass
class HistoryFilters:
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    providers: List[str] = field(default_factory=list)
    enhancement_levels: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    min_confidence: Optional[float] = None
    has_job_description: Optional[bool] = None

    def matches(self, entry: HistoryEntry) -> bool:
        if self.start is not None and entry.timestamp < self.start:
            return False
        if self.end is not None and entry.timestamp > self.end:
            return False
        if self.providers and entry.provider not in self.providers:
            return False
        if self.enhancement_levels and entry.enhancement_level not in self.enhancement_levels:
            return False
        if self.tags and not any(tag in entry.tags for tag in self.tags):
            return False
        if self.min_confidence is not None and entry.confidence < self.min_confidence:
            return False
        if self.has_job_description is not None and entry.has_job_description != self.has_job_description:
            return False
        return True


@dataclass
class HistoryStats:
    total_enhancements: int = 0
    average_confidence: float = 0.0
    total_cost: float = 0.0
    most_used_provider: str = ""
    most_used_level: str = ""
    top_tags: List[Dict[str, Any]] = field(default_factory=list)
    confidence_over_time: List[Dict[str, Any]] = field(default_factory=list)
    acceptance_rate_over_time: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalEnhancements": self.total_enhancements,
            "averageConfidence": self.average_confidence,
            "totalCost": self.total_cost,
            "mostUsedProvider": self.most_used_provider,
            "mostUsedLevel": self.most_used_level,
            "topTags": [dict(item) for item in self.top_tags],
            "improvementTrends": {
                "confidenceOverTime": [dict(item) for item in self.confidence_over_time],
                "acceptanceRateOverTime": [dict(item) for item in self.acceptance_rate_over_time],
            },
        }


def generate_tags(options: EnhancementOptions, result: AIEnhancementResult) -> List[str]:
    """Auto tags: provider, level, focus areas, targeting, confidence and volume bands."""
    tags = [options.provider]
    if options.enhancement_level:
        tags.append(options.enhancement_level)
    tags.extend(options.focus_areas)
    if options.job_description:
        tags.append("job-targeted")

    confidence = _confidence([s.to_dict() for s in result.suggestions])
    if confidence >= 0.9:
        tags.append("high-confidence")
    elif confidence >= 0.7:
        tags.append("medium-confidence")
    else:
        tags.append("low-confidence")

    count = len(result.suggestions)
    if count >= 15:
        tags.append("many-suggestions")
    elif count >= 8:
        tags.append("moderate-suggestions")
    elif count > 0:
        tags.append("few-suggestions")
    else:
        tags.append("no-suggestions")
    return tags


class EnhancementHistory:
    """Bounded, most-recent-first log of enhancement runs.

    Shares the usage tracker's key-value store under ``ai-enhancement-history``.
    Storage failures are logged and never surface to the caller.
    """

    def __init__(
        self,
        storage: Optional[KeyValueStore] = None,
        clock: Clock = local_now,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> None:
        self.storage = storage if storage is not None else InMemoryStore()
        self.clock = clock
        self.max_entries = max(1, int(max_entries))
        self._lock = threading.Lock()
        self._entries: List[HistoryEntry] = self._load()

    # -- recording -----------------------------------------------------------

    def add_enhancement(
        self,
        result: AIEnhancementResult,
        options: EnhancementOptions,
        original_data: Optional[Dict[str, Any]] = None,
        enhanced_data: Optional[Dict[str, Any]] = None,
        file_info: Optional[Dict[str, Any]] = None,
    ) -> HistoryEntry:
        timestamp = self._now()
        payload = result.to_dict()
        payload.pop("historyId", None)
        entry = HistoryEntry(
            id=_entry_id(timestamp),
            timestamp=timestamp,
            original_data=copy.deepcopy(original_data if original_data is not None else result.original_data),
            enhanced_data=copy.deepcopy(
                enhanced_data if enhanced_data is not None else (result.enhanced_data or result.original_data)
            ),
            result=payload,
            options=options.to_dict(),
            processing_time=result.metadata.processing_time_ms,
            confidence=_confidence(payload["suggestions"]),
            cost_estimate=result.metadata.estimated_cost or result.metadata.cost or 0.0,
            file_info=dict(file_info) if file_info else None,
            tags=generate_tags(options, result),
        )

        with self._lock:
            self._entries.insert(0, entry)
            if len(self._entries) > self.max_entries:
                del self._entries[self.max_entries:]
            self._save()

        logger.info(
            "history_added id=%s provider=%s suggestions=%s",
            entry.id,
            entry.provider,
            entry.suggestions_count,
        )
        return entry

    def record_suggestion_action(self, entry_id: str, suggestion_id: str, action: str) -> HistoryEntry:
        """Record ``accepted`` or ``rejected``; a later decision replaces an earlier one."""
        if action not in ("accepted", "rejected"):
            raise ValueError(f"Unknown suggestion action: {action}")
        with self._lock:
            entry = self._require(entry_id)
            accepted = [s for s in entry.accepted_suggestions if s != suggestion_id]
            rejected = [s for s in entry.rejected_suggestions if s != suggestion_id]
            (accepted if action == "accepted" else rejected).append(suggestion_id)
            entry.accepted_suggestions, entry.rejected_suggestions = accepted, rejected
            self._save()
            return entry

    def update_user_actions(
        self,
        entry_id: str,
        accepted: Optional[Iterable[str]] = None,
        rejected: Optional[Iterable[str]] = None,
        enhanced_data: Optional[Dict[str, Any]] = None,
    ) -> HistoryEntry:
        """Replace the recorded decisions (and the merged data, when given)."""
        with self._lock:
            entry = self._require(entry_id)
            if accepted is not None:
                entry.accepted_suggestions = list(accepted)
            if rejected is not None:
                entry.rejected_suggestions = list(rejected)
            if enhanced_data is not None:
                entry.enhanced_data = copy.deepcopy(enhanced_data)
            self._save()
            return entry

    def record_manual_edit(
        self,
        entry_id: str,
        field_path: str,
        section: str,
        original_value: str,
        new_value: str,
    ) -> HistoryEntry:
        with self._lock:
            entry = self._require(entry_id)
            entry.manual_edits.append(ManualEdit(field_path, section, original_value, new_value, self._now()))
            self._save()
            return entry

    def update_metadata(
        self,
        entry_id: str,
        tags: Optional[List[str]] = None,
        notes: Optional[str] = None,
    ) -> HistoryEntry:
        with self._lock:
            entry = self._require(entry_id)
            if tags is not None:
                entry.tags = [str(tag) for tag in tags]
            if notes is not None:
                entry.notes = notes
            self._save()
            return entry

    # -- queries ---------------------------------------------------------------

    def get_history(self, filters: Optional[HistoryFilters] = None, limit: Optional[int] = None) -> List[HistoryEntry]:
        with self._lock:
            entries = list(self._entries)
        if filters is not None:
            entries = [entry for entry in entries if filters.matches(entry)]
        return entries[:limit] if limit else entries

    def get_enhancement(self, entry_id: str) -> Optional[HistoryEntry]:
        with self._lock:
            return self._find(entry_id)

    def get_stats(self, filters: Optional[HistoryFilters] = None) -> HistoryStats:
        entries = self.get_history(filters)
        if not entries:
            return HistoryStats()

        providers: Dict[str, int] = {}
        levels: Dict[str, int] = {}
        tags: Dict[str, int] = {}
        for entry in entries:
            providers[entry.provider] = providers.get(entry.provider, 0) + 1
            levels[entry.enhancement_level] = levels.get(entry.enhancement_level, 0) + 1
            for tag in entry.tags:
                tags[tag] = tags.get(tag, 0) + 1

        top_tags = sorted(tags.items(), key=lambda item: -item[1])[:TOP_TAGS_LIMIT]
        confidence_trend, acceptance_trend = _weekly_trends(entries)
        return HistoryStats(
            total_enhancements=len(entries),
            average_confidence=sum(entry.confidence for entry in entries) / len(entries),
            total_cost=sum(entry.cost_estimate for entry in entries),
            most_used_provider=_most_common(providers),
            most_used_level=_most_common(levels),
            top_tags=[{"tag": tag, "count": count} for tag, count in top_tags],
            confidence_over_time=confidence_trend,
            acceptance_rate_over_time=acceptance_trend,
        )

    def compare_enhancements(self, first_id: str, second_id: str) -> Dict[str, Any]:
        """Differences are ``second - first``."""
        with self._lock:
            first = self._require(first_id)
            second = self._require(second_id)
        return {
            "entry1": first.to_dict(),
            "entry2": second.to_dict(),
            "comparison": {
                "confidenceDiff": second.confidence - first.confidence,
                "costDiff": second.cost_estimate - first.cost_estimate,
                "suggestionCountDiff": second.suggestions_count - first.suggestions_count,
                "acceptanceRateDiff": second.acceptance_rate - first.acceptance_rate,
                "processingTimeDiff": second.processing_time - first.processing_time,
            },
        }

    def export_history(self, fmt: str = "json") -> str:
        with self._lock:
            entries = list(self._entries)

        if fmt == "csv":
            buffer = io.StringIO()
            writer = csv.writer(buffer, lineterminator="\n")
            writer.writerow(CSV_COLUMNS)
            for entry in entries:
                writer.writerow(
                    [
                        entry.timestamp.isoformat(),
                        entry.provider,
                        entry.enhancement_level,
                        entry.confidence,
                        entry.cost_estimate,
                        entry.processing_time,
                        entry.suggestions_count,
                        len(entry.accepted_suggestions),
                        len(entry.rejected_suggestions),
                        ";".join(entry.tags),
                        "true" if entry.has_job_description else "false",
                    ]
                )
            return buffer.getvalue().rstrip("\n")
        if fmt != "json":
            raise ValueError(f"Unsupported export format: {fmt}")
        return json.dumps([entry.to_dict() for entry in entries], indent=2, ensure_ascii=False)

    def delete_enhancement(self, entry_id: str) -> bool:
        with self._lock:
            entry = self._find(entry_id)
            if entry is None:
                return False
            self._entries.remove(entry)
            self._save()
        logger.info("history_deleted id=%s", entry_id)
        return True

    def clear_old_entries(self, days_to_keep: float = DEFAULT_DAYS_TO_KEEP) -> int:
        """Drop entries older than ``days_to_keep``; returns how many were removed."""
        cutoff = self._now() - timedelta(days=days_to_keep)
        with self._lock:
            before = len(self._entries)
            self._entries = [entry for entry in self._entries if entry.timestamp >= cutoff]
            removed = before - len(self._entries)
            self._save()
        logger.info("history_cleared removed=%s kept=%s", removed, before - removed)
        return removed

    # -- internals -------------------------------------------------------------

    def _now(self) -> datetime:
        now = self.clock()
        return now if now.tzinfo is not None else now.astimezone()

    def _find(self, entry_id: str) -> Optional[HistoryEntry]:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def _require(self, entry_id: str) -> HistoryEntry:
        entry = self._find(entry_id)
        if entry is None:
            raise HistoryEntryNotFoundError(entry_id)
        return entry

    def _save(self) -> None:
        try:
            self.storage.set(HISTORY_KEY, [entry.to_dict() for entry in self._entries])
        except Exception as exc:
            logger.warning("history_persist_failed key=%s error=%s", HISTORY_KEY, exc)

    def _load(self) -> List[HistoryEntry]:
        try:
            raw = self.storage.get(HISTORY_KEY)
        except Exception as exc:
            logger.warning("history_load_failed key=%s error=%s", HISTORY_KEY, exc)
            return []
        if not isinstance(raw, list):
            return []

        entries: List[HistoryEntry] = []
        for item in raw:
            try:
                entries.append(HistoryEntry.from_dict(item))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("history_entry_skipped error=%s", exc)
        return entries[: self.max_entries]


def _weekly_trends(entries: List[HistoryEntry]):
    weeks: Dict[datetime, List[HistoryEntry]] = {}
    for entry in entries:
        weeks.setdefault(_week_start(entry.timestamp), []).append(entry)

    confidence: List[Dict[str, Any]] = []
    acceptance: List[Dict[str, Any]] = []
    for week in sorted(weeks):
        group = weeks[week]
        suggestions = sum(entry.suggestions_count for entry in group)
        accepted = sum(len(entry.accepted_suggestions) for entry in group)
        confidence.append({"date": week.isoformat(), "confidence": sum(e.confidence for e in group) / len(group)})
        acceptance.append({"date": week.isoformat(), "rate": accepted / suggestions if suggestions else 0.0})
    return confidence, acceptance
