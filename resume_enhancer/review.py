"""Accept/reject review of a suggestion set and merging into resume data."""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from jsonpath_ng.exceptions import JSONPathError
from jsonpath_ng.ext import parse as jsonpath_parse

from .annotator import Annotator, describe_improvements
from .errors import SuggestionNotFoundError, SuggestionStateError, ValidationError
from .models import AIEnhancementResult, AISuggestion, SuggestionStatus

logger = logging.getLogger("resume_enhancer.review")

DOTTED_INDEX_RE = re.compile(r"\.(\d+)(?=\.|\[|$)")


@dataclass(frozen=True)
class ReviewCounts:
    total: int
    pending: int
    accepted: int
    rejected: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "pending": self.pending,
            "accepted": self.accepted,
            "rejected": self.rejected,
        }


@dataclass
class SkippedSuggestion:
    id: str
    field: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "field": self.field, "reason": self.reason}


@dataclass
class ApplyOutcome:
    resume_data: Dict[str, Any]
    applied: List[str] = field(default_factory=list)
    skipped: List[SkippedSuggestion] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resumeData": self.resume_data,
            "applied": list(self.applied),
            "skipped": [item.to_dict() for item in self.skipped],
        }


def to_jsonpath(path: str) -> str:
    """Normalize a suggestion field into a rooted JSONPath expression.

    ``personal.summary`` becomes ``$.personal.summary`` and dotted indices
    (``experience.0.text``) become subscripts. Expressions that already start
    at ``$`` are kept as written.
    """
    path = DOTTED_INDEX_RE.sub(r"[\1]", (path or "").strip())
    if not path or path.startswith("$"):
        return path
    return f"$.{path}"


def set_by_path(data: Any, path: str, value: Any) -> Optional[str]:
    """Assign ``value`` at every match of ``path`` inside ``data``.

    Returns a reason on failure. Only existing locations are written: an
    expression with no match is reported rather than created.
    """
    expression = to_jsonpath(path)
    if not expression:
        return "empty field path"
    try:
        matches = jsonpath_parse(expression).find(data)
    except JSONPathError as exc:
        return f"invalid path: {exc}"
    if not matches:
        return f"no match for {expression}"

    scalar = not isinstance(value, (dict, list))
    for match in matches:
        if scalar and isinstance(match.value, (dict, list)):
            return f"'{match.full_path}' holds nested data"
    for match in matches:
        match.full_path.update(data, value)
    return None


class SuggestionReview:
    """Per-suggestion review state: pending -> accepted | rejected.

    Decisions are one-way. Starting over means building a new review from a
    fresh enhancement result.
    """

    def __init__(self, suggestions: Iterable[AISuggestion]) -> None:
        self._suggestions: List[AISuggestion] = list(suggestions)
        self._by_id: Dict[str, AISuggestion] = {}
        for suggestion in self._suggestions:
            if suggestion.id in self._by_id:
                raise ValidationError(f"Duplicate suggestion id: {suggestion.id}")
            self._by_id[suggestion.id] = suggestion

    @classmethod
    def from_result(cls, result: AIEnhancementResult) -> "SuggestionReview":
        return cls(result.suggestions)

    @property
    def suggestions(self) -> List[AISuggestion]:
        return list(self._suggestions)

    def get(self, suggestion_id: str) -> AISuggestion:
        suggestion = self._by_id.get(suggestion_id)
        if suggestion is None:
            raise SuggestionNotFoundError(suggestion_id)
        return suggestion

    # -- transitions -------------------------------------------------------------

    def accept_one(self, suggestion_id: str) -> AISuggestion:
        return self._decide(suggestion_id, SuggestionStatus.ACCEPTED)

    def reject_one(self, suggestion_id: str) -> AISuggestion:
        return self._decide(suggestion_id, SuggestionStatus.REJECTED)

    def accept_all(self) -> int:
        return self._decide_pending(SuggestionStatus.ACCEPTED)

    def reject_all(self) -> int:
        return self._decide_pending(SuggestionStatus.REJECTED)

    def _decide(self, suggestion_id: str, status: SuggestionStatus) -> AISuggestion:
        suggestion = self.get(suggestion_id)
        if suggestion.status is not SuggestionStatus.PENDING:
            raise SuggestionStateError(suggestion_id, suggestion.status.value)
        suggestion.status = status
        return suggestion

    def _decide_pending(self, status: SuggestionStatus) -> int:
        changed = 0
        for suggestion in self._suggestions:
            if suggestion.status is SuggestionStatus.PENDING:
                suggestion.status = status
                changed += 1
        return changed

    # -- queries -----------------------------------------------------------------

    def counts(self) -> ReviewCounts:
        tally = {status: 0 for status in SuggestionStatus}
        for suggestion in self._suggestions:
            tally[suggestion.status] += 1
        return ReviewCounts(
            total=len(self._suggestions),
            pending=tally[SuggestionStatus.PENDING],
            accepted=tally[SuggestionStatus.ACCEPTED],
            rejected=tally[SuggestionStatus.REJECTED],
        )

    @property
    def is_complete(self) -> bool:
        return self.counts().pending == 0

    def compute_diff(self) -> List[AISuggestion]:
        """Accepted suggestions in their original order."""
        return [s for s in self._suggestions if s.status is SuggestionStatus.ACCEPTED]

    def apply(self, resume_data: Dict[str, Any]) -> ApplyOutcome:
        """Merge accepted values into a copy of ``resume_data``.

        The input is never modified. Suggestions whose field path does not
        resolve are reported in ``skipped``.
        """
        merged = copy.deepcopy(resume_data)
        outcome = ApplyOutcome(resume_data=merged)
        for suggestion in self.compute_diff():
            reason = None
            for path in _candidate_paths(suggestion):
                reason = set_by_path(merged, path, suggestion.suggested_value)
                if reason is None:
                    break
            if reason is None:
                outcome.applied.append(suggestion.id)
            else:
                outcome.skipped.append(SkippedSuggestion(suggestion.id, suggestion.field, reason))

        logger.info("review_applied applied=%s skipped=%s", len(outcome.applied), len(outcome.skipped))
        return outcome

    def annotate(self, annotator: Annotator = describe_improvements) -> Dict[str, List[str]]:
        return {s.id: annotator(s.original_value, s.suggested_value) for s in self._suggestions}


def _candidate_paths(suggestion: AISuggestion) -> List[str]:
    paths = [suggestion.field]
    # models sometimes send a bare field name with the section alongside
    bare = not any(ch in suggestion.field for ch in ".[$")
    if suggestion.section and bare:
        paths.append(f"{suggestion.section}.{suggestion.field}")
    return paths
