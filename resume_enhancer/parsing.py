"""Turn a model's free-text reply into structured suggestions."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .errors import SuggestionParseError
from .models import SUGGESTION_TYPES, AISuggestion, make_id

logger = logging.getLogger("resume_enhancer.parsing")

JSON_BLOCK_RE = re.compile(r"\{[\s\S]*\}")
DEFAULT_CONFIDENCE = 0.8
REQUIRED_FIELDS = ("field", "originalValue", "suggestedValue")


@dataclass
class ParsedReply:
    suggestions: List[AISuggestion]
    enhanced_data: Optional[Dict[str, Any]] = None
    model_confidence: Optional[float] = None


def clamp_confidence(value: Any, default: float = DEFAULT_CONFIDENCE) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return min(1.0, max(0.0, number))


def aggregate_confidence(suggestions: List[AISuggestion]) -> float:
    if not suggestions:
        return 0.0
    return sum(item.confidence for item in suggestions) / len(suggestions)


def extract_json_block(text: str) -> Dict[str, Any]:
    """Decode the outermost ``{...}`` span of ``text``.

    Models often wrap the JSON in prose or code fences; everything outside
    the first opening and last closing brace is ignored.
    """
    match = JSON_BLOCK_RE.search(text or "")
    if match is None:
        raise SuggestionParseError("No JSON object found in the model response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as error:
        raise SuggestionParseError(f"Model response is not valid JSON: {error.msg}") from error
    if not isinstance(data, dict):
        raise SuggestionParseError("Model response JSON is not an object")
    return data


def parse_suggestions(text: str) -> ParsedReply:
    data = extract_json_block(text)

    raw_items = data.get("suggestions", [])
    if not isinstance(raw_items, list):
        raise SuggestionParseError("'suggestions' must be a list")

    suggestions: List[AISuggestion] = []
    dropped = 0
    for item in raw_items:
        suggestion = _suggestion_from_item(item)
        if suggestion is None:
            dropped += 1
            continue
        suggestions.append(suggestion)

    if dropped:
        logger.warning("suggestions_dropped count=%s kept=%s", dropped, len(suggestions))

    enhanced = data.get("enhancedData")
    model_confidence = data.get("confidence")
    return ParsedReply(
        suggestions=suggestions,
        enhanced_data=enhanced if isinstance(enhanced, dict) else None,
        model_confidence=clamp_confidence(model_confidence) if model_confidence is not None else None,
    )


def _suggestion_from_item(item: Any) -> Optional[AISuggestion]:
    if not isinstance(item, dict):
        return None
    if any(not isinstance(item.get(key), str) for key in REQUIRED_FIELDS):
        return None
    if not item["field"].strip():
        return None

    kind = str(item.get("type") or "improvement")
    section = item.get("section")
    return AISuggestion(
        id=make_id("sugg"),
        type=kind if kind in SUGGESTION_TYPES else "improvement",
        field=item["field"].strip(),
        section=str(section) if section else None,
        original_value=item["originalValue"],
        suggested_value=item["suggestedValue"],
        confidence=clamp_confidence(item.get("confidence")),
        reasoning=str(item.get("reasoning") or ""),
    )
