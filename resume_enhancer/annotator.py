"""Heuristic labels describing how a suggested value improves on the original.

Presentation-only: nothing in the pipeline depends on these labels, and
callers may pass any ``Annotator`` to ``SuggestionReview.annotate``.
"""

from __future__ import annotations

import re
from typing import Callable, List

Annotator = Callable[[str, str], List[str]]

NUMBER_RE = re.compile(r"\d+(?:\.\d+)?(?:\s*(?:%|percent|k|thousand|m|million|b|billion))?", re.IGNORECASE)
ACTION_VERB_RE = re.compile(
    r"\b(led|managed|developed|created|implemented|improved|increased|reduced|optimized|delivered|"
    r"achieved|designed|built|launched|streamlined|enhanced|established|coordinated|executed|"
    r"analyzed|resolved)\b",
    re.IGNORECASE,
)
IMPACT_WORD_RE = re.compile(
    r"\b(impact|result|outcome|success|growth|efficiency|performance|productivity|revenue|cost|"
    r"savings|roi|improvement)\b",
    re.IGNORECASE,
)
DEFAULT_LABEL = "Enhanced clarity and professionalism"


def describe_improvements(original: str, enhanced: str) -> List[str]:
    original = original or ""
    enhanced = enhanced or ""
    labels: List[str] = []

    if len(NUMBER_RE.findall(enhanced)) > len(NUMBER_RE.findall(original)):
        labels.append("Added quantifiable metrics")
    if len(ACTION_VERB_RE.findall(enhanced)) > len(ACTION_VERB_RE.findall(original)):
        labels.append("Stronger action verbs")
    if len(IMPACT_WORD_RE.findall(enhanced)) > len(IMPACT_WORD_RE.findall(original)):
        labels.append("More impact-focused language")

    if len(enhanced) < len(original) * 0.9:
        labels.append("More concise phrasing")
    elif len(enhanced) > len(original) * 1.1:
        labels.append("More detailed description")

    if ";" in enhanced or enhanced.count(",") > original.count(","):
        labels.append("Better structure and flow")

    return labels or [DEFAULT_LABEL]
