"""Cleaning of free-text instructions that end up in outbound prompts."""

from __future__ import annotations

import re
from typing import Optional

REFINEMENT_MAX_LENGTH = 300
USER_INSTRUCTIONS_MAX_LENGTH = 500

SCRIPT_TAG_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
HTML_TAG_RE = re.compile(r"<[^>]*>")
JAVASCRIPT_SCHEME_RE = re.compile(r"javascript:", re.IGNORECASE)

INJECTION_PATTERNS = [
    re.compile(r"ignore.{0,10}(previous|above|system)", re.IGNORECASE),
    re.compile(r"forget.{0,10}(instructions|rules)", re.IGNORECASE),
    re.compile(r"act.{0,10}as.{0,10}(admin|root|developer)", re.IGNORECASE),
    re.compile(r"pretend.{0,10}(you|to).{0,10}(are|be)", re.IGNORECASE),
]
FILTERED_MARKER = "[filtered]"
ELLIPSIS = "..."
RESUME_KEYWORDS = ("resume", "achievement", "bullet", "experience")
RESUME_FOCUS_PREFIX = "Resume enhancement: "


def strip_markup(text: str) -> str:
    text = SCRIPT_TAG_RE.sub("", text)
    text = HTML_TAG_RE.sub("", text)
    return JAVASCRIPT_SCHEME_RE.sub("", text)


def sanitize_refinement_instructions(instructions: Optional[str]) -> str:
    """Strip scripts, tags and ``javascript:`` then cap at 300 characters."""
    if not instructions:
        return ""
    return strip_markup(instructions)[:REFINEMENT_MAX_LENGTH].strip()


def sanitize_user_instructions(instructions: Optional[str]) -> str:
    """Neutralize common prompt-injection phrasings in user instructions.

    Text over 500 characters is cut to 497 plus ``...``. Instructions that
    never mention the resume are prefixed so the model reads them in context.
    """
    if not instructions:
        return ""
    text = strip_markup(instructions)
    for pattern in INJECTION_PATTERNS:
        text = pattern.sub(FILTERED_MARKER, text)
    text = text.strip()
    if len(text) > USER_INSTRUCTIONS_MAX_LENGTH:
        text = text[: USER_INSTRUCTIONS_MAX_LENGTH - len(ELLIPSIS)] + ELLIPSIS
    lowered = text.lower()
    if text and not any(word in lowered for word in RESUME_KEYWORDS):
        text = RESUME_FOCUS_PREFIX + text
    return text.strip()
