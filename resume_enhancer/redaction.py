"""Log redaction for resume content, provider keys and upstream error bodies."""

from __future__ import annotations

import re
from typing import Any

EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
PHONE_RE = re.compile(r"(?:(?:\+?\d[\d\s().-]{7,}\d))")
# OpenAI (sk-, sk-proj-), Anthropic (sk-ant-) and Google (AIza) key shapes
SECRET_RE = re.compile(r"\b(?:sk|rk)-[A-Za-z0-9_-]{8,}|\bAIza[0-9A-Za-z_-]{20,}")
SENSITIVE_KEYS = frozenset({"apikey", "api_key", "x-api-key", "authorization", "key"})


def mask_key(api_key: str) -> str:
    """Keep a short prefix so operators can tell keys apart in logs."""
    if not api_key:
        return ""
    if len(api_key) <= 8:
        return "***"
    return f"{api_key[:4]}...{api_key[-2:]}"


def redact_text(value: str, max_length: int = 200) -> str:
    redacted = EMAIL_RE.sub("[REDACTED_EMAIL]", value or "")
    redacted = SECRET_RE.sub("[REDACTED_KEY]", redacted)
    redacted = PHONE_RE.sub("[REDACTED_PHONE]", redacted)
    if len(redacted) > max_length:
        return f"{redacted[:max_length]}..."
    return redacted


def redact_for_log(value: Any) -> Any:
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, dict):
        return {
            str(k): "[REDACTED_KEY]" if str(k).lower() in SENSITIVE_KEYS else redact_for_log(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [redact_for_log(item) for item in value]
    if isinstance(value, tuple):
        return tuple(redact_for_log(item) for item in value)
    return value
