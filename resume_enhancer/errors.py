"""Error taxonomy shared by adapters, the orchestrator and the HTTP API."""

from __future__ import annotations

from typing import Any, Dict, Optional


class EnhancerError(Exception):
    """Base class; carries a wire-level error type and an HTTP status."""

    error_type = "unknown"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.error_type, "message": self.message}


class ValidationError(EnhancerError):
    """Missing or malformed request fields."""

    error_type = "validation_error"
    status_code = 400


class UnsupportedProviderError(ValidationError):
    error_type = "unsupported_provider"

    def __init__(self, provider: str) -> None:
        super().__init__(f"Unsupported provider: {provider}")
        self.provider = provider


class UnsupportedModelError(ValidationError):
    error_type = "unsupported_model"

    def __init__(self, provider: str, model: str) -> None:
        super().__init__(f"Unsupported model for {provider}: {model}")
        self.provider = provider
        self.model = model


class ProviderError(EnhancerError):
    """Failure while talking to an upstream LLM provider."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(message)
        self.provider = provider


class ProviderHttpError(ProviderError):
    """Upstream answered with a non-2xx status."""

    def __init__(self, provider: str, status: int, body: str) -> None:
        label = PROVIDER_LABELS.get(provider, provider)
        super().__init__(provider, f"{label} API error ({status}): {body}")
        self.status = status
        self.body = body

    @property
    def error_type(self) -> str:  # type: ignore[override]
        if self.status in (401, 403):
            return "api_key_invalid"
        if self.status == 429:
            lowered = (self.body or "").lower()
            if "quota" in lowered or "billing" in lowered:
                return "quota_exceeded"
            return "rate_limit"
        if self.status == 404:
            return "model_unavailable"
        return "provider_http_error"


class ProviderParseError(ProviderError):
    """Upstream body was not JSON or did not have the expected shape."""

    error_type = "parsing_error"


class ProviderConnectionError(ProviderError):
    """Transport failure or timeout before a response arrived."""

    error_type = "network_error"


class ProviderTimeoutError(ProviderError):
    """A single provider attempt ran past the per-request timeout."""

    error_type = "timeout"

    def __init__(self, provider: str, timeout: float) -> None:
        super().__init__(provider, f"Provider call timed out after {timeout:g}s")
        self.timeout = timeout


class SuggestionParseError(EnhancerError):
    """The model answered, but not with the structured suggestion payload."""

    error_type = "parsing_error"


class SuggestionNotFoundError(EnhancerError):
    error_type = "validation_error"
    status_code = 404

    def __init__(self, suggestion_id: str) -> None:
        super().__init__(f"Unknown suggestion: {suggestion_id}")
        self.suggestion_id = suggestion_id


class SuggestionStateError(EnhancerError):
    """Accepted and rejected are terminal states."""

    error_type = "validation_error"
    status_code = 409

    def __init__(self, suggestion_id: str, status: str) -> None:
        super().__init__(f"Suggestion {suggestion_id} is already {status}")
        self.suggestion_id = suggestion_id
        self.status = status


class HistoryEntryNotFoundError(EnhancerError):
    error_type = "validation_error"
    status_code = 404

    def __init__(self, entry_id: str) -> None:
        super().__init__(f"Unknown history entry: {entry_id}")
        self.entry_id = entry_id


class UnknownError(EnhancerError):
    error_type = "unknown"


PROVIDER_LABELS: Dict[str, str] = {
    "openai": "OpenAI",
    "anthropic": "Anthropic",
    "gemini": "Gemini",
}


def error_payload(error: BaseException, provider: Optional[str] = None) -> Dict[str, Any]:
    """Normalize any exception into the ``{type, message}`` envelope."""
    if isinstance(error, EnhancerError):
        payload = error.to_dict()
    else:
        payload = {"type": "unknown", "message": str(error) or error.__class__.__name__}
    if provider:
        payload["provider"] = provider
    return payload
