"""Provider adapter table, defaults and API key resolution."""

from __future__ import annotations

import inspect
import os
from typing import Any, Dict, List, Optional, Type

from ..errors import UnsupportedProviderError
from .anthropic import AnthropicAdapter
from .base import ProviderAdapter
from .gemini import GeminiAdapter
from .openai_compat import OpenAIAdapter
from .types import Message

PROVIDER_ADAPTERS: Dict[str, Type[Any]] = {
    "openai": OpenAIAdapter,
    "anthropic": AnthropicAdapter,
    "gemini": GeminiAdapter,
}

PROVIDER_DEFAULTS: Dict[str, Dict[str, str]] = {
    "openai": {"model": "gpt-4o", "env_key": "OPENAI_API_KEY"},
    "anthropic": {"model": "claude-3-5-sonnet-20241022", "env_key": "ANTHROPIC_API_KEY"},
    "gemini": {"model": "gemini-1.5-flash", "env_key": "GEMINI_API_KEY"},
}


def supported_providers() -> List[str]:
    return list(PROVIDER_ADAPTERS)


def create_adapter(provider: str, **kwargs: Any) -> ProviderAdapter:
    """Instantiate the adapter registered for ``provider``.

    Keyword arguments the adapter does not accept are ignored, so callers can
    pass a shared ``http_client`` without caring which SDK backs a provider.
    """
    adapter_cls = PROVIDER_ADAPTERS.get((provider or "").lower())
    if adapter_cls is None:
        raise UnsupportedProviderError(provider)

    accepted = inspect.signature(adapter_cls).parameters
    return adapter_cls(**{key: value for key, value in kwargs.items() if key in accepted})


def create_adapters(**kwargs: Any) -> Dict[str, ProviderAdapter]:
    return {name: create_adapter(name, **kwargs) for name in PROVIDER_ADAPTERS}


def resolve_api_key(provider: str, api_key: Optional[str] = None) -> str:
    """Resolve a key from an explicit value, a ``${VAR}`` placeholder or the env.

    Returns an empty string when nothing resolves; callers decide whether
    that is an error.
    """
    api_key = (api_key or "").strip()
    if api_key.startswith("${") and api_key.endswith("}"):
        resolved = os.environ.get(api_key[2:-1], "")
        if resolved:
            return resolved
    elif api_key:
        return api_key

    env_key = PROVIDER_DEFAULTS.get(provider, {}).get("env_key", "")
    if env_key:
        return os.environ.get(env_key, "")
    return ""


__all__ = [
    "AnthropicAdapter",
    "GeminiAdapter",
    "Message",
    "OpenAIAdapter",
    "PROVIDER_ADAPTERS",
    "PROVIDER_DEFAULTS",
    "ProviderAdapter",
    "create_adapter",
    "create_adapters",
    "resolve_api_key",
    "supported_providers",
]
