"""Provider model listings, the static fallback catalog and models.dev access."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from .errors import ProviderHttpError, ProviderParseError, UnsupportedProviderError
from .providers.anthropic import ANTHROPIC_API_BASE, ANTHROPIC_VERSION

logger = logging.getLogger("resume_enhancer.catalog")

OPENAI_MODELS_URL = "https://api.openai.com/v1/models"
ANTHROPIC_MODELS_URL = f"{ANTHROPIC_API_BASE}/models"
GEMINI_MODELS_URL = "https://generativelanguage.googleapis.com/v1beta/models"
MODELS_DEV_URL = "https://models.dev/api.json"
MODELS_DEV_LOGO_URL = "https://models.dev/logos/{provider}"
DEFAULT_LOGO = "default.svg"

OPENAI_CHAT_MARKERS = ("gpt", "o3", "o4", "davinci")

MODEL_DESCRIPTIONS: Dict[str, Dict[str, str]] = {
    "openai": {
        "gpt-4.1": "Most capable model with major gains in coding and instruction following",
        "gpt-4o": "Multimodal model integrating text and images",
        "o3-pro": "Advanced reasoning model for complex problems",
        "o4-mini": "Efficient reasoning model",
    },
    "anthropic": {
        "claude-opus-4.1": "Most capable and intelligent model",
        "claude-sonnet-4": "High-performance with exceptional reasoning",
        "claude-sonnet-3.7": "Extended thinking capabilities",
    },
    "gemini": {
        "gemini-2.5-pro": "Most advanced AI model",
        "gemini-2.5-flash": "Best price-performance ratio",
        "gemini-2.0-flash": "Next-gen features with 1M token context",
    },
}

# substring matches
RECOMMENDED_MODELS: Dict[str, List[str]] = {
    "openai": ["gpt-4.1", "gpt-4o", "o3-pro"],
    "anthropic": ["claude-opus-4-1-20250805", "claude-opus-4-20250514", "claude-sonnet-4-20250514"],
    "gemini": ["gemini-2.5-pro", "gemini-2.5-flash"],
}

DEPRECATED_MODELS: Dict[str, List[str]] = {
    "openai": ["gpt-4-turbo", "gpt-3.5-turbo", "davinci", "curie", "babbage", "ada"],
    "anthropic": ["claude-2", "claude-instant"],
    "gemini": ["gemini-1.5-pro", "gemini-1.5-flash", "gemini-pro", "gemini-pro-vision"],
}

DATE_SUFFIX_RE = re.compile(r"\d{8,}")
WORD_START_RE = re.compile(r"\b\w")


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    description: str
    is_recommended: bool = False
    is_deprecated: bool = False
    context_length: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "isRecommended": self.is_recommended,
        }
        if self.is_deprecated:
            payload["isDeprecated"] = True
        if self.context_length is not None:
            payload["contextLength"] = self.context_length
        return payload


# Kept in step with the priced models so every listed entry can be enhanced with.
FALLBACK_MODELS: Dict[str, List[ModelInfo]] = {
    "openai": [
        ModelInfo("gpt-4o", "GPT-4o", "Multimodal model", is_recommended=True),
        ModelInfo("gpt-4o-mini", "GPT-4o Mini", "Faster and cost-effective"),
        ModelInfo("gpt-4", "GPT-4", "Most capable legacy model"),
    ],
    "anthropic": [
        ModelInfo("claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet", "Balanced performance", is_recommended=True),
        ModelInfo("claude-3-5-haiku-20241022", "Claude 3.5 Haiku", "Fast and cost-effective"),
    ],
    "gemini": [
        ModelInfo("gemini-1.5-flash", "Gemini 1.5 Flash", "Fast multimodal model", is_recommended=True),
        ModelInfo("gemini-1.5-pro", "Gemini 1.5 Pro", "Google's flagship model"),
    ],
}


def format_model_name(model_id: str) -> str:
    """``claude-3-5-sonnet-20241022`` -> ``Claude 3 5 Sonnet (2024-10-22)``."""
    name = re.sub(r"[-_]", " ", model_id)
    name = WORD_START_RE.sub(lambda match: match.group(0).upper(), name)
    name = DATE_SUFFIX_RE.sub(lambda match: f"({match.group(0)[:4]}-{match.group(0)[4:6]}-{match.group(0)[6:]})", name)
    return name.strip()


def model_description(model_id: str, provider: str) -> str:
    return MODEL_DESCRIPTIONS.get(provider, {}).get(model_id, "AI language model")


def is_recommended(model_id: str, provider: str) -> bool:
    return any(marker in model_id for marker in RECOMMENDED_MODELS.get(provider, []))


def is_deprecated(model_id: str, provider: str) -> bool:
    return any(marker in model_id for marker in DEPRECATED_MODELS.get(provider, []))


def fallback_models(provider: str) -> List[ModelInfo]:
    return list(FALLBACK_MODELS.get(provider, []))


def _describe(model_id: str, provider: str, context_length: Any = None, description: str = "") -> ModelInfo:
    return ModelInfo(
        id=model_id,
        name=format_model_name(model_id),
        description=description or model_description(model_id, provider),
        is_recommended=is_recommended(model_id, provider),
        is_deprecated=is_deprecated(model_id, provider),
        context_length=context_length if isinstance(context_length, int) else None,
    )


async def fetch_models(provider: str, api_key: str, client: httpx.AsyncClient) -> List[ModelInfo]:
    """Query the provider's model listing endpoint; errors propagate."""
    if provider == "openai":
        response = await client.get(OPENAI_MODELS_URL, headers={"Authorization": f"Bearer {api_key}"})
    elif provider == "anthropic":
        response = await client.get(
            ANTHROPIC_MODELS_URL,
            headers={"x-api-key": api_key, "anthropic-version": ANTHROPIC_VERSION},
        )
    elif provider == "gemini":
        response = await client.get(GEMINI_MODELS_URL, params={"key": api_key})
    else:
        raise UnsupportedProviderError(provider)

    if not response.is_success:
        raise ProviderHttpError(provider, response.status_code, response.text)
    try:
        data = response.json()
    except ValueError as error:
        raise ProviderParseError(provider, "Model listing was not valid JSON") from error
    if not isinstance(data, dict):
        raise ProviderParseError(provider, "Model listing is not an object")

    if provider == "gemini":
        models = []
        for item in data.get("models") or []:
            name = str(item.get("name", ""))
            if "generateContent" not in (item.get("supportedGenerationMethods") or []) or "gemini" not in name:
                continue
            model_id = name.replace("models/", "")
            models.append(_describe(model_id, provider, item.get("inputTokenLimit"), item.get("description") or ""))
        return models

    items = data.get("data") or []
    if provider == "openai":
        items = [item for item in items if any(marker in str(item.get("id", "")) for marker in OPENAI_CHAT_MARKERS)]
        return [_describe(str(item["id"]), provider, item.get("context_length")) for item in items]
    return [_describe(str(item["id"]), provider, item.get("max_tokens")) for item in items if item.get("id")]


async def list_models(provider: str, api_key: str, client: httpx.AsyncClient) -> List[ModelInfo]:
    """Live listing, or the static catalog when the provider cannot be queried."""
    if provider not in FALLBACK_MODELS:
        raise UnsupportedProviderError(provider)
    try:
        models = await fetch_models(provider, api_key, client)
    except (httpx.HTTPError, ProviderHttpError, ProviderParseError, KeyError, TypeError, AttributeError) as exc:
        logger.warning("model_listing_fallback provider=%s error=%s", provider, exc.__class__.__name__)
        return fallback_models(provider)
    return models or fallback_models(provider)


async def fetch_models_dev(client: httpx.AsyncClient, url: str = MODELS_DEV_URL) -> httpx.Response:
    return await client.get(url)


async def fetch_logo(
    client: httpx.AsyncClient,
    provider: str,
    url_template: str = MODELS_DEV_LOGO_URL,
) -> httpx.Response:
    """Provider logo, or the default logo when upstream has none."""
    response = await client.get(url_template.format(provider=provider))
    if response.status_code == 404:
        logger.info("logo_fallback provider=%s", provider)
        response = await client.get(url_template.format(provider=DEFAULT_LOGO))
    return response
