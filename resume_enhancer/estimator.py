"""Token and cost estimation for enhancement requests.

Everything here is pure and synchronous: no network I/O, no shared mutable
state beyond the pricing table an estimator instance was built with.
Token counts use a four-characters-per-token approximation, so callers must
treat results as estimates rather than billing-exact numbers.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger("resume_enhancer.estimator")

CHARS_PER_TOKEN = 4
DEFAULT_OUTPUT_TOKENS = 1500
SYSTEM_PROMPT_TOKENS = 500
FORMATTING_OVERHEAD_TOKENS = 200
CONTEXT_SAFETY_BUFFER = 100
MIN_OUTPUT_TOKENS = 500
MODELS_PER_PROVIDER_IN_COMPARISON = 2

LEVEL_OUTPUT_MULTIPLIERS: Dict[str, float] = {
    "light": 0.7,
    "moderate": 1.0,
    "comprehensive": 1.5,
}

# models.dev keys providers by vendor, not by API product
MODELS_DEV_PROVIDER_IDS: Dict[str, str] = {
    "gemini": "google",
    "google": "google",
    "openai": "openai",
    "anthropic": "anthropic",
}


@dataclass(frozen=True)
class ModelPricing:
    input_cost_per_1m: float
    output_cost_per_1m: float
    context_window: int

    @property
    def mean_cost_per_1m(self) -> float:
        return (self.input_cost_per_1m + self.output_cost_per_1m) / 2


# USD per 1M tokens, January 2025 list prices
PRICING_DATA: Dict[str, Dict[str, ModelPricing]] = {
    "openai": {
        "gpt-4o": ModelPricing(2.5, 10.0, 128000),
        "gpt-4o-mini": ModelPricing(0.15, 0.6, 128000),
        "gpt-4-turbo": ModelPricing(10.0, 30.0, 128000),
        "gpt-4": ModelPricing(30.0, 60.0, 8192),
        "gpt-3.5-turbo": ModelPricing(0.5, 1.5, 16385),
    },
    "anthropic": {
        "claude-3-5-sonnet-20241022": ModelPricing(3.0, 15.0, 200000),
        "claude-3-5-haiku-20241022": ModelPricing(0.8, 4.0, 200000),
        "claude-3-opus-20240229": ModelPricing(15.0, 75.0, 200000),
        "claude-3-sonnet-20240229": ModelPricing(3.0, 15.0, 200000),
        "claude-3-haiku-20240307": ModelPricing(0.25, 1.25, 200000),
    },
    "gemini": {
        "gemini-1.5-pro": ModelPricing(1.25, 5.0, 2097152),
        "gemini-1.5-flash": ModelPricing(0.075, 0.3, 1048576),
        "gemini-1.0-pro": ModelPricing(0.5, 1.5, 32768),
    },
}


@dataclass(frozen=True)
class TokenEstimate:
    input_tokens: int
    output_tokens: int

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> Dict[str, int]:
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass(frozen=True)
class CostEstimate:
    input_cost: float
    output_cost: float
    model: str
    provider: str
    token_estimate: TokenEstimate
    warnings_exceeded_context: bool = False
    recommended: bool = False
    currency: str = "USD"

    @property
    def total_cost(self) -> float:
        return self.input_cost + self.output_cost

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inputCost": self.input_cost,
            "outputCost": self.output_cost,
            "totalCost": self.total_cost,
            "currency": self.currency,
            "model": self.model,
            "provider": self.provider,
            "tokenEstimate": self.token_estimate.to_dict(),
            "warningsExceededContext": self.warnings_exceeded_context,
            "recommended": self.recommended,
        }


def estimate_tokens(text: str) -> int:
    """Approximate token count: one token per four characters, rounded up."""
    return -(-len(text or "") // CHARS_PER_TOKEN)


def estimate_output_tokens(enhancement_level: str) -> int:
    multiplier = LEVEL_OUTPUT_MULTIPLIERS.get(enhancement_level, 1.0)
    # round() drops float noise such as 1049.9999999999998 before the ceiling
    return math.ceil(round(DEFAULT_OUTPUT_TOKENS * multiplier, 6))


def format_cost(cost: float, currency: str = "USD") -> str:
    if cost < 0.001:
        return f"<$0.001 {currency}"
    if cost < 0.01:
        return f"${cost:.4f} {currency}"
    return f"${cost:.3f} {currency}"


class CostEstimator:
    """Pricing lookups and enhancement cost estimates.

    Static list prices ship with the package; ``load_models_dev`` layers the
    live models.dev catalog on top, and dynamic prices win on conflicts.
    """

    def __init__(self, pricing: Optional[Mapping[str, Mapping[str, ModelPricing]]] = None) -> None:
        source = PRICING_DATA if pricing is None else pricing
        self._static: Dict[str, Dict[str, ModelPricing]] = {
            provider: dict(models) for provider, models in source.items()
        }
        self._dynamic: Dict[str, Dict[str, ModelPricing]] = {}

    # -- pricing lookups ---------------------------------------------------

    def get_supported_providers(self) -> List[str]:
        return list(self._static)

    def get_model_pricing(self, provider: str, model: str) -> Optional[ModelPricing]:
        dynamic = self._dynamic.get(provider, {}).get(model)
        if dynamic is not None:
            return dynamic
        return self._static.get(provider, {}).get(model)

    def is_model_supported(self, provider: str, model: str) -> bool:
        return self.get_model_pricing(provider, model) is not None

    def get_provider_models(self, provider: str) -> List[Tuple[str, ModelPricing]]:
        """Models for ``provider`` ordered by mean per-1M cost, cheapest first."""
        merged: Dict[str, ModelPricing] = dict(self._static.get(provider, {}))
        merged.update(self._dynamic.get(provider, {}))
        return sorted(merged.items(), key=lambda item: item[1].mean_cost_per_1m)

    def get_most_cost_effective_model(self, provider: str) -> Optional[str]:
        models = self.get_provider_models(provider)
        return models[0][0] if models else None

    def load_models_dev(self, payload: Mapping[str, Any]) -> int:
        """Merge pricing from a models.dev ``api.json`` payload.

        Only providers this estimator already knows are imported. Returns the
        number of models that received dynamic pricing.
        """
        loaded = 0
        for provider in self._static:
            vendor = payload.get(MODELS_DEV_PROVIDER_IDS.get(provider, provider))
            if not isinstance(vendor, Mapping):
                continue
            models = vendor.get("models")
            if not isinstance(models, Mapping):
                continue
            for model_id, model in models.items():
                pricing = _pricing_from_models_dev(model)
                if pricing is None:
                    continue
                self._dynamic.setdefault(provider, {})[str(model_id)] = pricing
                loaded += 1
        logger.info("models_dev_pricing_loaded models=%s", loaded)
        return loaded

    # -- estimates ----------------------------------------------------------

    def calculate_cost(self, provider: str, model: str, input_tokens: int, output_tokens: int) -> Optional[float]:
        pricing = self.get_model_pricing(provider, model)
        if pricing is None:
            return None
        return (
            (input_tokens / 1_000_000) * pricing.input_cost_per_1m
            + (output_tokens / 1_000_000) * pricing.output_cost_per_1m
        )

    def estimate_enhancement_cost(
        self,
        provider: str,
        model: str,
        original_text: str,
        job_description: Optional[str] = None,
        user_instructions: Optional[str] = None,
        enhancement_level: str = "moderate",
    ) -> Optional[CostEstimate]:
        pricing = self.get_model_pricing(provider, model)
        if pricing is None:
            return None

        input_text = original_text or ""
        if job_description:
            input_text += "\n" + job_description
        if user_instructions:
            input_text += "\n" + user_instructions

        input_tokens = estimate_tokens(input_text) + SYSTEM_PROMPT_TOKENS + FORMATTING_OVERHEAD_TOKENS
        output_tokens = estimate_output_tokens(enhancement_level)

        exceeded = input_tokens + output_tokens > pricing.context_window
        if exceeded:
            output_tokens = max(
                MIN_OUTPUT_TOKENS,
                pricing.context_window - input_tokens - CONTEXT_SAFETY_BUFFER,
            )

        return CostEstimate(
            input_cost=(input_tokens / 1_000_000) * pricing.input_cost_per_1m,
            output_cost=(output_tokens / 1_000_000) * pricing.output_cost_per_1m,
            model=model,
            provider=provider,
            token_estimate=TokenEstimate(input_tokens=input_tokens, output_tokens=output_tokens),
            warnings_exceeded_context=exceeded,
        )

    def compare_providers_for_request(
        self,
        original_text: str,
        job_description: Optional[str] = None,
        user_instructions: Optional[str] = None,
        enhancement_level: str = "moderate",
    ) -> List[CostEstimate]:
        results: List[CostEstimate] = []
        for provider in self.get_supported_providers():
            for model, _pricing in self.get_provider_models(provider)[:MODELS_PER_PROVIDER_IN_COMPARISON]:
                estimate = self.estimate_enhancement_cost(
                    provider,
                    model,
                    original_text,
                    job_description,
                    user_instructions,
                    enhancement_level,
                )
                if estimate is not None:
                    results.append(estimate)

        results.sort(key=lambda estimate: estimate.total_cost)
        if results:
            results[0] = replace(results[0], recommended=True)
        return results


def _pricing_from_models_dev(model: Any) -> Optional[ModelPricing]:
    if not isinstance(model, Mapping):
        return None
    cost = model.get("cost")
    limit = model.get("limit")
    if not isinstance(cost, Mapping) or not isinstance(limit, Mapping):
        return None
    try:
        return ModelPricing(
            input_cost_per_1m=float(cost["input"]),
            output_cost_per_1m=float(cost["output"]),
            context_window=int(limit["context"]),
        )
    except (KeyError, TypeError, ValueError):
        return None
