"""Enhancement pipeline: validate, estimate, invoke, parse, record."""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from dataclasses import replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .cache import RequestRateLimiter, ResultCache
from .errors import (
    EnhancerError,
    ProviderTimeoutError,
    UnsupportedModelError,
    UnsupportedProviderError,
    ValidationError,
    error_payload,
)
from .estimator import CostEstimate, CostEstimator, estimate_tokens
from .history import EnhancementHistory
from .models import (
    ENHANCEMENT_LEVELS,
    AIEnhancementResult,
    AISuggestion,
    EnhancementMetadata,
    EnhancementOptions,
    EnhancementRequest,
    SuggestionStatus,
    make_id,
    utc_now_iso,
)
from .parsing import aggregate_confidence, parse_suggestions
from .prompts import build_enhancement_messages, build_refinement_messages
from .providers import PROVIDER_DEFAULTS, create_adapters, resolve_api_key
from .providers.base import ProviderAdapter
from .providers.types import Message
from .redaction import mask_key, redact_for_log, redact_text
from .retry import RetryConfig, retry_with_backoff
from .sanitize import sanitize_refinement_instructions, sanitize_user_instructions
from .usage import UsageTracker

logger = logging.getLogger("resume_enhancer.orchestrator")

FALLBACK_ORDER = ("openai", "anthropic", "gemini")
FALLBACK_ERROR_TYPES = frozenset({"rate_limit", "quota_exceeded", "network_error", "timeout"})
DEFAULT_MAX_OUTPUT_TOKENS = 2000
DEFAULT_TIMEOUT_SECONDS = 60.0
CONNECTION_TEST_PROMPT = "Hello, this is a connection test. Please respond with 'OK'."
CONNECTION_TEST_MAX_TOKENS = 10

KeyResolver = Callable[[str, Optional[str]], str]


class EnhancementOrchestrator:
    """Runs enhancement requests against the configured provider adapters.

    ``enhance`` and ``refine`` never raise for provider, validation or parse
    failures: they return an ``AIEnhancementResult`` with ``success=False``.
    Cancellation is the exception; it is recorded as a failed usage event
    and re-raised.
    """

    def __init__(
        self,
        adapters: Optional[Mapping[str, ProviderAdapter]] = None,
        estimator: Optional[CostEstimator] = None,
        usage_tracker: Optional[UsageTracker] = None,
        retry_config: Optional[RetryConfig] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
        default_models: Optional[Mapping[str, str]] = None,
        key_resolver: KeyResolver = resolve_api_key,
        result_cache: Optional[ResultCache] = None,
        rate_limiter: Optional[RequestRateLimiter] = None,
        history: Optional[EnhancementHistory] = None,
    ) -> None:
        self.adapters: Dict[str, ProviderAdapter] = dict(adapters) if adapters is not None else create_adapters()
        self.estimator = estimator or CostEstimator()
        self.usage_tracker = usage_tracker
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self.max_output_tokens = max_output_tokens
        self.default_models: Dict[str, str] = {name: spec["model"] for name, spec in PROVIDER_DEFAULTS.items()}
        if default_models:
            self.default_models.update(default_models)
        self.key_resolver = key_resolver
        self.result_cache = result_cache
        self.rate_limiter = rate_limiter
        self.history = history

    # -- public API ------------------------------------------------------------

    async def enhance(
        self,
        options: EnhancementOptions,
        original_text: str,
        parsed_data: Optional[Dict[str, Any]],
        api_key: Optional[str] = None,
    ) -> AIEnhancementResult:
        started = time.perf_counter()
        parsed_data = copy.deepcopy(parsed_data or {})
        try:
            options, key = self._validate(options, api_key)
            if not (original_text or "").strip() and not parsed_data:
                raise ValidationError("Nothing to enhance: originalText and parsedData are both empty")
        except EnhancerError as error:
            return self._rejected(options, error, started, len(original_text or ""))

        logger.debug(
            "enhancement_started provider=%s model=%s key=%s options=%s",
            options.provider,
            options.model,
            mask_key(key),
            redact_for_log(options.to_dict()),
        )
        cache_key = None
        if self.result_cache is not None:
            cache_key = self.result_cache.make_key(original_text, options, parsed_data)
            cached = self.result_cache.get(cache_key)
            if cached is not None:
                logger.info("enhancement_cache_hit provider=%s model=%s", options.provider, options.model)
                result = _fresh_copy(cached)
                result.metadata.processing_time_ms = _elapsed_ms(started)
                return self._remember(result, options)

        instructions = sanitize_user_instructions(options.user_instructions)
        request = EnhancementRequest(
            options=options,
            original_text=original_text or "",
            parsed_data=parsed_data,
            messages=build_enhancement_messages(options, original_text or "", parsed_data, instructions),
        )
        estimate = self._preflight_estimate(options, original_text or "", instructions)
        result = await self._execute(request, key, started, estimate)
        if cache_key is not None and result.success and not result.metadata.fallback_from:
            self.result_cache.set(cache_key, copy.deepcopy(result))
        return self._remember(result, options)

    async def refine(
        self,
        previous: AIEnhancementResult,
        instructions: str,
        api_key: Optional[str] = None,
        original_text: Optional[str] = None,
        parsed_data: Optional[Dict[str, Any]] = None,
    ) -> AIEnhancementResult:
        """Ask the model to rework ``previous`` suggestions.

        ``previous.request`` carries the original conversation. Results posted
        back by a client have lost it, so the enhancement prompt is rebuilt
        from ``original_text`` / ``parsed_data`` (or ``previous.original_data``).
        """
        started = time.perf_counter()
        base = previous.request
        if base is None:
            data = copy.deepcopy(parsed_data if parsed_data is not None else previous.original_data)
            options = EnhancementOptions(provider=previous.provider, model=previous.model)
            text = original_text or ""
            base = EnhancementRequest(
                options=options,
                original_text=text,
                parsed_data=data,
                messages=build_enhancement_messages(options, text, data),
            )

        options = replace(base.options, provider=previous.provider or base.options.provider)
        options = replace(options, model=previous.model or options.model)
        try:
            options, key = self._validate(options, api_key)
            cleaned = sanitize_refinement_instructions(instructions)
            if not cleaned:
                raise ValidationError("Refinement instructions are empty after sanitization")
        except EnhancerError as error:
            return self._rejected(options, error, started, len(base.original_text))

        request = EnhancementRequest(
            options=options,
            original_text=base.original_text,
            parsed_data=base.parsed_data,
            messages=build_refinement_messages(base.messages, previous.suggestions, cleaned),
        )
        estimate = self._preflight_estimate(options, _conversation_text(request.messages), None)
        result = await self._execute(request, key, started, estimate)
        return self._remember(result, options)

    async def chat(
        self,
        provider: str,
        api_key: str,
        messages: List[Message],
        model: Optional[str] = None,
        max_tokens: int = 500,
    ) -> str:
        """Single adapter call under the request timeout; errors propagate."""
        adapter = self._adapter(provider)
        model = model or self.default_models.get(provider, "")
        return await self._invoke_once(adapter, api_key, model, messages, max_tokens)

    async def test_connection(
        self,
        provider: str,
        api_key: str,
        model: Optional[str] = None,
    ) -> Tuple[bool, str]:
        """Send a tiny prompt; returns ``(success, response_or_error_message)``."""
        adapter = self._adapter(provider)
        model = model or self.default_models.get(provider, "")
        started = time.perf_counter()
        try:
            response = await self._invoke_once(
                adapter,
                api_key,
                model,
                [Message.user(CONNECTION_TEST_PROMPT)],
                CONNECTION_TEST_MAX_TOKENS,
            )
        except asyncio.CancelledError:
            self._record_test(provider, model, False, started, "cancelled")
            raise
        except EnhancerError as error:
            self._record_test(provider, model, False, started, error.error_type)
            return False, str(error)

        self._record_test(provider, model, True, started)
        return True, response

    # -- pipeline --------------------------------------------------------------

    async def _execute(
        self,
        request: EnhancementRequest,
        api_key: str,
        started: float,
        estimate: Optional[CostEstimate],
    ) -> AIEnhancementResult:
        options = request.options
        try:
            result = await self._run(request, options.provider, options.model, api_key)
            error_type = (result.error or {}).get("type")
            if not result.success and options.enable_fallback and error_type in FALLBACK_ERROR_TYPES:
                result = await self._fallback(request, result)
        except asyncio.CancelledError:
            logger.warning("enhancement_cancelled provider=%s model=%s", options.provider, options.model)
            if self.usage_tracker is not None:
                self.usage_tracker.record_event(
                    provider=options.provider,
                    model=options.model,
                    operation="enhancement",
                    processing_time=_elapsed_ms(started),
                    success=False,
                    error_type="cancelled",
                    enhancement_level=options.enhancement_level,
                    content_length=len(request.original_text),
                )
            raise

        result.metadata.processing_time_ms = _elapsed_ms(started)
        result.metadata.estimated_cost = estimate.total_cost if estimate is not None else None
        self._record_enhancement(result, options, len(request.original_text))
        return result

    async def _run(
        self,
        request: EnhancementRequest,
        provider: str,
        model: str,
        api_key: str,
    ) -> AIEnhancementResult:
        adapter = self.adapters[provider]
        if self.rate_limiter is not None:
            if self.rate_limiter.is_rate_limited(provider):
                wait = self.rate_limiter.get_wait_time(provider)
                error = {"type": "rate_limit", "message": f"Request budget for {provider} is spent; retry in {wait:.0f}s"}
                return self._failure(request, provider, model, error, 0)
            self.rate_limiter.record_request(provider)
        attempts = 0

        def count(attempt: int) -> None:
            nonlocal attempts
            attempts = attempt

        try:
            text = await retry_with_backoff(
                lambda: self._invoke_once(adapter, api_key, model, request.messages, self.max_output_tokens),
                self.retry_config,
                on_attempt=count,
            )
        except EnhancerError as error:
            return self._failure(request, provider, model, error_payload(error), attempts)
        except Exception as error:
            logger.exception("enhancement_unexpected_error provider=%s model=%s", provider, model)
            return self._failure(request, provider, model, error_payload(error), attempts)

        try:
            parsed = parse_suggestions(text)
        except EnhancerError as error:
            logger.warning(
                "enhancement_unparsable provider=%s model=%s reply=%s",
                provider,
                model,
                redact_text(text),
            )
            return self._failure(request, provider, model, error_payload(error), attempts)

        input_tokens = estimate_tokens(_conversation_text(request.messages))
        output_tokens = estimate_tokens(text)
        cost = self.estimator.calculate_cost(provider, model, input_tokens, output_tokens)
        logger.info(
            "enhancement_completed provider=%s model=%s suggestions=%s attempts=%s",
            provider,
            model,
            len(parsed.suggestions),
            attempts,
        )
        return AIEnhancementResult(
            success=True,
            provider=provider,
            model=model,
            suggestions=parsed.suggestions,
            confidence=aggregate_confidence(parsed.suggestions),
            metadata=EnhancementMetadata(
                tokens_used=input_tokens + output_tokens,
                cost=cost or 0.0,
                attempts=attempts,
            ),
            original_data=copy.deepcopy(request.parsed_data),
            enhanced_data=parsed.enhanced_data if parsed.enhanced_data is not None else copy.deepcopy(request.parsed_data),
            request=request,
        )

    async def _fallback(self, request: EnhancementRequest, failed: AIEnhancementResult) -> AIEnhancementResult:
        origin = request.options.provider
        total_attempts = failed.metadata.attempts
        for provider in FALLBACK_ORDER:
            if provider == origin or provider not in self.adapters:
                continue
            key = self.key_resolver(provider, None)
            model = self.default_models.get(provider, "")
            if not key or not self.estimator.is_model_supported(provider, model):
                continue

            logger.info("fallback_attempt from=%s to=%s model=%s key=%s", origin, provider, model, mask_key(key))
            options = replace(request.options, provider=provider, model=model)
            result = await self._run(replace(request, options=options), provider, model, key)
            total_attempts += result.metadata.attempts
            if not result.success:
                logger.warning(
                    "fallback_failed provider=%s error=%s",
                    provider,
                    (result.error or {}).get("type"),
                )
                continue

            result.suggestions.insert(
                0,
                AISuggestion(
                    id=make_id("fallback"),
                    type="correction",
                    field="provider",
                    section="personal",
                    original_value=origin,
                    suggested_value=provider,
                    confidence=0.8,
                    reasoning=f"Original provider {origin} failed, used {provider} as fallback",
                ),
            )
            result.confidence = aggregate_confidence(result.suggestions)
            result.metadata.fallback_from = origin
            result.metadata.attempts = total_attempts
            return result

        failed.metadata.attempts = total_attempts
        return failed

    async def _invoke_once(
        self,
        adapter: ProviderAdapter,
        api_key: str,
        model: str,
        messages: List[Message],
        max_tokens: int,
    ) -> str:
        try:
            return await asyncio.wait_for(adapter.invoke(api_key, model, messages, max_tokens), self.timeout)
        except asyncio.TimeoutError as error:
            raise ProviderTimeoutError(adapter.name, self.timeout) from error

    # -- helpers ---------------------------------------------------------------

    def _adapter(self, provider: str) -> ProviderAdapter:
        adapter = self.adapters.get((provider or "").lower())
        if adapter is None:
            raise UnsupportedProviderError(provider)
        return adapter

    def _validate(self, options: EnhancementOptions, api_key: Optional[str]) -> Tuple[EnhancementOptions, str]:
        if not options.provider:
            raise ValidationError("Missing required field: provider")
        options = replace(options, provider=options.provider.strip().lower())
        self._adapter(options.provider)
        if options.enhancement_level not in ENHANCEMENT_LEVELS:
            raise ValidationError(f"Unsupported enhancement level: {options.enhancement_level}")

        model = options.model or self.default_models.get(options.provider, "")
        if not self.estimator.is_model_supported(options.provider, model):
            raise UnsupportedModelError(options.provider, model)

        key = self.key_resolver(options.provider, api_key)
        if not key:
            raise ValidationError(f"Missing API key for provider: {options.provider}")
        return replace(options, model=model), key

    def _preflight_estimate(
        self,
        options: EnhancementOptions,
        text: str,
        instructions: Optional[str],
    ) -> Optional[CostEstimate]:
        try:
            return self.estimator.estimate_enhancement_cost(
                options.provider,
                options.model,
                text,
                options.job_description,
                instructions,
                options.enhancement_level,
            )
        except (ArithmeticError, TypeError, ValueError) as exc:
            logger.warning("preflight_estimate_failed provider=%s error=%s", options.provider, exc)
            return None

    def _failure(
        self,
        request: EnhancementRequest,
        provider: str,
        model: str,
        error: Dict[str, Any],
        attempts: int,
    ) -> AIEnhancementResult:
        logger.warning(
            "enhancement_failed provider=%s model=%s type=%s message=%s",
            provider,
            model,
            error.get("type"),
            redact_text(str(error.get("message", ""))),
        )
        result = AIEnhancementResult.failure(provider, model, error, request)
        result.metadata.attempts = attempts
        return result

    def _rejected(
        self,
        options: EnhancementOptions,
        error: EnhancerError,
        started: float,
        content_length: int,
    ) -> AIEnhancementResult:
        logger.info("enhancement_rejected provider=%s type=%s", options.provider, error.error_type)
        result = AIEnhancementResult.failure(options.provider, options.model, error.to_dict())
        result.metadata.processing_time_ms = _elapsed_ms(started)
        self._record_enhancement(result, options, content_length)
        return result

    def _remember(self, result: AIEnhancementResult, options: EnhancementOptions) -> AIEnhancementResult:
        if self.history is None or not result.success:
            return result
        used = replace(options, provider=result.provider, model=result.model)
        result.history_id = self.history.add_enhancement(result, used).id
        return result

    def _record_enhancement(self, result: AIEnhancementResult, options: EnhancementOptions, content_length: int) -> None:
        if self.usage_tracker is None:
            return
        self.usage_tracker.record_enhancement(result, options, content_length=content_length)

    def _record_test(
        self,
        provider: str,
        model: str,
        success: bool,
        started: float,
        error_type: Optional[str] = None,
    ) -> None:
        if self.usage_tracker is None:
            return
        self.usage_tracker.record_connection_test(provider, model, success, _elapsed_ms(started), error_type)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _conversation_text(messages: List[Message]) -> str:
    return "\n\n".join(message.content for message in messages)


def _fresh_copy(cached: AIEnhancementResult) -> AIEnhancementResult:
    """A reusable copy of a cached result: new suggestion ids, all pending."""
    result = copy.deepcopy(cached)
    for suggestion in result.suggestions:
        suggestion.id = make_id("sugg")
        suggestion.status = SuggestionStatus.PENDING
    result.timestamp = utc_now_iso()
    result.history_id = None
    return result
