"""Builds the stores, usage tracker, history and orchestrator from loaded settings."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from .cache import RequestRateLimiter, ResultCache
from .config import Settings
from .estimator import CostEstimator
from .history import EnhancementHistory
from .orchestrator import EnhancementOrchestrator
from .providers import create_adapter, supported_providers
from .storage import InMemoryStore, JsonFileStore, KeyValueStore
from .usage import UsageTracker


def create_store(settings: Settings) -> KeyValueStore:
    """The configured JSON file, or memory when no path is set."""
    path = settings.usage.storage_path
    return JsonFileStore(Path(path)) if path else InMemoryStore()


def create_usage_tracker(settings: Settings, store: Optional[KeyValueStore] = None) -> UsageTracker:
    """Usage tracker over ``store`` (default: ``create_store``).

    Cost limits from config are applied only when at least one is set, so
    limits saved through the API survive a restart with an empty config.
    """
    usage = settings.usage
    tracker = UsageTracker(storage=store if store is not None else create_store(settings), max_events=usage.max_events)
    limits = (usage.daily_limit, usage.monthly_limit, usage.daily_alert, usage.monthly_alert)
    if any(value is not None for value in limits):
        tracker.set_cost_monitoring(settings.cost_monitoring())
    return tracker


def create_history(settings: Settings, store: Optional[KeyValueStore] = None) -> EnhancementHistory:
    return EnhancementHistory(
        storage=store if store is not None else create_store(settings),
        max_entries=settings.usage.max_history_entries,
    )


def create_result_cache(settings: Settings) -> Optional[ResultCache]:
    if not settings.cache.ttl_seconds:
        return None
    return ResultCache(ttl_seconds=settings.cache.ttl_seconds, max_entries=settings.cache.max_entries)


def create_rate_limiter(settings: Settings) -> Optional[RequestRateLimiter]:
    rate_limits = settings.rate_limits
    if not rate_limits.enabled:
        return None
    return RequestRateLimiter(
        limits=rate_limits.limits,
        default_limit=rate_limits.default_limit,
        window_seconds=rate_limits.window_seconds,
    )


def create_orchestrator(
    settings: Settings,
    usage_tracker: UsageTracker,
    history: Optional[EnhancementHistory] = None,
) -> EnhancementOrchestrator:
    """History defaults to one sharing the usage tracker's store."""
    adapters = {
        name: create_adapter(
            name,
            api_base=settings.api_bases.get(name, ""),
            timeout=settings.request_timeout_seconds,
        )
        for name in supported_providers()
    }
    return EnhancementOrchestrator(
        adapters=adapters,
        estimator=CostEstimator(),
        usage_tracker=usage_tracker,
        retry_config=settings.retry.to_config(),
        timeout=settings.request_timeout_seconds,
        max_output_tokens=settings.max_output_tokens,
        default_models=settings.default_models,
        key_resolver=settings.api_key_for,
        result_cache=create_result_cache(settings),
        rate_limiter=create_rate_limiter(settings),
        history=history if history is not None else create_history(settings, usage_tracker.storage),
    )
