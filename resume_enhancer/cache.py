"""Result cache and per-provider request budget for enhancement calls."""

from __future__ import annotations

import hashlib
import json
import time
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from .models import AIEnhancementResult, EnhancementOptions

DEFAULT_CACHE_TTL_SECONDS = 15 * 60
DEFAULT_CACHE_MAX_ENTRIES = 100
DEFAULT_RATE_LIMITS = {"openai": 60, "anthropic": 50, "gemini": 60}
DEFAULT_PROVIDER_LIMIT = 30
RATE_LIMIT_WINDOW_SECONDS = 60.0

Clock = Callable[[], float]


class CacheEntry:
    """A single cache entry with TTL (time-to-live)."""

    def __init__(self, value: Any, ttl_seconds: float, created_at: float):
        self.value = value
        self.created_at = created_at
        self.ttl = ttl_seconds
        self.hits = 0

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl

    def touch(self):
        self.hits += 1


class ResultCache:
    """
    Cache for successful enhancement results.

    Results are keyed on everything that shapes the prompt: resume text and
    data, provider, model, level, focus areas, job description and user
    instructions. Entries expire after ``ttl_seconds``; once the cache holds
    more than ``max_entries`` the expired ones are swept and, if still over,
    the oldest are dropped.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        max_entries: int = DEFAULT_CACHE_MAX_ENTRIES,
        clock: Clock = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max(1, int(max_entries))
        self.clock = clock
        self._cache: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    @staticmethod
    def make_key(
        original_text: str,
        options: EnhancementOptions,
        parsed_data: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Create a deterministic cache key for an enhancement request.

        Returns:
            SHA256 hash of the request fields
        """
        data = json.dumps(
            {
                "text": original_text or "",
                "data": parsed_data or {},
                "provider": options.provider,
                "model": options.model,
                "level": options.enhancement_level,
                "focus": list(options.focus_areas),
                "job": options.job_description or "",
                "instructions": options.user_instructions or "",
            },
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(data.encode()).hexdigest()

    def get(self, key: str) -> Optional[AIEnhancementResult]:
        entry = self._cache.get(key)
        if entry is None:
            self._misses += 1
            return None

        if entry.is_expired(self.clock()):
            del self._cache[key]
            self._misses += 1
            return None

        entry.touch()
        self._hits += 1
        return entry.value

    def set(self, key: str, value: AIEnhancementResult):
        self._cache[key] = CacheEntry(value, self.ttl_seconds, self.clock())
        if len(self._cache) > self.max_entries:
            self.evict_expired()
        while len(self._cache) > self.max_entries:
            oldest = min(self._cache, key=lambda k: self._cache[k].created_at)
            del self._cache[oldest]

    def clear(self):
        """Clear all cached entries."""
        self._cache.clear()
        self._hits = 0
        self._misses = 0

    def evict_expired(self) -> int:
        now = self.clock()
        expired_keys = [key for key, entry in self._cache.items() if entry.is_expired(now)]
        for key in expired_keys:
            del self._cache[key]
        return len(expired_keys)

    def get_stats(self) -> Dict[str, Any]:
        total_requests = self._hits + self._misses
        hit_rate = self._hits / total_requests if total_requests > 0 else 0.0

        return {
            "hits": self._hits,
            "misses": self._misses,
            "total_requests": total_requests,
            "hit_rate": hit_rate,
            "cache_size": len(self._cache),
        }


class _Window:
    __slots__ = ("requests", "reset_at")

    def __init__(self, reset_at: float):
        self.requests = 0
        self.reset_at = reset_at


class RequestRateLimiter:
    """Fixed-window request counter per provider.

    The first request opens a window of ``window_seconds``; the provider is
    limited once its count reaches its limit, until the window closes.
    """

    def __init__(
        self,
        limits: Optional[Mapping[str, int]] = None,
        default_limit: int = DEFAULT_PROVIDER_LIMIT,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Clock = time.monotonic,
    ):
        self.limits: Dict[str, int] = dict(DEFAULT_RATE_LIMITS if limits is None else limits)
        self.default_limit = default_limit
        self.window_seconds = window_seconds
        self.clock = clock
        self._windows: Dict[str, _Window] = {}

    def limit_for(self, provider: str) -> int:
        return self.limits.get(provider, self.default_limit)

    def is_rate_limited(self, provider: str) -> bool:
        window = self._current(provider)
        if window is None:
            return False
        return window.requests >= self.limit_for(provider)

    def record_request(self, provider: str):
        window = self._current(provider)
        if window is None:
            window = _Window(self.clock() + self.window_seconds)
            self._windows[provider] = window
        window.requests += 1

    def get_wait_time(self, provider: str) -> float:
        """Seconds until ``provider`` gets a fresh window (0 when none is open)."""
        window = self._current(provider)
        if window is None:
            return 0.0
        return max(0.0, window.reset_at - self.clock())

    def get_available_provider(self, preferred: str, fallbacks: Iterable[str] = ()) -> Optional[str]:
        for provider in [preferred, *fallbacks]:
            if not self.is_rate_limited(provider):
                return provider
        return None

    def active_providers(self) -> List[str]:
        return [provider for provider in list(self._windows) if self._current(provider) is not None]

    def clear(self):
        self._windows.clear()

    def _current(self, provider: str) -> Optional[_Window]:
        window = self._windows.get(provider)
        if window is not None and self.clock() > window.reset_at:
            del self._windows[provider]
            return None
        return window
