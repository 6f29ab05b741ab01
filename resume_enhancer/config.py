"""Service configuration: YAML file, environment overrides and startup checks."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .cache import (
    DEFAULT_CACHE_MAX_ENTRIES,
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_PROVIDER_LIMIT,
    DEFAULT_RATE_LIMITS,
    RATE_LIMIT_WINDOW_SECONDS,
)
from .catalog import MODELS_DEV_LOGO_URL, MODELS_DEV_URL
from .estimator import CostEstimator
from .history import DEFAULT_MAX_ENTRIES as DEFAULT_MAX_HISTORY_ENTRIES
from .orchestrator import DEFAULT_MAX_OUTPUT_TOKENS, DEFAULT_TIMEOUT_SECONDS
from .providers import PROVIDER_DEFAULTS, resolve_api_key
from .retry import RetryConfig
from .usage import DEFAULT_MAX_EVENTS

logger = logging.getLogger("resume_enhancer.config")

DEFAULT_CONFIG_PATH = "config/config.yaml"
CONFIG_PATH_ENV = "RESUME_ENHANCER_CONFIG"
TIMEOUT_ENV = "RESUME_ENHANCER_TIMEOUT"
USAGE_PATH_ENV = "RESUME_ENHANCER_USAGE_PATH"
LOG_LEVEL_ENV = "RESUME_ENHANCER_LOG_LEVEL"


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass
class ConfigIssue:
    """A single configuration issue."""

    field: str
    message: str
    severity: Severity


@dataclass
class RetrySettings:
    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0

    def to_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay_seconds,
            max_delay=self.max_delay_seconds,
        )


@dataclass
class UsageSettings:
    max_events: int = DEFAULT_MAX_EVENTS
    max_history_entries: int = DEFAULT_MAX_HISTORY_ENTRIES
    storage_path: Optional[str] = None
    daily_limit: Optional[float] = None
    monthly_limit: Optional[float] = None
    daily_alert: Optional[float] = None
    monthly_alert: Optional[float] = None


@dataclass
class CacheSettings:
    # 0 disables result caching
    ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS
    max_entries: int = DEFAULT_CACHE_MAX_ENTRIES


@dataclass
class RateLimitSettings:
    enabled: bool = True
    window_seconds: float = RATE_LIMIT_WINDOW_SECONDS
    default_limit: int = DEFAULT_PROVIDER_LIMIT
    limits: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_RATE_LIMITS))


@dataclass
class Settings:
    default_models: Dict[str, str] = field(
        default_factory=lambda: {name: spec["model"] for name, spec in PROVIDER_DEFAULTS.items()}
    )
    api_keys: Dict[str, str] = field(default_factory=dict)
    api_bases: Dict[str, str] = field(default_factory=dict)
    request_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS
    chat_max_tokens: int = 500
    retry: RetrySettings = field(default_factory=RetrySettings)
    usage: UsageSettings = field(default_factory=UsageSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    rate_limits: RateLimitSettings = field(default_factory=RateLimitSettings)
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    models_dev_url: str = MODELS_DEV_URL
    logo_url_template: str = MODELS_DEV_LOGO_URL
    log_level: str = "INFO"

    def api_key_for(self, provider: str, explicit: Optional[str] = None) -> str:
        """Request key first, then the configured key, then the provider env var."""
        return resolve_api_key(provider, explicit or self.api_keys.get(provider))

    def cost_monitoring(self) -> Dict[str, Any]:
        usage = self.usage
        return {
            "dailyLimit": usage.daily_limit,
            "monthlyLimit": usage.monthly_limit,
            "alertThresholds": {"daily": usage.daily_alert, "monthly": usage.monthly_alert},
        }


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"config section '{name}' must be a mapping")
    return value


def settings_from_dict(data: Dict[str, Any]) -> Settings:
    settings = Settings()
    providers = _section(data, "providers")
    for name, spec in providers.items():
        spec = spec or {}
        if spec.get("model"):
            settings.default_models[name] = str(spec["model"])
        if spec.get("api_key"):
            settings.api_keys[name] = str(spec["api_key"])
        if spec.get("api_base"):
            settings.api_bases[name] = str(spec["api_base"])

    settings.request_timeout_seconds = data.get("request_timeout_seconds", settings.request_timeout_seconds)
    settings.max_output_tokens = data.get("max_output_tokens", settings.max_output_tokens)
    settings.chat_max_tokens = data.get("chat_max_tokens", settings.chat_max_tokens)
    settings.cors_origins = list(data.get("cors_origins", settings.cors_origins))
    settings.models_dev_url = data.get("models_dev_url", settings.models_dev_url)
    settings.logo_url_template = data.get("logo_url_template", settings.logo_url_template)
    settings.log_level = str(data.get("log_level", settings.log_level))

    retry = _section(data, "retry")
    settings.retry = RetrySettings(
        max_attempts=retry.get("max_attempts", 3),
        base_delay_seconds=retry.get("base_delay_seconds", 1.0),
        max_delay_seconds=retry.get("max_delay_seconds", 30.0),
    )

    usage = _section(data, "usage")
    settings.usage = UsageSettings(
        max_events=usage.get("max_events", DEFAULT_MAX_EVENTS),
        max_history_entries=usage.get("max_history_entries", DEFAULT_MAX_HISTORY_ENTRIES),
        storage_path=usage.get("storage_path"),
        daily_limit=usage.get("daily_limit"),
        monthly_limit=usage.get("monthly_limit"),
        daily_alert=usage.get("daily_alert"),
        monthly_alert=usage.get("monthly_alert"),
    )

    cache = _section(data, "cache")
    settings.cache = CacheSettings(
        ttl_seconds=cache.get("ttl_seconds", DEFAULT_CACHE_TTL_SECONDS),
        max_entries=cache.get("max_entries", DEFAULT_CACHE_MAX_ENTRIES),
    )

    rate_limits = _section(data, "rate_limits")
    settings.rate_limits = RateLimitSettings(
        enabled=bool(rate_limits.get("enabled", True)),
        window_seconds=rate_limits.get("window_seconds", RATE_LIMIT_WINDOW_SECONDS),
        default_limit=rate_limits.get("default_limit", DEFAULT_PROVIDER_LIMIT),
        limits={**DEFAULT_RATE_LIMITS, **(rate_limits.get("providers") or {})},
    )
    return settings


def load_settings(config_path: Optional[str] = None) -> Settings:
    """Load settings from YAML, then apply environment overrides.

    An explicitly requested file must exist; the default location is optional.
    """
    explicit = config_path or os.environ.get(CONFIG_PATH_ENV)
    path = Path(explicit or DEFAULT_CONFIG_PATH)
    if not path.exists() and not explicit:
        candidate = Path(__file__).parent.parent / DEFAULT_CONFIG_PATH
        path = candidate if candidate.exists() else path

    data: Dict[str, Any] = {}
    if path.exists():
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a mapping: {path}")
        logger.debug("config_loaded path=%s", path)
    elif explicit:
        raise FileNotFoundError(f"Config file not found: {explicit}")

    settings = settings_from_dict(data)

    if os.environ.get(TIMEOUT_ENV):
        settings.request_timeout_seconds = float(os.environ[TIMEOUT_ENV])
    if os.environ.get(USAGE_PATH_ENV):
        settings.usage.storage_path = os.environ[USAGE_PATH_ENV]
    if os.environ.get(LOG_LEVEL_ENV):
        settings.log_level = os.environ[LOG_LEVEL_ENV]
    return settings


def _is_positive_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


def validate_settings(settings: Settings, estimator: Optional[CostEstimator] = None) -> List[ConfigIssue]:
    """Check settings and return a list of issues (empty = valid)."""
    estimator = estimator or CostEstimator()
    issues: List[ConfigIssue] = []

    for provider, model in settings.default_models.items():
        if provider not in PROVIDER_DEFAULTS:
            issues.append(ConfigIssue(f"providers.{provider}", f"unknown provider {provider!r}", Severity.ERROR))
        elif not estimator.is_model_supported(provider, model):
            issues.append(ConfigIssue(
                f"providers.{provider}.model",
                f"no pricing for {provider}/{model}; enhancements with the default model will be rejected",
                Severity.WARNING,
            ))

    if not any(settings.api_key_for(provider) for provider in PROVIDER_DEFAULTS):
        issues.append(ConfigIssue(
            "api_keys",
            "no provider API key configured; requests must carry apiKey",
            Severity.WARNING,
        ))

    if not _is_positive_number(settings.request_timeout_seconds):
        issues.append(ConfigIssue(
            "request_timeout_seconds",
            f"request_timeout_seconds must be a positive number, got {settings.request_timeout_seconds!r}",
            Severity.ERROR,
        ))
    for name in ("max_output_tokens", "chat_max_tokens"):
        value = getattr(settings, name)
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            issues.append(ConfigIssue(name, f"{name} must be a positive integer, got {value!r}", Severity.ERROR))

    retry = settings.retry
    if not isinstance(retry.max_attempts, int) or retry.max_attempts < 1:
        issues.append(ConfigIssue("retry.max_attempts", "retry.max_attempts must be at least 1", Severity.ERROR))
    if not isinstance(retry.base_delay_seconds, (int, float)) or retry.base_delay_seconds < 0:
        issues.append(ConfigIssue("retry.base_delay_seconds", "retry delay must be non-negative", Severity.ERROR))

    usage = settings.usage
    if not isinstance(usage.max_events, int) or usage.max_events < 1:
        issues.append(ConfigIssue("usage.max_events", "usage.max_events must be a positive integer", Severity.ERROR))
    for name in ("daily_limit", "monthly_limit", "daily_alert", "monthly_alert"):
        value = getattr(usage, name)
        if value is not None and not _is_positive_number(value):
            issues.append(ConfigIssue(f"usage.{name}", f"usage.{name} must be a positive number", Severity.ERROR))
    if not isinstance(usage.max_history_entries, int) or usage.max_history_entries < 1:
        issues.append(ConfigIssue(
            "usage.max_history_entries",
            "usage.max_history_entries must be a positive integer",
            Severity.ERROR,
        ))

    cache = settings.cache
    if not isinstance(cache.ttl_seconds, (int, float)) or isinstance(cache.ttl_seconds, bool) or cache.ttl_seconds < 0:
        issues.append(ConfigIssue("cache.ttl_seconds", "cache.ttl_seconds must be non-negative", Severity.ERROR))
    if not isinstance(cache.max_entries, int) or cache.max_entries < 1:
        issues.append(ConfigIssue("cache.max_entries", "cache.max_entries must be a positive integer", Severity.ERROR))

    rate_limits = settings.rate_limits
    if not _is_positive_number(rate_limits.window_seconds):
        issues.append(ConfigIssue(
            "rate_limits.window_seconds",
            "rate_limits.window_seconds must be a positive number",
            Severity.ERROR,
        ))
    budgets = {"default_limit": rate_limits.default_limit}
    budgets.update({f"providers.{name}": value for name, value in rate_limits.limits.items()})
    for name, value in budgets.items():
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            issues.append(ConfigIssue(
                f"rate_limits.{name}",
                f"rate_limits.{name} must be a positive integer, got {value!r}",
                Severity.ERROR,
            ))

    if usage.storage_path:
        parent = Path(usage.storage_path).expanduser().parent
        if not parent.exists():
            issues.append(ConfigIssue(
                "usage.storage_path",
                f"directory {parent} does not exist; it will be created on first write",
                Severity.WARNING,
            ))

    if not settings.cors_origins:
        issues.append(ConfigIssue("cors_origins", "no CORS origins allowed; browsers will be blocked", Severity.WARNING))
    return issues


def has_errors(issues: List[ConfigIssue]) -> bool:
    """Check if any issues are errors (not just warnings)."""
    return any(issue.severity == Severity.ERROR for issue in issues)
