"""Configuration loading and validation tests."""

import pytest

from resume_enhancer.config import (
    Settings,
    Severity,
    has_errors,
    load_settings,
    settings_from_dict,
    validate_settings,
)
from resume_enhancer.factory import create_history, create_result_cache, create_usage_tracker


def test_defaults_match_provider_defaults():
    settings = Settings()
    assert settings.default_models == {
        "openai": "gpt-4o",
        "anthropic": "claude-3-5-sonnet-20241022",
        "gemini": "gemini-1.5-flash",
    }
    assert settings.chat_max_tokens == 500
    assert settings.retry.to_config().max_attempts == 3


def test_load_yaml_with_env_overrides(tmp_path, monkeypatch):
    config = tmp_path / "config.yaml"
    config.write_text(
        """
providers:
  openai:
    model: gpt-4o-mini
    api_key: ${MY_OPENAI_KEY}
  anthropic:
    api_base: https://proxy.local/v1
request_timeout_seconds: 30
retry:
  max_attempts: 5
usage:
  max_events: 200
  daily_limit: 2.5
  daily_alert: 2
""",
        encoding="utf-8",
    )
    monkeypatch.setenv("MY_OPENAI_KEY", "sk-from-env")
    monkeypatch.setenv("RESUME_ENHANCER_TIMEOUT", "12.5")
    monkeypatch.setenv("RESUME_ENHANCER_USAGE_PATH", str(tmp_path / "usage.json"))

    settings = load_settings(str(config))

    assert settings.default_models["openai"] == "gpt-4o-mini"
    assert settings.default_models["gemini"] == "gemini-1.5-flash"
    assert settings.api_key_for("openai") == "sk-from-env"
    assert settings.api_key_for("openai", "explicit") == "explicit"
    assert settings.api_bases == {"anthropic": "https://proxy.local/v1"}
    assert settings.request_timeout_seconds == 12.5
    assert settings.retry.max_attempts == 5
    assert settings.usage.max_events == 200
    assert settings.usage.storage_path == str(tmp_path / "usage.json")
    assert settings.cost_monitoring() == {
        "dailyLimit": 2.5,
        "monthlyLimit": None,
        "alertThresholds": {"daily": 2, "monthly": None},
    }


def test_config_path_from_env(tmp_path, monkeypatch):
    config = tmp_path / "alt.yaml"
    config.write_text("log_level: DEBUG\n", encoding="utf-8")
    monkeypatch.setenv("RESUME_ENHANCER_CONFIG", str(config))

    assert load_settings().log_level == "DEBUG"


def test_explicit_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_settings(str(tmp_path / "nope.yaml"))


def test_non_mapping_config_is_rejected(tmp_path):
    config = tmp_path / "bad.yaml"
    config.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_settings(str(config))


def test_bad_section_type_is_rejected():
    with pytest.raises(ValueError):
        settings_from_dict({"retry": "often"})


def test_validate_reports_errors_and_warnings():
    settings = settings_from_dict(
        {
            "providers": {"openai": {"model": "gpt-99"}, "mistral": {"model": "large"}},
            "request_timeout_seconds": 0,
            "usage": {"daily_limit": -1},
        }
    )

    issues = validate_settings(settings)
    by_field = {issue.field: issue.severity for issue in issues}

    assert has_errors(issues)
    assert by_field["providers.openai.model"] == Severity.WARNING
    assert by_field["providers.mistral"] == Severity.ERROR
    assert by_field["request_timeout_seconds"] == Severity.ERROR
    assert by_field["usage.daily_limit"] == Severity.ERROR
    assert by_field["api_keys"] == Severity.WARNING


def test_default_settings_with_env_key_are_clean(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "g-key")
    issues = validate_settings(Settings())
    assert not has_errors(issues)
    assert issues == []


def test_cache_rate_limit_and_history_sections():
    settings = settings_from_dict(
        {
            "usage": {"max_history_entries": 50},
            "cache": {"ttl_seconds": 0},
            "rate_limits": {"window_seconds": 30, "providers": {"openai": 5}},
        }
    )

    assert settings.usage.max_history_entries == 50
    assert settings.cache.ttl_seconds == 0
    assert settings.cache.max_entries == 100
    assert settings.rate_limits.window_seconds == 30
    assert settings.rate_limits.limits == {"openai": 5, "anthropic": 50, "gemini": 60}
    assert create_result_cache(settings) is None

    tracker = create_usage_tracker(settings)
    assert create_history(settings, tracker.storage).storage is tracker.storage


def test_bad_cache_and_rate_limits_are_errors():
    settings = settings_from_dict(
        {
            "usage": {"max_history_entries": 0},
            "cache": {"ttl_seconds": -1, "max_entries": 0},
            "rate_limits": {"window_seconds": 0, "default_limit": 0, "providers": {"gemini": "lots"}},
        }
    )

    fields = {issue.field for issue in validate_settings(settings) if issue.severity == Severity.ERROR}

    assert {
        "usage.max_history_entries",
        "cache.ttl_seconds",
        "cache.max_entries",
        "rate_limits.window_seconds",
        "rate_limits.default_limit",
        "rate_limits.providers.gemini",
    } <= fields
