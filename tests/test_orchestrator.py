"""Enhancement pipeline tests with scripted adapters."""

import asyncio
import logging

import pytest
from conftest import ScriptedAdapter, suggestion_reply, summary_suggestion

from resume_enhancer.cache import RequestRateLimiter, ResultCache
from resume_enhancer.errors import ProviderConnectionError, ProviderHttpError
from resume_enhancer.history import EnhancementHistory
from resume_enhancer.models import AIEnhancementResult, EnhancementOptions, SuggestionStatus
from resume_enhancer.retry import RetryConfig

RESUME_TEXT = "Jane Doe\nWorked on team"
RESUME_DATA = {"personal": {"fullName": "Jane Doe", "summary": "Worked on team"}}


def _second_suggestion():
    item = summary_suggestion("Shipped 3 releases", confidence=0.7)
    item["field"] = "experience[0].bulletPoints[0].text"
    item["section"] = "experience"
    return item


@pytest.mark.asyncio
async def test_enhance_success_builds_result_and_records_usage(make_orchestrator, usage_tracker):
    adapter = ScriptedAdapter("openai", [suggestion_reply(summary_suggestion(), _second_suggestion())])
    orchestrator = make_orchestrator(openai=adapter)

    result = await orchestrator.enhance(
        EnhancementOptions(provider="openai", job_description="Staff engineer"),
        RESUME_TEXT,
        RESUME_DATA,
        "sk-test",
    )

    assert result.success is True
    assert result.error is None
    assert result.model == "gpt-4o"
    assert [s.field for s in result.suggestions] == ["personal.summary", "experience[0].bulletPoints[0].text"]
    assert len({s.id for s in result.suggestions}) == 2
    assert result.confidence == pytest.approx(0.8)
    assert result.metadata.attempts == 1
    assert result.metadata.tokens_used > 0
    assert result.metadata.cost > 0
    assert result.metadata.estimated_cost is not None
    assert result.original_data == RESUME_DATA

    call = adapter.calls[0]
    assert call["api_key"] == "sk-test"
    assert call["max_tokens"] == 2000
    assert len(call["messages"]) == 1
    assert "Worked on team" in call["messages"][0].content
    assert "Staff engineer" in call["messages"][0].content

    events = usage_tracker.get_recent_events()
    assert len(events) == 1
    assert events[0].operation == "enhancement"
    assert events[0].success is True
    assert events[0].suggestions_count == 2
    assert events[0].has_job_description is True


@pytest.mark.asyncio
async def test_empty_suggestion_list_has_zero_confidence(make_orchestrator):
    orchestrator = make_orchestrator(openai=ScriptedAdapter("openai", [suggestion_reply()]))

    result = await orchestrator.enhance(EnhancementOptions(provider="openai"), RESUME_TEXT, RESUME_DATA, "k")

    assert result.success is True
    assert result.suggestions == []
    assert result.confidence == 0.0


@pytest.mark.asyncio
async def test_provider_error_becomes_failure_envelope(make_orchestrator, usage_tracker):
    adapter = ScriptedAdapter("openai", [ProviderHttpError("openai", 401, "invalid api key")])
    orchestrator = make_orchestrator(openai=adapter)

    result = await orchestrator.enhance(EnhancementOptions(provider="openai"), RESUME_TEXT, RESUME_DATA, "k")

    assert result.success is False
    assert result.suggestions == []
    assert result.error["type"] == "api_key_invalid"
    assert "401" in result.error["message"]
    assert result.metadata.attempts == 1
    assert len(adapter.calls) == 1
    assert usage_tracker.get_recent_events()[0].error_type == "api_key_invalid"


@pytest.mark.asyncio
async def test_transient_errors_are_retried(make_orchestrator):
    adapter = ScriptedAdapter(
        "openai",
        [
            ProviderHttpError("openai", 503, "overloaded"),
            ProviderConnectionError("openai", "reset"),
            suggestion_reply(summary_suggestion()),
        ],
    )
    orchestrator = make_orchestrator(openai=adapter)

    result = await orchestrator.enhance(EnhancementOptions(provider="openai"), RESUME_TEXT, RESUME_DATA, "k")

    assert result.success is True
    assert result.metadata.attempts == 3


@pytest.mark.asyncio
async def test_retries_are_bounded(make_orchestrator):
    adapter = ScriptedAdapter("openai", [ProviderHttpError("openai", 502, "bad gateway")] * 3)
    orchestrator = make_orchestrator(openai=adapter)

    result = await orchestrator.enhance(EnhancementOptions(provider="openai"), RESUME_TEXT, RESUME_DATA, "k")

    assert result.success is False
    assert result.error["type"] == "provider_http_error"
    assert result.metadata.attempts == 3
    assert len(adapter.calls) == 3


@pytest.mark.asyncio
async def test_unparsable_reply_is_parsing_error(make_orchestrator):
    orchestrator = make_orchestrator(openai=ScriptedAdapter("openai", ["I cannot help with that."]))

    result = await orchestrator.enhance(EnhancementOptions(provider="openai"), RESUME_TEXT, RESUME_DATA, "k")

    assert result.success is False
    assert result.error["type"] == "parsing_error"


class _HangingAdapter:
    name = "openai"

    def __init__(self):
        self.started = asyncio.Event()

    async def invoke(self, api_key, model, messages, max_tokens):
        self.started.set()
        await asyncio.Event().wait()


@pytest.mark.asyncio
async def test_timeout_yields_timeout_error(make_orchestrator):
    orchestrator = make_orchestrator(openai=_HangingAdapter())
    orchestrator.timeout = 0.01
    orchestrator.retry_config = RetryConfig(max_attempts=1)

    result = await orchestrator.enhance(EnhancementOptions(provider="openai"), RESUME_TEXT, RESUME_DATA, "k")

    assert result.success is False
    assert result.error["type"] == "timeout"


@pytest.mark.asyncio
async def test_cancellation_is_recorded_as_failure_and_reraised(make_orchestrator, usage_tracker):
    adapter = _HangingAdapter()
    orchestrator = make_orchestrator(openai=adapter)

    task = asyncio.ensure_future(
        orchestrator.enhance(EnhancementOptions(provider="openai"), RESUME_TEXT, RESUME_DATA, "k")
    )
    await adapter.started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    events = usage_tracker.get_recent_events()
    assert len(events) == 1
    assert events[0].success is False
    assert events[0].error_type == "cancelled"


@pytest.mark.asyncio
async def test_fallback_to_next_provider_on_rate_limit(make_orchestrator, monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
    openai = ScriptedAdapter("openai", [ProviderHttpError("openai", 429, "rate limited")] * 3)
    anthropic = ScriptedAdapter("anthropic", [suggestion_reply(summary_suggestion())])
    orchestrator = make_orchestrator(openai=openai, anthropic=anthropic)

    result = await orchestrator.enhance(
        EnhancementOptions(provider="openai", enable_fallback=True), RESUME_TEXT, RESUME_DATA, "sk-openai"
    )

    assert result.success is True
    assert result.provider == "anthropic"
    assert result.model == "claude-3-5-sonnet-20241022"
    assert result.metadata.fallback_from == "openai"
    assert result.metadata.attempts == 4
    assert anthropic.calls[0]["api_key"] == "sk-ant"
    notice = result.suggestions[0]
    assert (notice.field, notice.original_value, notice.suggested_value) == ("provider", "openai", "anthropic")


@pytest.mark.asyncio
async def test_no_fallback_unless_enabled(make_orchestrator, monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
    anthropic = ScriptedAdapter("anthropic")
    orchestrator = make_orchestrator(
        openai=ScriptedAdapter("openai", [ProviderHttpError("openai", 429, "rate limited")] * 3),
        anthropic=anthropic,
    )

    result = await orchestrator.enhance(EnhancementOptions(provider="openai"), RESUME_TEXT, RESUME_DATA, "k")

    assert result.success is False
    assert result.error["type"] == "rate_limit"
    assert anthropic.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "options, api_key, text, data, error_type",
    [
        (EnhancementOptions(provider="unknown"), "k", RESUME_TEXT, RESUME_DATA, "unsupported_provider"),
        (EnhancementOptions(provider="openai", model="gpt-99"), "k", RESUME_TEXT, RESUME_DATA, "unsupported_model"),
        (EnhancementOptions(provider="openai", enhancement_level="extreme"), "k", RESUME_TEXT, RESUME_DATA, "validation_error"),
        (EnhancementOptions(provider="openai"), None, RESUME_TEXT, RESUME_DATA, "validation_error"),
        (EnhancementOptions(provider="openai"), "k", "  ", {}, "validation_error"),
    ],
)
async def test_invalid_requests_never_reach_the_adapter(make_orchestrator, options, api_key, text, data, error_type):
    adapter = ScriptedAdapter("openai")
    orchestrator = make_orchestrator(openai=adapter)

    result = await orchestrator.enhance(options, text, data, api_key)

    assert result.success is False
    assert result.error["type"] == error_type
    assert adapter.calls == []


@pytest.mark.asyncio
async def test_refine_appends_prior_suggestions_and_sanitized_instructions(make_orchestrator):
    adapter = ScriptedAdapter(
        "openai",
        [suggestion_reply(summary_suggestion()), suggestion_reply(summary_suggestion("Led 5 engineers"))],
    )
    orchestrator = make_orchestrator(openai=adapter)
    first = await orchestrator.enhance(EnhancementOptions(provider="openai"), RESUME_TEXT, RESUME_DATA, "k")

    refined = await orchestrator.refine(first, "<script>alert(1)</script>Make it shorter", api_key="k")

    assert refined.success is True
    assert refined.suggestions[0].suggested_value == "Led 5 engineers"
    messages = adapter.calls[1]["messages"]
    assert [m.role for m in messages] == ["user", "assistant", "user"]
    assert messages[0] == adapter.calls[0]["messages"][0]
    assert "Led a team of 5 engineers" in messages[1].content
    assert "Make it shorter" in messages[2].content
    assert "script" not in messages[2].content


@pytest.mark.asyncio
async def test_refine_rebuilds_context_for_client_posted_result(make_orchestrator):
    adapter = ScriptedAdapter("openai", [suggestion_reply(summary_suggestion())])
    orchestrator = make_orchestrator(openai=adapter)
    posted = AIEnhancementResult.from_dict(
        {
            "success": True,
            "provider": "openai",
            "model": "gpt-4o-mini",
            "suggestions": [dict(summary_suggestion(), id="sugg_1")],
            "originalData": RESUME_DATA,
        }
    )

    refined = await orchestrator.refine(posted, "More metrics", api_key="k", original_text=RESUME_TEXT)

    assert refined.success is True
    assert refined.model == "gpt-4o-mini"
    messages = adapter.calls[0]["messages"]
    assert len(messages) == 3
    assert "Jane Doe" in messages[0].content


@pytest.mark.asyncio
async def test_refine_with_only_markup_is_rejected(make_orchestrator):
    adapter = ScriptedAdapter("openai", [suggestion_reply(summary_suggestion())])
    orchestrator = make_orchestrator(openai=adapter)
    first = await orchestrator.enhance(EnhancementOptions(provider="openai"), RESUME_TEXT, RESUME_DATA, "k")

    refined = await orchestrator.refine(first, "<b></b>", api_key="k")

    assert refined.success is False
    assert refined.error["type"] == "validation_error"
    assert len(adapter.calls) == 1


@pytest.mark.asyncio
async def test_connection_test_records_usage(make_orchestrator, usage_tracker):
    orchestrator = make_orchestrator(
        gemini=ScriptedAdapter("gemini", ["OK", ProviderHttpError("gemini", 403, "denied")])
    )

    assert await orchestrator.test_connection("gemini", "k") == (True, "OK")
    ok, message = await orchestrator.test_connection("gemini", "k")

    assert ok is False
    assert "403" in message
    events = usage_tracker.get_recent_events()
    assert [e.operation for e in events] == ["test_connection", "test_connection"]
    assert [e.success for e in events] == [False, True]
    assert events[1].model == "gemini-1.5-flash"


@pytest.mark.asyncio
async def test_chat_propagates_provider_errors(make_orchestrator):
    orchestrator = make_orchestrator(
        openai=ScriptedAdapter("openai", ["Hello!", ProviderHttpError("openai", 500, "boom")])
    )

    assert await orchestrator.chat("openai", "k", [], max_tokens=20) == "Hello!"
    with pytest.raises(ProviderHttpError):
        await orchestrator.chat("openai", "k", [])


@pytest.mark.asyncio
async def test_provider_name_is_case_insensitive(make_orchestrator, usage_tracker):
    adapter = ScriptedAdapter("openai", [suggestion_reply(summary_suggestion())])
    orchestrator = make_orchestrator(openai=adapter)

    result = await orchestrator.enhance(EnhancementOptions(provider="OpenAI"), RESUME_TEXT, RESUME_DATA, "k")

    assert result.success is True
    assert result.provider == "openai"
    assert result.model == "gpt-4o"
    assert usage_tracker.get_recent_events()[0].provider == "openai"


@pytest.mark.asyncio
async def test_debug_log_masks_key_and_contact_details(make_orchestrator, caplog):
    orchestrator = make_orchestrator(openai=ScriptedAdapter("openai", [suggestion_reply(summary_suggestion())]))
    caplog.set_level(logging.DEBUG, logger="resume_enhancer.orchestrator")

    await orchestrator.enhance(
        EnhancementOptions(provider="openai", job_description="Apply via hiring@example.com"),
        RESUME_TEXT,
        RESUME_DATA,
        "sk-live-1234567890",
    )

    started = [r.getMessage() for r in caplog.records if r.getMessage().startswith("enhancement_started")]
    assert len(started) == 1
    assert "sk-live-1234567890" not in started[0]
    assert "key=sk-l...90" in started[0]
    assert "hiring@example.com" not in started[0]
    assert "[REDACTED_EMAIL]" in started[0]


@pytest.mark.asyncio
async def test_identical_requests_reuse_cached_result(make_orchestrator, usage_tracker):
    adapter = ScriptedAdapter("openai", [suggestion_reply(summary_suggestion())])
    orchestrator = make_orchestrator(openai=adapter)
    orchestrator.result_cache = ResultCache(ttl_seconds=60)
    options = EnhancementOptions(provider="openai")

    first = await orchestrator.enhance(options, RESUME_TEXT, RESUME_DATA, "k")
    first.suggestions[0].status = SuggestionStatus.ACCEPTED
    second = await orchestrator.enhance(options, RESUME_TEXT, RESUME_DATA, "k")

    assert len(adapter.calls) == 1
    assert second.success is True
    assert [s.suggested_value for s in second.suggestions] == [s.suggested_value for s in first.suggestions]
    assert second.suggestions[0].id != first.suggestions[0].id
    assert second.suggestions[0].status is SuggestionStatus.PENDING
    assert len(usage_tracker.get_recent_events()) == 1
    assert orchestrator.result_cache.get_stats()["hits"] == 1


@pytest.mark.asyncio
async def test_failed_results_are_not_cached(make_orchestrator):
    adapter = ScriptedAdapter(
        "openai",
        [ProviderHttpError("openai", 401, "invalid api key"), suggestion_reply(summary_suggestion())],
    )
    orchestrator = make_orchestrator(openai=adapter)
    orchestrator.result_cache = ResultCache(ttl_seconds=60)

    assert (await orchestrator.enhance(EnhancementOptions(provider="openai"), RESUME_TEXT, RESUME_DATA, "k")).success is False
    assert (await orchestrator.enhance(EnhancementOptions(provider="openai"), RESUME_TEXT, RESUME_DATA, "k")).success is True
    assert len(adapter.calls) == 2


@pytest.mark.asyncio
async def test_spent_request_budget_fails_fast_and_allows_fallback(make_orchestrator, monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
    openai = ScriptedAdapter("openai", [suggestion_reply(summary_suggestion())])
    anthropic = ScriptedAdapter("anthropic", [suggestion_reply(summary_suggestion())])
    orchestrator = make_orchestrator(openai=openai, anthropic=anthropic)
    orchestrator.rate_limiter = RequestRateLimiter(limits={"openai": 1, "anthropic": 5}, window_seconds=60)

    assert (await orchestrator.enhance(EnhancementOptions(provider="openai"), RESUME_TEXT, RESUME_DATA, "k")).success

    limited = await orchestrator.enhance(EnhancementOptions(provider="openai"), "Other text", RESUME_DATA, "k")
    assert limited.success is False
    assert limited.error["type"] == "rate_limit"
    assert limited.metadata.attempts == 0
    assert len(openai.calls) == 1

    rerouted = await orchestrator.enhance(
        EnhancementOptions(provider="openai", enable_fallback=True), "Other text", RESUME_DATA, "k"
    )
    assert rerouted.success is True
    assert rerouted.provider == "anthropic"
    assert len(openai.calls) == 1


@pytest.mark.asyncio
async def test_successful_results_are_added_to_history(make_orchestrator):
    adapter = ScriptedAdapter(
        "openai",
        [ProviderHttpError("openai", 401, "bad key"), suggestion_reply(summary_suggestion()), suggestion_reply()],
    )
    orchestrator = make_orchestrator(openai=adapter)
    orchestrator.history = EnhancementHistory()
    options = EnhancementOptions(provider="openai", focus_areas=["summary"])

    failed = await orchestrator.enhance(options, RESUME_TEXT, RESUME_DATA, "k")
    result = await orchestrator.enhance(options, RESUME_TEXT, RESUME_DATA, "k")
    refined = await orchestrator.refine(result, "Shorter", api_key="k")

    assert failed.history_id is None
    assert result.history_id is not None
    assert result.to_dict()["historyId"] == result.history_id
    entries = orchestrator.history.get_history()
    assert [entry.id for entry in entries] == [refined.history_id, result.history_id]
    assert entries[1].tags[:3] == ["openai", "moderate", "summary"]
    assert entries[1].original_data == RESUME_DATA
