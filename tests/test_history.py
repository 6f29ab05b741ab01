"""Enhancement history: recording, filters, stats, export and persistence."""

import csv
import io
import json
from datetime import datetime, timedelta, timezone

import pytest

from resume_enhancer.errors import HistoryEntryNotFoundError
from resume_enhancer.history import (
    CSV_COLUMNS,
    HISTORY_KEY,
    EnhancementHistory,
    HistoryFilters,
    generate_tags,
)
from resume_enhancer.models import AIEnhancementResult, AISuggestion, EnhancementMetadata, EnhancementOptions
from resume_enhancer.storage import JsonFileStore

# a Wednesday
NOW = datetime(2025, 3, 12, 12, 0, tzinfo=timezone.utc)
RESUME = {"personal": {"fullName": "Jane Doe", "summary": "Worked on team"}}


class Clock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


def _suggestion(sid, confidence=0.9):
    return AISuggestion(
        id=sid,
        type="improvement",
        field="personal.summary",
        original_value="Worked on team",
        suggested_value="Led a team",
        confidence=confidence,
        reasoning="",
    )


def _result(provider="openai", count=2, confidence=0.9, cost=0.02, processing=1200):
    return AIEnhancementResult(
        success=True,
        provider=provider,
        model="gpt-4o",
        suggestions=[_suggestion(f"s{i}", confidence) for i in range(count)],
        confidence=confidence,
        metadata=EnhancementMetadata(tokens_used=500, cost=cost, processing_time_ms=processing, estimated_cost=cost),
        original_data=RESUME,
        enhanced_data=RESUME,
    )


def _options(provider="openai", **extra):
    return EnhancementOptions(provider=provider, model="gpt-4o", **extra)


def test_auto_tags_describe_the_run():
    options = _options(enhancement_level="light", focus_areas=["summary"], job_description="SRE")
    assert generate_tags(options, _result(count=2, confidence=0.95)) == [
        "openai",
        "light",
        "summary",
        "job-targeted",
        "high-confidence",
        "few-suggestions",
    ]
    assert generate_tags(_options(), _result(count=8, confidence=0.75))[-2:] == ["medium-confidence", "moderate-suggestions"]
    assert generate_tags(_options(), _result(count=15, confidence=0.5))[-2:] == ["low-confidence", "many-suggestions"]
    assert generate_tags(_options(), _result(count=0))[-2:] == ["low-confidence", "no-suggestions"]


def test_add_enhancement_records_entry_newest_first():
    history = EnhancementHistory(clock=Clock())
    first = history.add_enhancement(_result(), _options())
    second = history.add_enhancement(_result(provider="gemini"), _options("gemini"))

    assert first.id.startswith("enhancement-")
    assert first.timestamp == NOW
    assert first.confidence == pytest.approx(0.9)
    assert first.cost_estimate == pytest.approx(0.02)
    assert first.processing_time == 1200
    assert first.original_data == RESUME
    assert first.result["suggestions"][0]["id"] == "s0"
    assert "historyId" not in first.result
    assert [entry.id for entry in history.get_history()] == [second.id, first.id]
    assert history.get_enhancement(first.id) is first
    assert history.get_enhancement("nope") is None


def test_history_is_capped():
    history = EnhancementHistory(clock=Clock(), max_entries=3)
    ids = [history.add_enhancement(_result(), _options()).id for _ in range(5)]
    assert [entry.id for entry in history.get_history()] == ids[:1:-1]


def test_suggestion_actions_replace_earlier_decisions():
    history = EnhancementHistory(clock=Clock())
    entry = history.add_enhancement(_result(count=3), _options())

    history.record_suggestion_action(entry.id, "s0", "accepted")
    history.record_suggestion_action(entry.id, "s1", "rejected")
    history.record_suggestion_action(entry.id, "s1", "accepted")

    assert entry.accepted_suggestions == ["s0", "s1"]
    assert entry.rejected_suggestions == []
    assert entry.acceptance_rate == pytest.approx(2 / 3)
    with pytest.raises(ValueError):
        history.record_suggestion_action(entry.id, "s2", "maybe")
    with pytest.raises(HistoryEntryNotFoundError):
        history.record_suggestion_action("missing", "s0", "accepted")


def test_user_actions_manual_edits_and_metadata():
    history = EnhancementHistory(clock=Clock())
    entry = history.add_enhancement(_result(), _options())
    merged = {"personal": {"fullName": "Jane Doe", "summary": "Led a team"}}

    history.update_user_actions(entry.id, accepted=["s0"], rejected=["s1"], enhanced_data=merged)
    history.record_manual_edit(entry.id, "personal.summary", "personal", "Led a team", "Led a team of 5")
    history.update_metadata(entry.id, tags=["final"], notes="sent to recruiter")

    assert entry.accepted_suggestions == ["s0"]
    assert entry.rejected_suggestions == ["s1"]
    assert entry.enhanced_data == merged
    assert entry.manual_edits[0].new_value == "Led a team of 5"
    assert entry.tags == ["final"]
    assert entry.notes == "sent to recruiter"
    assert entry.to_dict()["userActions"]["manualEdits"][0]["section"] == "personal"


def test_filters():
    clock = Clock(NOW - timedelta(days=10))
    history = EnhancementHistory(clock=clock)
    old = history.add_enhancement(_result(confidence=0.5), _options(enhancement_level="light"))
    clock.now = NOW
    targeted = history.add_enhancement(_result(provider="anthropic"), _options("anthropic", job_description="SRE"))

    def ids(**kwargs):
        return [entry.id for entry in history.get_history(HistoryFilters(**kwargs))]

    assert ids(start=NOW - timedelta(days=1)) == [targeted.id]
    assert ids(end=NOW - timedelta(days=1)) == [old.id]
    assert ids(providers=["openai"]) == [old.id]
    assert ids(enhancement_levels=["moderate"]) == [targeted.id]
    assert ids(tags=["light", "nothing"]) == [old.id]
    assert ids(min_confidence=0.8) == [targeted.id]
    assert ids(has_job_description=False) == [old.id]
    assert len(history.get_history(limit=1)) == 1


def test_stats_and_weekly_trends():
    clock = Clock(NOW - timedelta(days=7))
    history = EnhancementHistory(clock=clock)
    first = history.add_enhancement(_result(count=2, confidence=0.6, cost=0.01), _options())
    history.record_suggestion_action(first.id, "s0", "accepted")
    clock.now = NOW
    history.add_enhancement(_result(count=4, confidence=1.0, cost=0.03), _options())
    history.add_enhancement(_result(provider="gemini", count=2, confidence=0.8), _options("gemini", enhancement_level="light"))

    stats = history.get_stats()

    assert stats.total_enhancements == 3
    assert stats.average_confidence == pytest.approx(0.8)
    assert stats.total_cost == pytest.approx(0.06)
    assert stats.most_used_provider == "openai"
    assert stats.most_used_level == "moderate"
    assert stats.top_tags[0] == {"tag": "few-suggestions", "count": 3}
    assert {"tag": "openai", "count": 2} in stats.top_tags
    assert [point["date"][:10] for point in stats.confidence_over_time] == ["2025-03-02", "2025-03-09"]
    assert stats.confidence_over_time[1]["confidence"] == pytest.approx(0.9)
    assert [point["rate"] for point in stats.acceptance_rate_over_time] == [0.5, 0.0]
    assert history.get_stats(HistoryFilters(providers=["anthropic"])).to_dict()["totalEnhancements"] == 0


def test_compare_enhancements():
    history = EnhancementHistory(clock=Clock())
    first = history.add_enhancement(_result(count=2, confidence=0.6, cost=0.01, processing=1000), _options())
    second = history.add_enhancement(_result(count=4, confidence=0.9, cost=0.03, processing=700), _options())
    history.record_suggestion_action(second.id, "s0", "accepted")

    comparison = history.compare_enhancements(first.id, second.id)["comparison"]

    assert comparison["confidenceDiff"] == pytest.approx(0.3)
    assert comparison["costDiff"] == pytest.approx(0.02)
    assert comparison["suggestionCountDiff"] == 2
    assert comparison["acceptanceRateDiff"] == pytest.approx(0.25)
    assert comparison["processingTimeDiff"] == -300
    with pytest.raises(HistoryEntryNotFoundError):
        history.compare_enhancements(first.id, "missing")


def test_export_json_and_csv():
    history = EnhancementHistory(clock=Clock())
    entry = history.add_enhancement(_result(), _options(job_description="SRE"))
    history.record_suggestion_action(entry.id, "s1", "rejected")

    exported = json.loads(history.export_history("json"))
    assert exported[0]["id"] == entry.id
    assert exported[0]["settings"]["provider"] == "openai"

    rows = list(csv.reader(io.StringIO(history.export_history("csv"))))
    assert rows[0] == CSV_COLUMNS
    assert rows[1][1:3] == ["openai", "moderate"]
    assert rows[1][6:9] == ["2", "0", "1"]
    assert rows[1][9] == "openai;moderate;job-targeted;high-confidence;few-suggestions"
    assert rows[1][10] == "true"
    with pytest.raises(ValueError):
        history.export_history("xml")


def test_delete_and_clear_old_entries():
    clock = Clock(NOW - timedelta(days=200))
    history = EnhancementHistory(clock=clock)
    history.add_enhancement(_result(), _options())
    clock.now = NOW
    keep = history.add_enhancement(_result(), _options())
    gone = history.add_enhancement(_result(), _options())

    assert history.delete_enhancement(gone.id) is True
    assert history.delete_enhancement(gone.id) is False
    assert history.clear_old_entries() == 1
    assert [entry.id for entry in history.get_history()] == [keep.id]


def test_history_persists_alongside_usage(tmp_path):
    path = tmp_path / "usage.json"
    history = EnhancementHistory(storage=JsonFileStore(path), clock=Clock())
    entry = history.add_enhancement(_result(), _options())
    history.record_manual_edit(entry.id, "personal.summary", "personal", "a", "b")

    assert list(json.loads(path.read_text(encoding="utf-8"))) == [HISTORY_KEY]

    reloaded = EnhancementHistory(storage=JsonFileStore(path), clock=Clock())
    restored = reloaded.get_enhancement(entry.id)
    assert restored is not None
    assert restored.timestamp == NOW
    assert restored.tags == entry.tags
    assert restored.manual_edits[0].timestamp == NOW
    assert restored.suggestions_count == 2
