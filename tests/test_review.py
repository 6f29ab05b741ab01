"""Suggestion review state machine and merge tests."""

import random

import pytest

from resume_enhancer.errors import SuggestionNotFoundError, SuggestionStateError, ValidationError
from resume_enhancer.models import AISuggestion, SuggestionStatus
from resume_enhancer.review import SuggestionReview, set_by_path, to_jsonpath


def _suggestion(sid, field="personal.summary", suggested="New", section=None, original="Old"):
    return AISuggestion(
        id=sid,
        type="improvement",
        field=field,
        original_value=original,
        suggested_value=suggested,
        confidence=0.9,
        reasoning="",
        section=section,
    )


def _review(count=4):
    return SuggestionReview(_suggestion(f"s{i}") for i in range(count))


def _assert_counts_consistent(review):
    counts = review.counts()
    assert counts.pending + counts.accepted + counts.rejected == counts.total


def test_counts_start_pending():
    review = _review(3)
    assert review.counts().to_dict() == {"total": 3, "pending": 3, "accepted": 0, "rejected": 0}
    assert review.is_complete is False


def test_accept_and_reject_one():
    review = _review(3)
    assert review.accept_one("s0").status is SuggestionStatus.ACCEPTED
    assert review.reject_one("s1").accepted is False

    counts = review.counts()
    assert (counts.accepted, counts.rejected, counts.pending) == (1, 1, 1)


def test_bulk_operations_only_touch_pending():
    review = _review(4)
    review.reject_one("s0")

    assert review.accept_all() == 3
    assert review.reject_all() == 0
    assert review.get("s0").status is SuggestionStatus.REJECTED
    assert review.is_complete is True


def test_terminal_states_cannot_change():
    review = _review(2)
    review.accept_one("s0")

    with pytest.raises(SuggestionStateError) as exc_info:
        review.reject_one("s0")
    assert exc_info.value.status_code == 409
    with pytest.raises(SuggestionStateError):
        review.accept_one("s0")


def test_unknown_and_duplicate_ids():
    with pytest.raises(SuggestionNotFoundError):
        _review(1).accept_one("missing")
    with pytest.raises(ValidationError):
        SuggestionReview([_suggestion("dup"), _suggestion("dup")])


def test_random_operation_sequences_keep_invariants():
    rng = random.Random(7)
    for _ in range(50):
        review = _review(6)
        seen_decided = set()
        for _ in range(10):
            op = rng.choice(["accept_one", "reject_one", "accept_all", "reject_all"])
            if op in ("accept_all", "reject_all"):
                getattr(review, op)()
            else:
                sid = f"s{rng.randrange(6)}"
                try:
                    getattr(review, op)(sid)
                except SuggestionStateError:
                    assert sid in seen_decided
            _assert_counts_consistent(review)
            for suggestion in review.suggestions:
                if suggestion.id in seen_decided:
                    assert suggestion.status is not SuggestionStatus.PENDING
                if suggestion.status is not SuggestionStatus.PENDING:
                    seen_decided.add(suggestion.id)


def test_compute_diff_is_ordered_and_idempotent():
    review = _review(4)
    review.accept_one("s2")
    review.accept_one("s0")
    review.reject_one("s1")

    first = [s.id for s in review.compute_diff()]
    assert first == ["s0", "s2"]
    assert [s.id for s in review.compute_diff()] == first


def test_to_jsonpath_roots_plain_field_paths():
    assert to_jsonpath("experience[0].bulletPoints[1].text") == "$.experience[0].bulletPoints[1].text"
    assert to_jsonpath("skills.2.name") == "$.skills[2].name"
    assert to_jsonpath("$.personal.summary") == "$.personal.summary"
    assert to_jsonpath("") == ""


def test_set_by_path_only_writes_existing_locations():
    data = {"personal": {"summary": "x"}, "skills": [{"name": "Py"}]}

    assert set_by_path(data, "skills[0].name", "Python") is None
    assert data["skills"][0]["name"] == "Python"
    assert set_by_path(data, "skills[3].name", "Go") is not None
    assert set_by_path(data, "personal.website", "x") is not None
    assert "website" not in data["personal"]
    assert set_by_path(data, "personal", "flat") is not None
    assert set_by_path(data, "", "x") == "empty field path"
    assert set_by_path(data, "skills[[", "x").startswith("invalid path")


def test_apply_accepts_rooted_and_filter_expressions():
    resume = {"personal": {"summary": "old"}, "skills": [{"id": "1", "name": "Python"}, {"id": "2", "name": "Go"}]}
    review = SuggestionReview(
        [
            _suggestion("a", "$.personal.summary", "Platform engineer"),
            _suggestion("b", 'skills[?name = "Python"].name', "Python 3"),
        ]
    )
    review.accept_all()

    outcome = review.apply(resume)

    assert outcome.applied == ["a", "b"]
    assert outcome.skipped == []
    assert outcome.resume_data["personal"]["summary"] == "Platform engineer"
    assert [s["name"] for s in outcome.resume_data["skills"]] == ["Python 3", "Go"]


def test_apply_merges_accepted_without_mutating_input():
    resume = {
        "personal": {"fullName": "Jane", "summary": "Worked on team"},
        "experience": [{"company": "Acme", "bulletPoints": [{"id": "b1", "text": "Did stuff"}]}],
    }
    review = SuggestionReview(
        [
            _suggestion("a", "personal.summary", "Led a team of 5"),
            _suggestion("b", "experience[0].bulletPoints[0].text", "Shipped 3 releases"),
            _suggestion("c", "summary", "Rejected text", section="personal"),
            _suggestion("d", "provider", "anthropic", section="personal"),
        ]
    )
    review.accept_one("a")
    review.accept_one("b")
    review.reject_one("c")
    review.accept_one("d")

    outcome = review.apply(resume)

    assert outcome.resume_data["personal"]["summary"] == "Led a team of 5"
    assert outcome.resume_data["experience"][0]["bulletPoints"][0]["text"] == "Shipped 3 releases"
    assert resume["personal"]["summary"] == "Worked on team"
    assert outcome.applied == ["a", "b"]
    assert [item.id for item in outcome.skipped] == ["d"]


def test_apply_resolves_bare_field_through_section():
    review = SuggestionReview([_suggestion("a", "summary", "Better", section="personal")])
    review.accept_all()

    outcome = review.apply({"personal": {"summary": "Old"}})

    assert outcome.resume_data["personal"]["summary"] == "Better"
    assert outcome.to_dict()["applied"] == ["a"]


def test_annotate_uses_injected_annotator():
    review = _review(2)
    assert review.annotate(lambda original, enhanced: [f"{original}->{enhanced}"]) == {
        "s0": ["Old->New"],
        "s1": ["Old->New"],
    }
