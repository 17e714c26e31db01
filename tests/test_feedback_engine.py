from __future__ import annotations

import pytest

from recruit_grid.authorization import Principal
from recruit_grid.errors import ApiError
from recruit_grid.feedback import (
    NoteClock,
    apply_decision,
    build_note,
    default_feedback,
    next_decision,
    normalize_feedback,
    register_file,
    remove_note,
    unregister_file,
)

ADMIN = Principal(email="admin@grid.test", name="Admin", role="admin")
ALICE = Principal(email="alice@acme.test", name="Alice", role="client", client_id="Acme")
BOB = Principal(email="bob@acme.test", name="Bob", role="client", client_id="Acme")


@pytest.mark.parametrize(
    ("current", "requested", "expected"),
    [
        ("neutral", "yes", "yes"),
        ("yes", "yes", "neutral"),
        ("yes", "maybe", "maybe"),
        ("maybe", "maybe", "neutral"),
        ("no", "no", "neutral"),
        ("no", "yes", "yes"),
        ("neutral", "neutral", "neutral"),
        ("maybe", "neutral", "neutral"),
    ],
)
def test_next_decision_table(current: str, requested: str, expected: str):
    assert next_decision(current, requested) == expected


def test_repeating_a_decision_resets_to_neutral():
    record = apply_decision(None, "yes")
    assert record["decision"] == "yes"
    record = apply_decision(record, "yes")
    assert record["decision"] == "neutral"


def test_switching_between_non_neutral_values_does_not_toggle():
    record = apply_decision(apply_decision(None, "yes"), "maybe")
    assert record["decision"] == "maybe"


def test_apply_decision_rejects_unknown_values_and_keeps_notes():
    record, _ = build_note(None, text="keep me", author=ADMIN)
    with pytest.raises(ApiError) as exc_info:
        apply_decision(record, "perhaps")
    assert exc_info.value.code == "DECISION_INVALID"
    assert exc_info.value.http_status == 400

    for raw in ("YES", " yes", "Yes"):
        with pytest.raises(ApiError) as exc_info:
            apply_decision(record, raw)
        assert exc_info.value.code == "DECISION_INVALID"

    updated = apply_decision(record, "yes")
    assert updated["decision"] == "yes"
    assert [n["text"] for n in updated["notes"]] == ["keep me"]


def test_notes_are_returned_newest_first():
    record = default_feedback()
    for text in ("N1", "N2", "N3"):
        record, _ = build_note(record, text=text, author=ALICE)
    assert [n["text"] for n in record["notes"]] == ["N3", "N2", "N1"]


def test_build_note_trims_and_rejects_blank_text():
    record, note = build_note(None, text="  Strong candidate \n", author=ADMIN)
    assert note["text"] == "Strong candidate"
    assert note["author_email"] == ADMIN.email
    assert note["author_name"] == "Admin"
    assert record["notes"] == [note]

    for text in ("", "   ", None):
        with pytest.raises(ApiError) as exc_info:
            build_note(record, text=text, author=ADMIN)
        assert exc_info.value.code == "NOTE_TEXT_REQUIRED"


def test_note_clock_never_repeats_timestamps():
    clock = NoteClock()
    stamps = [clock.next() for _ in range(500)]
    assert len(set(stamps)) == len(stamps)
    assert stamps == sorted(stamps)


def test_note_timestamps_avoid_ones_already_in_the_record():
    clock = NoteClock()
    record, first = build_note(None, text="one", author=ALICE, clock=clock)
    # A second clock has no memory of the first one's output.
    other = NoteClock()
    record, second = build_note(record, text="two", author=ALICE, clock=other)
    assert first["timestamp"] != second["timestamp"]


def test_remove_note_requires_author_or_admin():
    record, note = build_note(None, text="by alice", author=ALICE)

    with pytest.raises(ApiError) as exc_info:
        remove_note(record, timestamp=note["timestamp"], requester=BOB)
    assert exc_info.value.code == "NOTE_DELETE_FORBIDDEN"
    assert exc_info.value.http_status == 403

    updated, removed = remove_note(record, timestamp=note["timestamp"], requester=ALICE)
    assert removed is True
    assert updated["notes"] == []

    record, note = build_note(None, text="by alice again", author=ALICE)
    updated, removed = remove_note(record, timestamp=note["timestamp"], requester=ADMIN)
    assert removed is True
    assert updated["notes"] == []


def test_remove_note_with_unknown_timestamp_is_a_no_op():
    record, _ = build_note(None, text="stay", author=ALICE)
    updated, removed = remove_note(record, timestamp="1999-01-01T00:00:00.000000+00:00", requester=BOB)
    assert removed is False
    assert [n["text"] for n in updated["notes"]] == ["stay"]


def test_normalize_feedback_repairs_partial_records():
    assert normalize_feedback(None) == {"decision": "neutral", "notes": []}
    assert normalize_feedback({"decision": "bogus"}) == {"decision": "neutral", "notes": []}
    assert normalize_feedback({"decision": "no", "notes": [{"text": "x"}, "junk"]}) == {
        "decision": "no",
        "notes": [{"text": "x"}],
    }


def test_register_file_keeps_existing_feedback():
    position = {"files": ["cv.pdf"], "feedback": {"cv.pdf": {"decision": "yes", "notes": [{"text": "n"}]}}}
    updated = register_file(position, "cv.pdf")
    assert updated["files"] == ["cv.pdf"]
    assert updated["feedback"]["cv.pdf"]["decision"] == "yes"

    updated = register_file(updated, "other.pdf")
    assert updated["files"] == ["cv.pdf", "other.pdf"]
    assert updated["feedback"]["other.pdf"] == {"decision": "neutral", "notes": []}


def test_register_file_is_case_sensitive():
    updated = register_file(register_file({}, "CV.pdf"), "cv.pdf")
    assert updated["files"] == ["CV.pdf", "cv.pdf"]


def test_unregister_file_drops_name_and_feedback_together():
    position = register_file(register_file({}, "a.pdf"), "b.pdf")
    updated = unregister_file(position, "a.pdf")
    assert updated["files"] == ["b.pdf"]
    assert set(updated["feedback"]) == {"b.pdf"}
