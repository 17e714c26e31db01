"""Per-file reviewer feedback: the decision toggle and the notes thread.

Everything here is pure: functions take a feedback record (``{"decision",
"notes"}``) and return a new one. Serialization of concurrent changes to the
same file is the caller's job (see ``recruit_grid.locks``).
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from typing import Any

from recruit_grid.authorization import Principal, can_delete_note
from recruit_grid.errors import forbidden, invalid_argument

NEUTRAL = "neutral"
YES = "yes"
MAYBE = "maybe"
NO = "no"
DECISIONS = (NEUTRAL, YES, MAYBE, NO)


def default_feedback() -> dict[str, Any]:
    return {"decision": NEUTRAL, "notes": []}


def normalize_feedback(record: dict[str, Any] | None) -> dict[str, Any]:
    if not isinstance(record, dict):
        return default_feedback()
    decision = record.get("decision")
    notes = record.get("notes")
    return {
        "decision": decision if decision in DECISIONS else NEUTRAL,
        "notes": [dict(n) for n in notes if isinstance(n, dict)] if isinstance(notes, list) else [],
    }


def validate_decision(requested: str | None) -> str:
    if requested not in DECISIONS:
        raise invalid_argument(
            f"decision must be one of: {', '.join(DECISIONS)}",
            code="DECISION_INVALID",
        )
    return requested


def next_decision(current: str, requested: str) -> str:
    if requested == current and requested != NEUTRAL:
        return NEUTRAL
    return requested


def apply_decision(record: dict[str, Any] | None, requested: str) -> dict[str, Any]:
    updated = normalize_feedback(record)
    updated["decision"] = next_decision(updated["decision"], validate_decision(requested))
    return updated


class NoteClock:
    """Issues note timestamps that never repeat within the process.

    Timestamps are the deletion key of a note, so two notes created within the
    same microsecond get consecutive values instead of equal ones.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last: datetime | None = None

    def next(self, *, taken: set[str] | None = None) -> str:
        with self._lock:
            candidate = datetime.now(UTC)
            if self._last is not None and candidate <= self._last:
                candidate = self._last + timedelta(microseconds=1)
            while taken and _format_ts(candidate) in taken:
                candidate += timedelta(microseconds=1)
            self._last = candidate
            return _format_ts(candidate)


def _format_ts(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


note_clock = NoteClock()


def build_note(
    record: dict[str, Any] | None,
    *,
    text: str | None,
    author: Principal,
    clock: NoteClock | None = None,
) -> tuple[dict[str, Any], dict[str, Any]]:
    cleaned = str(text or "").strip()
    if not cleaned:
        raise invalid_argument("note text is required", code="NOTE_TEXT_REQUIRED")
    updated = normalize_feedback(record)
    taken = {str(n.get("timestamp")) for n in updated["notes"]}
    note = {
        "text": cleaned,
        "author_email": author.email,
        "author_name": author.name,
        "timestamp": (clock or note_clock).next(taken=taken),
    }
    updated["notes"] = [note, *updated["notes"]]
    return updated, note


def remove_note(
    record: dict[str, Any] | None,
    *,
    timestamp: str,
    requester: Principal,
) -> tuple[dict[str, Any], bool]:
    """Return ``(record, removed)``; an unknown timestamp leaves the record as is."""
    updated = normalize_feedback(record)
    for idx, note in enumerate(updated["notes"]):
        if str(note.get("timestamp")) != timestamp:
            continue
        if not can_delete_note(requester, note):
            raise forbidden("only the author or an admin can delete this note", code="NOTE_DELETE_FORBIDDEN")
        del updated["notes"][idx]
        return updated, True
    return updated, False


def register_file(position: dict[str, Any], filename: str) -> dict[str, Any]:
    """Add ``filename`` to the position, keeping any existing feedback history."""
    files = [str(x) for x in position.get("files") or []]
    feedback = dict(position.get("feedback") or {})
    if filename not in files:
        files.append(filename)
    if not isinstance(feedback.get(filename), dict):
        feedback[filename] = default_feedback()
    return {**position, "files": files, "feedback": feedback}


def unregister_file(position: dict[str, Any], filename: str) -> dict[str, Any]:
    files = [str(x) for x in position.get("files") or [] if x != filename]
    feedback = {k: v for k, v in (position.get("feedback") or {}).items() if k != filename}
    return {**position, "files": files, "feedback": feedback}
