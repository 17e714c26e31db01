from __future__ import annotations

import re

from recruit_grid.errors import invalid_argument

MAX_NAME_LENGTH = 200

_UNSAFE_FILENAME_CHARS = re.compile(r'[/\\<>:"|?*\x00-\x1f\x7f]')
_UNSAFE_NAME_CHARS = re.compile(r"[/\\\x00-\x1f\x7f]")


def sanitize_filename(raw: str | None) -> str:
    """Turn an uploaded filename into a storage-safe key segment.

    Path separators, reserved characters and control characters become ``_``;
    the result is capped at ``MAX_NAME_LENGTH``. Names that would still resolve
    to the current or parent directory fall back to ``unnamed``.
    """
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", (raw or "").strip())[:MAX_NAME_LENGTH]
    if cleaned in {"", ".", ".."}:
        return "unnamed"
    return cleaned


def validate_name(raw: str | None, *, field: str) -> str:
    name = (raw or "").strip()
    if not name:
        raise invalid_argument(f"{field} is required")
    if len(name) > MAX_NAME_LENGTH:
        raise invalid_argument(f"{field} exceeds {MAX_NAME_LENGTH} characters")
    if name in {".", ".."} or _UNSAFE_NAME_CHARS.search(name):
        raise invalid_argument(f"{field} contains unsupported characters")
    return name


def validate_client_name(raw: str | None) -> str:
    return validate_name(raw, field="client")


def validate_position_name(raw: str | None) -> str:
    return validate_name(raw, field="position")


def is_valid_name(raw: str | None) -> bool:
    name = (raw or "").strip()
    return bool(name) and len(name) <= MAX_NAME_LENGTH and name not in {".", ".."} and not _UNSAFE_NAME_CHARS.search(name)
