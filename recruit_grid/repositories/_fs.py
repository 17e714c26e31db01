from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

CLIENT_FILE = "client.json"
POSITION_FILE = "position.json"


def read_json(path: Path) -> dict[str, Any] | None:
    if not path.is_file():
        return None
    payload = json.loads(path.read_text(encoding="utf-8"))
    return payload if isinstance(payload, dict) else None


def write_json(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, ensure_ascii=True, sort_keys=True)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def remove_file(path: Path, *, stop: Path) -> bool:
    if not path.is_file():
        return False
    path.unlink()
    directory = path.parent
    while directory != stop and stop in directory.parents:
        try:
            directory.rmdir()
        except OSError:
            break
        directory = directory.parent
    return True


def client_path(root: Path, client_id: str) -> Path:
    return root / client_id / CLIENT_FILE


def position_path(root: Path, client_id: str, position: str) -> Path:
    return root / client_id / "positions" / position / POSITION_FILE
