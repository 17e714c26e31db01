from __future__ import annotations

import json
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from recruit_grid.db.postgres import PostgresTxRunner, validate_identifier
from recruit_grid.feedback import register_file, unregister_file
from recruit_grid.repositories._fs import position_path, read_json, remove_file, write_json

DETAIL_FIELDS = ("salary", "location", "experience", "benefits", "notes")


def default_details() -> dict[str, str]:
    return {field: "" for field in DETAIL_FIELDS}


def new_position(client_id: str, position: str) -> dict[str, Any]:
    now = datetime.now(UTC).isoformat()
    return {
        "client_id": client_id,
        "name": position,
        "details": default_details(),
        "files": [],
        "feedback": {},
        "created_at": now,
        "updated_at": now,
    }


def merge_details(row: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    details = {**default_details(), **(row.get("details") or {})}
    for field in DETAIL_FIELDS:
        value = patch.get(field)
        if value is not None:
            details[field] = str(value)
    return {**row, "details": details, "updated_at": datetime.now(UTC).isoformat()}


def _with_feedback(row: dict[str, Any], filename: str, record: dict[str, Any]) -> dict[str, Any] | None:
    if filename not in (row.get("files") or []):
        return None
    feedback = dict(row.get("feedback") or {})
    feedback[filename] = record
    return {**row, "feedback": feedback, "updated_at": datetime.now(UTC).isoformat()}


def _copy(row: dict[str, Any] | None) -> dict[str, Any] | None:
    # Nested feedback lists must not be shared with callers.
    return json.loads(json.dumps(row)) if row is not None else None


class InMemoryPositionsRepository:
    def __init__(self, positions: dict[str, dict[str, dict[str, Any]]], *, lock: threading.RLock) -> None:
        self._positions = positions
        self._lock = lock

    def get(self, *, client_id: str, position: str) -> dict[str, Any] | None:
        with self._lock:
            return _copy(self._positions.get(client_id, {}).get(position))

    def list(self, *, client_id: str) -> list[dict[str, Any]]:
        with self._lock:
            rows = self._positions.get(client_id, {})
            return [_copy(rows[k]) for k in sorted(rows)]

    def upsert(self, *, client_id: str, position: str, fields: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            rows = self._positions.setdefault(client_id, {})
            base = rows.get(position) or new_position(client_id, position)
            row = {**base, **fields, "client_id": client_id, "name": position}
            rows[position] = _copy(row)
            return _copy(row)

    def merge_details(self, *, client_id: str, position: str, patch: dict[str, Any]) -> tuple[dict[str, Any], bool]:
        with self._lock:
            rows = self._positions.setdefault(client_id, {})
            created = position not in rows
            row = merge_details(rows.get(position) or new_position(client_id, position), patch)
            rows[position] = row
            return _copy(row), created

    def register_file(self, *, client_id: str, position: str, filename: str) -> dict[str, Any]:
        with self._lock:
            rows = self._positions.setdefault(client_id, {})
            row = register_file(rows.get(position) or new_position(client_id, position), filename)
            row["updated_at"] = datetime.now(UTC).isoformat()
            rows[position] = row
            return _copy(row)

    def unregister_file(self, *, client_id: str, position: str, filename: str) -> dict[str, Any] | None:
        with self._lock:
            rows = self._positions.get(client_id, {})
            if position not in rows:
                return None
            row = unregister_file(rows[position], filename)
            row["updated_at"] = datetime.now(UTC).isoformat()
            rows[position] = row
            return _copy(row)

    def put_feedback(
        self, *, client_id: str, position: str, filename: str, record: dict[str, Any]
    ) -> dict[str, Any] | None:
        with self._lock:
            rows = self._positions.get(client_id, {})
            if position not in rows:
                return None
            row = _with_feedback(rows[position], filename, _copy(record))
            if row is None:
                return None
            rows[position] = row
            return _copy(row)

    def drop_fields(self, *, client_id: str, position: str, fields: list[str]) -> dict[str, Any] | None:
        with self._lock:
            row = self._positions.get(client_id, {}).get(position)
            if row is None:
                return None
            for field in fields:
                row.pop(field, None)
            return _copy(row)

    def delete(self, *, client_id: str, position: str) -> bool:
        with self._lock:
            rows = self._positions.get(client_id)
            if not rows or position not in rows:
                return False
            del rows[position]
            if not rows:
                del self._positions[client_id]
            return True


class FilesystemPositionsRepository:
    """One ``position.json`` per position under ``<root>/<client>/positions/<position>/``."""

    def __init__(self, *, root: Path, lock: threading.RLock) -> None:
        self._root = root
        self._lock = lock

    def _read(self, client_id: str, position: str) -> dict[str, Any] | None:
        return read_json(position_path(self._root, client_id, position))

    def _write(self, client_id: str, position: str, row: dict[str, Any]) -> None:
        write_json(position_path(self._root, client_id, position), row)

    def get(self, *, client_id: str, position: str) -> dict[str, Any] | None:
        with self._lock:
            return self._read(client_id, position)

    def list(self, *, client_id: str) -> list[dict[str, Any]]:
        with self._lock:
            base = self._root / client_id / "positions"
            if not base.is_dir():
                return []
            rows = []
            for child in sorted(base.iterdir()):
                row = self._read(client_id, child.name) if child.is_dir() else None
                if row is not None:
                    rows.append(row)
            return rows

    def upsert(self, *, client_id: str, position: str, fields: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            base = self._read(client_id, position) or new_position(client_id, position)
            row = {**base, **fields, "client_id": client_id, "name": position}
            self._write(client_id, position, row)
            return row

    def merge_details(self, *, client_id: str, position: str, patch: dict[str, Any]) -> tuple[dict[str, Any], bool]:
        with self._lock:
            existing = self._read(client_id, position)
            row = merge_details(existing or new_position(client_id, position), patch)
            self._write(client_id, position, row)
            return row, existing is None

    def register_file(self, *, client_id: str, position: str, filename: str) -> dict[str, Any]:
        with self._lock:
            row = register_file(self._read(client_id, position) or new_position(client_id, position), filename)
            row["updated_at"] = datetime.now(UTC).isoformat()
            self._write(client_id, position, row)
            return row

    def unregister_file(self, *, client_id: str, position: str, filename: str) -> dict[str, Any] | None:
        with self._lock:
            existing = self._read(client_id, position)
            if existing is None:
                return None
            row = unregister_file(existing, filename)
            row["updated_at"] = datetime.now(UTC).isoformat()
            self._write(client_id, position, row)
            return row

    def put_feedback(
        self, *, client_id: str, position: str, filename: str, record: dict[str, Any]
    ) -> dict[str, Any] | None:
        with self._lock:
            existing = self._read(client_id, position)
            row = _with_feedback(existing, filename, record) if existing is not None else None
            if row is None:
                return None
            self._write(client_id, position, row)
            return row

    def drop_fields(self, *, client_id: str, position: str, fields: list[str]) -> dict[str, Any] | None:
        with self._lock:
            row = self._read(client_id, position)
            if row is None:
                return None
            for field in fields:
                row.pop(field, None)
            self._write(client_id, position, row)
            return row

    def delete(self, *, client_id: str, position: str) -> bool:
        with self._lock:
            return remove_file(position_path(self._root, client_id, position), stop=self._root)


class PostgresPositionsRepository:
    def __init__(self, *, tx_runner: PostgresTxRunner, table_name: str = "grid_positions") -> None:
        self._tx_runner = tx_runner
        self._table_name = validate_identifier(table_name)

    def _select_for_update(self, cur: Any, client_id: str, position: str) -> dict[str, Any] | None:
        cur.execute(
            f"SELECT payload FROM {self._table_name} WHERE client_id = %s AND position = %s FOR UPDATE",
            (client_id, position),
        )
        row = cur.fetchone()
        return dict(row[0]) if row is not None else None

    def _save(self, cur: Any, client_id: str, position: str, row: dict[str, Any]) -> None:
        cur.execute(
            f"""
            INSERT INTO {self._table_name} (client_id, position, payload) VALUES (%s, %s, %s::jsonb)
            ON CONFLICT (client_id, position) DO UPDATE SET payload = EXCLUDED.payload
            """,
            (client_id, position, json.dumps(row, ensure_ascii=True)),
        )

    def get(self, *, client_id: str, position: str) -> dict[str, Any] | None:
        sql = f"SELECT payload FROM {self._table_name} WHERE client_id = %s AND position = %s LIMIT 1"

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (client_id, position))
                row = cur.fetchone()
            return dict(row[0]) if row is not None else None

        return self._tx_runner.run_in_tx(client_scope=client_id, fn=_op)

    def list(self, *, client_id: str) -> list[dict[str, Any]]:
        sql = f"SELECT payload FROM {self._table_name} WHERE client_id = %s ORDER BY position"

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, (client_id,))
                rows = cur.fetchall() or []
            return [dict(row[0]) for row in rows]

        return self._tx_runner.run_in_tx(client_scope=client_id, fn=_op)

    def upsert(self, *, client_id: str, position: str, fields: dict[str, Any]) -> dict[str, Any]:
        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                base = self._select_for_update(cur, client_id, position) or new_position(client_id, position)
                row = {**base, **fields, "client_id": client_id, "name": position}
                self._save(cur, client_id, position, row)
            return row

        return self._tx_runner.run_in_tx(client_scope=client_id, fn=_op)

    def merge_details(self, *, client_id: str, position: str, patch: dict[str, Any]) -> tuple[dict[str, Any], bool]:
        def _op(conn: Any) -> tuple[dict[str, Any], bool]:
            with conn.cursor() as cur:
                existing = self._select_for_update(cur, client_id, position)
                row = merge_details(existing or new_position(client_id, position), patch)
                self._save(cur, client_id, position, row)
            return row, existing is None

        return self._tx_runner.run_in_tx(client_scope=client_id, fn=_op)

    def register_file(self, *, client_id: str, position: str, filename: str) -> dict[str, Any]:
        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                existing = self._select_for_update(cur, client_id, position)
                row = register_file(existing or new_position(client_id, position), filename)
                row["updated_at"] = datetime.now(UTC).isoformat()
                self._save(cur, client_id, position, row)
            return row

        return self._tx_runner.run_in_tx(client_scope=client_id, fn=_op)

    def unregister_file(self, *, client_id: str, position: str, filename: str) -> dict[str, Any] | None:
        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                existing = self._select_for_update(cur, client_id, position)
                if existing is None:
                    return None
                row = unregister_file(existing, filename)
                row["updated_at"] = datetime.now(UTC).isoformat()
                self._save(cur, client_id, position, row)
            return row

        return self._tx_runner.run_in_tx(client_scope=client_id, fn=_op)

    def put_feedback(
        self, *, client_id: str, position: str, filename: str, record: dict[str, Any]
    ) -> dict[str, Any] | None:
        # Field-scoped write: only feedback.<filename> changes, and only while the file is listed.
        sql = f"""
            UPDATE {self._table_name}
            SET payload = jsonb_set(payload, ARRAY['feedback', %s], %s::jsonb, true)
            WHERE client_id = %s AND position = %s AND payload->'files' ? %s
            RETURNING payload
        """

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (filename, json.dumps(record, ensure_ascii=True), client_id, position, filename))
                row = cur.fetchone()
            return dict(row[0]) if row is not None else None

        return self._tx_runner.run_in_tx(client_scope=client_id, fn=_op)

    def drop_fields(self, *, client_id: str, position: str, fields: list[str]) -> dict[str, Any] | None:
        sql = f"""
            UPDATE {self._table_name} SET payload = payload - %s::text[]
            WHERE client_id = %s AND position = %s
            RETURNING payload
        """

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (list(fields), client_id, position))
                row = cur.fetchone()
            return dict(row[0]) if row is not None else None

        return self._tx_runner.run_in_tx(client_scope=client_id, fn=_op)

    def delete(self, *, client_id: str, position: str) -> bool:
        sql = f"DELETE FROM {self._table_name} WHERE client_id = %s AND position = %s"

        def _op(conn: Any) -> bool:
            with conn.cursor() as cur:
                cur.execute(sql, (client_id, position))
                return cur.rowcount > 0

        return self._tx_runner.run_in_tx(client_scope=client_id, fn=_op)
