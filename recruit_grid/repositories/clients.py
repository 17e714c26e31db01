from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

from recruit_grid.db.postgres import PostgresTxRunner, validate_identifier
from recruit_grid.repositories._fs import client_path, read_json, remove_file, write_json


class InMemoryClientsRepository:
    def __init__(self, clients: dict[str, dict[str, Any]], *, lock: threading.RLock) -> None:
        self._clients = clients
        self._lock = lock

    def get(self, *, client_id: str) -> dict[str, Any] | None:
        with self._lock:
            row = self._clients.get(client_id)
            return dict(row) if row is not None else None

    def list(self) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(self._clients[k]) for k in sorted(self._clients)]

    def upsert(self, *, client_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            row = {**self._clients.get(client_id, {}), **fields, "name": client_id}
            self._clients[client_id] = row
            return dict(row)

    def drop_fields(self, *, client_id: str, fields: list[str]) -> dict[str, Any] | None:
        with self._lock:
            row = self._clients.get(client_id)
            if row is None:
                return None
            for field in fields:
                row.pop(field, None)
            return dict(row)

    def delete(self, *, client_id: str) -> bool:
        with self._lock:
            return self._clients.pop(client_id, None) is not None


class FilesystemClientsRepository:
    """Client records live in ``<root>/<client>/client.json`` next to the client's users."""

    def __init__(self, *, root: Path, lock: threading.RLock) -> None:
        self._root = root
        self._lock = lock

    def get(self, *, client_id: str) -> dict[str, Any] | None:
        with self._lock:
            doc = read_json(client_path(self._root, client_id)) or {}
            row = doc.get("client")
            return dict(row) if isinstance(row, dict) else None

    def list(self) -> list[dict[str, Any]]:
        with self._lock:
            if not self._root.exists():
                return []
            rows = []
            for child in sorted(self._root.iterdir()):
                if not child.is_dir():
                    continue
                row = self.get(client_id=child.name)
                if row is not None:
                    rows.append(row)
            return rows

    def upsert(self, *, client_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            path = client_path(self._root, client_id)
            doc = read_json(path) or {}
            row = {**(doc.get("client") or {}), **fields, "name": client_id}
            doc["client"] = row
            doc.setdefault("users", {})
            write_json(path, doc)
            return dict(row)

    def drop_fields(self, *, client_id: str, fields: list[str]) -> dict[str, Any] | None:
        with self._lock:
            path = client_path(self._root, client_id)
            doc = read_json(path) or {}
            row = doc.get("client")
            if not isinstance(row, dict):
                return None
            for field in fields:
                row.pop(field, None)
            write_json(path, doc)
            return dict(row)

    def delete(self, *, client_id: str) -> bool:
        with self._lock:
            path = client_path(self._root, client_id)
            doc = read_json(path)
            if doc is None or not isinstance(doc.get("client"), dict):
                return False
            if doc.get("users"):
                doc["client"] = None
                write_json(path, doc)
                return True
            return remove_file(path, stop=self._root)


class PostgresClientsRepository:
    def __init__(self, *, tx_runner: PostgresTxRunner, table_name: str = "grid_clients") -> None:
        self._tx_runner = tx_runner
        self._table_name = validate_identifier(table_name)

    def get(self, *, client_id: str) -> dict[str, Any] | None:
        sql = f"SELECT payload FROM {self._table_name} WHERE client_id = %s LIMIT 1"

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (client_id,))
                row = cur.fetchone()
            return dict(row[0]) if row is not None else None

        return self._tx_runner.run_in_tx(client_scope=client_id, fn=_op)

    def list(self) -> list[dict[str, Any]]:
        sql = f"SELECT payload FROM {self._table_name} ORDER BY client_id"

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql)
                rows = cur.fetchall() or []
            return [dict(row[0]) for row in rows]

        return self._tx_runner.run_in_tx(fn=_op)

    def upsert(self, *, client_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        payload = {**fields, "name": client_id}
        sql = f"""
            INSERT INTO {self._table_name} (client_id, payload) VALUES (%s, %s::jsonb)
            ON CONFLICT (client_id) DO UPDATE SET payload = {self._table_name}.payload || EXCLUDED.payload
            RETURNING payload
        """

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(sql, (client_id, json.dumps(payload, ensure_ascii=True)))
                row = cur.fetchone()
            return dict(row[0])

        return self._tx_runner.run_in_tx(client_scope=client_id, fn=_op)

    def drop_fields(self, *, client_id: str, fields: list[str]) -> dict[str, Any] | None:
        sql = f"UPDATE {self._table_name} SET payload = payload - %s::text[] WHERE client_id = %s RETURNING payload"

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (list(fields), client_id))
                row = cur.fetchone()
            return dict(row[0]) if row is not None else None

        return self._tx_runner.run_in_tx(client_scope=client_id, fn=_op)

    def delete(self, *, client_id: str) -> bool:
        sql = f"DELETE FROM {self._table_name} WHERE client_id = %s"

        def _op(conn: Any) -> bool:
            with conn.cursor() as cur:
                cur.execute(sql, (client_id,))
                return cur.rowcount > 0

        return self._tx_runner.run_in_tx(client_scope=client_id, fn=_op)
