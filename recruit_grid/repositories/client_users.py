from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

from recruit_grid.db.postgres import PostgresTxRunner, validate_identifier
from recruit_grid.repositories._fs import client_path, read_json, remove_file, write_json


class InMemoryClientUsersRepository:
    def __init__(self, users: dict[str, dict[str, dict[str, Any]]], *, lock: threading.RLock) -> None:
        self._users = users
        self._lock = lock

    def get(self, *, client_id: str, email: str) -> dict[str, Any] | None:
        with self._lock:
            row = self._users.get(client_id, {}).get(email)
            return dict(row) if row is not None else None

    def list(self, *, client_id: str) -> list[dict[str, Any]]:
        with self._lock:
            rows = self._users.get(client_id, {})
            return [dict(rows[k]) for k in sorted(rows)]

    def find_by_email(self, *, email: str) -> list[dict[str, Any]]:
        with self._lock:
            return [
                dict(rows[email])
                for client_id, rows in sorted(self._users.items())
                if email in rows
            ]

    def upsert(self, *, client_id: str, email: str, fields: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            rows = self._users.setdefault(client_id, {})
            row = {**rows.get(email, {}), **fields, "client_id": client_id, "email": email}
            rows[email] = row
            return dict(row)

    def delete(self, *, client_id: str, email: str) -> bool:
        with self._lock:
            rows = self._users.get(client_id)
            if not rows or email not in rows:
                return False
            del rows[email]
            if not rows:
                del self._users[client_id]
            return True


class FilesystemClientUsersRepository:
    """Users are kept inside the owning client's ``client.json``."""

    def __init__(self, *, root: Path, lock: threading.RLock) -> None:
        self._root = root
        self._lock = lock

    def _users(self, client_id: str) -> dict[str, Any]:
        doc = read_json(client_path(self._root, client_id)) or {}
        users = doc.get("users")
        return users if isinstance(users, dict) else {}

    def get(self, *, client_id: str, email: str) -> dict[str, Any] | None:
        with self._lock:
            row = self._users(client_id).get(email)
            return dict(row) if isinstance(row, dict) else None

    def list(self, *, client_id: str) -> list[dict[str, Any]]:
        with self._lock:
            users = self._users(client_id)
            return [dict(users[k]) for k in sorted(users)]

    def find_by_email(self, *, email: str) -> list[dict[str, Any]]:
        with self._lock:
            if not self._root.exists():
                return []
            found = []
            for child in sorted(self._root.iterdir()):
                if child.is_dir():
                    row = self._users(child.name).get(email)
                    if isinstance(row, dict):
                        found.append(dict(row))
            return found

    def upsert(self, *, client_id: str, email: str, fields: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            path = client_path(self._root, client_id)
            doc = read_json(path) or {"client": None}
            users = doc.setdefault("users", {})
            row = {**users.get(email, {}), **fields, "client_id": client_id, "email": email}
            users[email] = row
            write_json(path, doc)
            return dict(row)

    def delete(self, *, client_id: str, email: str) -> bool:
        with self._lock:
            path = client_path(self._root, client_id)
            doc = read_json(path)
            if doc is None or email not in (doc.get("users") or {}):
                return False
            del doc["users"][email]
            if doc.get("client") is None and not doc["users"]:
                remove_file(path, stop=self._root)
            else:
                write_json(path, doc)
            return True


class PostgresClientUsersRepository:
    def __init__(self, *, tx_runner: PostgresTxRunner, table_name: str = "grid_client_users") -> None:
        self._tx_runner = tx_runner
        self._table_name = validate_identifier(table_name)

    def get(self, *, client_id: str, email: str) -> dict[str, Any] | None:
        sql = f"SELECT payload FROM {self._table_name} WHERE client_id = %s AND email = %s LIMIT 1"

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (client_id, email))
                row = cur.fetchone()
            return dict(row[0]) if row is not None else None

        return self._tx_runner.run_in_tx(client_scope=client_id, fn=_op)

    def list(self, *, client_id: str) -> list[dict[str, Any]]:
        sql = f"SELECT payload FROM {self._table_name} WHERE client_id = %s ORDER BY email"

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, (client_id,))
                rows = cur.fetchall() or []
            return [dict(row[0]) for row in rows]

        return self._tx_runner.run_in_tx(client_scope=client_id, fn=_op)

    def find_by_email(self, *, email: str) -> list[dict[str, Any]]:
        sql = f"SELECT payload FROM {self._table_name} WHERE email = %s ORDER BY client_id"

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, (email,))
                rows = cur.fetchall() or []
            return [dict(row[0]) for row in rows]

        return self._tx_runner.run_in_tx(fn=_op)

    def upsert(self, *, client_id: str, email: str, fields: dict[str, Any]) -> dict[str, Any]:
        payload = {**fields, "client_id": client_id, "email": email}
        sql = f"""
            INSERT INTO {self._table_name} (client_id, email, payload) VALUES (%s, %s, %s::jsonb)
            ON CONFLICT (client_id, email) DO UPDATE SET payload = {self._table_name}.payload || EXCLUDED.payload
            RETURNING payload
        """

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(sql, (client_id, email, json.dumps(payload, ensure_ascii=True)))
                row = cur.fetchone()
            return dict(row[0])

        return self._tx_runner.run_in_tx(client_scope=client_id, fn=_op)

    def delete(self, *, client_id: str, email: str) -> bool:
        sql = f"DELETE FROM {self._table_name} WHERE client_id = %s AND email = %s"

        def _op(conn: Any) -> bool:
            with conn.cursor() as cur:
                cur.execute(sql, (client_id, email))
                return cur.rowcount > 0

        return self._tx_runner.run_in_tx(client_scope=client_id, fn=_op)
