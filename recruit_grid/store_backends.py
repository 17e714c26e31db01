from __future__ import annotations

import json
import shutil
import sqlite3
import threading
from pathlib import Path
from typing import Any

from recruit_grid.authorization import Principal
from recruit_grid.db.postgres import PostgresTxRunner, _import_psycopg, validate_identifier
from recruit_grid.errors import unavailable
from recruit_grid.migration import MigrationReport
from recruit_grid.repositories import (
    FilesystemClientsRepository,
    FilesystemClientUsersRepository,
    FilesystemPositionsRepository,
    PostgresClientsRepository,
    PostgresClientUsersRepository,
    PostgresPositionsRepository,
)
from recruit_grid.store import InMemoryStore


class SqliteBackedStore(InMemoryStore):
    """Persistent store backend that snapshots all records to SQLite after each write."""

    def __init__(self, db_path: str) -> None:
        super().__init__()
        self._db_path = Path(db_path).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._initialize_database()
        self._load_state()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self._db_path))

    def _initialize_database(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS store_state (
                  id INTEGER PRIMARY KEY CHECK (id = 1),
                  payload TEXT NOT NULL
                )
                """
            )
            conn.commit()

    def _state_snapshot(self) -> dict[str, Any]:
        return {
            "schema_version": 1,
            "clients": self.clients,
            "client_users": self.client_users,
            "positions": self.positions,
        }

    def _restore_state(self, payload: dict[str, Any]) -> None:
        with self._records_lock:
            self.clients = payload.get("clients", {}) if isinstance(payload.get("clients"), dict) else {}
            self.client_users = (
                payload.get("client_users", {}) if isinstance(payload.get("client_users"), dict) else {}
            )
            self.positions = payload.get("positions", {}) if isinstance(payload.get("positions"), dict) else {}
        self._bind_repositories()

    def _save_state(self) -> None:
        # Snapshot and write under one lock so an older snapshot never lands after a newer one.
        with self._lock:
            with self._records_lock:
                blob = json.dumps(self._state_snapshot(), sort_keys=True, ensure_ascii=True, separators=(",", ":"))
            self._write_snapshot(blob)

    def _write_snapshot(self, blob: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO store_state(id, payload)
                    VALUES (1, ?)
                    ON CONFLICT(id) DO UPDATE SET payload = excluded.payload
                    """,
                    (blob,),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise unavailable("failed to persist store snapshot") from exc

    def _load_state(self) -> None:
        with self._lock, self._connect() as conn:
            row = conn.execute("SELECT payload FROM store_state WHERE id = 1").fetchone()
        if row is None:
            return
        payload_raw = row[0]
        if not isinstance(payload_raw, str):
            return
        try:
            payload = json.loads(payload_raw)
        except json.JSONDecodeError:
            return
        if not isinstance(payload, dict):
            return
        self._restore_state(payload)

    def reset(self) -> None:
        super().reset()
        self._save_state()

    def create_client(self, principal: Principal, **kwargs: Any) -> dict[str, Any]:
        data = super().create_client(principal, **kwargs)
        self._save_state()
        return data

    def set_logo(self, principal: Principal, **kwargs: Any) -> dict[str, Any]:
        data = super().set_logo(principal, **kwargs)
        self._save_state()
        return data

    def remove_logo(self, principal: Principal, **kwargs: Any) -> dict[str, Any]:
        data = super().remove_logo(principal, **kwargs)
        self._save_state()
        return data

    def rename_client(self, principal: Principal, **kwargs: Any) -> MigrationReport:
        # Partial progress is persisted too, so a rerun can resume from it.
        try:
            return super().rename_client(principal, **kwargs)
        finally:
            self._save_state()

    def delete_client(self, principal: Principal, **kwargs: Any) -> dict[str, Any]:
        data = super().delete_client(principal, **kwargs)
        self._save_state()
        return data

    def add_client_user(self, principal: Principal, **kwargs: Any) -> dict[str, Any]:
        data = super().add_client_user(principal, **kwargs)
        self._save_state()
        return data

    def delete_client_user(self, principal: Principal, **kwargs: Any) -> dict[str, Any]:
        data = super().delete_client_user(principal, **kwargs)
        self._save_state()
        return data

    def put_position(self, principal: Principal, **kwargs: Any) -> tuple[dict[str, Any], bool]:
        data = super().put_position(principal, **kwargs)
        self._save_state()
        return data

    def rename_position(self, principal: Principal, **kwargs: Any) -> MigrationReport:
        try:
            return super().rename_position(principal, **kwargs)
        finally:
            self._save_state()

    def put_files(self, principal: Principal, **kwargs: Any) -> list[str]:
        data = super().put_files(principal, **kwargs)
        self._save_state()
        return data

    def delete_file(self, principal: Principal, **kwargs: Any) -> dict[str, Any]:
        data = super().delete_file(principal, **kwargs)
        self._save_state()
        return data

    def set_decision(self, principal: Principal, **kwargs: Any) -> dict[str, Any]:
        data = super().set_decision(principal, **kwargs)
        self._save_state()
        return data

    def add_note(self, principal: Principal, **kwargs: Any) -> dict[str, Any]:
        data = super().add_note(principal, **kwargs)
        self._save_state()
        return data

    def delete_note(self, principal: Principal, **kwargs: Any) -> dict[str, Any]:
        data = super().delete_note(principal, **kwargs)
        self._save_state()
        return data


class FilesystemBackedStore(InMemoryStore):
    """Records as JSON documents in a directory tree, one file per client and per position."""

    def __init__(self, root: str) -> None:
        self._root = Path(root).expanduser()
        self._root.mkdir(parents=True, exist_ok=True)
        super().__init__()

    def _bind_repositories(self) -> None:
        self.clients_repository = FilesystemClientsRepository(root=self._root, lock=self._records_lock)
        self.users_repository = FilesystemClientUsersRepository(root=self._root, lock=self._records_lock)
        self.positions_repository = FilesystemPositionsRepository(root=self._root, lock=self._records_lock)

    def reset(self) -> None:
        with self._records_lock:
            if self._root.exists():
                shutil.rmtree(self._root)
            self._root.mkdir(parents=True, exist_ok=True)
        super().reset()


class PostgresBackedStore(InMemoryStore):
    """Records in three JSONB tables; every repository call is its own transaction."""

    def __init__(self, *, dsn: str, table_prefix: str = "grid") -> None:
        if not dsn.strip():
            raise ValueError("POSTGRES_DSN must be provided for postgres store backend")
        prefix = validate_identifier(table_prefix.strip() or "grid")
        self._tx_runner = PostgresTxRunner(dsn)
        self._clients_table = f"{prefix}_clients"
        self._users_table = f"{prefix}_client_users"
        self._positions_table = f"{prefix}_positions"
        self._initialize_database()
        super().__init__()

    def _initialize_database(self) -> None:
        statements = [
            f"""
            CREATE TABLE IF NOT EXISTS {self._clients_table} (
              client_id TEXT PRIMARY KEY,
              payload JSONB NOT NULL
            )
            """,
            f"""
            CREATE TABLE IF NOT EXISTS {self._users_table} (
              client_id TEXT NOT NULL,
              email TEXT NOT NULL,
              payload JSONB NOT NULL,
              PRIMARY KEY (client_id, email)
            )
            """,
            f"CREATE INDEX IF NOT EXISTS {self._users_table}_email_idx ON {self._users_table} (email)",
            f"""
            CREATE TABLE IF NOT EXISTS {self._positions_table} (
              client_id TEXT NOT NULL,
              position TEXT NOT NULL,
              payload JSONB NOT NULL,
              PRIMARY KEY (client_id, position)
            )
            """,
        ]

        def _op(conn: Any) -> None:
            with conn.cursor() as cur:
                for sql in statements:
                    cur.execute(sql)

        self._tx_runner.run_in_tx(fn=_op)

    def _bind_repositories(self) -> None:
        self.clients_repository = PostgresClientsRepository(tx_runner=self._tx_runner, table_name=self._clients_table)
        self.users_repository = PostgresClientUsersRepository(tx_runner=self._tx_runner, table_name=self._users_table)
        self.positions_repository = PostgresPositionsRepository(
            tx_runner=self._tx_runner,
            table_name=self._positions_table,
        )

    def backend_errors(self) -> tuple[type[BaseException], ...]:
        return (*super().backend_errors(), _import_psycopg().Error)

    def reset(self) -> None:
        super().reset()
        tables = ", ".join([self._clients_table, self._users_table, self._positions_table])

        def _op(conn: Any) -> None:
            with conn.cursor() as cur:
                cur.execute(f"TRUNCATE {tables}")

        self._tx_runner.run_in_tx(fn=_op)
