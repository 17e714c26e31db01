from __future__ import annotations

import functools
import logging
import os
import sqlite3
import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, TypeVar

from recruit_grid.authorization import (
    CLIENT_ROLES,
    Principal,
    is_admin,
    require_admin,
    require_client_access,
)
from recruit_grid.errors import conflict, invalid_argument, not_found, unavailable
from recruit_grid.feedback import (
    apply_decision,
    build_note,
    normalize_feedback,
    remove_note,
)
from recruit_grid.identifiers import (
    is_valid_name,
    sanitize_filename,
    validate_client_name,
    validate_position_name,
)
from recruit_grid.locks import ClientGate, KeyedLock
from recruit_grid.migration import MARKER_FIELD, MigrationReport, RenameMigrator
from recruit_grid.notifications import (
    EVENT_NEW_CLIENT,
    EVENT_NEW_POSITION,
    EVENT_NEW_USER,
    EVENT_NOTE,
    EVENT_STATUS,
    DomainEvent,
    NotificationDispatcher,
    create_notifier_from_env,
)
from recruit_grid.object_storage import (
    ObjectStorageBackend,
    StoredObject,
    client_prefix,
    create_object_storage_from_env,
    file_key,
    logo_key,
)
from recruit_grid.repositories import (
    InMemoryClientsRepository,
    InMemoryClientUsersRepository,
    InMemoryPositionsRepository,
)
from recruit_grid.security import hash_password, normalize_email, verify_password

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _wraps_backend_errors(fn: F) -> F:
    """Turn raw backend failures into a retryable ``STORAGE_UNAVAILABLE``."""

    @functools.wraps(fn)
    def wrapper(self: InMemoryStore, *args: Any, **kwargs: Any) -> Any:
        try:
            return fn(self, *args, **kwargs)
        except self.backend_errors() as exc:
            logger.error("storage_backend_error operation=%s error=%s", fn.__name__, exc)
            raise unavailable(f"storage backend failed during {fn.__name__}") from exc

    return wrapper  # type: ignore[return-value]


def _user_view(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "email": row.get("email"),
        "name": row.get("name") or row.get("email"),
        "role": row.get("role"),
        "client_id": row.get("client_id"),
        "created_at": row.get("created_at"),
    }


def _client_view(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": row.get("name"),
        "has_logo": bool(row.get("logo")),
        "created_at": row.get("created_at"),
        "updated_at": row.get("updated_at"),
        "migrating": bool(row.get(MARKER_FIELD)),
    }


def _position_view(row: dict[str, Any]) -> dict[str, Any]:
    files = [str(x) for x in row.get("files") or []]
    feedback = row.get("feedback") or {}
    return {
        "client_id": row.get("client_id"),
        "name": row.get("name"),
        "details": dict(row.get("details") or {}),
        "files": files,
        "feedback": {name: normalize_feedback(feedback.get(name)) for name in files},
        "created_at": row.get("created_at"),
        "updated_at": row.get("updated_at"),
    }


class InMemoryStore:
    DEFAULT_BCRYPT_ROUNDS = 12

    def __init__(
        self,
        *,
        object_storage: ObjectStorageBackend | None = None,
        notifier: NotificationDispatcher | None = None,
    ) -> None:
        self.migration_lock_timeout_s = self._env_float("GRID_MIGRATION_LOCK_TIMEOUT_S", default=5.0, minimum=0.0)
        self.bcrypt_rounds = self._env_int("GRID_BCRYPT_ROUNDS", default=self.DEFAULT_BCRYPT_ROUNDS, minimum=4)
        self.object_storage = object_storage or create_object_storage_from_env(os.environ)
        self.notifier = notifier or create_notifier_from_env(os.environ)
        self.keyed_locks = KeyedLock()
        self.client_gate = ClientGate(timeout_s=self.migration_lock_timeout_s)
        self._records_lock = threading.RLock()
        self.clients: dict[str, dict[str, Any]] = {}
        self.client_users: dict[str, dict[str, dict[str, Any]]] = {}
        self.positions: dict[str, dict[str, dict[str, Any]]] = {}
        self._bind_repositories()

    @staticmethod
    def _env_int(name: str, *, default: int, minimum: int = 0) -> int:
        raw = os.environ.get(name, "").strip()
        if not raw:
            return default
        try:
            value = int(raw)
        except ValueError:
            return default
        return max(minimum, value)

    @staticmethod
    def _env_float(name: str, *, default: float, minimum: float = 0.0) -> float:
        raw = os.environ.get(name, "").strip()
        if not raw:
            return default
        try:
            value = float(raw)
        except ValueError:
            return default
        return max(minimum, value)

    @staticmethod
    def _utcnow_iso() -> str:
        return datetime.now(UTC).isoformat()

    def _bind_repositories(self) -> None:
        self.clients_repository = InMemoryClientsRepository(self.clients, lock=self._records_lock)
        self.users_repository = InMemoryClientUsersRepository(self.client_users, lock=self._records_lock)
        self.positions_repository = InMemoryPositionsRepository(self.positions, lock=self._records_lock)

    def backend_errors(self) -> tuple[type[BaseException], ...]:
        return (sqlite3.Error, *self.object_storage.backend_errors)

    def reset(self) -> None:
        self.object_storage = create_object_storage_from_env(os.environ)
        reset_fn = getattr(self.object_storage, "reset", None)
        if callable(reset_fn):
            reset_fn()
        self.migration_lock_timeout_s = self._env_float("GRID_MIGRATION_LOCK_TIMEOUT_S", default=5.0, minimum=0.0)
        self.bcrypt_rounds = self._env_int("GRID_BCRYPT_ROUNDS", default=self.DEFAULT_BCRYPT_ROUNDS, minimum=4)
        self.keyed_locks = KeyedLock()
        self.client_gate = ClientGate(timeout_s=self.migration_lock_timeout_s)
        with self._records_lock:
            self.clients.clear()
            self.client_users.clear()
            self.positions.clear()
        self._bind_repositories()

    def migrator(self) -> RenameMigrator:
        return RenameMigrator(
            clients=self.clients_repository,
            users=self.users_repository,
            positions=self.positions_repository,
            object_storage=self.object_storage,
        )

    def _emit(self, kind: str, *, principal: Principal, client_id: str, **fields: Any) -> None:
        self.notifier.dispatch(DomainEvent(kind=kind, client_id=client_id, actor=principal.actor(), **fields))

    @contextmanager
    def _client_scope(self, principal: Principal, client_id: str) -> Iterator[str]:
        name = validate_client_name(client_id)
        require_client_access(principal, name)
        with self.client_gate.shared(name):
            yield name

    def _require_client(self, client_id: str) -> dict[str, Any]:
        row = self.clients_repository.get(client_id=client_id)
        if row is None:
            raise not_found(f"client {client_id!r} not found", code="CLIENT_NOT_FOUND")
        return row

    def _require_position(self, client_id: str, position: str) -> dict[str, Any]:
        row = self.positions_repository.get(client_id=client_id, position=position)
        if row is None:
            raise not_found(f"position {position!r} not found", code="POSITION_NOT_FOUND")
        return row

    def _require_listed_file(self, client_id: str, position: str, filename: str) -> dict[str, Any]:
        row = self._require_position(client_id, position)
        if filename not in (row.get("files") or []):
            raise not_found(f"file {filename!r} not found", code="FILE_NOT_FOUND")
        return row

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------

    @_wraps_backend_errors
    def list_clients(self, principal: Principal) -> list[dict[str, Any]]:
        if is_admin(principal):
            return [_client_view(row) for row in self.clients_repository.list()]
        if principal.client_id is None:
            return []
        row = self.clients_repository.get(client_id=principal.client_id)
        return [_client_view(row)] if row is not None else []

    @_wraps_backend_errors
    def get_client(self, principal: Principal, *, client_id: str) -> dict[str, Any]:
        with self._client_scope(principal, client_id) as client_id:
            return _client_view(self._require_client(client_id))

    @_wraps_backend_errors
    def create_client(
        self,
        principal: Principal,
        *,
        name: str,
        logo: tuple[bytes, str] | None = None,
    ) -> dict[str, Any]:
        require_admin(principal)
        client_id = validate_client_name(name)
        with self.client_gate.shared(client_id), self.keyed_locks.hold(client_id):
            if self.clients_repository.get(client_id=client_id) is not None:
                raise conflict(f"client {client_id!r} already exists", code="CLIENT_EXISTS")
            now = self._utcnow_iso()
            fields: dict[str, Any] = {"created_at": now, "updated_at": now}
            if logo is not None:
                content, content_type = logo
                self.object_storage.put_object(key=logo_key(client_id), content_bytes=content, content_type=content_type)
                fields["logo"] = {"content_type": content_type, "updated_at": now}
            row = self.clients_repository.upsert(client_id=client_id, fields=fields)
        logger.info("client_created client=%s actor=%s", client_id, principal.email)
        self._emit(EVENT_NEW_CLIENT, principal=principal, client_id=client_id, content=client_id)
        return _client_view(row)

    @_wraps_backend_errors
    def set_logo(self, principal: Principal, *, client_id: str, content: bytes, content_type: str) -> dict[str, Any]:
        require_admin(principal)
        with self._client_scope(principal, client_id) as client_id, self.keyed_locks.hold(client_id):
            self._require_client(client_id)
            now = self._utcnow_iso()
            self.object_storage.put_object(key=logo_key(client_id), content_bytes=content, content_type=content_type)
            row = self.clients_repository.upsert(
                client_id=client_id,
                fields={"logo": {"content_type": content_type, "updated_at": now}, "updated_at": now},
            )
        return _client_view(row)

    @_wraps_backend_errors
    def remove_logo(self, principal: Principal, *, client_id: str) -> dict[str, Any]:
        require_admin(principal)
        with self._client_scope(principal, client_id) as client_id, self.keyed_locks.hold(client_id):
            self._require_client(client_id)
            self.clients_repository.drop_fields(client_id=client_id, fields=["logo"])
            row = self.clients_repository.upsert(client_id=client_id, fields={"updated_at": self._utcnow_iso()})
            self.object_storage.delete_object(key=logo_key(client_id))
        return _client_view(row)

    @_wraps_backend_errors
    def get_logo(self, client_id: str) -> StoredObject:
        # Public: invalid, unknown and logo-less clients all look the same.
        missing = not_found("logo not found", code="LOGO_NOT_FOUND")
        if not is_valid_name(client_id):
            raise missing
        name = client_id.strip()
        row = self.clients_repository.get(client_id=name)
        if row is None or not row.get("logo"):
            raise missing
        try:
            return self.object_storage.get_object(key=logo_key(name))
        except FileNotFoundError:
            raise missing from None

    @_wraps_backend_errors
    def rename_client(self, principal: Principal, *, client_id: str, new_name: str) -> MigrationReport:
        require_admin(principal)
        source = validate_client_name(client_id)
        target = validate_client_name(new_name)
        if source == target:
            return MigrationReport(kind="client", source=source, target=target)
        with self.client_gate.exclusive(source, target):
            report = self.migrator().rename_client(source, target)
        logger.info("client_renamed source=%s target=%s actor=%s", source, target, principal.email)
        return report

    def update_client(
        self,
        principal: Principal,
        *,
        client_id: str,
        new_name: str | None = None,
        logo: tuple[bytes, str] | None = None,
        remove_logo: bool = False,
    ) -> dict[str, Any]:
        require_admin(principal)
        current = validate_client_name(client_id)
        report: MigrationReport | None = None
        if new_name is not None and new_name.strip() and new_name.strip() != current:
            report = self.rename_client(principal, client_id=current, new_name=new_name)
            current = report.target
        if remove_logo:
            self.remove_logo(principal, client_id=current)
        if logo is not None:
            self.set_logo(principal, client_id=current, content=logo[0], content_type=logo[1])
        data = self.get_client(principal, client_id=current)
        if report is not None:
            data["migration"] = report.to_dict()
        return data

    @_wraps_backend_errors
    def delete_client(self, principal: Principal, *, client_id: str) -> dict[str, Any]:
        require_admin(principal)
        name = validate_client_name(client_id)
        with self.client_gate.exclusive(name):
            self._require_client(name)
            positions = self.positions_repository.list(client_id=name)
            for row in positions:
                self.positions_repository.delete(client_id=name, position=str(row["name"]))
            users = self.users_repository.list(client_id=name)
            for row in users:
                self.users_repository.delete(client_id=name, email=str(row["email"]))
            self.clients_repository.delete(client_id=name)
            blobs = 0
            for key in self.object_storage.list_keys(prefix=client_prefix(name)):
                if self.object_storage.delete_object(key=key):
                    blobs += 1
        logger.info(
            "client_deleted client=%s positions=%s users=%s blobs=%s actor=%s",
            name,
            len(positions),
            len(users),
            blobs,
            principal.email,
        )
        return {"name": name, "deleted": True, "positions": len(positions), "users": len(users), "blobs": blobs}

    # ------------------------------------------------------------------
    # Client users
    # ------------------------------------------------------------------

    @_wraps_backend_errors
    def list_client_users(self, principal: Principal, *, client_id: str) -> list[dict[str, Any]]:
        require_admin(principal)
        with self._client_scope(principal, client_id) as client_id:
            self._require_client(client_id)
            return [_user_view(row) for row in self.users_repository.list(client_id=client_id)]

    @_wraps_backend_errors
    def add_client_user(
        self,
        principal: Principal,
        *,
        client_id: str,
        email: str,
        password: str,
        name: str = "",
        role: str = "client",
    ) -> dict[str, Any]:
        require_admin(principal)
        address = normalize_email(email)
        if not address or "@" not in address:
            raise invalid_argument("a valid email is required")
        if not password:
            raise invalid_argument("password is required")
        if role not in CLIENT_ROLES:
            raise invalid_argument(f"role must be one of: {', '.join(sorted(CLIENT_ROLES))}")
        with self._client_scope(principal, client_id) as client_id, self.keyed_locks.hold("user", address):
            self._require_client(client_id)
            if self.users_repository.find_by_email(email=address):
                raise conflict(f"user {address!r} already exists", code="USER_EXISTS")
            display_name = name.strip() or address
            row = self.users_repository.upsert(
                client_id=client_id,
                email=address,
                fields={
                    "name": display_name,
                    "role": role,
                    "password_hash": hash_password(password, rounds=self.bcrypt_rounds),
                    "created_at": self._utcnow_iso(),
                },
            )
        logger.info("client_user_added client=%s email=%s role=%s", client_id, address, role)
        self._emit(
            EVENT_NEW_USER,
            principal=principal,
            client_id=client_id,
            content=address,
            user={"name": display_name, "email": address},
        )
        return _user_view(row)

    @_wraps_backend_errors
    def delete_client_user(self, principal: Principal, *, client_id: str, email: str) -> dict[str, Any]:
        require_admin(principal)
        address = normalize_email(email)
        with self._client_scope(principal, client_id) as client_id, self.keyed_locks.hold("user", address):
            if not self.users_repository.delete(client_id=client_id, email=address):
                raise not_found(f"user {address!r} not found", code="USER_NOT_FOUND")
        logger.info("client_user_deleted client=%s email=%s", client_id, address)
        return {"email": address, "client_id": client_id, "deleted": True}

    @_wraps_backend_errors
    def authenticate_client_user(self, *, email: str, password: str) -> Principal | None:
        for row in self.users_repository.find_by_email(email=normalize_email(email)):
            if verify_password(password, str(row.get("password_hash") or "")):
                return Principal(
                    email=str(row["email"]),
                    name=str(row.get("name") or row["email"]),
                    role=str(row.get("role") or "client"),
                    client_id=str(row["client_id"]),
                )
        return None

    @_wraps_backend_errors
    def resolve_client_principal(self, principal: Principal) -> Principal | None:
        """Reload a client-scoped principal; ``None`` once the user is gone."""
        if principal.client_id is None:
            return None
        row = self.users_repository.get(client_id=principal.client_id, email=principal.email)
        if row is None:
            return None
        return Principal(
            email=principal.email,
            name=str(row.get("name") or principal.email),
            role=str(row.get("role") or principal.role),
            client_id=principal.client_id,
        )

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    @_wraps_backend_errors
    def list_positions(self, principal: Principal, *, client_id: str) -> list[dict[str, Any]]:
        with self._client_scope(principal, client_id) as client_id:
            self._require_client(client_id)
            return [
                {
                    "name": row.get("name"),
                    "file_count": len(row.get("files") or []),
                    "updated_at": row.get("updated_at"),
                }
                for row in self.positions_repository.list(client_id=client_id)
            ]

    @_wraps_backend_errors
    def get_position(self, principal: Principal, *, client_id: str, position: str) -> dict[str, Any]:
        with self._client_scope(principal, client_id) as client_id:
            return _position_view(self._require_position(client_id, validate_position_name(position)))

    @_wraps_backend_errors
    def put_position(
        self,
        principal: Principal,
        *,
        client_id: str,
        position: str,
        details: dict[str, Any],
    ) -> tuple[dict[str, Any], bool]:
        with self._client_scope(principal, client_id) as client_id:
            name = validate_position_name(position)
            self._require_client(client_id)
            row, created = self.positions_repository.merge_details(client_id=client_id, position=name, patch=details)
        if created:
            logger.info("position_created client=%s position=%s", client_id, name)
            self._emit(
                EVENT_NEW_POSITION,
                principal=principal,
                client_id=client_id,
                position=name,
                content=name,
                details=dict(row.get("details") or {}),
            )
        return _position_view(row), created

    @_wraps_backend_errors
    def rename_position(
        self,
        principal: Principal,
        *,
        client_id: str,
        position: str,
        new_name: str,
    ) -> MigrationReport:
        require_admin(principal)
        name = validate_client_name(client_id)
        source = validate_position_name(position)
        target = validate_position_name(new_name)
        if source == target:
            return MigrationReport(kind="position", source=source, target=target, client_id=name)
        with self.client_gate.exclusive(name):
            self._require_client(name)
            report = self.migrator().rename_position(name, source, target)
        logger.info("position_renamed client=%s source=%s target=%s", name, source, target)
        return report

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    @_wraps_backend_errors
    def put_files(
        self,
        principal: Principal,
        *,
        client_id: str,
        position: str,
        uploads: list[tuple[str | None, bytes, str | None]],
    ) -> list[str]:
        require_admin(principal)
        if not uploads:
            raise invalid_argument("at least one file is required")
        saved: list[str] = []
        with self._client_scope(principal, client_id) as client_id:
            name = validate_position_name(position)
            self._require_client(client_id)
            for raw_name, content, content_type in uploads:
                filename = sanitize_filename(raw_name)
                with self.keyed_locks.hold(client_id, name, filename):
                    # Blob first; the position only ever references stored bytes.
                    self.object_storage.put_object(
                        key=file_key(client_id, name, filename),
                        content_bytes=content,
                        content_type=content_type or "application/octet-stream",
                    )
                    self.positions_repository.register_file(client_id=client_id, position=name, filename=filename)
                saved.append(filename)
        logger.info("files_uploaded client=%s position=%s count=%s", client_id, name, len(saved))
        return saved

    def put_file(
        self,
        principal: Principal,
        *,
        client_id: str,
        position: str,
        filename: str | None,
        content: bytes,
        content_type: str | None = None,
    ) -> str:
        return self.put_files(
            principal,
            client_id=client_id,
            position=position,
            uploads=[(filename, content, content_type)],
        )[0]

    @_wraps_backend_errors
    def get_file(
        self,
        principal: Principal,
        *,
        client_id: str,
        position: str,
        filename: str,
    ) -> StoredObject:
        with self._client_scope(principal, client_id) as client_id:
            name = validate_position_name(position)
            self._require_listed_file(client_id, name, filename)
            try:
                return self.object_storage.get_object(key=file_key(client_id, name, filename))
            except FileNotFoundError:
                raise not_found(f"file {filename!r} not found", code="FILE_NOT_FOUND") from None

    @_wraps_backend_errors
    def delete_file(self, principal: Principal, *, client_id: str, position: str, filename: str) -> dict[str, Any]:
        require_admin(principal)
        with self._client_scope(principal, client_id) as client_id:
            name = validate_position_name(position)
            with self.keyed_locks.hold(client_id, name, filename):
                self._require_listed_file(client_id, name, filename)
                # Reference first, then the blob.
                self.positions_repository.unregister_file(client_id=client_id, position=name, filename=filename)
                self.object_storage.delete_object(key=file_key(client_id, name, filename))
        logger.info("file_deleted client=%s position=%s filename=%s", client_id, name, filename)
        return {"filename": filename, "deleted": True}

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    def _update_feedback(
        self,
        principal: Principal,
        *,
        client_id: str,
        position: str,
        filename: str,
        mutate: Callable[[dict[str, Any]], tuple[dict[str, Any], Any, bool]],
    ) -> tuple[str, str, dict[str, Any], Any]:
        with self._client_scope(principal, client_id) as client_id:
            name = validate_position_name(position)
            with self.keyed_locks.hold(client_id, name, filename):
                row = self._require_listed_file(client_id, name, filename)
                current = normalize_feedback((row.get("feedback") or {}).get(filename))
                record, extra, changed = mutate(current)
                if changed:
                    saved = self.positions_repository.put_feedback(
                        client_id=client_id,
                        position=name,
                        filename=filename,
                        record=record,
                    )
                    if saved is None:
                        raise not_found(f"file {filename!r} not found", code="FILE_NOT_FOUND")
        return client_id, name, record, extra

    @_wraps_backend_errors
    def set_decision(
        self,
        principal: Principal,
        *,
        client_id: str,
        position: str,
        filename: str,
        decision: str,
    ) -> dict[str, Any]:
        client_id, name, record, _ = self._update_feedback(
            principal,
            client_id=client_id,
            position=position,
            filename=filename,
            mutate=lambda current: (apply_decision(current, decision), None, True),
        )
        self._emit(
            EVENT_STATUS,
            principal=principal,
            client_id=client_id,
            position=name,
            filename=filename,
            content=record["decision"],
        )
        return {"filename": filename, **record}

    @_wraps_backend_errors
    def add_note(
        self,
        principal: Principal,
        *,
        client_id: str,
        position: str,
        filename: str,
        text: str,
    ) -> dict[str, Any]:
        def _mutate(current: dict[str, Any]) -> tuple[dict[str, Any], Any, bool]:
            record, note = build_note(current, text=text, author=principal)
            return record, note, True

        client_id, name, record, note = self._update_feedback(
            principal,
            client_id=client_id,
            position=position,
            filename=filename,
            mutate=_mutate,
        )
        self._emit(
            EVENT_NOTE,
            principal=principal,
            client_id=client_id,
            position=name,
            filename=filename,
            content=note["text"],
        )
        return {"filename": filename, "note": note, "feedback": record}

    @_wraps_backend_errors
    def delete_note(
        self,
        principal: Principal,
        *,
        client_id: str,
        position: str,
        filename: str,
        timestamp: str,
    ) -> dict[str, Any]:
        def _mutate(current: dict[str, Any]) -> tuple[dict[str, Any], Any, bool]:
            record, removed = remove_note(current, timestamp=timestamp, requester=principal)
            return record, removed, removed

        _, _, record, removed = self._update_feedback(
            principal,
            client_id=client_id,
            position=position,
            filename=filename,
            mutate=_mutate,
        )
        return {"filename": filename, "removed": removed, "feedback": record}


def create_store_from_env(environ: Mapping[str, str] | None = None) -> InMemoryStore:
    from recruit_grid.store_backends import FilesystemBackedStore, PostgresBackedStore, SqliteBackedStore

    env = os.environ if environ is None else environ
    backend = env.get("GRID_STORE_BACKEND", "memory").strip().lower()
    if backend == "sqlite":
        db_path = env.get("GRID_STORE_SQLITE_PATH", ".local/grid-store.sqlite3")
        return SqliteBackedStore(db_path)
    if backend == "filesystem":
        root = env.get("GRID_STORE_ROOT", ".local/grid-records")
        return FilesystemBackedStore(root)
    if backend == "postgres":
        dsn = env.get("POSTGRES_DSN", "").strip()
        if not dsn:
            raise ValueError("POSTGRES_DSN must be set when GRID_STORE_BACKEND=postgres")
        table_prefix = env.get("GRID_STORE_POSTGRES_TABLE_PREFIX", "grid").strip() or "grid"
        return PostgresBackedStore(dsn=dsn, table_prefix=table_prefix)
    return InMemoryStore()


store = create_store_from_env()
