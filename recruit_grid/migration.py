"""Rename of a client or a position as a sequence of idempotent steps.

Records are moved copy-then-delete one at a time, then blobs the same way.
The target carries a ``migration`` marker naming its source until every step
has succeeded, so a rerun after a partial failure resumes instead of
conflicting with the half-built target.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from recruit_grid.errors import conflict, not_found, unavailable
from recruit_grid.object_storage import ObjectStorageBackend, client_prefix, position_prefix, rebase_key

logger = logging.getLogger(__name__)

MARKER_FIELD = "migration"
STEP_SUCCEEDED = "succeeded"
STEP_FAILED = "failed"
STEP_SKIPPED = "skipped"


@dataclass
class MigrationStep:
    name: str
    status: str
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"step": self.name, "status": self.status}
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class MigrationReport:
    kind: str
    source: str
    target: str
    client_id: str | None = None
    resumed: bool = False
    steps: list[MigrationStep] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(step.status != STEP_FAILED for step in self.steps)

    @property
    def failed_steps(self) -> list[MigrationStep]:
        return [step for step in self.steps if step.status == STEP_FAILED]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "kind": self.kind,
            "source": self.source,
            "target": self.target,
            "resumed": self.resumed,
            "ok": self.ok,
            "completed": [s.name for s in self.steps if s.status == STEP_SUCCEEDED],
            "failed": [s.to_dict() for s in self.failed_steps],
            "steps": [s.to_dict() for s in self.steps],
        }
        if self.client_id is not None:
            data["client_id"] = self.client_id
        return data


def _marker(source: str) -> dict[str, str]:
    return {"source": source, "started_at": datetime.now(UTC).isoformat()}


def _marker_source(row: dict[str, Any] | None) -> str | None:
    if not row:
        return None
    marker = row.get(MARKER_FIELD)
    if isinstance(marker, dict) and isinstance(marker.get("source"), str):
        return marker["source"]
    return None


def _strip(row: dict[str, Any], *keys: str) -> dict[str, Any]:
    return {k: v for k, v in row.items() if k not in keys}


class RenameMigrator:
    def __init__(
        self,
        *,
        clients: Any,
        users: Any,
        positions: Any,
        object_storage: ObjectStorageBackend,
    ) -> None:
        self.clients = clients
        self.users = users
        self.positions = positions
        self.object_storage = object_storage

    def _run_step(self, report: MigrationReport, name: str, fn: Callable[[], object]) -> bool:
        try:
            fn()
        except Exception as exc:
            logger.error(
                "rename_step_failed kind=%s source=%s target=%s step=%s error=%s",
                report.kind,
                report.source,
                report.target,
                name,
                exc,
            )
            report.steps.append(MigrationStep(name=name, status=STEP_FAILED, error=str(exc) or type(exc).__name__))
            return False
        logger.info(
            "rename_step_done kind=%s source=%s target=%s step=%s",
            report.kind,
            report.source,
            report.target,
            name,
        )
        report.steps.append(MigrationStep(name=name, status=STEP_SUCCEEDED))
        return True

    def _skip(self, report: MigrationReport, name: str) -> None:
        report.steps.append(MigrationStep(name=name, status=STEP_SKIPPED))

    def _list_step(self, report: MigrationReport, name: str, fn: Callable[[], list[Any]]) -> list[Any] | None:
        rows: list[Any] = []
        if not self._run_step(report, name, lambda: rows.extend(fn())):
            return None
        return rows

    def _move_blobs(self, report: MigrationReport, *, old_prefix: str, new_prefix: str) -> bool:
        keys = self._list_step(report, "list_blobs", lambda: self.object_storage.list_keys(prefix=old_prefix))
        if keys is None:
            return False
        ok = True
        for key in keys:
            new_key = rebase_key(key, old_prefix=old_prefix, new_prefix=new_prefix)

            def _move(key: str = key, new_key: str = new_key) -> None:
                self.object_storage.copy_object(source_key=key, target_key=new_key)
                self.object_storage.delete_object(key=key)

            ok = self._run_step(report, f"blob:{key}", _move) and ok
        return ok

    def _finish(self, report: MigrationReport) -> MigrationReport:
        if not report.ok:
            logger.error(
                "rename_incomplete kind=%s source=%s target=%s failed=%s",
                report.kind,
                report.source,
                report.target,
                [s.name for s in report.failed_steps],
            )
            raise unavailable(
                f"{report.kind} rename from {report.source!r} to {report.target!r} is incomplete; rerun to resume",
                code="MIGRATION_INCOMPLETE",
                details=report.to_dict(),
            )
        logger.info(
            "rename_completed kind=%s source=%s target=%s steps=%s resumed=%s",
            report.kind,
            report.source,
            report.target,
            len(report.steps),
            report.resumed,
        )
        return report

    def rename_client(self, source: str, target: str) -> MigrationReport:
        report = MigrationReport(kind="client", source=source, target=target)
        if source == target:
            return report

        src = self.clients.get(client_id=source)
        dst = self.clients.get(client_id=target)
        report.resumed = _marker_source(dst) == source
        if dst is not None and not report.resumed:
            raise conflict(f"client {target!r} already exists", code="CLIENT_EXISTS")
        if src is None and not report.resumed:
            raise not_found(f"client {source!r} not found", code="CLIENT_NOT_FOUND")
        logger.info("rename_started kind=client source=%s target=%s resumed=%s", source, target, report.resumed)

        if src is not None:
            fields = {**_strip(src, "name", MARKER_FIELD), MARKER_FIELD: _marker(source)}
            copied = self._run_step(
                report,
                "client_record",
                lambda: self.clients.upsert(client_id=target, fields=fields),
            )
            if not copied:
                # Nothing can be attached to a target that was never written.
                return self._finish(report)

        users = self._list_step(report, "list_users", lambda: self.users.list(client_id=source))
        records_ok = users is not None
        for user in users or []:
            email = str(user["email"])

            def _move_user(user: dict[str, Any] = user, email: str = email) -> None:
                self.users.upsert(client_id=target, email=email, fields=_strip(user, "client_id", "email"))
                self.users.delete(client_id=source, email=email)

            records_ok = self._run_step(report, f"user:{email}", _move_user) and records_ok

        positions = self._list_step(report, "list_positions", lambda: self.positions.list(client_id=source))
        records_ok = positions is not None and records_ok
        for row in positions or []:
            name = str(row["name"])

            def _move_position(row: dict[str, Any] = row, name: str = name) -> None:
                self.positions.upsert(client_id=target, position=name, fields=_strip(row, "client_id", "name"))
                self.positions.delete(client_id=source, position=name)

            records_ok = self._run_step(report, f"position:{name}", _move_position) and records_ok

        if records_ok:
            self._run_step(report, "delete_client_record", lambda: self.clients.delete(client_id=source))
        else:
            self._skip(report, "delete_client_record")

        blobs_ok = self._move_blobs(report, old_prefix=client_prefix(source), new_prefix=client_prefix(target))

        if report.ok and blobs_ok:
            self._run_step(
                report,
                "clear_marker",
                lambda: self.clients.drop_fields(client_id=target, fields=[MARKER_FIELD]),
            )
        else:
            self._skip(report, "clear_marker")
        return self._finish(report)

    def rename_position(self, client_id: str, source: str, target: str) -> MigrationReport:
        report = MigrationReport(kind="position", source=source, target=target, client_id=client_id)
        if source == target:
            return report

        src = self.positions.get(client_id=client_id, position=source)
        dst = self.positions.get(client_id=client_id, position=target)
        report.resumed = _marker_source(dst) == source
        if dst is not None and not report.resumed:
            raise conflict(f"position {target!r} already exists", code="POSITION_EXISTS")
        if src is None and not report.resumed:
            raise not_found(f"position {source!r} not found", code="POSITION_NOT_FOUND")
        logger.info(
            "rename_started kind=position client=%s source=%s target=%s resumed=%s",
            client_id,
            source,
            target,
            report.resumed,
        )

        if src is not None:
            fields = {**_strip(src, "client_id", "name"), MARKER_FIELD: _marker(source)}
            copied = self._run_step(
                report,
                "position_record",
                lambda: self.positions.upsert(client_id=client_id, position=target, fields=fields),
            )
            if not copied:
                return self._finish(report)
            self._run_step(
                report,
                "delete_position_record",
                lambda: self.positions.delete(client_id=client_id, position=source),
            )

        blobs_ok = self._move_blobs(
            report,
            old_prefix=position_prefix(client_id, source),
            new_prefix=position_prefix(client_id, target),
        )

        if report.ok and blobs_ok:
            self._run_step(
                report,
                "clear_marker",
                lambda: self.positions.drop_fields(client_id=client_id, position=target, fields=[MARKER_FIELD]),
            )
        else:
            self._skip(report, "clear_marker")
        return self._finish(report)
