from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Mapping
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol
from urllib import request

logger = logging.getLogger(__name__)

EVENT_STATUS = "status"
EVENT_NOTE = "note"
EVENT_NEW_POSITION = "new_position"
EVENT_NEW_CLIENT = "new_client"
EVENT_NEW_USER = "new_user"


@dataclass(frozen=True)
class DomainEvent:
    kind: str
    client_id: str
    actor: dict[str, str]
    content: str = ""
    position: str | None = None
    filename: str | None = None
    details: dict[str, Any] | None = None
    user: dict[str, str] | None = None
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


class NotificationSink(Protocol):
    def send(self, event: DomainEvent) -> None: ...


class LoggingNotificationSink:
    def send(self, event: DomainEvent) -> None:
        logger.info(
            "domain_event kind=%s client=%s position=%s filename=%s",
            event.kind,
            event.client_id,
            event.position,
            event.filename,
        )


class WebhookNotificationSink:
    """POSTs each event as JSON to an outbound mailer/webhook endpoint."""

    def __init__(self, *, url: str, recipients: list[str], timeout_s: float = 5.0) -> None:
        self.url = url
        self.recipients = recipients
        self.timeout_s = timeout_s

    def send(self, event: DomainEvent) -> None:
        body = json.dumps(
            {"to": self.recipients, "event": event.to_dict()},
            ensure_ascii=True,
            sort_keys=True,
        ).encode("utf-8")
        req = request.Request(
            self.url,
            data=body,
            method="POST",
            headers={"Content-Type": "application/json"},
        )
        with request.urlopen(req, timeout=self.timeout_s) as resp:
            resp.read()


class NotificationDispatcher:
    """Fans events out to sinks off the request path.

    With ``max_workers=0`` delivery runs inline, which tests rely on. Sink
    failures are logged and never propagate to the caller.
    """

    def __init__(self, *, sinks: list[NotificationSink], max_workers: int = 2) -> None:
        self.sinks = list(sinks)
        self._executor: ThreadPoolExecutor | None = None
        if max_workers > 0:
            self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="grid-notify")
        self._pending: set[Future[None]] = set()
        self._lock = threading.Lock()

    def dispatch(self, event: DomainEvent) -> None:
        if self._executor is None:
            self._deliver(event)
            return
        try:
            future = self._executor.submit(self._deliver, event)
        except RuntimeError:
            logger.warning("notification_dispatcher_closed kind=%s client=%s", event.kind, event.client_id)
            return
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Future[None]) -> None:
        with self._lock:
            self._pending.discard(future)

    def _deliver(self, event: DomainEvent) -> None:
        for sink in self.sinks:
            try:
                sink.send(event)
            except Exception as exc:
                logger.warning(
                    "notification_failed sink=%s kind=%s client=%s error=%s",
                    type(sink).__name__,
                    event.kind,
                    event.client_id,
                    exc,
                )

    def flush(self, timeout_s: float | None = None) -> None:
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout_s)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)


def create_notifier_from_env(environ: Mapping[str, str] | None = None) -> NotificationDispatcher:
    env = os.environ if environ is None else environ
    sinks: list[NotificationSink] = [LoggingNotificationSink()]
    webhook_url = env.get("GRID_NOTIFY_WEBHOOK_URL", "").strip()
    if webhook_url:
        recipients = [x.strip() for x in env.get("GRID_NOTIFY_TO", "").split(",") if x.strip()]
        sinks.append(WebhookNotificationSink(url=webhook_url, recipients=recipients))
    try:
        workers = int(env.get("GRID_NOTIFY_WORKERS", "2").strip() or "2")
    except ValueError:
        workers = 2
    return NotificationDispatcher(sinks=sinks, max_workers=max(0, workers))
