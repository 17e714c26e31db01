from __future__ import annotations

import logging
import uuid

from fastapi import Request
from fastapi.responses import JSONResponse

from recruit_grid.authorization import Principal
from recruit_grid.errors import ApiError, unauthenticated
from recruit_grid.schemas import error_envelope
from recruit_grid.security import redact_sensitive

logger = logging.getLogger("recruit_grid.security")


def trace_id_from_request(request: Request) -> str:
    trace_id = getattr(request.state, "trace_id", None)
    if trace_id:
        return trace_id
    return uuid.uuid4().hex


def request_id_from_request(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return request_id
    return f"req_{uuid.uuid4().hex[:12]}"


def principal_from_request(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if not isinstance(principal, Principal):
        raise unauthenticated("authentication required")
    return principal


def error_response(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content=error_envelope(
            code=exc.code,
            message=exc.message,
            error_class=exc.error_class,
            retryable=exc.retryable,
            trace_id=trace_id_from_request(request),
            details=exc.details,
        ),
    )


def log_security_event(request: Request, *, code: str, detail: str) -> None:
    security_cfg = request.app.state.security_cfg
    headers_obj = dict(request.headers.items())
    headers_payload = redact_sensitive(headers_obj) if security_cfg.log_redaction_enabled else headers_obj
    principal = getattr(request.state, "principal", None)
    logger.warning(
        "security_blocked code=%s path=%s subject=%s trace_id=%s detail=%s headers=%s",
        code,
        request.url.path,
        principal.email if isinstance(principal, Principal) else "anonymous",
        trace_id_from_request(request),
        detail,
        headers_payload,
    )
