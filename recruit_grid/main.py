from __future__ import annotations

import logging
import os
import secrets
import uuid
from collections.abc import Mapping

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

from recruit_grid.authorization import ROLE_ADMIN
from recruit_grid.errors import ApiError, invalid_argument, unauthenticated
from recruit_grid.routes import auth, clients, feedback, files, positions
from recruit_grid.routes._deps import (
    error_response,
    log_security_event,
    request_id_from_request,
    trace_id_from_request,
)
from recruit_grid.schemas import error_envelope, success_envelope
from recruit_grid.security import (
    GlobalAdmin,
    SessionSecurityConfig,
    load_admin_table,
    parse_and_validate_bearer_token,
)
from recruit_grid.store import store

logger = logging.getLogger(__name__)

DEFAULT_MAX_UPLOAD_BYTES = 25 * 1024 * 1024

PUBLIC_PATHS = {"/healthz", "/api/v1/health", "/api/v1/auth/login"}
PUBLIC_PREFIXES = ("/api/v1/logos/",)


def _max_upload_bytes(environ: Mapping[str, str]) -> int:
    raw = environ.get("GRID_MAX_UPLOAD_BYTES", "").strip()
    try:
        return max(1, int(raw)) if raw else DEFAULT_MAX_UPLOAD_BYTES
    except ValueError:
        return DEFAULT_MAX_UPLOAD_BYTES


def _requires_auth(path: str) -> bool:
    if path in PUBLIC_PATHS or path.startswith(PUBLIC_PREFIXES):
        return False
    return path.startswith("/api/v1/")


def create_app(
    *,
    admins: Mapping[str, GlobalAdmin] | None = None,
    security_cfg: SessionSecurityConfig | None = None,
    environ: Mapping[str, str] | None = None,
) -> FastAPI:
    env = os.environ if environ is None else environ
    app = FastAPI(title="Recruit Grid API", version="0.1.0")
    cfg = security_cfg or SessionSecurityConfig.from_env(env)
    if not cfg.shared_secret:
        logger.warning("GRID_SESSION_SECRET not set; sessions will not survive a restart")
        cfg.shared_secret = secrets.token_urlsafe(32)
    app.state.security_cfg = cfg
    app.state.admins = dict(admins) if admins is not None else load_admin_table(env)
    app.state.max_upload_bytes = _max_upload_bytes(env)

    cors_origins = env.get("CORS_ALLOW_ORIGINS", "http://127.0.0.1:5173,http://localhost:5173")
    allow_origins = [x.strip() for x in cors_origins.split(",") if x.strip()]
    if allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def add_trace_id(request: Request, call_next):
        incoming_trace_id = request.headers.get("x-trace-id", "").strip()
        request.state.trace_id = incoming_trace_id or uuid.uuid4().hex
        request.state.request_id = request.headers.get("x-request-id", f"req_{uuid.uuid4().hex[:12]}")
        request.state.principal = None
        try:
            if _requires_auth(request.url.path):
                principal = parse_and_validate_bearer_token(
                    authorization=request.headers.get("Authorization"),
                    cfg=cfg,
                )
                if principal.role == ROLE_ADMIN:
                    if principal.email not in app.state.admins:
                        raise unauthenticated("unknown administrator")
                else:
                    # Deleted users and users of a renamed client must sign in again.
                    principal = await run_in_threadpool(store.resolve_client_principal, principal)
                    if principal is None:
                        raise unauthenticated("session is no longer valid")
                request.state.principal = principal
            response = await call_next(request)
        except ApiError as exc:
            if exc.error_class == "security_sensitive":
                log_security_event(request, code=exc.code, detail=exc.message)
            response = error_response(request, exc)
        response.headers["x-trace-id"] = trace_id_from_request(request)
        response.headers["x-request-id"] = request_id_from_request(request)
        return response

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError):
        if exc.error_class == "security_sensitive":
            log_security_event(request, code=exc.code, detail=exc.message)
        elif exc.http_status >= 500:
            logger.error(
                "request_failed code=%s path=%s trace_id=%s",
                exc.code,
                request.url.path,
                trace_id_from_request(request),
            )
        return error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return error_response(request, invalid_argument("invalid payload"))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            code, message = "REQ_NOT_FOUND", "resource not found"
        else:
            code, message = "REQ_HTTP_ERROR", str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_envelope(
                code=code,
                message=message,
                error_class="validation",
                retryable=False,
                trace_id=trace_id_from_request(request),
            ),
        )

    @app.get("/healthz")
    def healthz(request: Request) -> dict[str, object]:
        return success_envelope({"status": "ok"}, trace_id_from_request(request))

    @app.get("/api/v1/health")
    def health_api(request: Request) -> dict[str, object]:
        return success_envelope({"status": "ok"}, trace_id_from_request(request))

    app.include_router(auth.router)
    app.include_router(clients.router)
    app.include_router(positions.router)
    app.include_router(files.router)
    app.include_router(feedback.router)
    return app


app = create_app()
