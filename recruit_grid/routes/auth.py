from __future__ import annotations

import logging

from fastapi import APIRouter, Request

from recruit_grid.errors import unauthenticated
from recruit_grid.routes._deps import principal_from_request, trace_id_from_request
from recruit_grid.schemas import LoginRequest, success_envelope
from recruit_grid.security import authenticate_admin, issue_session_token
from recruit_grid.store import store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post("/login")
def login(payload: LoginRequest, request: Request):
    principal = authenticate_admin(request.app.state.admins, email=payload.email, password=payload.password)
    if principal is None:
        principal = store.authenticate_client_user(email=payload.email, password=payload.password)
    if principal is None:
        logger.info("login_failed trace_id=%s", trace_id_from_request(request))
        raise unauthenticated("invalid email or password", code="AUTH_INVALID_CREDENTIALS")
    token, expires_at = issue_session_token(principal, cfg=request.app.state.security_cfg)
    logger.info("login_succeeded email=%s role=%s", principal.email, principal.role)
    data = {
        "token": token,
        "token_type": "bearer",
        "expires_at": expires_at,
        "user": principal.to_dict(),
    }
    return success_envelope(data, trace_id_from_request(request))


@router.get("/me")
def me(request: Request):
    return success_envelope(principal_from_request(request).to_dict(), trace_id_from_request(request))
