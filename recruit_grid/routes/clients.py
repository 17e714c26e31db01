from __future__ import annotations

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from recruit_grid.authorization import require_admin
from recruit_grid.errors import conflict
from recruit_grid.object_storage import decode_data_url
from recruit_grid.routes._deps import principal_from_request, trace_id_from_request
from recruit_grid.schemas import (
    ClientCreateRequest,
    ClientUpdateRequest,
    ClientUserCreateRequest,
    success_envelope,
)
from recruit_grid.security import normalize_email
from recruit_grid.store import store

router = APIRouter(prefix="/api/v1", tags=["clients"])


@router.get("/clients")
def list_clients(request: Request):
    items = store.list_clients(principal_from_request(request))
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))


@router.post("/clients")
def create_client(payload: ClientCreateRequest, request: Request):
    principal = principal_from_request(request)
    logo = decode_data_url(payload.logo_base64) if payload.logo_base64 else None
    data = store.create_client(principal, name=payload.name, logo=logo)
    return JSONResponse(status_code=201, content=success_envelope(data, trace_id_from_request(request)))


@router.get("/clients/{client_id}")
def get_client(client_id: str, request: Request):
    data = store.get_client(principal_from_request(request), client_id=client_id)
    return success_envelope(data, trace_id_from_request(request))


@router.patch("/clients/{client_id}")
def update_client(client_id: str, payload: ClientUpdateRequest, request: Request):
    principal = principal_from_request(request)
    logo = decode_data_url(payload.logo_base64) if payload.logo_base64 else None
    data = store.update_client(
        principal,
        client_id=client_id,
        new_name=payload.new_name,
        logo=logo,
        remove_logo=payload.remove_logo,
    )
    return success_envelope(data, trace_id_from_request(request))


@router.delete("/clients/{client_id}")
def delete_client(client_id: str, request: Request):
    data = store.delete_client(principal_from_request(request), client_id=client_id)
    return success_envelope(data, trace_id_from_request(request))


@router.get("/clients/{client_id}/users")
def list_client_users(client_id: str, request: Request):
    items = store.list_client_users(principal_from_request(request), client_id=client_id)
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))


@router.post("/clients/{client_id}/users")
def add_client_user(client_id: str, payload: ClientUserCreateRequest, request: Request):
    principal = principal_from_request(request)
    require_admin(principal)
    if normalize_email(payload.email) in request.app.state.admins:
        raise conflict("email belongs to an administrator", code="USER_EXISTS")
    data = store.add_client_user(
        principal,
        client_id=client_id,
        email=payload.email,
        password=payload.password,
        name=payload.name,
        role=payload.role,
    )
    return JSONResponse(status_code=201, content=success_envelope(data, trace_id_from_request(request)))


@router.delete("/clients/{client_id}/users/{email}")
def delete_client_user(client_id: str, email: str, request: Request):
    data = store.delete_client_user(principal_from_request(request), client_id=client_id, email=email)
    return success_envelope(data, trace_id_from_request(request))


@router.get("/logos/{client_id}")
def get_logo(client_id: str):
    stored = store.get_logo(client_id)
    return Response(
        content=stored.content,
        media_type=stored.content_type,
        headers={"Cache-Control": "public, max-age=300"},
    )
