from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from recruit_grid.routes._deps import principal_from_request, trace_id_from_request
from recruit_grid.schemas import PositionRenameRequest, PositionUpsertRequest, success_envelope
from recruit_grid.store import store

router = APIRouter(prefix="/api/v1/clients/{client_id}", tags=["positions"])


@router.get("/positions")
def list_positions(client_id: str, request: Request):
    items = store.list_positions(principal_from_request(request), client_id=client_id)
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))


@router.put("/positions/{position}")
def put_position(client_id: str, position: str, payload: PositionUpsertRequest, request: Request):
    data, created = store.put_position(
        principal_from_request(request),
        client_id=client_id,
        position=position,
        details=payload.details.model_dump(exclude_none=True),
    )
    return JSONResponse(
        status_code=201 if created else 200,
        content=success_envelope(data, trace_id_from_request(request)),
    )


@router.get("/positions/{position}")
def get_position(client_id: str, position: str, request: Request):
    data = store.get_position(principal_from_request(request), client_id=client_id, position=position)
    return success_envelope(data, trace_id_from_request(request))


@router.patch("/positions/{position}")
def rename_position(client_id: str, position: str, payload: PositionRenameRequest, request: Request):
    report = store.rename_position(
        principal_from_request(request),
        client_id=client_id,
        position=position,
        new_name=payload.new_name,
    )
    return success_envelope({"name": report.target, "migration": report.to_dict()}, trace_id_from_request(request))
