from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from recruit_grid.routes._deps import principal_from_request, trace_id_from_request
from recruit_grid.schemas import DecisionRequest, NoteCreateRequest, success_envelope
from recruit_grid.store import store

router = APIRouter(prefix="/api/v1/clients/{client_id}/positions/{position}/files/{filename}", tags=["feedback"])


@router.post("/decision")
def set_decision(client_id: str, position: str, filename: str, payload: DecisionRequest, request: Request):
    data = store.set_decision(
        principal_from_request(request),
        client_id=client_id,
        position=position,
        filename=filename,
        decision=payload.decision,
    )
    return success_envelope(data, trace_id_from_request(request))


@router.post("/notes")
def add_note(client_id: str, position: str, filename: str, payload: NoteCreateRequest, request: Request):
    data = store.add_note(
        principal_from_request(request),
        client_id=client_id,
        position=position,
        filename=filename,
        text=payload.text,
    )
    return JSONResponse(status_code=201, content=success_envelope(data, trace_id_from_request(request)))


@router.delete("/notes/{timestamp}")
def delete_note(client_id: str, position: str, filename: str, timestamp: str, request: Request):
    data = store.delete_note(
        principal_from_request(request),
        client_id=client_id,
        position=position,
        filename=filename,
        timestamp=timestamp,
    )
    return success_envelope(data, trace_id_from_request(request))
