from __future__ import annotations

from urllib.parse import quote

from fastapi import APIRouter, File, Request, Response, UploadFile
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from recruit_grid.authorization import require_admin
from recruit_grid.errors import payload_too_large
from recruit_grid.routes._deps import principal_from_request, trace_id_from_request
from recruit_grid.schemas import success_envelope
from recruit_grid.store import store

router = APIRouter(prefix="/api/v1/clients/{client_id}/positions/{position}", tags=["files"])


def content_disposition(filename: str) -> str:
    fallback = filename.encode("ascii", "replace").decode("ascii").replace('"', "_")
    return f"inline; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


@router.post("/files")
async def upload_files(
    client_id: str,
    position: str,
    request: Request,
    files: list[UploadFile] = File(...),
):
    principal = principal_from_request(request)
    require_admin(principal)
    limit = request.app.state.max_upload_bytes
    uploads: list[tuple[str | None, bytes, str | None]] = []
    total = 0
    for upload in files:
        if upload.size is not None and total + upload.size > limit:
            raise payload_too_large(f"upload exceeds {limit} bytes")
        content = await upload.read()
        total += len(content)
        if total > limit:
            raise payload_too_large(f"upload exceeds {limit} bytes")
        uploads.append((upload.filename, content, upload.content_type))
    saved = await run_in_threadpool(
        store.put_files,
        principal,
        client_id=client_id,
        position=position,
        uploads=uploads,
    )
    return JSONResponse(
        status_code=201,
        content=success_envelope({"saved": saved, "total": len(saved)}, trace_id_from_request(request)),
    )


@router.get("/files/{filename}")
def get_file(client_id: str, position: str, filename: str, request: Request):
    stored = store.get_file(
        principal_from_request(request),
        client_id=client_id,
        position=position,
        filename=filename,
    )
    return Response(
        content=stored.content,
        media_type=stored.content_type,
        headers={"Content-Disposition": content_disposition(filename)},
    )


@router.delete("/files/{filename}")
def delete_file(client_id: str, position: str, filename: str, request: Request):
    data = store.delete_file(
        principal_from_request(request),
        client_id=client_id,
        position=position,
        filename=filename,
    )
    return success_envelope(data, trace_id_from_request(request))
