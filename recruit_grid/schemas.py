from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class ClientCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    logo_base64: str | None = None


class ClientUpdateRequest(BaseModel):
    new_name: str | None = None
    logo_base64: str | None = None
    remove_logo: bool = False


class ClientUserCreateRequest(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)
    name: str = ""
    role: Literal["client", "viewer"] = "client"


class PositionDetailsPatch(BaseModel):
    salary: str | None = None
    location: str | None = None
    experience: str | None = None
    benefits: str | None = None
    notes: str | None = None


class PositionUpsertRequest(BaseModel):
    details: PositionDetailsPatch = Field(default_factory=PositionDetailsPatch)


class PositionRenameRequest(BaseModel):
    new_name: str = Field(min_length=1)


class DecisionRequest(BaseModel):
    decision: str


class NoteCreateRequest(BaseModel):
    text: str


def success_envelope(data: Any, trace_id: str, message: str = "ok") -> dict[str, Any]:
    return {
        "success": True,
        "data": data,
        "message": message,
        "meta": {
            "trace_id": trace_id,
        },
    }


def error_envelope(
    *,
    code: str,
    message: str,
    error_class: str,
    retryable: bool,
    trace_id: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {
        "code": code,
        "message": message,
        "retryable": retryable,
        "class": error_class,
    }
    if details is not None:
        error["details"] = details
    return {
        "success": False,
        "error": error,
        "meta": {
            "trace_id": trace_id,
        },
    }
