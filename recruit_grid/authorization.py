from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from recruit_grid.errors import forbidden

ROLE_ADMIN = "admin"
ROLE_CLIENT = "client"
ROLE_VIEWER = "viewer"
CLIENT_ROLES = frozenset({ROLE_CLIENT, ROLE_VIEWER})


@dataclass(frozen=True)
class Principal:
    email: str
    name: str
    role: str
    client_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "client_id": self.client_id,
        }

    def actor(self) -> dict[str, str]:
        return {"name": self.name, "email": self.email}


def is_admin(principal: Principal) -> bool:
    return principal.role == ROLE_ADMIN


def can_access_client(principal: Principal, client_id: str) -> bool:
    if is_admin(principal):
        return True
    return principal.client_id is not None and principal.client_id == client_id


def require_client_access(principal: Principal, client_id: str) -> None:
    # Same outcome whether or not the client exists.
    if not can_access_client(principal, client_id):
        raise forbidden("client scope violation", code="TENANT_SCOPE_VIOLATION")


def require_admin(principal: Principal) -> None:
    if not is_admin(principal):
        raise forbidden("admin only")


def can_delete_note(principal: Principal, note: dict[str, Any]) -> bool:
    return is_admin(principal) or str(note.get("author_email") or "") == principal.email
