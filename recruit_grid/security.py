from __future__ import annotations

import base64
import hashlib
import hmac
import json
import os
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt

from recruit_grid.authorization import CLIENT_ROLES, ROLE_ADMIN, Principal
from recruit_grid.errors import unauthenticated

BCRYPT_MAX_PASSWORD_BYTES = 72


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def _env_int(env: Mapping[str, str], name: str, *, default: int, minimum: int = 1) -> int:
    raw = env.get(name, "").strip()
    try:
        value = int(raw) if raw else default
    except ValueError:
        value = default
    return max(minimum, value)


def _b64url_decode(raw: str) -> bytes:
    padded = raw + "=" * ((4 - len(raw) % 4) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        if value.strip().isdigit():
            return int(value.strip())
    return None


def redact_sensitive(value: object) -> object:
    sensitive_keys = {
        "authorization",
        "cookie",
        "token",
        "secret",
        "password",
        "password_hash",
        "api_key",
        "apikey",
        "access_token",
    }
    if isinstance(value, dict):
        redacted: dict[str, object] = {}
        for key, item in value.items():
            key_lower = str(key).lower()
            if key_lower in sensitive_keys:
                redacted[str(key)] = "***REDACTED***"
            else:
                redacted[str(key)] = redact_sensitive(item)
        return redacted
    if isinstance(value, list):
        return [redact_sensitive(x) for x in value]
    if isinstance(value, str):
        if len(value) >= 24 and any(k in value.lower() for k in ("bearer ", "token", "$2b$")):
            return "***REDACTED***"
    return value


def _password_bytes(password: str) -> bytes:
    # bcrypt only looks at the first 72 bytes.
    return password.encode("utf-8")[:BCRYPT_MAX_PASSWORD_BYTES]


def hash_password(password: str, *, rounds: int | None = None) -> str:
    salt = bcrypt.gensalt(rounds=rounds) if rounds is not None else bcrypt.gensalt()
    return bcrypt.hashpw(_password_bytes(password), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False


@dataclass(frozen=True)
class GlobalAdmin:
    email: str
    name: str
    password_hash: str

    def principal(self) -> Principal:
        return Principal(email=self.email, name=self.name, role=ROLE_ADMIN)


def normalize_email(raw: str | None) -> str:
    return (raw or "").strip().lower()


def load_admin_table(environ: Mapping[str, str] | None = None) -> dict[str, GlobalAdmin]:
    """Read ``GRID_ADMINS`` (a JSON list of ``{email, name, password_hash}``)."""
    env = os.environ if environ is None else environ
    raw = env.get("GRID_ADMINS", "").strip()
    if not raw:
        return {}
    try:
        rows = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("GRID_ADMINS must be a JSON list") from exc
    if not isinstance(rows, list):
        raise ValueError("GRID_ADMINS must be a JSON list")
    admins: dict[str, GlobalAdmin] = {}
    for row in rows:
        if not isinstance(row, dict):
            raise ValueError("GRID_ADMINS entries must be objects")
        email = normalize_email(row.get("email"))
        password_hash = str(row.get("password_hash") or "").strip()
        if not email or not password_hash:
            raise ValueError("GRID_ADMINS entries need email and password_hash")
        admins[email] = GlobalAdmin(
            email=email,
            name=str(row.get("name") or email),
            password_hash=password_hash,
        )
    return admins


@dataclass
class SessionSecurityConfig:
    shared_secret: str
    issuer: str
    ttl_minutes: int
    log_redaction_enabled: bool

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "SessionSecurityConfig":
        env = os.environ if environ is None else environ
        return cls(
            shared_secret=env.get("GRID_SESSION_SECRET", "").strip(),
            issuer=env.get("GRID_SESSION_ISSUER", "recruit-grid").strip() or "recruit-grid",
            ttl_minutes=_env_int(env, "GRID_SESSION_TTL_MINUTES", default=480),
            log_redaction_enabled=_env_bool(env, "SECURITY_LOG_REDACTION_ENABLED", True),
        )


def _sign(signing_input: str, secret: str) -> str:
    return _b64url_encode(
        hmac.new(
            secret.encode("utf-8"),
            signing_input.encode("ascii"),
            hashlib.sha256,
        ).digest()
    )


def issue_session_token(
    principal: Principal,
    *,
    cfg: SessionSecurityConfig,
    now: datetime | None = None,
) -> tuple[str, int]:
    """Return ``(token, exp)`` for an HS256-signed session of ``cfg.ttl_minutes``."""
    if not cfg.shared_secret:
        raise RuntimeError("GRID_SESSION_SECRET must be set to issue session tokens")
    issued_at = now or datetime.now(UTC)
    exp = int((issued_at + timedelta(minutes=cfg.ttl_minutes)).timestamp())
    header = {"alg": "HS256", "typ": "JWT"}
    payload: dict[str, Any] = {
        "sub": principal.email,
        "name": principal.name,
        "role": principal.role,
        "iss": cfg.issuer,
        "iat": int(issued_at.timestamp()),
        "exp": exp,
    }
    if principal.client_id is not None:
        payload["client_id"] = principal.client_id
    header_raw = _b64url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_raw = _b64url_encode(json.dumps(payload, separators=(",", ":"), ensure_ascii=True).encode("utf-8"))
    signing_input = f"{header_raw}.{payload_raw}"
    return f"{signing_input}.{_sign(signing_input, cfg.shared_secret)}", exp


def _parse_token_parts(token: str) -> tuple[dict[str, Any], dict[str, Any], str, str]:
    parts = token.split(".")
    if len(parts) != 3:
        raise unauthenticated("invalid token format")
    header_raw, payload_raw, signature_raw = parts
    try:
        header_obj = json.loads(_b64url_decode(header_raw))
        payload_obj = json.loads(_b64url_decode(payload_raw))
    except (json.JSONDecodeError, ValueError, TypeError):
        raise unauthenticated("invalid token payload") from None
    if not isinstance(header_obj, dict) or not isinstance(payload_obj, dict):
        raise unauthenticated("invalid token payload")
    return header_obj, payload_obj, f"{header_raw}.{payload_raw}", signature_raw


def parse_and_validate_bearer_token(*, authorization: str | None, cfg: SessionSecurityConfig) -> Principal:
    if not authorization:
        raise unauthenticated("missing Authorization bearer token")
    prefix = "Bearer "
    if not authorization.startswith(prefix):
        raise unauthenticated("invalid Authorization header")
    token = authorization[len(prefix) :].strip()
    if not token:
        raise unauthenticated("empty bearer token")
    header_obj, payload_obj, signing_input, signature_raw = _parse_token_parts(token)
    if str(header_obj.get("alg", "")).upper() != "HS256":
        raise unauthenticated("unsupported token algorithm")
    if not cfg.shared_secret:
        raise unauthenticated("session secret not configured")
    if not hmac.compare_digest(_sign(signing_input, cfg.shared_secret), signature_raw):
        raise unauthenticated("invalid token signature")

    now_ts = int(datetime.now(UTC).timestamp())
    exp = _as_int(payload_obj.get("exp"))
    if exp is None or exp <= now_ts:
        raise unauthenticated("token expired")
    if cfg.issuer and str(payload_obj.get("iss", "")) != cfg.issuer:
        raise unauthenticated("token issuer mismatch")

    subject = normalize_email(str(payload_obj.get("sub") or ""))
    role = str(payload_obj.get("role") or "")
    client_id = payload_obj.get("client_id")
    if not subject:
        raise unauthenticated("missing subject claim")
    if role == ROLE_ADMIN:
        client_id = None
    elif role in CLIENT_ROLES:
        if not isinstance(client_id, str) or not client_id.strip():
            raise unauthenticated("missing client_id claim")
    else:
        raise unauthenticated("unknown role claim")
    return Principal(
        email=subject,
        name=str(payload_obj.get("name") or subject),
        role=role,
        client_id=client_id,
    )


def authenticate_admin(admins: Mapping[str, GlobalAdmin], *, email: str, password: str) -> Principal | None:
    admin = admins.get(normalize_email(email))
    if admin is None or not verify_password(password, admin.password_hash):
        return None
    return admin.principal()
