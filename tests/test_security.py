from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

import jwt
import pytest

from recruit_grid.authorization import Principal
from recruit_grid.errors import ApiError
from recruit_grid.security import (
    SessionSecurityConfig,
    authenticate_admin,
    hash_password,
    issue_session_token,
    load_admin_table,
    parse_and_validate_bearer_token,
    redact_sensitive,
    verify_password,
)

ALICE = Principal(email="alice@acme.test", name="Alice", role="client", client_id="Acme")


def _cfg(**overrides) -> SessionSecurityConfig:
    values = {"shared_secret": "s3cret", "issuer": "recruit-grid-test", "ttl_minutes": 60, "log_redaction_enabled": True}
    values.update(overrides)
    return SessionSecurityConfig(**values)


def test_hash_and_verify_password():
    hashed = hash_password("correct horse", rounds=4)
    assert hashed.startswith("$2b$04$")
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("correct horse", "not-a-bcrypt-hash")
    assert not verify_password("", hashed)


def test_passwords_longer_than_72_bytes_are_truncated_consistently():
    long_password = "x" * 100
    hashed = hash_password(long_password, rounds=4)
    assert verify_password(long_password, hashed)
    assert verify_password("x" * 72, hashed)


def test_redact_sensitive_masks_credentials():
    payload = {
        "Authorization": "Bearer abc",
        "password_hash": "$2b$04$abc",
        "nested": [{"token": "t"}, "plain", "Bearer abcdefghijklmnopqrstuvwxyz"],
        "email": "alice@acme.test",
    }
    redacted = redact_sensitive(payload)
    assert redacted["Authorization"] == "***REDACTED***"
    assert redacted["password_hash"] == "***REDACTED***"
    assert redacted["nested"][0]["token"] == "***REDACTED***"
    assert redacted["nested"][1] == "plain"
    assert redacted["nested"][2] == "***REDACTED***"
    assert redacted["email"] == "alice@acme.test"


def test_load_admin_table():
    hashed = hash_password("pw", rounds=4)
    env = {"GRID_ADMINS": json.dumps([{"email": " Root@Grid.test ", "name": "Root", "password_hash": hashed}])}
    admins = load_admin_table(env)
    assert list(admins) == ["root@grid.test"]
    assert authenticate_admin(admins, email="ROOT@grid.test", password="pw") == Principal(
        email="root@grid.test", name="Root", role="admin"
    )
    assert authenticate_admin(admins, email="root@grid.test", password="nope") is None
    assert load_admin_table({}) == {}


@pytest.mark.parametrize("raw", ["{not json", '{"email": "x"}', "[1]", '[{"email": "a@b.test"}]'])
def test_load_admin_table_rejects_malformed_config(raw):
    with pytest.raises(ValueError):
        load_admin_table({"GRID_ADMINS": raw})


def test_session_token_is_a_standard_hs256_jwt():
    cfg = _cfg()
    token, exp = issue_session_token(ALICE, cfg=cfg)
    claims = jwt.decode(token, "s3cret", algorithms=["HS256"], issuer="recruit-grid-test")
    assert claims["sub"] == "alice@acme.test"
    assert claims["client_id"] == "Acme"
    assert claims["role"] == "client"
    assert claims["exp"] == exp

    principal = parse_and_validate_bearer_token(authorization=f"Bearer {token}", cfg=cfg)
    assert principal == ALICE


def test_tokens_signed_by_pyjwt_are_accepted():
    now = datetime.now(UTC)
    token = jwt.encode(
        {
            "sub": "root@grid.test",
            "name": "Root",
            "role": "admin",
            "client_id": "ignored",
            "iss": "recruit-grid-test",
            "exp": int((now + timedelta(minutes=5)).timestamp()),
        },
        "s3cret",
        algorithm="HS256",
    )
    principal = parse_and_validate_bearer_token(authorization=f"Bearer {token}", cfg=_cfg())
    assert principal.role == "admin"
    assert principal.client_id is None


def _claims(**overrides):
    claims = {
        "sub": "alice@acme.test",
        "role": "client",
        "client_id": "Acme",
        "iss": "recruit-grid-test",
        "exp": int((datetime.now(UTC) + timedelta(minutes=5)).timestamp()),
    }
    claims.update(overrides)
    return {k: v for k, v in claims.items() if v is not None}


@pytest.mark.parametrize(
    ("token_fn", "message"),
    [
        (lambda: jwt.encode(_claims(), "other-secret", algorithm="HS256"), "signature"),
        (lambda: jwt.encode(_claims(exp=1), "s3cret", algorithm="HS256"), "expired"),
        (lambda: jwt.encode(_claims(iss="someone-else"), "s3cret", algorithm="HS256"), "issuer"),
        (lambda: jwt.encode(_claims(role="superuser"), "s3cret", algorithm="HS256"), "role"),
        (lambda: jwt.encode(_claims(client_id=None), "s3cret", algorithm="HS256"), "client_id"),
        (lambda: jwt.encode(_claims(), "s3cret-but-longer-for-hs512", algorithm="HS512"), "algorithm"),
        (lambda: "a.b", "format"),
    ],
)
def test_invalid_tokens_are_rejected(token_fn, message):
    with pytest.raises(ApiError) as exc_info:
        parse_and_validate_bearer_token(authorization=f"Bearer {token_fn()}", cfg=_cfg())
    assert exc_info.value.http_status == 401
    assert message in exc_info.value.message


@pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer "])
def test_missing_or_malformed_authorization_header(header):
    with pytest.raises(ApiError) as exc_info:
        parse_and_validate_bearer_token(authorization=header, cfg=_cfg())
    assert exc_info.value.code == "AUTH_UNAUTHORIZED"


def test_issuing_without_secret_fails():
    with pytest.raises(RuntimeError):
        issue_session_token(ALICE, cfg=_cfg(shared_secret=""))


def test_config_from_env():
    cfg = SessionSecurityConfig.from_env({"GRID_SESSION_SECRET": " abc ", "GRID_SESSION_TTL_MINUTES": "15"})
    assert cfg.shared_secret == "abc"
    assert cfg.issuer == "recruit-grid"
    assert cfg.ttl_minutes == 15
