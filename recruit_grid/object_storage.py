from __future__ import annotations

import base64
import binascii
import json
import os
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from recruit_grid.errors import invalid_argument


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


def client_prefix(client_id: str) -> str:
    return f"clients/{client_id}/"


def position_prefix(client_id: str, position: str) -> str:
    return f"clients/{client_id}/positions/{position}/"


def file_key(client_id: str, position: str, filename: str) -> str:
    return f"{position_prefix(client_id, position)}files/{filename}"


def logo_key(client_id: str) -> str:
    return f"{client_prefix(client_id)}logo"


def rebase_key(key: str, *, old_prefix: str, new_prefix: str) -> str:
    if not key.startswith(old_prefix):
        raise ValueError(f"key {key!r} is outside prefix {old_prefix!r}")
    return new_prefix + key[len(old_prefix) :]


def decode_data_url(raw: str, *, default_content_type: str = "image/png") -> tuple[bytes, str]:
    """Decode plain base64 or a ``data:<type>;base64,<payload>`` URL."""
    value = raw.strip()
    content_type = default_content_type
    if value.startswith("data:"):
        header, sep, value = value.partition(",")
        if not sep or not header.endswith(";base64"):
            raise invalid_argument("logo must be base64 encoded", code="LOGO_INVALID")
        content_type = header[len("data:") : -len(";base64")] or default_content_type
    try:
        content = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise invalid_argument("logo must be base64 encoded", code="LOGO_INVALID") from None
    if not content:
        raise invalid_argument("logo is empty", code="LOGO_INVALID")
    return content, content_type


@dataclass(frozen=True)
class ObjectStorageConfig:
    backend: str
    bucket: str
    root: str
    prefix: str
    endpoint: str
    region: str
    access_key: str
    secret_key: str
    force_path_style: bool


@dataclass(frozen=True)
class StoredObject:
    content: bytes
    content_type: str


class ObjectStorageBackend:
    backend_name = "base"
    # Exceptions that mean the backend itself failed, as opposed to a missing key.
    backend_errors: tuple[type[BaseException], ...] = (OSError,)

    def put_object(self, *, key: str, content_bytes: bytes, content_type: str | None = None) -> None:
        raise NotImplementedError

    def get_object(self, *, key: str) -> StoredObject:
        raise NotImplementedError

    def delete_object(self, *, key: str) -> bool:
        raise NotImplementedError

    def object_exists(self, *, key: str) -> bool:
        raise NotImplementedError

    def list_keys(self, *, prefix: str) -> list[str]:
        raise NotImplementedError

    def copy_object(self, *, source_key: str, target_key: str) -> None:
        stored = self.get_object(key=source_key)
        self.put_object(key=target_key, content_bytes=stored.content, content_type=stored.content_type)


class LocalObjectStorage(ObjectStorageBackend):
    backend_name = "local"

    def __init__(self, *, config: ObjectStorageConfig) -> None:
        self._bucket = config.bucket
        self._root = Path(config.root)
        self._prefix = config.prefix.strip("/")
        self._root.mkdir(parents=True, exist_ok=True)

    def put_object(self, *, key: str, content_bytes: bytes, content_type: str | None = None) -> None:
        path = self._path_for_key(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content_bytes)
        self._write_meta(
            key,
            {
                "content_type": content_type or "application/octet-stream",
                "created_at": _now_iso(),
            },
        )

    def get_object(self, *, key: str) -> StoredObject:
        path = self._path_for_key(key)
        if not path.is_file():
            raise FileNotFoundError(key)
        meta = self._read_meta(key)
        return StoredObject(
            content=path.read_bytes(),
            content_type=str(meta.get("content_type") or "application/octet-stream"),
        )

    def delete_object(self, *, key: str) -> bool:
        path = self._path_for_key(key)
        meta = self._meta_path(key)
        if meta.exists():
            meta.unlink()
            self._prune_empty_dirs(meta.parent, stop=self._meta_root())
        if not path.is_file():
            return False
        path.unlink()
        self._prune_empty_dirs(path.parent, stop=self._root / self._bucket)
        return True

    def object_exists(self, *, key: str) -> bool:
        return self._path_for_key(key).is_file()

    def list_keys(self, *, prefix: str) -> list[str]:
        base = self._root / self._bucket
        if self._prefix:
            base = base / self._prefix
        if not base.exists():
            return []
        keys: list[str] = []
        for path in base.rglob("*"):
            if not path.is_file():
                continue
            key = path.relative_to(base).as_posix()
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)

    def reset(self) -> None:
        if not self._root.exists():
            return
        for path in sorted(self._root.rglob("*"), reverse=True):
            if path.is_file():
                path.unlink()
            elif path.is_dir():
                path.rmdir()

    def _path_for_key(self, key: str) -> Path:
        parts = [p for p in key.split("/") if p]
        if any(p in {".", ".."} for p in parts):
            raise ValueError(f"invalid object key: {key}")
        base = self._root / self._bucket
        if self._prefix:
            base = base / self._prefix
        return base.joinpath(*parts)

    def _prune_empty_dirs(self, directory: Path, *, stop: Path) -> None:
        while directory != stop and stop in directory.parents:
            try:
                directory.rmdir()
            except OSError:
                return
            directory = directory.parent

    def _meta_root(self) -> Path:
        # Sidecars live beside the bucket so no object key can collide with one.
        return self._root / ".meta" / self._bucket

    def _meta_path(self, key: str) -> Path:
        path = self._path_for_key(key)
        relative = path.relative_to(self._root / self._bucket)
        return self._meta_root().joinpath(*relative.parts[:-1], f"{relative.name}.json")

    def _read_meta(self, key: str) -> dict[str, Any]:
        meta_path = self._meta_path(key)
        if not meta_path.exists():
            return {}
        try:
            return json.loads(meta_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return {}

    def _write_meta(self, key: str, meta: dict[str, Any]) -> None:
        meta_path = self._meta_path(key)
        meta_path.parent.mkdir(parents=True, exist_ok=True)
        meta_path.write_text(json.dumps(meta, ensure_ascii=True, sort_keys=True), encoding="utf-8")


class S3ObjectStorage(ObjectStorageBackend):
    backend_name = "s3"

    def __init__(self, *, config: ObjectStorageConfig) -> None:
        try:
            import boto3  # type: ignore
        except Exception as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("boto3 is required for s3 object storage backend") from exc
        from botocore.exceptions import BotoCoreError, ClientError  # type: ignore

        self.backend_errors = (OSError, BotoCoreError, ClientError)
        self._bucket = config.bucket
        self._prefix = config.prefix.strip("/")
        session = boto3.session.Session(
            aws_access_key_id=config.access_key or None,
            aws_secret_access_key=config.secret_key or None,
            region_name=config.region or None,
        )
        self._client = session.client(
            "s3",
            endpoint_url=config.endpoint or None,
            config=boto3.session.Config(s3={"addressing_style": "path" if config.force_path_style else "auto"}),
        )

    def put_object(self, *, key: str, content_bytes: bytes, content_type: str | None = None) -> None:
        self._client.put_object(
            Bucket=self._bucket,
            Key=self._full_key(key),
            Body=content_bytes,
            ContentType=content_type or "application/octet-stream",
        )

    def get_object(self, *, key: str) -> StoredObject:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=self._full_key(key))
        except Exception as exc:
            if _is_missing_key_error(exc):
                raise FileNotFoundError(key) from exc
            raise
        return StoredObject(
            content=response["Body"].read(),
            content_type=str(response.get("ContentType") or "application/octet-stream"),
        )

    def delete_object(self, *, key: str) -> bool:
        if not self.object_exists(key=key):
            return False
        self._client.delete_object(Bucket=self._bucket, Key=self._full_key(key))
        return True

    def object_exists(self, *, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self._bucket, Key=self._full_key(key))
            return True
        except Exception as exc:
            if _is_missing_key_error(exc):
                return False
            raise

    def list_keys(self, *, prefix: str) -> list[str]:
        keys: list[str] = []
        paginator = self._client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self._bucket, Prefix=self._full_key(prefix)):
            for item in page.get("Contents", []) or []:
                keys.append(self._strip_prefix(str(item["Key"])))
        return sorted(keys)

    def copy_object(self, *, source_key: str, target_key: str) -> None:
        self._client.copy_object(
            Bucket=self._bucket,
            Key=self._full_key(target_key),
            CopySource={"Bucket": self._bucket, "Key": self._full_key(source_key)},
        )

    def _full_key(self, key: str) -> str:
        if self._prefix:
            return f"{self._prefix}/{key}"
        return key

    def _strip_prefix(self, key: str) -> str:
        if self._prefix and key.startswith(f"{self._prefix}/"):
            return key[len(self._prefix) + 1 :]
        return key


def _is_missing_key_error(exc: Exception) -> bool:
    response = getattr(exc, "response", None)
    if not isinstance(response, dict):
        return False
    code = str(response.get("Error", {}).get("Code", ""))
    return code in {"404", "NoSuchKey", "NotFound"}


def create_object_storage_from_env(environ: dict[str, str] | None = None) -> ObjectStorageBackend:
    env = os.environ if environ is None else environ
    backend = env.get("GRID_OBJECT_STORAGE_BACKEND", "local").strip().lower() or "local"
    config = ObjectStorageConfig(
        backend=backend,
        bucket=env.get("OBJECT_STORAGE_BUCKET", "grid").strip() or "grid",
        root=env.get("OBJECT_STORAGE_ROOT", ".local/grid-object-storage").strip() or ".local/grid-object-storage",
        prefix=env.get("OBJECT_STORAGE_PREFIX", "").strip(),
        endpoint=env.get("OBJECT_STORAGE_ENDPOINT", "").strip(),
        region=env.get("OBJECT_STORAGE_REGION", "").strip(),
        access_key=env.get("OBJECT_STORAGE_ACCESS_KEY", "").strip(),
        secret_key=env.get("OBJECT_STORAGE_SECRET_KEY", "").strip(),
        force_path_style=env.get("OBJECT_STORAGE_FORCE_PATH_STYLE", "true").strip().lower()
        not in {"0", "false", "no", "off"},
    )
    if config.backend == "s3":
        return S3ObjectStorage(config=config)
    return LocalObjectStorage(config=config)
