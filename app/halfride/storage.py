"""
Blob storage for profile photos.

Keys look like ``avatars/<user_id>/<uuid>.jpg``. The backend is chosen by
STORAGE_BACKEND ("local" writes under STORAGE_LOCAL_ROOT, "s3" talks to any
S3-compatible endpoint through boto3) and is built once per app.
"""
from __future__ import annotations

import os
import uuid
from pathlib import Path

from flask import Flask, current_app

AVATAR_PREFIX = "avatars"


class StorageError(RuntimeError):
    pass


def avatar_key(user_id: int) -> str:
    return f"{AVATAR_PREFIX}/{user_id}/{uuid.uuid4().hex}.jpg"


class Storage:
    def write(self, key: str, data: bytes, *, content_type: str) -> None:
        raise NotImplementedError

    def read(self, key: str) -> bytes | None:
        """Stored bytes, or None when the key does not exist."""
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError


class LocalStorage(Storage):
    def __init__(self, root: Path) -> None:
        self.root = root

    def _resolve(self, key: str) -> Path:
        parts = [p for p in key.replace("\\", "/").split("/") if p]
        if not parts or any(p in (".", "..") for p in parts):
            raise StorageError(f"Invalid storage key: {key}")
        return self.root.joinpath(*parts)

    def write(self, key: str, data: bytes, *, content_type: str) -> None:
        path = self._resolve(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(path)

    def read(self, key: str) -> bytes | None:
        path = self._resolve(key)
        if not path.is_file():
            return None
        return path.read_bytes()

    def remove(self, key: str) -> None:
        self._resolve(key).unlink(missing_ok=True)


class S3Storage(Storage):
    def __init__(self, *, endpoint: str, region: str, bucket: str, access_key_id: str, secret_access_key: str) -> None:
        import boto3

        self.bucket = bucket
        self._s3 = boto3.client(
            "s3",
            endpoint_url=f"https://{endpoint}" if endpoint else None,
            region_name=region or None,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )

    def write(self, key: str, data: bytes, *, content_type: str) -> None:
        self._s3.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)

    def read(self, key: str) -> bytes | None:
        from botocore.exceptions import ClientError

        try:
            obj = self._s3.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return None
            raise StorageError(f"Could not read {key}: {e}") from e
        return obj["Body"].read()

    def remove(self, key: str) -> None:
        from botocore.exceptions import ClientError

        try:
            self._s3.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            raise StorageError(f"Could not delete {key}: {e}") from e


def storage_from_config(config: dict) -> Storage:
    if (config.get("STORAGE_BACKEND") or "local").strip().lower() == "s3":
        return S3Storage(
            endpoint=config.get("S3_ENDPOINT") or "",
            region=config.get("S3_REGION") or "",
            bucket=config.get("S3_BUCKET") or "",
            access_key_id=config.get("S3_ACCESS_KEY_ID") or "",
            secret_access_key=config.get("S3_SECRET_ACCESS_KEY") or "",
        )
    root = config.get("STORAGE_LOCAL_ROOT") or ""
    return LocalStorage(Path(root) if root else Path(os.getcwd()) / "storage")


def init_storage(app: Flask) -> None:
    app.extensions["storage"] = storage_from_config(app.config)


def get_storage() -> Storage:
    return current_app.extensions["storage"]
