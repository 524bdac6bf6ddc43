"""Object storage backends for asset bytes.

Objects are keyed ``{organization_id}/{folder}/{uuid}.{ext}`` so a tenant's
files share a prefix. Backends are synchronous; the asset service runs
them in a worker thread with a timeout.
"""

import hashlib
import os
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import boto3

from compliance_engine.common.config import ComplianceSettings


def _safe_name(name: str) -> str:
    value = re.sub(r"[^a-zA-Z0-9._-]+", "-", (name or "file").strip())
    return value or "file"


def _extension(filename: str) -> str:
    ext = os.path.splitext(_safe_name(filename))[1].lower()
    return ext if len(ext) > 1 else ""


@dataclass
class StoredObject:
    file_name: str
    key: str
    url: str
    checksum: str
    size: int


class StorageBackend(Protocol):
    provider_type: str

    def put(
        self, organization_id: str, folder: str, filename: str,
        content_type: str, data: bytes,
    ) -> StoredObject: ...

    def delete(self, key: str) -> None: ...

    def presign(self, key: str, ttl_seconds: int) -> str: ...


def build_key(organization_id: str, folder: str, filename: str) -> tuple[str, str]:
    """Return (generated file name, object key) for an upload."""
    file_name = f"{uuid.uuid4()}{_extension(filename)}"
    return file_name, f"{organization_id}/{_safe_name(folder)}/{file_name}"


class LocalStorageBackend:
    provider_type = "local"

    def __init__(self, base_path: str | Path):
        self.base_path = Path(base_path)

    def _path(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if self.base_path.resolve() not in path.parents:
            raise ValueError(f"Storage key escapes base path: {key}")
        return path

    def put(
        self, organization_id: str, folder: str, filename: str,
        content_type: str, data: bytes,
    ) -> StoredObject:
        file_name, key = build_key(organization_id, folder, filename)
        full_path = self._path(key)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_bytes(data)
        return StoredObject(
            file_name=file_name,
            key=key,
            url=full_path.as_uri(),
            checksum=hashlib.sha256(data).hexdigest(),
            size=len(data),
        )

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def presign(self, key: str, ttl_seconds: int) -> str:
        return self._path(key).as_uri()


class S3StorageBackend:
    """S3 or any S3-compatible store (MinIO via ``endpoint_url``)."""

    provider_type = "s3"

    def __init__(
        self,
        bucket: str,
        region: str = "",
        prefix: str = "",
        endpoint_url: str = "",
        presigned_url_ttl_seconds: int = 604800,
        client=None,
    ):
        if not bucket:
            raise RuntimeError("s3 bucket is required")
        self.bucket = bucket
        self.region = region or os.environ.get("AWS_DEFAULT_REGION") or os.environ.get("AWS_REGION") or ""
        self.prefix = prefix.strip().strip("/")
        self.presigned_url_ttl_seconds = presigned_url_ttl_seconds
        if client is None:
            kwargs = {}
            if self.region:
                kwargs["region_name"] = self.region
            if endpoint_url:
                kwargs["endpoint_url"] = endpoint_url
            client = boto3.client("s3", **kwargs)
        self.client = client

    def _full_key(self, key: str) -> str:
        return f"{self.prefix}/{key}" if self.prefix else key

    def put(
        self, organization_id: str, folder: str, filename: str,
        content_type: str, data: bytes,
    ) -> StoredObject:
        file_name, key = build_key(organization_id, folder, filename)
        checksum = hashlib.sha256(data).hexdigest()
        self.client.put_object(
            Bucket=self.bucket,
            Key=self._full_key(key),
            Body=data,
            ContentType=content_type,
            Metadata={"sha256": checksum},
        )
        return StoredObject(
            file_name=file_name,
            key=key,
            url=self.presign(key, self.presigned_url_ttl_seconds),
            checksum=checksum,
            size=len(data),
        )

    def delete(self, key: str) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=self._full_key(key))

    def presign(self, key: str, ttl_seconds: int) -> str:
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": self._full_key(key)},
            ExpiresIn=ttl_seconds,
        )


def create_storage_backend(settings: ComplianceSettings) -> StorageBackend:
    if settings.storage_backend == "s3":
        return S3StorageBackend(
            bucket=settings.storage_bucket,
            region=settings.storage_region,
            prefix=settings.storage_prefix,
            endpoint_url=settings.storage_endpoint_url,
            presigned_url_ttl_seconds=settings.presigned_url_ttl_seconds,
        )
    if settings.storage_backend == "local":
        return LocalStorageBackend(settings.storage_local_path)
    raise ValueError(f"Unknown storage backend '{settings.storage_backend}'")
