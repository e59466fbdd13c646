"""Embed the multipart upload endpoints into a host attachment pipeline.

A host application usually keeps a registry of named attachment storages.
Any storage that exposes an S3 bucket name, a boto3 client, a key prefix and
a visibility flag can back the multipart endpoints; everything else is
rejected when the endpoints are built, not on the first request.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol, runtime_checkable

from fastapi import FastAPI

from multipart_broker.api.multipart_app import create_multipart_app
from multipart_broker.infra.storage.s3_client import (
    DEFAULT_PRESIGN_EXPIRES_SECONDS,
    S3StorageClient,
)
from multipart_broker.services.multipart_service import (
    MultipartConfig,
    MultipartService,
)
from multipart_broker.services.options import OperationOptions


class StorageConfigurationError(Exception):
    """Raised when a host storage cannot back the multipart endpoints."""


@runtime_checkable
class S3BackedStorage(Protocol):
    """Capabilities a host storage must expose to back multipart uploads."""

    bucket: str
    client: Any
    prefix: str | None
    public: bool


def multipart_config_from_storage(
    storage: object,
    *,
    options: Mapping[str, Any] | None = None,
    prefix: str | None = None,
    public: bool | None = None,
    presign_expires_in: int = DEFAULT_PRESIGN_EXPIRES_SECONDS,
) -> MultipartConfig:
    """Derive the multipart handler configuration from a host storage.

    ``prefix`` and ``public`` default to the storage's own values; pass them
    to override. ``options`` are the per-operation overrides.

    Raises:
        StorageConfigurationError: If ``storage`` is not S3-backed.
    """
    if not isinstance(storage, S3BackedStorage):
        raise StorageConfigurationError(
            f"expected an S3-backed storage exposing bucket, client, prefix and "
            f"public, but was {storage!r}"
        )
    if not storage.bucket:
        raise StorageConfigurationError(f"storage {storage!r} has no bucket name")

    try:
        operation_options = OperationOptions(options)
    except (TypeError, ValueError) as exc:
        raise StorageConfigurationError(str(exc)) from exc

    return MultipartConfig(
        storage=S3StorageClient(
            bucket=storage.bucket,
            client=storage.client,
            presign_expires_in=presign_expires_in,
        ),
        prefix=storage.prefix if prefix is None else prefix,
        public=bool(storage.public if public is None else public),
        options=operation_options,
    )


def multipart_app_for(
    storages: Mapping[str, object],
    storage_key: str,
    *,
    default_options: Mapping[str, Any] | None = None,
    options: Mapping[str, Any] | None = None,
    prefix: str | None = None,
    public: bool | None = None,
) -> FastAPI:
    """Build the multipart endpoints for a storage registered in ``storages``.

    ``default_options`` are the host-wide overrides; ``options`` replace them
    per operation for this particular app.

    Raises:
        StorageConfigurationError: If the storage is unknown or not S3-backed.
    """
    try:
        storage = storages[storage_key]
    except KeyError as exc:
        raise StorageConfigurationError(
            f"storage {storage_key!r} is not registered"
        ) from exc

    try:
        combined = OperationOptions(default_options).merged(options)
    except (TypeError, ValueError) as exc:
        raise StorageConfigurationError(str(exc)) from exc

    config = multipart_config_from_storage(
        storage, options=combined, prefix=prefix, public=public
    )
    return create_multipart_app(MultipartService(config))
