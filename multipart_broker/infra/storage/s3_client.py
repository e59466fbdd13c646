"""S3-compatible storage client implementation.

This module provides the multipart primitives on top of AWS S3, MinIO, and
other S3-compatible object storage services. The client is bound to a single
bucket; retries and timeouts are the business of the botocore ``Config``.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

import ipaddress
import re
from typing import TYPE_CHECKING, Any, Mapping, Sequence
from urllib.parse import quote, urlsplit, urlunsplit

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from multipart_broker.infra.storage.client import (
    CompletedPart,
    MultipartUpload,
    MultipartUploadNotFoundError,
    StorageError,
    StorageNotConfiguredError,
    UploadedPart,
)

if TYPE_CHECKING:
    from multipart_broker.common.config import Settings

DEFAULT_PRESIGN_EXPIRES_SECONDS = 900
NOT_FOUND_ERROR_CODES = frozenset({"NoSuchUpload"})

# Buckets that can be used as a DNS label (no dots, which break TLS wildcards).
_VIRTUAL_HOST_BUCKET = re.compile(r"^[a-z0-9][a-z0-9-]{1,61}[a-z0-9]$")


def _error_code(exc: ClientError) -> str:
    return str((exc.response.get("Error") or {}).get("Code") or "")


def _is_ip_or_localhost(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


class S3StorageClient:
    """S3-compatible multipart storage client.

    Supports AWS S3, MinIO, and other S3-compatible services.
    Uses boto3 for all storage operations.
    """

    def __init__(
        self,
        *,
        bucket: str,
        client: Any,
        presign_expires_in: int = DEFAULT_PRESIGN_EXPIRES_SECONDS,
    ) -> None:
        """Bind the client to a bucket.

        Args:
            bucket: Target bucket name.
            client: A boto3 S3 client.
            presign_expires_in: Default lifetime of presigned URLs in seconds.

        Raises:
            StorageNotConfiguredError: If no bucket is given.
        """
        if not bucket:
            raise StorageNotConfiguredError("S3 bucket name is required")
        self._bucket = bucket
        self._client = client
        self._presign_expires_in = int(presign_expires_in)

    @property
    def bucket(self) -> str:
        return self._bucket

    @classmethod
    def from_settings(cls, settings: "Settings") -> "S3StorageClient":
        """Create a client from application settings.

        Raises:
            StorageNotConfiguredError: If ``S3_BUCKET`` is not set.
        """
        if not settings.S3_BUCKET:
            raise StorageNotConfiguredError("S3_BUCKET is required")
        return cls(
            bucket=settings.S3_BUCKET,
            client=cls._build_client(settings),
            presign_expires_in=settings.S3_PRESIGN_EXPIRES_SECONDS,
        )

    @staticmethod
    def _build_client(settings: "Settings") -> Any:
        """Create a boto3 S3 client from settings."""
        config = Config(
            signature_version="s3v4",
            s3={"addressing_style": settings.S3_ADDRESSING_STYLE},
            connect_timeout=settings.S3_CONNECT_TIMEOUT,
            read_timeout=settings.S3_READ_TIMEOUT,
            retries={"max_attempts": settings.S3_MAX_ATTEMPTS, "mode": "standard"},
        )

        return boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            region_name=settings.S3_REGION,
            aws_access_key_id=settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY,
            use_ssl=bool(settings.S3_USE_SSL),
            config=config,
        )

    def create_multipart_upload(self, *, key: str, **options: Any) -> MultipartUpload:
        """Initialize a multipart upload session."""
        params: dict[str, Any] = {**options, "Bucket": self._bucket, "Key": key}

        try:
            response = self._client.create_multipart_upload(**params)
        except Exception as exc:
            raise StorageError(f"Failed to create multipart upload: {exc}") from exc

        upload_id = response.get("UploadId")
        if not upload_id:
            raise StorageError("S3 response missing UploadId")

        return MultipartUpload(upload_id=str(upload_id), key=key)

    def list_parts(
        self, *, upload_id: str, key: str, **options: Any
    ) -> list[UploadedPart]:
        """List every uploaded part, following pagination to the end."""
        params: dict[str, Any] = {
            **options,
            "Bucket": self._bucket,
            "Key": key,
            "UploadId": upload_id,
        }

        parts: list[UploadedPart] = []
        while True:
            try:
                response = self._client.list_parts(**params)
            except Exception as exc:
                raise StorageError(f"Failed to list parts: {exc}") from exc

            for raw in response.get("Parts") or []:
                parts.append(
                    UploadedPart(
                        part_number=int(raw["PartNumber"]),
                        size=int(raw.get("Size") or 0),
                        etag=str(raw.get("ETag") or ""),
                    )
                )

            if response.get("IsTruncated") is not True:
                break
            marker = response.get("NextPartNumberMarker")
            if marker is None:
                break
            params["PartNumberMarker"] = marker

        return sorted(parts, key=lambda p: p.part_number)

    def prepare_upload_part(
        self, *, upload_id: str, key: str, part_number: int, **options: Any
    ) -> str:
        """Generate a presigned URL for uploading a part."""
        params = dict(options)
        expires_in = params.pop("ExpiresIn", self._presign_expires_in)
        params.update(
            Bucket=self._bucket,
            Key=key,
            UploadId=upload_id,
            PartNumber=int(part_number),
        )
        return self._presign(
            "upload_part",
            params,
            expires_in,
            failure="Failed to generate presigned URL",
        )

    def complete_multipart_upload(
        self,
        *,
        upload_id: str,
        key: str,
        parts: Sequence[CompletedPart],
        public: bool = False,
        url_options: Mapping[str, Any] | None = None,
        **options: Any,
    ) -> str:
        """Complete a multipart upload and return the object's location."""
        params: dict[str, Any] = {
            **options,
            "Bucket": self._bucket,
            "Key": key,
            "UploadId": upload_id,
            "MultipartUpload": {
                "Parts": [
                    {"ETag": part.etag, "PartNumber": int(part.part_number)}
                    for part in parts
                ]
            },
        }

        try:
            self._client.complete_multipart_upload(**params)
        except Exception as exc:
            raise StorageError(f"Failed to complete multipart upload: {exc}") from exc

        return self.object_url(key=key, public=public, **dict(url_options or {}))

    def object_url(self, *, key: str, public: bool = False, **options: Any) -> str:
        """Return the URL of an object.

        Public URLs are unsigned and stable, so ``options`` only apply to the
        presigned ``get_object`` URL (e.g. ``ExpiresIn``,
        ``ResponseContentDisposition``).
        """
        if public:
            return self._public_url(key)

        params = dict(options)
        expires_in = params.pop("ExpiresIn", self._presign_expires_in)
        params.update(Bucket=self._bucket, Key=key)
        return self._presign(
            "get_object",
            params,
            expires_in,
            failure="Failed to generate download URL",
        )

    def abort_multipart_upload(
        self, *, upload_id: str, key: str, **options: Any
    ) -> None:
        """Abort a multipart upload and clean up uploaded parts."""
        params: dict[str, Any] = {
            **options,
            "Bucket": self._bucket,
            "Key": key,
            "UploadId": upload_id,
        }

        try:
            self._client.abort_multipart_upload(**params)
        except ClientError as exc:
            if _error_code(exc) in NOT_FOUND_ERROR_CODES:
                raise MultipartUploadNotFoundError(
                    f"Multipart upload {upload_id} does not exist"
                ) from exc
            raise StorageError(f"Failed to abort multipart upload: {exc}") from exc
        except Exception as exc:
            raise StorageError(f"Failed to abort multipart upload: {exc}") from exc

    def _presign(
        self,
        operation: str,
        params: dict[str, Any],
        expires_in: Any,
        *,
        failure: str,
    ) -> str:
        try:
            url = self._client.generate_presigned_url(
                operation,
                Params=params,
                ExpiresIn=int(expires_in),
            )
        except Exception as exc:
            raise StorageError(f"{failure}: {exc}") from exc

        if not url:
            raise StorageError("Generated presigned URL is empty")

        return str(url)

    def _addressing_style(self) -> str:
        s3_config = getattr(self._client.meta.config, "s3", None)
        if isinstance(s3_config, dict):
            return str(s3_config.get("addressing_style") or "auto")
        return "auto"

    def _public_url(self, key: str) -> str:
        endpoint = urlsplit(str(self._client.meta.endpoint_url))
        base_path = endpoint.path.rstrip("/")
        quoted_key = quote(key)

        style = self._addressing_style()
        path_style = (
            style == "path"
            or not _VIRTUAL_HOST_BUCKET.match(self._bucket)
            or (style == "auto" and _is_ip_or_localhost(endpoint.hostname or ""))
        )
        if path_style:
            netloc = endpoint.netloc
            path = f"{base_path}/{self._bucket}/{quoted_key}"
        else:
            netloc = f"{self._bucket}.{endpoint.netloc}"
            path = f"{base_path}/{quoted_key}"

        return urlunsplit((endpoint.scheme, netloc, path, "", ""))
