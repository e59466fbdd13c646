"""Multipart upload orchestration service.

This module implements the upload protocol spoken by browser-side uploaders:
it validates request parameters, names objects, applies per-operation option
overrides, and calls the storage client. Object bytes never pass through here;
the uploader sends them straight to storage using the presigned URLs issued
by this service.
"""

from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass, field
from typing import Any, Mapping
from urllib.parse import quote

from starlette.requests import Request

from multipart_broker.infra.observability.metrics import MULTIPART_OPERATIONS
from multipart_broker.infra.storage.client import (
    CompletedPart,
    MultipartUpload,
    MultipartUploadNotFoundError,
    StorageClient,
    StorageError,
    UploadedPart,
)
from multipart_broker.services.options import EMPTY_OPTIONS, OperationOptions

logger = logging.getLogger("multipart")

# 16 random bytes -> 32 hex characters.
KEY_TOKEN_BYTES = 16
PUBLIC_ACL = "public-read"

MISSING_PART_FIELD_MESSAGE = 'At least one part is missing "PartNumber" or "ETag" field'
UPLOAD_NOT_FOUND_MESSAGE = 'Upload doesn\'t exist for "key" parameter'

# Values computed by the handler; option overrides never replace them.
RESERVED_OPTION_NAMES: frozenset[str] = frozenset(
    {
        "key",
        "upload_id",
        "part_number",
        "parts",
        "public",
        "url_options",
        "Bucket",
        "Key",
        "UploadId",
        "PartNumber",
        "MultipartUpload",
    }
)

# RFC 5987 attr-chars that urllib's quote() would otherwise escape.
_ATTR_CHAR_EXTRAS = "!#$&+^`|"


class MultipartError(Exception):
    """Base class for errors reported back to the uploader."""


class InvalidParameterError(MultipartError):
    """Raised when a request parameter is malformed."""


class MissingParameterError(InvalidParameterError):
    """Raised when a required request parameter is absent."""

    def __init__(self, name: str) -> None:
        super().__init__(f'Missing "{name}" parameter')
        self.name = name


class UploadNotFoundError(MultipartError):
    """Raised when the referenced multipart upload does not exist."""


@dataclass(frozen=True, slots=True)
class MultipartConfig:
    """Construction-time configuration shared read-only by every request."""

    storage: StorageClient
    prefix: str | None = None
    public: bool = False
    options: OperationOptions = field(default_factory=lambda: EMPTY_OPTIONS)

    def __post_init__(self) -> None:
        if not isinstance(self.options, OperationOptions):
            object.__setattr__(self, "options", OperationOptions(self.options))
        if self.prefix is not None:
            object.__setattr__(self, "prefix", self.prefix.strip("/") or None)


def generate_object_key(filename: str | None, prefix: str | None = None) -> str:
    """Return ``[prefix/]<random hex>[.ext]`` for a new upload.

    The extension is taken verbatim from ``filename``; the content is never
    inspected.
    """
    extension = os.path.splitext(filename or "")[1]
    key = secrets.token_hex(KEY_TOKEN_BYTES) + extension
    if prefix:
        key = f"{prefix}/{key}"
    return key


def content_disposition(filename: str, disposition: str = "inline") -> str:
    """Build a Content-Disposition value that survives any filename (RFC 6266)."""
    fallback = "".join(ch if " " <= ch <= "~" else "?" for ch in filename)
    fallback = fallback.replace("\\", "\\\\").replace('"', '\\"')
    encoded = quote(filename, safe=_ATTR_CHAR_EXTRAS)
    return f"{disposition}; filename=\"{fallback}\"; filename*=UTF-8''{encoded}"


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _require_string(value: Any, name: str) -> str:
    if _is_blank(value):
        raise MissingParameterError(name)
    if not isinstance(value, str):
        raise InvalidParameterError(f'Invalid "{name}" parameter')
    return value


def _optional_string(value: Any, name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidParameterError(f'Invalid "{name}" parameter')
    return value


def _positive_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise InvalidParameterError(f'Invalid "{name}" parameter')
    if isinstance(value, int):
        number = value
    elif isinstance(value, str) and value.strip().isascii() and value.strip().isdigit():
        number = int(value.strip())
    else:
        raise InvalidParameterError(f'Invalid "{name}" parameter')
    if number < 1:
        raise InvalidParameterError(f'Invalid "{name}" parameter')
    return number


def _etag(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidParameterError('Invalid "ETag" parameter')
    return value


def parse_completed_parts(raw: Any) -> list[CompletedPart]:
    """Validate the ``parts`` payload of a completion request.

    The first malformed entry fails the whole request; nothing is dropped.
    """
    if raw is None:
        raise MissingParameterError("parts")
    if not isinstance(raw, list):
        raise InvalidParameterError('Invalid "parts" parameter')

    parts: list[CompletedPart] = []
    for item in raw:
        if (
            not isinstance(item, Mapping)
            or item.get("PartNumber") is None
            or item.get("ETag") is None
        ):
            raise InvalidParameterError(MISSING_PART_FIELD_MESSAGE)
        parts.append(
            CompletedPart(
                part_number=_positive_int(item["PartNumber"], "PartNumber"),
                etag=_etag(item["ETag"]),
            )
        )
    return parts


def parse_part_numbers(raw: Any) -> list[int]:
    """Parse ``partNumbers`` given as ``"1,2,3"`` or a JSON list."""
    if _is_blank(raw):
        raise MissingParameterError("partNumbers")
    if isinstance(raw, str):
        items: list[Any] = [item.strip() for item in raw.split(",") if item.strip()]
    elif isinstance(raw, list):
        items = list(raw)
    else:
        raise InvalidParameterError('Invalid "partNumbers" parameter')
    if not items:
        raise MissingParameterError("partNumbers")
    return [_positive_int(item, "partNumbers") for item in items]


class MultipartService:
    """Application service for the client-direct multipart upload protocol.

    Stateless across requests: the storage backend owns every upload session,
    and ``config`` is an immutable snapshot.
    """

    def __init__(self, config: MultipartConfig) -> None:
        self._config = config

    @property
    def config(self) -> MultipartConfig:
        return self._config

    def create_multipart_upload(
        self,
        request: Request,
        *,
        content_type: Any = None,
        filename: Any = None,
    ) -> MultipartUpload:
        """Start an upload session under a freshly generated object key.

        Raises:
            InvalidParameterError: If ``type`` or ``filename`` is not a string.
        """
        content_type = _optional_string(content_type, "type")
        filename = _optional_string(filename, "filename")

        key = generate_object_key(filename, self._config.prefix)
        defaults: dict[str, Any] = {}
        if content_type:
            defaults["ContentType"] = content_type
        if filename is not None:
            defaults["ContentDisposition"] = content_disposition(filename)
        if self._config.public:
            defaults["ACL"] = PUBLIC_ACL

        upload = self._call(
            "create_multipart_upload", request, defaults=defaults, key=key
        )
        logger.info(
            "multipart_upload_created upload_id=%s key=%s",
            upload.upload_id,
            upload.key,
            extra={
                "extra": {
                    "upload_id": upload.upload_id,
                    "key": upload.key,
                    "content_type": content_type,
                }
            },
        )
        return upload

    def list_parts(
        self, request: Request, upload_id: str, *, key: Any
    ) -> list[UploadedPart]:
        key = _require_string(key, "key")
        return self._call("list_parts", request, upload_id=upload_id, key=key)

    def prepare_upload_part(
        self, request: Request, upload_id: str, *, key: Any, part_number: Any
    ) -> str:
        """Return a presigned URL authorizing one ``PUT`` of ``part_number``."""
        key = _require_string(key, "key")
        number = _positive_int(part_number, "partNumber")
        return self._call(
            "prepare_upload_part",
            request,
            upload_id=upload_id,
            key=key,
            part_number=number,
        )

    def prepare_upload_parts(
        self, request: Request, upload_id: str, *, key: Any, part_numbers: Any
    ) -> dict[int, str]:
        """Presign several parts at once; keyed by part number."""
        key = _require_string(key, "key")
        numbers = parse_part_numbers(part_numbers)
        return {
            number: self._call(
                "prepare_upload_part",
                request,
                upload_id=upload_id,
                key=key,
                part_number=number,
            )
            for number in numbers
        }

    def complete_multipart_upload(
        self, request: Request, upload_id: str, *, key: Any, parts: Any
    ) -> str:
        """Assemble the uploaded parts and return the object's location.

        The location is a stable public URL for public uploads and a fresh
        presigned ``GET`` URL otherwise.
        """
        key = _require_string(key, "key")
        completed = parse_completed_parts(parts)

        location = self._call(
            "complete_multipart_upload",
            request,
            upload_id=upload_id,
            key=key,
            parts=completed,
            public=self._config.public,
            url_options=self._overrides("object_url", request),
        )
        logger.info(
            "multipart_upload_completed upload_id=%s key=%s parts=%s",
            upload_id,
            key,
            len(completed),
            extra={
                "extra": {
                    "upload_id": upload_id,
                    "key": key,
                    "parts": len(completed),
                }
            },
        )
        return location

    def abort_multipart_upload(
        self, request: Request, upload_id: str, *, key: Any
    ) -> None:
        """Abort an upload session with a single storage call.

        Raises:
            UploadNotFoundError: If storage reports no such upload.
        """
        key = _require_string(key, "key")
        try:
            self._call("abort_multipart_upload", request, upload_id=upload_id, key=key)
        except MultipartUploadNotFoundError as exc:
            raise UploadNotFoundError(UPLOAD_NOT_FOUND_MESSAGE) from exc
        logger.info(
            "multipart_upload_aborted upload_id=%s key=%s",
            upload_id,
            key,
            extra={"extra": {"upload_id": upload_id, "key": key}},
        )

    def _overrides(self, operation: str, request: Request) -> dict[str, Any]:
        resolved = self._config.options.resolve(operation, request)
        dropped = sorted(name for name in resolved if name in RESERVED_OPTION_NAMES)
        if dropped:
            logger.warning(
                "multipart_override_ignored operation=%s names=%s",
                operation,
                ",".join(dropped),
                extra={"extra": {"operation": operation, "ignored": dropped}},
            )
            for name in dropped:
                del resolved[name]
        return resolved

    def _call(
        self,
        operation: str,
        request: Request,
        *,
        defaults: Mapping[str, Any] | None = None,
        **explicit: Any,
    ) -> Any:
        options = dict(defaults or {})
        options.update(self._overrides(operation, request))
        method = getattr(self._config.storage, operation)
        try:
            result = method(**explicit, **options)
        except MultipartUploadNotFoundError:
            MULTIPART_OPERATIONS.labels(operation, "not_found").inc()
            raise
        except StorageError:
            MULTIPART_OPERATIONS.labels(operation, "error").inc()
            raise
        MULTIPART_OPERATIONS.labels(operation, "ok").inc()
        return result
