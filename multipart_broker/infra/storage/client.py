"""Storage client protocol and data types.

This module defines the narrow interface the multipart upload handler uses to
talk to object storage. Every operation accepts free-form backend parameters
(``**options``) that are forwarded untouched to the underlying call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence


class StorageError(RuntimeError):
    """Raised when object storage operations fail."""


class StorageNotConfiguredError(StorageError):
    """Raised when the storage backend is not properly configured."""


class MultipartUploadNotFoundError(StorageError):
    """Raised when the backend reports that a multipart upload does not exist."""


@dataclass(frozen=True, slots=True)
class MultipartUpload:
    """Result of initiating a multipart upload."""

    upload_id: str
    key: str


@dataclass(frozen=True, slots=True)
class UploadedPart:
    """A part already stored by the backend for an in-progress upload."""

    part_number: int
    size: int
    etag: str


@dataclass(frozen=True, slots=True)
class CompletedPart:
    """Represents a completed part in a multipart upload."""

    part_number: int
    etag: str


class StorageClient(Protocol):
    """Protocol defining the interface for multipart-capable storage backends.

    Implementations are bound to a single bucket. Each method issues at most
    one backend round trip (``list_parts`` may page) and never retries.
    """

    def create_multipart_upload(self, *, key: str, **options: Any) -> MultipartUpload:
        """Initialize a multipart upload session.

        Args:
            key: Object key (path) in the bucket.
            **options: Additional backend parameters (e.g. ``ContentType``, ``ACL``).

        Returns:
            MultipartUpload containing the upload_id for subsequent operations.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def list_parts(
        self, *, upload_id: str, key: str, **options: Any
    ) -> list[UploadedPart]:
        """List every part uploaded so far, ordered by part number.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def prepare_upload_part(
        self, *, upload_id: str, key: str, part_number: int, **options: Any
    ) -> str:
        """Generate a presigned URL for a single ``PUT`` of one part.

        Raises:
            StorageError: If URL generation fails.
        """
        ...

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
        """Complete a multipart upload and return the URL of the new object.

        Args:
            upload_id: Multipart upload ID.
            key: Object key (path) in the bucket.
            parts: Completed parts with their ETags.
            public: Whether to return a stable public URL instead of a presigned one.
            url_options: Backend parameters for the object URL.
            **options: Additional backend parameters for the completion call.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def object_url(self, *, key: str, public: bool = False, **options: Any) -> str:
        """Return a public URL or a freshly presigned ``GET`` URL for an object."""
        ...

    def abort_multipart_upload(
        self, *, upload_id: str, key: str, **options: Any
    ) -> None:
        """Abort a multipart upload and clean up uploaded parts.

        Raises:
            MultipartUploadNotFoundError: If the upload does not exist.
            StorageError: If the operation fails for any other reason.
        """
        ...
