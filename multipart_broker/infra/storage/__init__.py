"""Object storage abstraction layer.

This module provides a protocol-based abstraction over the multipart upload
primitives of S3, MinIO, and other S3-compatible services.
"""

from .client import (
    CompletedPart,
    MultipartUpload,
    MultipartUploadNotFoundError,
    StorageClient,
    StorageError,
    StorageNotConfiguredError,
    UploadedPart,
)

__all__ = [
    "CompletedPart",
    "MultipartUpload",
    "MultipartUploadNotFoundError",
    "StorageClient",
    "StorageError",
    "StorageNotConfiguredError",
    "UploadedPart",
]
