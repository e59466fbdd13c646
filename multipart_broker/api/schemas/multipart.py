"""Pydantic schemas for the multipart upload endpoints.

Field names follow the wire format expected by browser uploaders
(``uploadId``, ``PartNumber``, ``ETag``...), so no aliasing is involved.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class MultipartUploadOut(BaseModel):
    """Response model for a newly created multipart upload."""

    uploadId: str
    key: str


class UploadedPartOut(BaseModel):
    """A part already stored for an in-progress upload."""

    PartNumber: int = Field(ge=1)
    Size: int = Field(ge=0)
    ETag: str


class PresignedPartOut(BaseModel):
    """Presigned URL for uploading a single part."""

    url: str


class PresignedPartsOut(BaseModel):
    """Presigned URLs for several parts, keyed by part number."""

    presignedUrls: dict[str, str]


class CompletedUploadOut(BaseModel):
    """Response model for a completed multipart upload."""

    location: str


class ErrorOut(BaseModel):
    """Error body returned for every failed request."""

    error: str
