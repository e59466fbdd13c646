"""Multipart upload API router.

Every operation is served at the mount root and under the ``/multipart``
alias kept for older uploader configurations. Alias routes are hidden from
the OpenAPI schema.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request, Response, status
from starlette.concurrency import run_in_threadpool

from multipart_broker.api.deps import get_multipart_service, get_request_params
from multipart_broker.api.schemas.multipart import (
    CompletedUploadOut,
    ErrorOut,
    MultipartUploadOut,
    PresignedPartOut,
    PresignedPartsOut,
    UploadedPartOut,
)
from multipart_broker.services.multipart_service import MultipartService

router = APIRouter()

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorOut, "description": "Missing or malformed parameter"},
    502: {"model": ErrorOut, "description": "Storage backend failure"},
}


@router.options("/multipart/{upload_id}/{part_number}", include_in_schema=False)
@router.options("/multipart/", include_in_schema=False)
@router.options("/multipart", include_in_schema=False)
@router.options("/{upload_id}/{part_number}", include_in_schema=False)
@router.options("/", include_in_schema=False)
def preflight() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/multipart/", include_in_schema=False)
@router.post("/multipart", include_in_schema=False)
@router.post(
    "/",
    response_model=MultipartUploadOut,
    responses=ERROR_RESPONSES,
    summary="Create multipart upload",
    description="Generate an object key and open a multipart upload session.",
)
async def create_multipart_upload(
    request: Request,
    params: dict[str, Any] = Depends(get_request_params),
    service: MultipartService = Depends(get_multipart_service),
) -> MultipartUploadOut:
    upload = await run_in_threadpool(
        service.create_multipart_upload,
        request,
        content_type=params.get("type"),
        filename=params.get("filename"),
    )
    return MultipartUploadOut(uploadId=upload.upload_id, key=upload.key)


@router.get("/multipart/{upload_id}", include_in_schema=False)
@router.get(
    "/{upload_id}",
    response_model=list[UploadedPartOut],
    responses=ERROR_RESPONSES,
    summary="List uploaded parts",
    description="List the parts stored so far, ordered by part number.",
)
async def list_parts(
    upload_id: str,
    request: Request,
    params: dict[str, Any] = Depends(get_request_params),
    service: MultipartService = Depends(get_multipart_service),
) -> list[UploadedPartOut]:
    parts = await run_in_threadpool(
        service.list_parts, request, upload_id, key=params.get("key")
    )
    return [
        UploadedPartOut(PartNumber=part.part_number, Size=part.size, ETag=part.etag)
        for part in parts
    ]


@router.get("/multipart/{upload_id}/batch", include_in_schema=False)
@router.get(
    "/{upload_id}/batch",
    response_model=PresignedPartsOut,
    responses=ERROR_RESPONSES,
    summary="Get presigned part URLs",
    description="Generate presigned URLs for several parts at once.",
)
async def prepare_upload_parts(
    upload_id: str,
    request: Request,
    params: dict[str, Any] = Depends(get_request_params),
    service: MultipartService = Depends(get_multipart_service),
) -> PresignedPartsOut:
    urls = await run_in_threadpool(
        service.prepare_upload_parts,
        request,
        upload_id,
        key=params.get("key"),
        part_numbers=params.get("partNumbers"),
    )
    return PresignedPartsOut(
        presignedUrls={str(number): url for number, url in urls.items()}
    )


@router.get("/multipart/{upload_id}/{part_number}", include_in_schema=False)
@router.get(
    "/{upload_id}/{part_number}",
    response_model=PresignedPartOut,
    responses=ERROR_RESPONSES,
    summary="Get presigned part URL",
    description="Generate a presigned URL for uploading a single part.",
)
async def prepare_upload_part(
    upload_id: str,
    part_number: str,
    request: Request,
    params: dict[str, Any] = Depends(get_request_params),
    service: MultipartService = Depends(get_multipart_service),
) -> PresignedPartOut:
    url = await run_in_threadpool(
        service.prepare_upload_part,
        request,
        upload_id,
        key=params.get("key"),
        part_number=part_number,
    )
    return PresignedPartOut(url=url)


@router.post("/multipart/{upload_id}/complete", include_in_schema=False)
@router.post(
    "/{upload_id}/complete",
    response_model=CompletedUploadOut,
    responses=ERROR_RESPONSES,
    summary="Complete multipart upload",
    description="Assemble the uploaded parts and return the object location.",
)
async def complete_multipart_upload(
    upload_id: str,
    request: Request,
    params: dict[str, Any] = Depends(get_request_params),
    service: MultipartService = Depends(get_multipart_service),
) -> CompletedUploadOut:
    location = await run_in_threadpool(
        service.complete_multipart_upload,
        request,
        upload_id,
        key=params.get("key"),
        parts=params.get("parts"),
    )
    return CompletedUploadOut(location=location)


@router.delete("/multipart/{upload_id}", include_in_schema=False)
@router.delete(
    "/{upload_id}",
    responses={
        **ERROR_RESPONSES,
        404: {"model": ErrorOut, "description": "Upload does not exist"},
    },
    summary="Abort multipart upload",
    description="Abort an in-progress upload and discard its parts.",
)
async def abort_multipart_upload(
    upload_id: str,
    request: Request,
    params: dict[str, Any] = Depends(get_request_params),
    service: MultipartService = Depends(get_multipart_service),
) -> dict[str, Any]:
    await run_in_threadpool(
        service.abort_multipart_upload, request, upload_id, key=params.get("key")
    )
    return {}
