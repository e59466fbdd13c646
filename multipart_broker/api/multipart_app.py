"""Mountable ASGI application serving the multipart upload protocol.

Errors are rendered as ``{"error": <message>}`` with ``application/json``,
which is what browser uploaders expect, rather than problem+json.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Receive, Scope, Send

from multipart_broker.api.routers.multipart import router
from multipart_broker.infra.storage.client import StorageError
from multipart_broker.services.multipart_service import (
    MultipartError,
    MultipartService,
    UploadNotFoundError,
)

logger = logging.getLogger("http")

STORAGE_FAILURE_MESSAGE = "Storage backend request failed"


class MountRootMiddleware:
    """Route the bare mount path (``/s3``) to the multipart app root.

    Without it the outer router answers ``/s3`` with a redirect to ``/s3/``,
    which CORS preflights cannot follow.
    """

    def __init__(self, app: ASGIApp, mount_path: str) -> None:
        self.app = app
        self.mount_path = mount_path.rstrip("/")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if (
            self.mount_path
            and scope["type"] == "http"
            and scope["path"] == self.mount_path
        ):
            scope["path"] = f"{self.mount_path}/"
            scope["raw_path"] = scope["path"].encode("utf-8")
        await self.app(scope, receive, send)


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _log_error(request: Request, status_code: int, message: str) -> None:
    logger.log(
        logging.WARNING if status_code < 500 else logging.ERROR,
        "multipart_error status=%s error=%s method=%s path=%s request_id=%s",
        status_code,
        message,
        request.method,
        request.url.path,
        request.headers.get("X-Request-Id"),
        extra={
            "extra": {
                "status": status_code,
                "error": message,
                "method": request.method,
                "route": request.url.path,
                "request_id": request.headers.get("X-Request-Id"),
            }
        },
    )


def create_multipart_app(service: MultipartService) -> FastAPI:
    app = FastAPI(
        title="Multipart Upload",
        description="Client-direct multipart uploads to S3-compatible storage",
    )
    app.state.multipart_service = service
    app.include_router(router, tags=["multipart"])

    @app.exception_handler(MultipartError)
    async def multipart_error_handler(request: Request, exc: MultipartError):
        status_code = 404 if isinstance(exc, UploadNotFoundError) else 400
        _log_error(request, status_code, str(exc))
        return _error_response(status_code, str(exc))

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error(
            "storage_error method=%s path=%s error=%s",
            request.method,
            request.url.path,
            exc,
            exc_info=exc,
            extra={
                "extra": {
                    "method": request.method,
                    "route": request.url.path,
                    "request_id": request.headers.get("X-Request-Id"),
                }
            },
        )
        return _error_response(502, STORAGE_FAILURE_MESSAGE)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        _log_error(request, exc.status_code, str(exc.detail))
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    return app
