import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from multipart_broker.api.multipart_app import (
    MountRootMiddleware,
    create_multipart_app,
)
from multipart_broker.common.config import Settings, get_settings
from multipart_broker.common.logging import setup_logging
from multipart_broker.infra.observability.metrics import metrics_app
from multipart_broker.infra.observability.middleware import MetricsMiddleware
from multipart_broker.infra.storage.s3_client import S3StorageClient
from multipart_broker.services.multipart_service import (
    MultipartConfig,
    MultipartService,
)
from multipart_broker.services.options import OperationOptions


def build_multipart_service(
    settings: Settings, *, options: OperationOptions | None = None
) -> MultipartService:
    storage = S3StorageClient.from_settings(settings)
    return MultipartService(
        MultipartConfig(
            storage=storage,
            prefix=settings.S3_PREFIX,
            public=settings.S3_PUBLIC,
            options=options or OperationOptions(),
        )
    )


def create_app(
    settings: Settings | None = None,
    *,
    service: MultipartService | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)
    startup_logger = logging.getLogger("multipart_broker.startup")

    service = service or build_multipart_service(settings)
    app = FastAPI(
        title="Multipart Upload Broker",
        version="1.0",
        description="Issues upload ids and presigned URLs for client-direct "
        "multipart uploads to S3-compatible storage",
    )
    # Added first so it runs innermost, after CORS and metrics.
    app.add_middleware(MountRootMiddleware, mount_path=settings.MULTIPART_MOUNT_PATH)

    # Optional CORS
    if settings.CORS_ENABLED:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ORIGINS or ["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Metrics
    if settings.ENABLE_METRICS:
        app.add_middleware(MetricsMiddleware)
        app.mount("/metrics", metrics_app)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.mount(settings.MULTIPART_MOUNT_PATH, create_multipart_app(service))
    startup_logger.info(
        "multipart endpoints mounted at %s (bucket=%s, prefix=%s, public=%s)",
        settings.MULTIPART_MOUNT_PATH,
        settings.S3_BUCKET,
        settings.S3_PREFIX or "-",
        settings.S3_PUBLIC,
    )
    return app


if __name__ == "__main__":
    uvicorn.run(
        "multipart_broker.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
