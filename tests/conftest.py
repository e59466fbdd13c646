from __future__ import annotations

import os
from typing import Any, Callable
from unittest.mock import MagicMock

import boto3
import pytest
from botocore.config import Config
from fastapi.testclient import TestClient

os.environ.setdefault("S3_BUCKET", "my-bucket")
os.environ.setdefault("S3_REGION", "us-east-1")

from multipart_broker.api.multipart_app import create_multipart_app  # noqa: E402
from multipart_broker.common.config import get_settings  # noqa: E402
from multipart_broker.infra.storage.s3_client import S3StorageClient  # noqa: E402
from multipart_broker.services.multipart_service import (  # noqa: E402
    MultipartConfig,
    MultipartService,
)

get_settings.cache_clear()  # type: ignore[attr-defined]


def build_signer(addressing_style: str = "virtual") -> Any:
    """A real boto3 client; presigning and URL building never touch the network."""
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="test-key",
        aws_secret_access_key="test-secret",
        config=Config(
            signature_version="s3v4",
            s3={"addressing_style": addressing_style},
        ),
    )


@pytest.fixture
def signer():
    return build_signer()


@pytest.fixture
def s3(signer):
    """Mock boto3 S3 client that still signs URLs for real."""
    mock_client = MagicMock()
    mock_client.meta = signer.meta
    mock_client.generate_presigned_url.side_effect = signer.generate_presigned_url
    mock_client.create_multipart_upload.return_value = {
        "UploadId": "foo",
        "Bucket": "my-bucket",
        "Key": "bar",
    }
    mock_client.list_parts.return_value = {"Parts": [], "IsTruncated": False}
    mock_client.complete_multipart_upload.return_value = {}
    mock_client.abort_multipart_upload.return_value = {}
    return mock_client


@pytest.fixture
def storage(s3):
    return S3StorageClient(bucket="my-bucket", client=s3)


@pytest.fixture
def make_client(storage) -> Callable[..., TestClient]:
    """Build a TestClient for the multipart app with the given config values."""

    def factory(**config: Any) -> TestClient:
        service = MultipartService(MultipartConfig(storage=storage, **config))
        return TestClient(create_multipart_app(service))

    return factory


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()
