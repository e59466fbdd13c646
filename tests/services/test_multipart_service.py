"""Tests for MultipartService."""

from __future__ import annotations

import logging
import re
from dataclasses import FrozenInstanceError

import pytest
from starlette.requests import Request

from multipart_broker.infra.storage.client import CompletedPart, StorageError
from multipart_broker.services.multipart_service import (
    MISSING_PART_FIELD_MESSAGE,
    UPLOAD_NOT_FOUND_MESSAGE,
    InvalidParameterError,
    MissingParameterError,
    MultipartConfig,
    MultipartService,
    UploadNotFoundError,
    content_disposition,
    generate_object_key,
    parse_completed_parts,
    parse_part_numbers,
)
from multipart_broker.services.options import EMPTY_OPTIONS, OperationOptions
from tests.services.mock_storage import MockStorageClient


def make_request(headers: dict[str, str] | None = None) -> Request:
    raw_headers = [
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in (headers or {}).items()
    ]
    return Request(
        {
            "type": "http",
            "method": "POST",
            "path": "/",
            "headers": raw_headers,
            "query_string": b"",
        }
    )


@pytest.fixture()
def mock_storage():
    return MockStorageClient()


@pytest.fixture()
def request_():
    return make_request()


@pytest.fixture()
def make_service(mock_storage):
    def factory(**config) -> MultipartService:
        return MultipartService(MultipartConfig(storage=mock_storage, **config))

    return factory


@pytest.fixture()
def service(make_service):
    return make_service()


class TestGenerateObjectKey:
    def test_random_hex_with_extension(self):
        key = generate_object_key("nature.jpg")

        assert re.fullmatch(r"[0-9a-f]{32}\.jpg", key)

    def test_without_filename(self):
        assert re.fullmatch(r"[0-9a-f]{32}", generate_object_key(None))

    def test_only_last_extension_is_kept(self):
        assert generate_object_key("archive.tar.gz").endswith(".gz")

    def test_prefix(self):
        key = generate_object_key("a.txt", "uploads")

        assert re.fullmatch(r"uploads/[0-9a-f]{32}\.txt", key)

    def test_keys_are_unique(self):
        assert generate_object_key("a.txt") != generate_object_key("a.txt")


class TestContentDisposition:
    def test_ascii_filename(self):
        assert content_disposition("nature.jpg") == (
            "inline; filename=\"nature.jpg\"; filename*=UTF-8''nature.jpg"
        )

    def test_non_ascii_filename(self):
        value = content_disposition("été.txt")

        assert 'filename="?t?.txt"' in value
        assert "filename*=UTF-8''%C3%A9t%C3%A9.txt" in value

    def test_quotes_and_backslashes_are_escaped(self):
        value = content_disposition('my "best"\\file.txt')

        assert 'filename="my \\"best\\"\\\\file.txt"' in value
        assert "filename*=UTF-8''my%20%22best%22%5Cfile.txt" in value

    def test_attachment(self):
        assert content_disposition("a.txt", "attachment").startswith(
            'attachment; filename="a.txt"'
        )


class TestParseCompletedParts:
    def test_valid_parts(self):
        assert parse_completed_parts(
            [{"PartNumber": 1, "ETag": "etag1"}, {"PartNumber": "2", "ETag": "e2"}]
        ) == [
            CompletedPart(part_number=1, etag="etag1"),
            CompletedPart(part_number=2, etag="e2"),
        ]

    def test_empty_list(self):
        assert parse_completed_parts([]) == []

    def test_missing(self):
        with pytest.raises(MissingParameterError, match='Missing "parts" parameter'):
            parse_completed_parts(None)

    def test_not_a_list(self):
        with pytest.raises(InvalidParameterError, match='Invalid "parts" parameter'):
            parse_completed_parts({"PartNumber": 1, "ETag": "etag1"})

    @pytest.mark.parametrize(
        "part",
        [
            {"ETag": "etag1"},
            {"PartNumber": 1},
            {"PartNumber": None, "ETag": "etag1"},
            "etag1",
        ],
    )
    def test_part_missing_field(self, part):
        with pytest.raises(InvalidParameterError) as excinfo:
            parse_completed_parts([{"PartNumber": 2, "ETag": "etag2"}, part])

        assert str(excinfo.value) == MISSING_PART_FIELD_MESSAGE

    def test_invalid_part_number(self):
        with pytest.raises(InvalidParameterError, match="PartNumber"):
            parse_completed_parts([{"PartNumber": 0, "ETag": "etag1"}])

    @pytest.mark.parametrize("etag", [{"a": 1}, ["etag1"], 1, ""])
    def test_invalid_etag(self, etag):
        with pytest.raises(InvalidParameterError, match='Invalid "ETag" parameter'):
            parse_completed_parts([{"PartNumber": 1, "ETag": etag}])


class TestParsePartNumbers:
    def test_comma_separated(self):
        assert parse_part_numbers("1, 2,3") == [1, 2, 3]

    def test_list(self):
        assert parse_part_numbers([1, "2"]) == [1, 2]

    @pytest.mark.parametrize("raw", [None, "", " , "])
    def test_missing(self, raw):
        with pytest.raises(MissingParameterError, match="partNumbers"):
            parse_part_numbers(raw)

    @pytest.mark.parametrize("raw", ["1,a", [0], [True], 5])
    def test_invalid(self, raw):
        with pytest.raises(InvalidParameterError, match='Invalid "partNumbers"'):
            parse_part_numbers(raw)


class TestCreateMultipartUpload:
    def test_sets_content_type_and_disposition(self, service, mock_storage, request_):
        upload = service.create_multipart_upload(
            request_, content_type="image/jpg", filename="nature.jpg"
        )

        assert upload.upload_id == "mock-upload-1"
        assert re.fullmatch(r"[0-9a-f]{32}\.jpg", upload.key)
        name, kwargs = mock_storage.calls[0]
        assert name == "create_multipart_upload"
        assert kwargs == {
            "key": upload.key,
            "ContentType": "image/jpg",
            "ContentDisposition": (
                "inline; filename=\"nature.jpg\"; filename*=UTF-8''nature.jpg"
            ),
        }

    def test_without_type_or_filename(self, service, mock_storage, request_):
        upload = service.create_multipart_upload(request_)

        assert re.fullmatch(r"[0-9a-f]{32}", upload.key)
        assert mock_storage.calls[0][1] == {"key": upload.key}

    def test_prefix(self, make_service, request_):
        service = make_service(prefix="/uploads/")

        upload = service.create_multipart_upload(request_, filename="a.txt")

        assert upload.key.startswith("uploads/")

    def test_public_sets_acl(self, make_service, mock_storage, request_):
        service = make_service(public=True)

        service.create_multipart_upload(request_)

        assert mock_storage.calls[0][1]["ACL"] == "public-read"

    def test_static_override_wins_over_defaults(
        self, make_service, mock_storage, request_
    ):
        service = make_service(
            options={
                "create_multipart_upload": {
                    "ContentType": "foo/bar",
                    "StorageClass": "REDUCED_REDUNDANCY",
                }
            }
        )

        service.create_multipart_upload(request_, content_type="image/jpg")

        kwargs = mock_storage.calls[0][1]
        assert kwargs["ContentType"] == "foo/bar"
        assert kwargs["StorageClass"] == "REDUCED_REDUNDANCY"

    def test_computed_override_receives_request(self, make_service, mock_storage):
        service = make_service(
            options={
                "create_multipart_upload": lambda request: {
                    "Metadata": {"tenant": request.headers["x-tenant"]}
                }
            }
        )

        service.create_multipart_upload(make_request({"X-Tenant": "acme"}))

        assert mock_storage.calls[0][1]["Metadata"] == {"tenant": "acme"}

    def test_override_cannot_replace_key(
        self, make_service, mock_storage, request_, caplog
    ):
        service = make_service(
            options={"create_multipart_upload": {"key": "evil", "Key": "evil"}}
        )

        with caplog.at_level(logging.WARNING, logger="multipart"):
            upload = service.create_multipart_upload(request_, filename="a.txt")

        assert upload.key != "evil"
        assert mock_storage.calls[0][1]["key"] == upload.key
        assert "Key" not in mock_storage.calls[0][1]
        assert any(
            "multipart_override_ignored" in record.getMessage()
            for record in caplog.records
        )

    @pytest.mark.parametrize("field", ["content_type", "filename"])
    def test_non_string_fields(self, service, request_, field):
        with pytest.raises(InvalidParameterError):
            service.create_multipart_upload(request_, **{field: 123})


class TestListParts:
    def test_lists_parts(self, service, mock_storage, request_):
        upload = service.create_multipart_upload(request_)
        mock_storage.add_part(upload.upload_id, 2, size=5)
        mock_storage.add_part(upload.upload_id, 1, size=7)

        parts = service.list_parts(request_, upload.upload_id, key=upload.key)

        assert [(p.part_number, p.size) for p in parts] == [(1, 7), (2, 5)]

    def test_repeated_calls_are_identical(self, service, mock_storage, request_):
        upload = service.create_multipart_upload(request_)
        mock_storage.add_part(upload.upload_id, 1)

        first = service.list_parts(request_, upload.upload_id, key=upload.key)
        second = service.list_parts(request_, upload.upload_id, key=upload.key)

        assert first == second

    @pytest.mark.parametrize("key", [None, "", "   "])
    def test_missing_key(self, service, request_, key):
        with pytest.raises(MissingParameterError, match='Missing "key" parameter'):
            service.list_parts(request_, "bar", key=key)

    def test_override(self, make_service, mock_storage, request_):
        service = make_service(options={"list_parts": {"MaxParts": 10}})

        service.list_parts(request_, "bar", key="foo")

        assert mock_storage.calls[0] == (
            "list_parts",
            {"upload_id": "bar", "key": "foo", "MaxParts": 10},
        )


class TestPrepareUploadPart:
    def test_presigns_part(self, service, mock_storage, request_):
        url = service.prepare_upload_part(request_, "bar", key="foo", part_number="1")

        assert "partNumber=1" in url
        assert mock_storage.calls[0][1] == {
            "upload_id": "bar",
            "key": "foo",
            "part_number": 1,
        }

    @pytest.mark.parametrize("part_number", ["0", "-1", "abc", "", True, 1.5])
    def test_invalid_part_number(self, service, request_, part_number):
        with pytest.raises(InvalidParameterError, match='Invalid "partNumber"'):
            service.prepare_upload_part(
                request_, "bar", key="foo", part_number=part_number
            )

    def test_missing_key(self, service, request_):
        with pytest.raises(MissingParameterError):
            service.prepare_upload_part(request_, "bar", key=None, part_number=1)

    def test_expires_in_override(self, make_service, mock_storage, request_):
        service = make_service(options={"prepare_upload_part": {"ExpiresIn": 10}})

        service.prepare_upload_part(request_, "bar", key="foo", part_number=1)

        assert mock_storage.calls[0][1]["ExpiresIn"] == 10

    def test_override_cannot_replace_part_number(
        self, make_service, mock_storage, request_
    ):
        service = make_service(
            options={"prepare_upload_part": {"part_number": 99, "PartNumber": 99}}
        )

        service.prepare_upload_part(request_, "bar", key="foo", part_number=3)

        assert mock_storage.calls[0][1] == {
            "upload_id": "bar",
            "key": "foo",
            "part_number": 3,
        }


class TestPrepareUploadParts:
    def test_presigns_each_part(self, service, mock_storage, request_):
        urls = service.prepare_upload_parts(
            request_, "bar", key="foo", part_numbers="1,2"
        )

        assert sorted(urls) == [1, 2]
        assert "partNumber=2" in urls[2]
        assert mock_storage.operations() == [
            "prepare_upload_part",
            "prepare_upload_part",
        ]


class TestCompleteMultipartUpload:
    def test_completes_with_parts(self, service, mock_storage, request_):
        location = service.complete_multipart_upload(
            request_, "bar", key="foo", parts=[{"PartNumber": 1, "ETag": "etag1"}]
        )

        assert location == "https://mock-s3/mock-bucket/foo?X-Amz-Signature=mock"
        name, kwargs = mock_storage.calls[0]
        assert name == "complete_multipart_upload"
        assert kwargs["parts"] == [CompletedPart(part_number=1, etag="etag1")]
        assert kwargs["public"] is False

    def test_empty_parts_are_forwarded(self, service, mock_storage, request_):
        service.complete_multipart_upload(request_, "bar", key="foo", parts=[])

        assert mock_storage.calls[0][1]["parts"] == []

    def test_public_location(self, make_service, request_):
        service = make_service(public=True)

        location = service.complete_multipart_upload(
            request_, "bar", key="foo", parts=[]
        )

        assert location == "https://mock-s3/mock-bucket/foo"

    def test_object_url_override_is_applied_to_location(
        self, make_service, mock_storage, request_
    ):
        service = make_service(
            options={
                "object_url": {"ResponseContentDisposition": "attachment"},
                "complete_multipart_upload": {"RequestPayer": "requester"},
            }
        )

        service.complete_multipart_upload(request_, "bar", key="foo", parts=[])

        kwargs = mock_storage.calls[0][1]
        assert kwargs["url_options"] == {"ResponseContentDisposition": "attachment"}
        assert kwargs["RequestPayer"] == "requester"

    def test_missing_parts(self, service, mock_storage, request_):
        with pytest.raises(MissingParameterError, match='Missing "parts" parameter'):
            service.complete_multipart_upload(request_, "bar", key="foo", parts=None)

        assert mock_storage.calls == []

    def test_missing_key(self, service, request_):
        with pytest.raises(MissingParameterError, match='Missing "key" parameter'):
            service.complete_multipart_upload(request_, "bar", key=None, parts=[])

    def test_storage_failure_propagates(self, service, mock_storage, request_):
        def fail(**kwargs):
            raise StorageError("boom")

        mock_storage.complete_multipart_upload = fail

        with pytest.raises(StorageError, match="boom"):
            service.complete_multipart_upload(request_, "bar", key="foo", parts=[])


class TestAbortMultipartUpload:
    def test_aborts_existing_upload(self, service, mock_storage, request_):
        upload = service.create_multipart_upload(request_)

        service.abort_multipart_upload(request_, upload.upload_id, key=upload.key)

        assert mock_storage.uploads[upload.upload_id]["aborted"] is True
        assert mock_storage.operations() == [
            "create_multipart_upload",
            "abort_multipart_upload",
        ]

    def test_unknown_upload(self, service, request_):
        with pytest.raises(UploadNotFoundError) as excinfo:
            service.abort_multipart_upload(request_, "missing", key="foo")

        assert str(excinfo.value) == UPLOAD_NOT_FOUND_MESSAGE

    def test_missing_key(self, service, mock_storage, request_):
        with pytest.raises(MissingParameterError):
            service.abort_multipart_upload(request_, "bar", key="")

        assert mock_storage.calls == []


class TestMultipartConfig:
    def test_defaults(self, mock_storage):
        config = MultipartConfig(storage=mock_storage)

        assert config.options is EMPTY_OPTIONS
        assert config.prefix is None
        assert config.public is False

    def test_is_frozen(self, mock_storage):
        config = MultipartConfig(storage=mock_storage)

        with pytest.raises(FrozenInstanceError):
            config.public = True  # type: ignore[misc]

    def test_normalizes_options(self, mock_storage):
        config = MultipartConfig(
            storage=mock_storage, options={"list_parts": {"MaxParts": 1}}
        )

        assert isinstance(config.options, OperationOptions)
        assert list(config.options) == ["list_parts"]

    def test_rejects_unknown_operation(self, mock_storage):
        with pytest.raises(ValueError, match="Unknown operation"):
            MultipartConfig(storage=mock_storage, options={"upload": {}})

    def test_blank_prefix(self, mock_storage):
        assert MultipartConfig(storage=mock_storage, prefix="/").prefix is None
