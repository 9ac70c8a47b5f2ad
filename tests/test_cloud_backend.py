"""Tests for the S3-compatible cloud backend against a stubbed boto3 client."""

import io
from datetime import datetime, timezone
from pathlib import Path

import boto3
import pytest
from botocore.config import Config
from botocore.exceptions import EndpointConnectionError
from botocore.response import StreamingBody
from botocore.stub import Stubber

from app.exceptions import NotFoundException, TransportError
from app.services.storage_backends import CloudBackend, Destination, StorageConfig

BUCKET = "eventdesk-files"
MODIFIED = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


def make_config(public_url=None) -> StorageConfig:
    return StorageConfig(
        use_cloud=True,
        upload_root=Path("/tmp/unused"),
        bucket_name=BUCKET,
        endpoint_url="https://account.r2.cloudflarestorage.com",
        access_key_id="key",
        secret_access_key="secret",
        public_url=public_url,
    )


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="auto",
        endpoint_url="https://account.r2.cloudflarestorage.com",
        aws_access_key_id="key",
        aws_secret_access_key="secret",
        config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
    )


@pytest.fixture
def stubber(s3_client):
    with Stubber(s3_client) as stub:
        yield stub
        stub.assert_no_pending_responses()


async def test_put_passes_transform_as_metadata(s3_client, stubber):
    backend = CloudBackend(make_config(public_url="https://files.example"), client=s3_client)
    destination = Destination(folder="eventdesk/avatars", generated_name="avatar-1-2.png")
    stubber.add_response(
        "put_object",
        {},
        expected_params={
            "Bucket": BUCKET,
            "Key": "eventdesk/avatars/avatar-1-2.png",
            "Body": b"png bytes",
            "ContentType": "image/png",
            "Metadata": {"transform": "w_500,h_500,c_fill,g_face"},
        },
    )

    url = await backend.put(destination, b"png bytes", "image/png", transform="w_500,h_500,c_fill,g_face")

    assert url == "https://files.example/eventdesk/avatars/avatar-1-2.png"


async def test_put_without_transform_sends_no_metadata(s3_client, stubber):
    backend = CloudBackend(make_config(public_url="https://files.example"), client=s3_client)
    stubber.add_response(
        "put_object",
        {},
        expected_params={
            "Bucket": BUCKET,
            "Key": "eventdesk/documents/rules.pdf",
            "Body": b"%PDF",
            "ContentType": "application/pdf",
        },
    )

    await backend.put(Destination("eventdesk/documents", "rules.pdf"), b"%PDF", "application/pdf")


async def test_put_client_error_becomes_transport_error(s3_client, stubber):
    backend = CloudBackend(make_config(), client=s3_client)
    stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)

    with pytest.raises(TransportError, match="Failed to upload file"):
        await backend.put(Destination("eventdesk/avatars", "a.png"), b"x", "image/png")


async def test_put_connection_error_becomes_transport_error():
    class UnreachableClient:
        def put_object(self, **kwargs):
            raise EndpointConnectionError(endpoint_url="https://account.r2.cloudflarestorage.com")

    backend = CloudBackend(make_config(), client=UnreachableClient())

    with pytest.raises(TransportError):
        await backend.put(Destination("eventdesk/avatars", "a.png"), b"x", "image/png")


@pytest.mark.parametrize("code", ["404", "NoSuchKey"])
async def test_missing_object_is_absent(s3_client, stubber, code):
    backend = CloudBackend(make_config(), client=s3_client)
    stubber.add_client_error("head_object", service_error_code=code, http_status_code=404)
    stubber.add_client_error("head_object", service_error_code=code, http_status_code=404)

    assert await backend.exists("eventdesk/documents/rulebook.pdf") is False
    assert await backend.stat("eventdesk/documents/rulebook.pdf") is None


async def test_head_failure_other_than_missing_is_transport_error(s3_client, stubber):
    backend = CloudBackend(make_config(), client=s3_client)
    stubber.add_client_error("head_object", service_error_code="AccessDenied", http_status_code=403)

    with pytest.raises(TransportError):
        await backend.exists("eventdesk/documents/rulebook.pdf")


async def test_stat_reports_size_and_mtime(s3_client, stubber):
    backend = CloudBackend(make_config(), client=s3_client)
    stubber.add_response(
        "head_object",
        {"ContentLength": 42, "LastModified": MODIFIED},
        expected_params={"Bucket": BUCKET, "Key": "eventdesk/documents/rulebook.pdf"},
    )

    stat = await backend.stat("eventdesk/documents/rulebook.pdf")

    assert stat.size == 42
    assert stat.last_modified == MODIFIED


async def test_open_read_missing_object_is_not_found(s3_client, stubber):
    backend = CloudBackend(make_config(), client=s3_client)
    stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)

    with pytest.raises(NotFoundException):
        await backend.open_read("eventdesk/documents/rulebook.pdf")


async def test_open_read_streams_body(s3_client, stubber):
    backend = CloudBackend(make_config(), client=s3_client)
    content = b"%PDF-1.4 cloud copy"
    stubber.add_response(
        "get_object",
        {
            "Body": StreamingBody(io.BytesIO(content), len(content)),
            "ContentLength": len(content),
            "LastModified": MODIFIED,
            "ContentType": "application/pdf",
        },
        expected_params={"Bucket": BUCKET, "Key": "eventdesk/documents/rulebook.pdf"},
    )

    asset = await backend.open_read("eventdesk/documents/rulebook.pdf")
    chunks = [chunk async for chunk in asset.iter_chunks()]
    await asset.close()

    assert b"".join(chunks) == content
    assert asset.size == len(content)
    assert asset.content_type == "application/pdf"


def test_url_for_uses_public_domain_when_configured(s3_client):
    backend = CloudBackend(make_config(public_url="https://files.example/"), client=s3_client)

    assert backend.url_for("eventdesk/events/event-1.png") == "https://files.example/eventdesk/events/event-1.png"


def test_url_for_presigns_without_public_domain(s3_client):
    backend = CloudBackend(make_config(), client=s3_client)

    url = backend.url_for("eventdesk/events/event-1.png", expires_in=600)

    assert url.startswith(f"https://account.r2.cloudflarestorage.com/{BUCKET}/eventdesk/events/event-1.png?")
    assert "X-Amz-Signature=" in url
    assert "X-Amz-Expires=600" in url


async def test_verify_bucket(s3_client, stubber):
    backend = CloudBackend(make_config(), client=s3_client)
    stubber.add_response("head_bucket", {}, expected_params={"Bucket": BUCKET})

    await backend.verify_bucket()


async def test_verify_bucket_denied_is_transport_error(s3_client, stubber):
    backend = CloudBackend(make_config(), client=s3_client)
    stubber.add_client_error("head_bucket", service_error_code="403", http_status_code=403)

    with pytest.raises(TransportError, match="Cannot access bucket"):
        await backend.verify_bucket()
