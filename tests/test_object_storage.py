"""Unit tests for ObjectStorageClient and MinIOClient."""

from unittest.mock import MagicMock, patch

import pytest
from minio.error import S3Error

from app.services.object_storage import (
    MinIOClient,
    ObjectStorageError,
    get_object_storage_client,
)


def s3_error(code: str) -> S3Error:
    return S3Error(
        code=code,
        message="error",
        resource="/bucket/key",
        request_id="test-request-id",
        host_id="test-host-id",
        response=MagicMock(),
    )


# =============================================================================
# Test Fixtures
# =============================================================================


@pytest.fixture
def mock_minio_client():
    """Create a mock Minio client."""
    with patch("app.services.object_storage.Minio") as mock_minio_class:
        mock_client = MagicMock()
        mock_minio_class.return_value = mock_client
        yield mock_client


@pytest.fixture
def minio_client(mock_minio_client):
    """MinIOClient wired to the mocked SDK."""
    return MinIOClient(
        endpoint="localhost:9000",
        access_key="test_access",
        secret_key="test_secret",
        secure=False,
    )


# =============================================================================
# Uploads
# =============================================================================


class TestPutObject:
    @pytest.mark.asyncio
    async def test_put_object_success(self, minio_client, mock_minio_client):
        mock_minio_client.bucket_exists.return_value = True

        await minio_client.put_object(
            bucket="chat-files",
            key="admin/1_report.pdf",
            data=b"test content",
            content_type="application/pdf",
        )

        call_args = mock_minio_client.put_object.call_args
        assert call_args[0][0] == "chat-files"
        assert call_args[0][1] == "admin/1_report.pdf"
        assert call_args[0][2].read() == b"test content"
        assert call_args[0][3] == 12
        assert call_args[1]["content_type"] == "application/pdf"

    @pytest.mark.asyncio
    async def test_missing_bucket_is_created_once(self, minio_client, mock_minio_client):
        mock_minio_client.bucket_exists.return_value = False

        await minio_client.put_object("chat-files", "a", b"1")
        await minio_client.put_object("chat-files", "b", b"2")

        mock_minio_client.make_bucket.assert_called_once_with("chat-files")
        assert mock_minio_client.bucket_exists.call_count == 1

    @pytest.mark.asyncio
    async def test_put_object_s3_error(self, minio_client, mock_minio_client):
        mock_minio_client.bucket_exists.return_value = True
        mock_minio_client.put_object.side_effect = s3_error("InternalError")

        with pytest.raises(ObjectStorageError) as exc_info:
            await minio_client.put_object("chat-files", "a", b"1")

        assert "Failed to upload object" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_put_object_connection_error(self, minio_client, mock_minio_client):
        mock_minio_client.bucket_exists.return_value = True
        mock_minio_client.put_object.side_effect = Exception("Connection refused")

        with pytest.raises(ObjectStorageError):
            await minio_client.put_object("chat-files", "a", b"1")


# =============================================================================
# Reads, deletes and listings
# =============================================================================


class TestReadDelete:
    @pytest.mark.asyncio
    async def test_get_object_success(self, minio_client, mock_minio_client):
        response = MagicMock()
        response.read.return_value = b"payload"
        mock_minio_client.get_object.return_value = response

        assert await minio_client.get_object("bucket", "key") == b"payload"
        response.close.assert_called_once()
        response.release_conn.assert_called_once()

    @pytest.mark.asyncio
    async def test_get_missing_object_returns_none(self, minio_client, mock_minio_client):
        mock_minio_client.get_object.side_effect = s3_error("NoSuchKey")

        assert await minio_client.get_object("bucket", "key") is None

    @pytest.mark.asyncio
    async def test_delete_missing_object_is_not_an_error(self, minio_client, mock_minio_client):
        mock_minio_client.remove_object.side_effect = s3_error("NoSuchKey")

        await minio_client.delete_object("bucket", "key")

    @pytest.mark.asyncio
    async def test_delete_failure_raises(self, minio_client, mock_minio_client):
        mock_minio_client.remove_object.side_effect = s3_error("AccessDenied")

        with pytest.raises(ObjectStorageError):
            await minio_client.delete_object("bucket", "key")

    @pytest.mark.asyncio
    async def test_object_exists(self, minio_client, mock_minio_client):
        assert await minio_client.object_exists("bucket", "key") is True

        mock_minio_client.stat_object.side_effect = s3_error("NoSuchKey")
        assert await minio_client.object_exists("bucket", "key") is False

    @pytest.mark.asyncio
    async def test_list_objects(self, minio_client, mock_minio_client):
        mock_minio_client.list_objects.return_value = [
            MagicMock(object_name="u1/1_id.png"),
            MagicMock(object_name="u1/2_bill.pdf"),
        ]

        keys = await minio_client.list_objects("verification-documents", prefix="u1/")

        assert keys == ["u1/1_id.png", "u1/2_bill.pdf"]
        mock_minio_client.list_objects.assert_called_once_with("verification-documents", prefix="u1/", recursive=True)


class TestPublicUrl:
    def test_url_is_quoted(self, minio_client):
        assert (
            minio_client.public_url("chat-files", "admin/1_my file.pdf")
            == "http://localhost:9000/chat-files/admin/1_my%20file.pdf"
        )

    def test_secure_endpoint(self, mock_minio_client):
        client = MinIOClient(endpoint="files.example.org", access_key="a", secret_key="b", secure=True)
        assert client.public_url("b", "k").startswith("https://files.example.org/")


def test_default_client_is_singleton(mock_minio_client):
    with patch("app.services.object_storage._default_client", None):
        assert get_object_storage_client() is get_object_storage_client()
