"""Tests for journal_transcriber.storage.blob_store module."""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from journal_transcriber.storage.blob_store import (
    S3BlobStore,
    SupabaseBlobStore,
    get_blob_store,
)
from journal_transcriber.utils.errors import AudioFetchError, StorageError


class TestS3BlobStoreInit:
    """Tests for S3BlobStore initialization."""

    def test_init_with_explicit_params(self):
        with patch("journal_transcriber.storage.blob_store.boto3") as mock_boto:
            store = S3BlobStore(
                endpoint_url="https://s3.example.com",
                bucket="test-bucket",
                access_key_id="key-id",
                secret_access_key="secret-key",
            )
        assert store.endpoint_url == "https://s3.example.com"
        assert store.bucket == "test-bucket"
        mock_boto.client.assert_called_once()

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("S3_ENDPOINT", "https://env.example.com")
        monkeypatch.delenv("AUDIO_BUCKET", raising=False)
        with patch("journal_transcriber.storage.blob_store.boto3"):
            store = S3BlobStore()
        assert store.endpoint_url == "https://env.example.com"
        assert store.bucket == "audio_files"

    def test_init_missing_endpoint_raises_storage_error(self, monkeypatch):
        monkeypatch.delenv("S3_ENDPOINT", raising=False)
        with pytest.raises(StorageError, match="S3_ENDPOINT is required"):
            S3BlobStore(bucket="bucket")


class TestS3BlobStoreObjects:
    """Tests for S3BlobStore.fetch_object() and put_object()."""

    def _make_store(self):
        with patch("journal_transcriber.storage.blob_store.boto3") as mock_boto:
            mock_s3 = MagicMock()
            mock_boto.client.return_value = mock_s3
            store = S3BlobStore(
                endpoint_url="https://s3.example.com",
                bucket="test-bucket",
                access_key_id="key-id",
                secret_access_key="secret-key",
            )
        return store, mock_s3

    async def test_fetch_object_returns_bytes(self):
        store, mock_s3 = self._make_store()
        mock_body = MagicMock()
        mock_body.read.return_value = b"audio-data-bytes"
        mock_s3.get_object.return_value = {"Body": mock_body}

        result = await store.fetch_object("user1/entry.webm")

        assert result == b"audio-data-bytes"
        mock_s3.get_object.assert_called_once_with(
            Bucket="test-bucket", Key="user1/entry.webm"
        )

    async def test_fetch_object_raises_audio_fetch_error_on_client_error(self):
        store, mock_s3 = self._make_store()
        mock_s3.get_object.side_effect = ClientError(
            {"Error": {"Code": "NoSuchKey", "Message": "Not found"}},
            "GetObject",
        )

        with pytest.raises(AudioFetchError, match="NoSuchKey") as exc_info:
            await store.fetch_object("missing/key")
        assert exc_info.value.key == "missing/key"

    async def test_put_object_with_content_type(self):
        store, mock_s3 = self._make_store()

        await store.put_object("key.mp3", b"data", content_type="audio/mpeg")

        mock_s3.put_object.assert_called_once_with(
            Bucket="test-bucket",
            Key="key.mp3",
            Body=b"data",
            ContentType="audio/mpeg",
        )

    async def test_put_object_raises_storage_error_on_client_error(self):
        store, mock_s3 = self._make_store()
        mock_s3.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "Forbidden"}},
            "PutObject",
        )

        with pytest.raises(StorageError, match="AccessDenied"):
            await store.put_object("key", b"data")

    async def test_put_object_raises_storage_error_on_connection_error(self):
        store, mock_s3 = self._make_store()
        mock_s3.put_object.side_effect = EndpointConnectionError(
            endpoint_url="https://s3.example.com"
        )

        with pytest.raises(StorageError, match="Could not connect") as exc_info:
            await store.put_object("key", b"data")
        assert exc_info.value.operation == "put_object"


class TestSupabaseBlobStore:
    """Tests for SupabaseBlobStore."""

    def _make_store(self):
        client = MagicMock()
        bucket = client.storage.from_.return_value
        return SupabaseBlobStore(client, bucket="audio_files"), client, bucket

    async def test_fetch_object_downloads_from_bucket(self):
        store, client, bucket = self._make_store()
        bucket.download.return_value = b"webm-bytes"

        result = await store.fetch_object("u1/entry.webm")

        assert result == b"webm-bytes"
        client.storage.from_.assert_called_with("audio_files")
        bucket.download.assert_called_once_with("u1/entry.webm")

    async def test_fetch_failure_raises_audio_fetch_error(self):
        store, _, bucket = self._make_store()
        bucket.download.side_effect = RuntimeError("Object not found")

        with pytest.raises(AudioFetchError, match="Object not found"):
            await store.fetch_object("u1/missing.webm")

    async def test_put_object_uploads_without_upsert(self):
        store, _, bucket = self._make_store()

        await store.put_object("u1/entry.mp3", b"mp3", content_type="audio/mpeg")

        bucket.upload.assert_called_once_with(
            "u1/entry.mp3",
            b"mp3",
            {"upsert": "false", "content-type": "audio/mpeg"},
        )

    async def test_put_failure_raises_storage_error(self):
        store, _, bucket = self._make_store()
        bucket.upload.side_effect = RuntimeError("Duplicate")

        with pytest.raises(StorageError, match="Duplicate") as exc_info:
            await store.put_object("u1/entry.mp3", b"mp3")
        assert exc_info.value.operation == "put_object"


class TestGetBlobStore:
    """Tests for get_blob_store() provider selection."""

    def test_supabase_provider(self):
        assert isinstance(get_blob_store("supabase", MagicMock()), SupabaseBlobStore)

    def test_supabase_requires_client(self):
        with pytest.raises(StorageError, match="requires a client"):
            get_blob_store("supabase")

    def test_s3_provider(self, monkeypatch):
        monkeypatch.setenv("S3_ENDPOINT", "https://s3.example.com")
        with patch("journal_transcriber.storage.blob_store.boto3"):
            assert isinstance(get_blob_store("s3"), S3BlobStore)

    def test_unknown_provider(self):
        with pytest.raises(StorageError, match="Unknown blob store"):
            get_blob_store("ftp")
