"""Blob storage for recorded audio.

Two backends share the BlobStore interface: Supabase Storage (the bucket
the journal client uploads recordings to) and any S3-compatible store
(R2, MinIO, S3) via boto3. Both SDKs are blocking, so calls run in a
worker thread.
"""

from __future__ import annotations

import asyncio
import logging
import os
from abc import ABC, abstractmethod

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from supabase import Client

from journal_transcriber.utils.errors import AudioFetchError, StorageError

logger = logging.getLogger(__name__)

DEFAULT_BUCKET = "audio_files"


class BlobStore(ABC):
    """Key-addressed binary storage."""

    @abstractmethod
    async def fetch_object(self, key: str) -> bytes:
        """Retrieve an object by key.

        Raises:
            AudioFetchError: If the object is missing or the store fails.
        """

    @abstractmethod
    async def put_object(self, key: str, data: bytes, content_type: str = "") -> None:
        """Store an object under key.

        Raises:
            StorageError: If the object cannot be stored.
        """


class SupabaseBlobStore(BlobStore):
    """Supabase Storage bucket client.

    Args:
        client: Service-role Supabase client.
        bucket: Bucket name (default from AUDIO_BUCKET, then ``audio_files``).
    """

    def __init__(self, client: Client, bucket: str | None = None) -> None:
        self._client = client
        self.bucket = bucket or os.environ.get("AUDIO_BUCKET", DEFAULT_BUCKET)

    async def fetch_object(self, key: str) -> bytes:
        bucket = self._client.storage.from_(self.bucket)
        try:
            return await asyncio.to_thread(bucket.download, key)
        # The storage SDK raises its own exception types per version
        except Exception as exc:
            raise AudioFetchError(
                f"Failed to download '{key}' from bucket '{self.bucket}': {exc}",
                key=key,
            ) from exc

    async def put_object(self, key: str, data: bytes, content_type: str = "") -> None:
        bucket = self._client.storage.from_(self.bucket)
        file_options = {"upsert": "false"}
        if content_type:
            file_options["content-type"] = content_type
        try:
            await asyncio.to_thread(bucket.upload, key, data, file_options)
        except Exception as exc:
            raise StorageError(
                f"Failed to upload '{key}' to bucket '{self.bucket}': {exc}",
                operation="put_object",
            ) from exc


class S3BlobStore(BlobStore):
    """S3-compatible object storage client.

    Reads configuration from environment variables:
        S3_ENDPOINT, AUDIO_BUCKET, S3_ACCESS_KEY_ID, S3_SECRET_ACCESS_KEY
    """

    def __init__(
        self,
        endpoint_url: str | None = None,
        bucket: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
    ) -> None:
        self.endpoint_url = endpoint_url or os.environ.get("S3_ENDPOINT", "")
        self.bucket = bucket or os.environ.get("AUDIO_BUCKET", DEFAULT_BUCKET)
        self.access_key_id = access_key_id or os.environ.get(
            "S3_ACCESS_KEY_ID", ""
        )
        self.secret_access_key = secret_access_key or os.environ.get(
            "S3_SECRET_ACCESS_KEY", ""
        )

        if not self.endpoint_url:
            raise StorageError("S3_ENDPOINT is required", operation="init")

        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint_url,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            region_name="auto",
        )

    def _get(self, key: str) -> bytes:
        response = self._client.get_object(Bucket=self.bucket, Key=key)
        return response["Body"].read()

    async def fetch_object(self, key: str) -> bytes:
        try:
            return await asyncio.to_thread(self._get, key)
        except ClientError as exc:
            error_code = exc.response.get("Error", {}).get("Code", "Unknown")
            raise AudioFetchError(
                f"Failed to fetch object '{key}': {error_code}",
                key=key,
            ) from exc
        except BotoCoreError as exc:
            raise AudioFetchError(
                f"Failed to fetch object '{key}': {exc}",
                key=key,
            ) from exc

    async def put_object(self, key: str, data: bytes, content_type: str = "") -> None:
        kwargs: dict = {"Bucket": self.bucket, "Key": key, "Body": data}
        if content_type:
            kwargs["ContentType"] = content_type
        try:
            await asyncio.to_thread(lambda: self._client.put_object(**kwargs))
        except ClientError as exc:
            error_code = exc.response.get("Error", {}).get("Code", "Unknown")
            raise StorageError(
                f"Failed to put object '{key}': {error_code}",
                operation="put_object",
            ) from exc
        except BotoCoreError as exc:
            raise StorageError(
                f"Failed to put object '{key}': {exc}",
                operation="put_object",
            ) from exc


def get_blob_store(provider: str, supabase_client: Client | None = None) -> BlobStore:
    """Create a blob store by provider name (``supabase`` or ``s3``).

    Raises:
        StorageError: If the provider is unknown, or ``supabase`` is
            requested without a client.
    """
    if provider == "supabase":
        if supabase_client is None:
            raise StorageError(
                "Supabase blob store requires a client", operation="init"
            )
        return SupabaseBlobStore(supabase_client)
    if provider == "s3":
        return S3BlobStore()
    raise StorageError(
        f"Unknown blob store: '{provider}'. Available: s3, supabase",
        operation="init",
    )
