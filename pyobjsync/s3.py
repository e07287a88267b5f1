"""Object store backed by boto3, used for s3:// collections."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable, AsyncIterator
from datetime import timezone
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    EndpointConnectionError,
    HTTPClientError,
    NoCredentialsError,
)

from .exceptions import (
    StorageAPIError,
    StorageAuthenticationError,
    StorageInvalidResponseError,
    StorageNetworkError,
    StorageNotFoundError,
    StoragePermissionError,
    StorageRateLimitError,
)
from .models import ListPage, ObjectDescriptor
from .utils import DEFAULT_MAX_RETRIES, DEFAULT_STREAM_CHUNK_SIZE

logger = logging.getLogger(__name__)

# metadata option name -> boto3 request parameter
METADATA_PARAMS = {
    "content_type": "ContentType",
    "cache_control": "CacheControl",
    "content_disposition": "ContentDisposition",
    "content_encoding": "ContentEncoding",
    "storage_class": "StorageClass",
}

NOT_FOUND_CODES = {"NoSuchKey", "NoSuchBucket", "NoSuchUpload", "NotFound", "404"}
AUTH_CODES = {
    "InvalidAccessKeyId",
    "SignatureDoesNotMatch",
    "ExpiredToken",
    "InvalidToken",
}
THROTTLE_CODES = {
    "SlowDown",
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
}


def _metadata_params(metadata: dict[str, Any]) -> dict[str, Any]:
    """Translate resolved metadata options into boto3 request parameters."""
    params: dict[str, Any] = {}
    for name, param in METADATA_PARAMS.items():
        value = metadata.get(name)
        if value is not None:
            params[param] = str(value)
    user_metadata = metadata.get("metadata")
    if user_metadata:
        params["Metadata"] = {str(k): str(v) for k, v in user_metadata.items()}
    return params


def _map_client_error(e: ClientError) -> StorageAPIError:
    """Convert a botocore ClientError to the matching storage error."""
    error = e.response.get("Error", {})
    code = str(error.get("Code", ""))
    message = error.get("Message") or code or str(e)
    status_code = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")

    if code in NOT_FOUND_CODES or status_code == 404:
        return StorageNotFoundError(f"Resource not found: {message}", status_code)
    if code in AUTH_CODES or status_code == 401:
        return StorageAuthenticationError(
            f"Invalid credentials or unauthorized access: {message}", status_code
        )
    if code == "AccessDenied" or status_code == 403:
        return StoragePermissionError(
            f"Access forbidden - check your permissions: {message}", status_code
        )
    if code in THROTTLE_CODES or status_code == 429:
        return StorageRateLimitError(
            f"Rate limit exceeded - please try again later: {message}", status_code
        )
    return StorageAPIError(
        f"S3 request failed ({code or status_code}): {message}", status_code
    )


def _map_botocore_error(e: BotoCoreError) -> StorageAPIError:
    if isinstance(e, NoCredentialsError):
        return StorageAuthenticationError(
            "AWS credentials not found. Configure them through the environment "
            "or ~/.aws/credentials."
        )
    if isinstance(e, (EndpointConnectionError, HTTPClientError)):
        return StorageNetworkError(f"Network error: {e}")
    return StorageAPIError(f"S3 client error: {e}")


class S3ObjectStore:
    """Object store talking to S3 (or an S3 compatible service) via boto3.

    Implements ``ObjectStoreProtocol``. boto3 is synchronous, so every call
    runs in a worker thread. Transient failures are retried by botocore
    according to the client's retry configuration.
    """

    def __init__(
        self,
        endpoint_url: str | None = None,
        region_name: str | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        timeout: float = 60.0,
        chunk_size: int = DEFAULT_STREAM_CHUNK_SIZE,
        client: Any = None,
    ):
        """Initialize the S3 store.

        Args:
            endpoint_url: Custom endpoint for S3 compatible services
            region_name: AWS region (boto3's default resolution if None)
            max_retries: Retries after the first attempt for transient failures
            timeout: Connect and read timeout in seconds
            chunk_size: Buffer size for streamed downloads
            client: Pre-built boto3 S3 client (used by tests)
        """
        self.endpoint_url = endpoint_url
        self.region_name = region_name
        self.max_retries = max_retries
        self.timeout = timeout
        self.chunk_size = chunk_size
        self._client = client

    def _get_client(self) -> Any:
        """Get or create the boto3 client."""
        if self._client is None:
            boto_config = BotoConfig(
                region_name=self.region_name,
                connect_timeout=self.timeout,
                read_timeout=self.timeout,
                retries={"max_attempts": self.max_retries, "mode": "standard"},
            )
            session = boto3.session.Session()
            self._client = session.client(
                "s3", config=boto_config, endpoint_url=self.endpoint_url
            )
        return self._client

    async def aclose(self) -> None:
        """Close the client and release connections."""
        if self._client is not None:
            self._client.close()
            self._client = None

    async def __aenter__(self) -> S3ObjectStore:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def _call(self, operation: str, **params: Any) -> dict[str, Any]:
        """Run one boto3 client method in a worker thread.

        Raises:
            StorageAPIError: If the call fails after botocore's retries
        """
        method = getattr(self._get_client(), operation)
        try:
            return await asyncio.to_thread(method, **params)
        except ClientError as e:
            raise _map_client_error(e) from e
        except BotoCoreError as e:
            raise _map_botocore_error(e) from e

    # =========================
    # Listing
    # =========================

    async def list_objects(
        self, bucket: str, prefix: str, continuation_token: str | None = None
    ) -> ListPage:
        """List one page of objects under ``prefix``.

        Returns:
            ListPage with entries in key order and the next continuation token
        """
        params: dict[str, Any] = {"Bucket": bucket, "Prefix": prefix}
        if continuation_token:
            params["ContinuationToken"] = continuation_token
        data = await self._call("list_objects_v2", **params)

        try:
            entries = [
                ObjectDescriptor(
                    key=item["Key"],
                    size=int(item.get("Size", 0)),
                    last_modified=item["LastModified"].astimezone(timezone.utc),
                    is_local=False,
                )
                for item in data.get("Contents", [])
            ]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise StorageInvalidResponseError(f"Malformed listing response: {e}") from e

        truncated = bool(data.get("IsTruncated"))
        next_token = data.get("NextContinuationToken") if truncated else None
        if truncated and not next_token:
            raise StorageInvalidResponseError(
                "Truncated listing without a continuation token"
            )
        return ListPage(entries=entries, next_token=next_token)

    # =========================
    # Object Operations
    # =========================

    async def get_object(self, bucket: str, key: str) -> AsyncIterator[bytes]:
        """Stream the content of an object.

        Yields:
            Chunks of the object body
        """
        response = await self._call("get_object", Bucket=bucket, Key=key)
        body = response["Body"]
        try:
            while True:
                try:
                    chunk = await asyncio.to_thread(body.read, self.chunk_size)
                except BotoCoreError as e:
                    raise StorageNetworkError(
                        f"Network error during download: {e}"
                    ) from e
                if not chunk:
                    break
                yield chunk
        finally:
            body.close()

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: AsyncIterable[bytes],
        size: int,
        metadata: dict[str, Any],
    ) -> str:
        """Upload an object in a single request.

        The body is buffered in memory; objects above the part size go
        through the multipart calls instead.

        Returns:
            ETag of the stored object
        """
        data = b"".join([chunk async for chunk in body])
        if len(data) != size:
            raise StorageAPIError(
                f"Body of {key} changed during upload: expected {size} bytes, "
                f"read {len(data)}"
            )
        params = _metadata_params(metadata)
        params.setdefault("ContentType", "application/octet-stream")
        response = await self._call(
            "put_object",
            Bucket=bucket,
            Key=key,
            Body=data,
            ContentLength=size,
            **params,
        )
        return str(response.get("ETag", "")).strip('"')

    async def copy_object(
        self,
        source_bucket: str,
        source_key: str,
        bucket: str,
        key: str,
        metadata: dict[str, Any],
    ) -> None:
        """Server side copy of an object, possibly across buckets.

        Metadata options replace the source object's metadata when given,
        otherwise the source metadata is kept.
        """
        params = _metadata_params(metadata)
        await self._call(
            "copy_object",
            CopySource={"Bucket": source_bucket, "Key": source_key},
            Bucket=bucket,
            Key=key,
            MetadataDirective="REPLACE" if params else "COPY",
            **params,
        )

    async def delete_object(self, bucket: str, key: str) -> None:
        """Delete an object."""
        await self._call("delete_object", Bucket=bucket, Key=key)

    # =========================
    # Multipart Operations
    # =========================

    async def create_multipart_upload(
        self, bucket: str, key: str, metadata: dict[str, Any]
    ) -> str:
        """Initialize a multipart upload session.

        Returns:
            Upload ID of the new session
        """
        params = _metadata_params(metadata)
        params.setdefault("ContentType", "application/octet-stream")
        response = await self._call(
            "create_multipart_upload", Bucket=bucket, Key=key, **params
        )
        upload_id = response.get("UploadId")
        if not upload_id:
            raise StorageInvalidResponseError("Failed to initialize multipart upload")
        logger.debug(f"Created multipart upload {upload_id} for {bucket}/{key}")
        return str(upload_id)

    async def upload_part(
        self, bucket: str, key: str, upload_id: str, part_number: int, data: bytes
    ) -> str:
        """Upload one part of a multipart session.

        Returns:
            ETag identifying the stored part
        """
        response = await self._call(
            "upload_part",
            Bucket=bucket,
            Key=key,
            UploadId=upload_id,
            PartNumber=part_number,
            Body=data,
            ContentLength=len(data),
        )
        etag = str(response.get("ETag", "")).strip('"')
        if not etag:
            raise StorageInvalidResponseError(f"No ETag returned for part {part_number}")
        return etag

    async def complete_multipart_upload(
        self, bucket: str, key: str, upload_id: str, parts: list[tuple[int, str]]
    ) -> None:
        """Assemble the uploaded parts into the final object."""
        await self._call(
            "complete_multipart_upload",
            Bucket=bucket,
            Key=key,
            UploadId=upload_id,
            MultipartUpload={
                "Parts": [
                    {"PartNumber": number, "ETag": f'"{etag}"'}
                    for number, etag in parts
                ]
            },
        )

    async def abort_multipart_upload(
        self, bucket: str, key: str, upload_id: str
    ) -> None:
        """Abort a multipart session and discard its parts."""
        await self._call(
            "abort_multipart_upload", Bucket=bucket, Key=key, UploadId=upload_id
        )
