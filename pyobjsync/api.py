"""Async API client for an object storage HTTP gateway (gw:// collections)."""

from __future__ import annotations

import asyncio
import random
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any
from urllib.parse import quote

import httpx

from .config import config
from .exceptions import (
    StorageAPIError,
    StorageAuthenticationError,
    StorageConfigError,
    StorageInvalidResponseError,
    StorageNetworkError,
    StorageNotFoundError,
    StoragePermissionError,
    StorageRateLimitError,
)
from .models import ListPage
from .utils import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY, DEFAULT_STREAM_CHUNK_SIZE

# metadata option name -> request header
METADATA_HEADERS = {
    "content_type": "Content-Type",
    "cache_control": "Cache-Control",
    "content_disposition": "Content-Disposition",
    "content_encoding": "Content-Encoding",
    "storage_class": "X-Storage-Class",
}


def _metadata_headers(metadata: dict[str, Any]) -> dict[str, str]:
    """Translate resolved metadata options into request headers."""
    headers: dict[str, str] = {}
    for name, header in METADATA_HEADERS.items():
        value = metadata.get(name)
        if value is not None:
            headers[header] = str(value)
    for name, value in (metadata.get("metadata") or {}).items():
        headers[f"X-Meta-{name}"] = str(value)
    return headers


class ObjectStoreClient:
    """Client for the object storage gateway API.

    Implements ``ObjectStoreProtocol``. Transient failures (network errors,
    rate limits and 5xx responses) are retried here, below the sync engine.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = 60.0,
        chunk_size: int = DEFAULT_STREAM_CHUNK_SIZE,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the storage client.

        Args:
            api_key: Optional API key (uses config if not provided)
            api_url: Optional API URL (uses config if not provided)
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 60.0)
            chunk_size: Buffer size for streamed downloads
            transport: Optional httpx transport (used by tests)
        """
        self.api_key = api_key or config.api_key
        self.api_url = (api_url or config.api_url).rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.chunk_size = chunk_size
        self._transport = transport

        if not self.api_key:
            raise StorageConfigError(
                "API key not configured. Please set PYOBJSYNC_API_KEY environment "
                "variable or run 'pyobjsync init'."
            )

        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> ObjectStoreClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def _url(self, bucket: str, *parts: str) -> str:
        path = "/".join(quote(part, safe="/") for part in parts)
        return f"{self.api_url}/buckets/{quote(bucket, safe='')}/{path}"

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            exception: The exception that occurred
            attempt: Current attempt number (0-based)

        Returns:
            True if the request should be retried, False otherwise
        """
        if attempt >= self.max_retries:
            return False

        # Retry on network errors and rate limits (transient failures)
        if isinstance(exception, (StorageNetworkError, StorageRateLimitError)):
            return True

        if isinstance(exception, StorageAPIError) and exception.status_code:
            return 500 <= exception.status_code < 600

        # Don't retry on client errors (authentication, permission, etc.)
        return False

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        # Add jitter: +/- 25% of base delay
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _map_http_error(self, e: httpx.HTTPStatusError) -> StorageAPIError:
        """Convert an HTTP status error to the matching storage error."""
        status_code = e.response.status_code

        if status_code == 401:
            return StorageAuthenticationError(
                "Invalid API key or unauthorized access", status_code
            )
        if status_code == 403:
            return StoragePermissionError(
                "Access forbidden - check your permissions", status_code
            )
        if status_code == 404:
            return StorageNotFoundError("Resource not found", status_code)
        if status_code == 429:
            return StorageRateLimitError(
                "Rate limit exceeded - please try again later",
                status_code,
                retry_after=e.response.headers.get("Retry-After"),
            )

        error_msg = f"API request failed with status {status_code}"
        # Try to extract more details from response body
        try:
            error_data = e.response.json()
        except (ValueError, httpx.ResponseNotRead):
            error_data = None
        if isinstance(error_data, dict):
            msg = (
                error_data.get("message")
                or error_data.get("error")
                or error_data.get("detail")
            )
            if msg:
                error_msg = f"{error_msg}: {msg}"
        return StorageAPIError(error_msg, status_code)

    async def _request(
        self, method: str, url: str, retry: bool = True, **kwargs: Any
    ) -> Any:
        """Make an API request with retry logic.

        Args:
            method: HTTP method
            url: Absolute request URL
            retry: Whether transient failures may be retried. Requests with a
                streamed body cannot be replayed and pass False.
            **kwargs: Additional arguments passed to httpx

        Returns:
            Response JSON data ({} for empty responses)

        Raises:
            StorageAPIError: If the request fails after all retries
        """
        client = self._get_client()
        max_attempts = self.max_retries + 1 if retry else 1

        for attempt in range(max_attempts):
            try:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                error: StorageAPIError = self._map_http_error(e)
                cause: Exception = e
            except httpx.RequestError as e:
                error = StorageNetworkError(f"Network error: {e}")
                cause = e
            else:
                return self._parse_json(response)

            if retry and self._should_retry(error, attempt):
                retry_after = error.extra.get("retry_after")
                if retry_after and str(retry_after).isdigit():
                    delay = float(retry_after)
                else:
                    delay = self._calculate_retry_delay(attempt)
                await asyncio.sleep(delay)
                continue
            raise error from cause

        raise StorageAPIError("Request failed after all retry attempts")

    @staticmethod
    def _parse_json(response: httpx.Response) -> Any:
        if not response.content:
            return {}
        content_type = response.headers.get("Content-Type", "")
        if "application/json" not in content_type:
            raise StorageInvalidResponseError(
                f"Unexpected response type: {content_type}"
            )
        try:
            return response.json()
        except ValueError as e:
            raise StorageInvalidResponseError("Invalid JSON response from server") from e

    # =========================
    # Listing
    # =========================

    async def list_objects(
        self, bucket: str, prefix: str, continuation_token: str | None = None
    ) -> ListPage:
        """List one page of objects under ``prefix``.

        Args:
            bucket: Bucket name
            prefix: Key prefix
            continuation_token: Cursor returned by the previous page

        Returns:
            ListPage with entries sorted by key and the next cursor
        """
        params = {"prefix": prefix}
        if continuation_token:
            params["cursor"] = continuation_token
        data = await self._request("GET", self._url(bucket, "objects"), params=params)
        try:
            return ListPage.from_api_response(data)
        except (KeyError, TypeError, ValueError) as e:
            raise StorageInvalidResponseError(f"Malformed listing response: {e}") from e

    # =========================
    # Object Operations
    # =========================

    async def get_object(self, bucket: str, key: str) -> AsyncIterator[bytes]:
        """Stream the content of an object.

        Yields:
            Chunks of the object body
        """
        client = self._get_client()
        url = self._url(bucket, "objects", key)
        try:
            async with client.stream("GET", url) as response:
                if response.is_error:
                    await response.aread()
                    response.raise_for_status()
                async for chunk in response.aiter_bytes(self.chunk_size):
                    yield chunk
        except httpx.HTTPStatusError as e:
            raise self._map_http_error(e) from e
        except httpx.RequestError as e:
            raise StorageNetworkError(f"Network error during download: {e}") from e

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: AsyncIterable[bytes],
        size: int,
        metadata: dict[str, Any],
    ) -> str:
        """Upload an object in a single request.

        Returns:
            ETag of the stored object
        """
        headers = {"Content-Length": str(size), **_metadata_headers(metadata)}
        headers.setdefault("Content-Type", "application/octet-stream")
        data = await self._request(
            "PUT",
            self._url(bucket, "objects", key),
            retry=False,
            content=body,
            headers=headers,
        )
        return str(data.get("etag", ""))

    async def copy_object(
        self,
        source_bucket: str,
        source_key: str,
        bucket: str,
        key: str,
        metadata: dict[str, Any],
    ) -> None:
        """Server side copy of an object, possibly across buckets."""
        await self._request(
            "POST",
            self._url(bucket, "objects", key, "copy"),
            json={
                "sourceBucket": source_bucket,
                "sourceKey": source_key,
                "metadata": metadata,
            },
        )

    async def delete_object(self, bucket: str, key: str) -> None:
        """Delete an object."""
        await self._request("DELETE", self._url(bucket, "objects", key))

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
        data = await self._request(
            "POST",
            self._url(bucket, "multipart", "create"),
            json={"key": key, "metadata": metadata},
        )
        upload_id = data.get("uploadId")
        if not upload_id:
            raise StorageInvalidResponseError("Failed to initialize multipart upload")
        return str(upload_id)

    async def upload_part(
        self, bucket: str, key: str, upload_id: str, part_number: int, data: bytes
    ) -> str:
        """Upload one part of a multipart session.

        Returns:
            ETag identifying the stored part
        """
        response = await self._request(
            "PUT",
            self._url(bucket, "multipart", upload_id, "parts", str(part_number)),
            params={"key": key},
            content=data,
            headers={
                "Content-Type": "application/octet-stream",
                "Content-Length": str(len(data)),
            },
        )
        etag = str(response.get("etag", "")).strip('"')
        if not etag:
            raise StorageInvalidResponseError(f"No ETag returned for part {part_number}")
        return etag

    async def complete_multipart_upload(
        self, bucket: str, key: str, upload_id: str, parts: list[tuple[int, str]]
    ) -> None:
        """Assemble the uploaded parts into the final object."""
        await self._request(
            "POST",
            self._url(bucket, "multipart", "complete"),
            json={
                "key": key,
                "uploadId": upload_id,
                "parts": [{"PartNumber": n, "ETag": etag} for n, etag in parts],
            },
        )

    async def abort_multipart_upload(
        self, bucket: str, key: str, upload_id: str
    ) -> None:
        """Abort a multipart session and discard its parts."""
        await self._request(
            "POST",
            self._url(bucket, "multipart", "abort"),
            json={"key": key, "uploadId": upload_id},
        )
