"""Unit tests for the object storage API client."""

import asyncio
import json
from unittest.mock import patch

import httpx
import pytest

from pyobjsync.api import ObjectStoreClient
from pyobjsync.exceptions import (
    StorageAPIError,
    StorageAuthenticationError,
    StorageConfigError,
    StorageInvalidResponseError,
    StorageNetworkError,
    StorageNotFoundError,
    StoragePermissionError,
    StorageRateLimitError,
)

API_URL = "http://gateway.test/api/v1"


def make_client(handler, **kwargs):
    kwargs.setdefault("retry_delay", 0.0)
    return ObjectStoreClient(
        api_key="test_key",
        api_url=API_URL,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def run(client, coro_factory):
    """Run a coroutine against the client and close it afterwards."""

    async def _run():
        async with client:
            return await coro_factory()

    return asyncio.run(_run())


class TestObjectStoreClient:
    """Tests for client initialization."""

    def test_init_with_api_key(self):
        """Test client initialization with API key."""
        client = ObjectStoreClient(api_key="test_key", api_url=API_URL + "/")
        assert client.api_key == "test_key"
        assert client.api_url == API_URL

    def test_init_without_api_key_raises_error(self):
        """Test that initializing without API key raises error."""
        with patch("pyobjsync.api.config") as mock_config:
            mock_config.api_key = None
            mock_config.api_url = API_URL
            with pytest.raises(StorageConfigError, match="API key not configured"):
                ObjectStoreClient(api_key=None)

    def test_authorization_header(self):
        """Test that requests carry the bearer token."""
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={"entries": []})

        client = make_client(handler)
        run(client, lambda: client.list_objects("bkt", ""))
        assert seen["auth"] == "Bearer test_key"


class TestAPIRequest:
    """Tests for retry and error mapping."""

    @pytest.mark.parametrize(
        "status,error_class",
        [
            (401, StorageAuthenticationError),
            (403, StoragePermissionError),
            (404, StorageNotFoundError),
        ],
    )
    def test_client_errors_not_retried(self, status, error_class):
        """Test that 4xx errors are mapped and not retried."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(status)

        client = make_client(handler)
        with pytest.raises(error_class) as exc_info:
            run(client, lambda: client.delete_object("bkt", "a"))
        assert exc_info.value.status_code == status
        assert len(calls) == 1

    def test_server_error_retried(self):
        """Test that 5xx responses are retried until success."""
        responses = [httpx.Response(503), httpx.Response(502), httpx.Response(204)]
        calls = []

        def handler(request):
            calls.append(request)
            return responses[len(calls) - 1]

        client = make_client(handler)
        run(client, lambda: client.delete_object("bkt", "a"))
        assert len(calls) == 3

    def test_retries_exhausted(self):
        """Test that the last error is raised after all retries."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, json={"message": "disk full"})

        client = make_client(handler, max_retries=2)
        with pytest.raises(StorageAPIError, match="disk full"):
            run(client, lambda: client.delete_object("bkt", "a"))
        assert len(calls) == 3

    def test_rate_limit_honors_retry_after(self):
        """Test that Retry-After is used as the retry delay."""
        responses = [
            httpx.Response(429, headers={"Retry-After": "0"}),
            httpx.Response(204),
        ]
        calls = []

        def handler(request):
            calls.append(request)
            return responses[len(calls) - 1]

        client = make_client(handler)
        run(client, lambda: client.delete_object("bkt", "a"))
        assert len(calls) == 2

    def test_rate_limit_error(self):
        """Test that a persistent 429 raises StorageRateLimitError."""
        client = make_client(
            lambda request: httpx.Response(429, headers={"Retry-After": "0"}),
            max_retries=0,
        )
        with pytest.raises(StorageRateLimitError) as exc_info:
            run(client, lambda: client.delete_object("bkt", "a"))
        assert exc_info.value.extra["retry_after"] == "0"

    def test_network_error(self):
        """Test that transport errors are mapped to StorageNetworkError."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler, max_retries=1)
        with pytest.raises(StorageNetworkError, match="connection refused"):
            run(client, lambda: client.delete_object("bkt", "a"))

    def test_html_response_raises_error(self):
        """Test that a non-JSON body is an invalid response."""
        client = make_client(
            lambda request: httpx.Response(
                200, text="<html></html>", headers={"Content-Type": "text/html"}
            )
        )
        with pytest.raises(StorageInvalidResponseError, match="text/html"):
            run(client, lambda: client.list_objects("bkt", ""))

    def test_retry_delay_grows(self):
        """Test exponential backoff with jitter bounds."""
        client = ObjectStoreClient(api_key="k", api_url=API_URL, retry_delay=1.0)
        assert 0.75 <= client._calculate_retry_delay(0) <= 1.25
        assert 3.0 <= client._calculate_retry_delay(2) <= 5.0


class TestListObjects:
    """Tests for list_objects."""

    def test_list_objects_params(self):
        """Test prefix and cursor parameters and page parsing."""
        seen = []

        def handler(request):
            seen.append(request.url)
            return httpx.Response(
                200,
                json={
                    "entries": [
                        {
                            "key": "p/a.txt",
                            "size": 3,
                            "last_modified": "2025-01-15T10:30:00Z",
                        }
                    ],
                    "next_cursor": "next-page",
                },
            )

        client = make_client(handler)
        page = run(client, lambda: client.list_objects("bkt", "p/", "cur"))

        assert seen[0].path == "/api/v1/buckets/bkt/objects"
        assert seen[0].params["prefix"] == "p/"
        assert seen[0].params["cursor"] == "cur"
        assert page.next_token == "next-page"
        assert page.entries[0].key == "p/a.txt"

    def test_malformed_listing(self):
        """Test that a listing without keys is an invalid response."""
        client = make_client(
            lambda request: httpx.Response(
                200, json={"entries": [{"size": 1, "last_modified": "2025-01-01"}]}
            )
        )
        with pytest.raises(StorageInvalidResponseError, match="Malformed"):
            run(client, lambda: client.list_objects("bkt", ""))


class TestObjectOperations:
    """Tests for get/put/copy."""

    def test_get_object_streams(self):
        """Test that object bodies are streamed in chunks."""

        def handler(request):
            assert request.url.raw_path == b"/api/v1/buckets/bkt/objects/dir/a%20b.txt"
            return httpx.Response(200, content=b"x" * 10)

        client = make_client(handler, chunk_size=4)

        async def fetch():
            return [chunk async for chunk in client.get_object("bkt", "dir/a b.txt")]

        chunks = run(client, fetch)
        assert b"".join(chunks) == b"x" * 10

    def test_get_object_not_found(self):
        """Test that a missing object is mapped while streaming."""
        client = make_client(lambda request: httpx.Response(404))

        async def fetch():
            return [chunk async for chunk in client.get_object("bkt", "a")]

        with pytest.raises(StorageNotFoundError):
            run(client, fetch)

    def test_put_object_headers(self):
        """Test that metadata becomes request headers."""
        seen = {}

        def handler(request):
            seen["headers"] = request.headers
            seen["body"] = request.read()
            return httpx.Response(200, json={"etag": "abc"})

        async def body():
            yield b"hello "
            yield b"world"

        client = make_client(handler)
        etag = run(
            client,
            lambda: client.put_object(
                "bkt",
                "a.txt",
                body(),
                11,
                {
                    "content_type": "text/plain",
                    "cache_control": "no-cache",
                    "metadata": {"owner": "ci"},
                },
            ),
        )

        assert etag == "abc"
        assert seen["body"] == b"hello world"
        assert seen["headers"]["Content-Type"] == "text/plain"
        assert seen["headers"]["Cache-Control"] == "no-cache"
        assert seen["headers"]["X-Meta-owner"] == "ci"

    def test_put_object_not_retried(self):
        """Test that a streamed upload is never replayed."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        async def body():
            yield b"x"

        client = make_client(handler)
        with pytest.raises(StorageAPIError):
            run(client, lambda: client.put_object("bkt", "a", body(), 1, {}))
        assert len(calls) == 1

    def test_copy_object(self):
        """Test the server side copy request."""
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["json"] = json.loads(request.content)
            return httpx.Response(200, json={})

        client = make_client(handler)
        run(client, lambda: client.copy_object("src", "a", "dst", "b/a", {}))

        assert seen["path"] == "/api/v1/buckets/dst/objects/b/a/copy"
        assert seen["json"] == {"sourceBucket": "src", "sourceKey": "a", "metadata": {}}


class TestMultipart:
    """Tests for multipart endpoints."""

    def test_multipart_flow(self):
        """Test create, upload part and complete requests."""
        requests_seen = []

        def handler(request):
            requests_seen.append(request)
            path = request.url.path
            if path.endswith("/multipart/create"):
                return httpx.Response(200, json={"uploadId": "u1"})
            if "/parts/" in path:
                return httpx.Response(200, json={"etag": '"e1"'})
            return httpx.Response(200, json={})

        client = make_client(handler)

        async def flow():
            upload_id = await client.create_multipart_upload("bkt", "big", {})
            etag = await client.upload_part("bkt", "big", upload_id, 1, b"data")
            await client.complete_multipart_upload("bkt", "big", upload_id, [(1, etag)])
            return upload_id, etag

        upload_id, etag = run(client, flow)

        assert upload_id == "u1"
        assert etag == "e1"
        part_request = requests_seen[1]
        assert part_request.url.path == "/api/v1/buckets/bkt/multipart/u1/parts/1"
        assert part_request.url.params["key"] == "big"
        assert json.loads(requests_seen[2].content) == {
            "key": "big",
            "uploadId": "u1",
            "parts": [{"PartNumber": 1, "ETag": "e1"}],
        }

    def test_create_without_upload_id(self):
        """Test that a create response without uploadId is invalid."""
        client = make_client(lambda request: httpx.Response(200, json={}))
        with pytest.raises(StorageInvalidResponseError):
            run(client, lambda: client.create_multipart_upload("bkt", "big", {}))

    def test_abort(self):
        """Test the abort request body."""
        seen = {}

        def handler(request):
            seen["json"] = json.loads(request.content)
            return httpx.Response(204)

        client = make_client(handler)
        run(client, lambda: client.abort_multipart_upload("bkt", "big", "u1"))
        assert seen["json"] == {"key": "big", "uploadId": "u1"}
