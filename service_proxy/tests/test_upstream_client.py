"""
Unit tests for the upstream HTTP client.
"""

import json
import pytest
import httpx

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_proxy.app.adapters.upstream_client import UpstreamClient, UpstreamResponse, filter_headers, REQUEST_SKIP_HEADERS
from shared.errors import BadRequestError, UpstreamUnavailableError
from shared.metrics import MetricsCollector
from shared.test_helpers import UpstreamStub


class TestUpstreamClient:
    """Test cases for UpstreamClient."""

    @pytest.fixture
    def upstream(self):
        """Create upstream stub."""
        stub = UpstreamStub()
        stub.add_json("/data", {"value": 42}, headers={"X-Upstream": "yes"})
        return stub

    @pytest.fixture
    def metrics(self):
        """Create metrics collector."""
        return MetricsCollector("proxy")

    @pytest.fixture
    def client(self, upstream, metrics):
        """Create UpstreamClient instance."""
        return UpstreamClient(timeout=5.0, transport=upstream.transport(), metrics=metrics)

    @pytest.mark.asyncio
    async def test_fetch_success(self, client, upstream, metrics):
        """Test body, status and headers are returned."""
        response = await client.fetch("GET", "http://example.test/data")

        assert response.status_code == 200
        assert json.loads(response.body) == {"value": 42}
        assert response.content_type == "application/json"
        assert ("x-upstream", "yes") in [(k.lower(), v) for k, v in response.headers]
        assert metrics.sample_value("upstream_requests_total", outcome="success") == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_fetch_forwards_method_and_headers(self, client, upstream):
        """Test original method and client headers reach the upstream."""
        await client.fetch(
            "GET",
            "http://example.test/data",
            [("Authorization", "Bearer abc"), ("X-Trace", "1"), ("X-Trace", "2"), ("Host", "proxy.local")],
        )

        sent = upstream.requests[0]
        assert sent.method == "GET"
        assert sent.headers["authorization"] == "Bearer abc"
        assert sent.headers.get_list("x-trace") == ["1", "2"]
        assert sent.headers["host"] == "example.test"
        await client.close()

    @pytest.mark.asyncio
    async def test_latin1_header_value_forwarded_unchanged(self, client, upstream):
        """Test obs-text header bytes reach the upstream as received."""
        response = await client.fetch("GET", "http://example.test/data", [("X-Name", "caf\xe9")])

        assert response.status_code == 200
        assert (b"x-name", b"caf\xe9") in [(k.lower(), v) for k, v in upstream.requests[0].headers.raw]
        await client.close()

    @pytest.mark.asyncio
    async def test_unencodable_header_value(self, client, upstream):
        """Test header text outside latin-1 is rejected as a bad request."""
        with pytest.raises(BadRequestError):
            await client.fetch("GET", "http://example.test/data", [("X-Name", "\u2603")])

        assert upstream.call_count == 0
        await client.close()

    @pytest.mark.asyncio
    async def test_non_2xx_is_not_an_error(self, client):
        """Test upstream error statuses are returned, not raised."""
        response = await client.fetch("GET", "http://example.test/missing")

        assert response.status_code == 404
        await client.close()

    @pytest.mark.asyncio
    async def test_transport_failure(self, client, upstream, metrics):
        """Test connection errors map to UpstreamUnavailableError."""
        upstream.fail_with = httpx.ConnectError("connection refused")

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await client.fetch("GET", "http://example.test/data")

        assert exc_info.value.status_code == 502
        assert exc_info.value.details["url"] == "http://example.test/data"
        assert metrics.sample_value("upstream_requests_total", outcome="error") == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_timeout(self, client, upstream):
        """Test timeouts map to UpstreamUnavailableError."""
        upstream.fail_with = httpx.ReadTimeout("timed out")

        with pytest.raises(UpstreamUnavailableError):
            await client.fetch("GET", "http://example.test/data")
        await client.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", ["not-a-url", "ftp://example.test/file"])
    async def test_invalid_url(self, client, url):
        """Test unusable URLs are rejected as bad requests."""
        with pytest.raises(BadRequestError):
            await client.fetch("GET", url)
        await client.close()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, client):
        """Test close without requests."""
        await client.close()
        await client.close()


class TestHeaderFiltering:
    """Test cases for header filtering."""

    def test_request_skip_headers(self):
        """Test hop-by-hop and framing headers are dropped."""
        headers = [
            ("Host", "proxy"),
            ("Connection", "keep-alive"),
            ("Content-Length", "10"),
            ("Accept-Encoding", "br"),
            ("Accept", "application/json"),
        ]

        assert filter_headers(headers, REQUEST_SKIP_HEADERS) == [("Accept", "application/json")]

    def test_content_type_lookup(self):
        """Test content type is read case-insensitively."""
        response = UpstreamResponse(200, b"", [("content-TYPE", "text/csv")])
        assert response.content_type == "text/csv"

    def test_content_type_missing(self):
        """Test missing content type."""
        assert UpstreamResponse(200, b"").content_type is None
