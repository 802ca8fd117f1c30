"""
End-to-end tests for the caching proxy: request path, expiry and sweeping.
"""

import pytest
import asyncio
from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_proxy.app.cache.keys import derive_key
from service_proxy.app.main import ProxyService
from shared.test_helpers import FakeClock, UpstreamStub, make_test_config


TTL_SECONDS = 60


class TestProxyFlow:
    """End-to-end tests against an in-process upstream."""

    @pytest.fixture
    def upstream(self):
        """Create upstream stub."""
        stub = UpstreamStub()
        stub.add_json("/a", {"resource": "a"})
        stub.add_json("/b", {"resource": "b"})
        stub.add_text("/c", "plain c", content_type="text/plain; charset=utf-8")
        return stub

    @pytest.fixture
    def clock(self):
        """Create fake clock."""
        return FakeClock()

    @pytest.fixture
    def service(self, tmp_path, upstream, clock):
        """Create ProxyService with a short TTL."""
        return ProxyService(
            make_test_config(tmp_path / "cache", cache_ttl_seconds=TTL_SECONDS),
            transport=upstream.transport(),
            clock=clock,
        )

    def _get(self, client, path):
        return client.get("/proxy", params={"url": f"http://example.test{path}"})

    def test_hit_within_ttl_and_refetch_after(self, service, upstream, clock):
        """Test MISS, HIT, then a fresh fetch once the entry is older than the TTL."""
        with TestClient(service.app) as client:
            assert self._get(client, "/a").headers["x-cache"] == "MISS"

            clock.advance(TTL_SECONDS - 1)
            hit = self._get(client, "/a")
            assert hit.headers["x-cache"] == "HIT"
            assert hit.json() == {"resource": "a"}
            assert upstream.call_count == 1

            clock.advance(2)
            refreshed = self._get(client, "/a")
            assert refreshed.headers["x-cache"] == "MISS"
            assert upstream.call_count == 2

            assert self._get(client, "/a").headers["x-cache"] == "HIT"
            assert upstream.call_count == 2

    def test_distinct_urls_cached_independently(self, service, upstream):
        """Test each URL gets its own entry and content type."""
        with TestClient(service.app) as client:
            for path in ("/a", "/b", "/c"):
                self._get(client, path)
            responses = {path: self._get(client, path) for path in ("/a", "/b", "/c")}

        assert upstream.call_count == 3
        assert all(r.headers["x-cache"] == "HIT" for r in responses.values())
        assert responses["/b"].json() == {"resource": "b"}
        assert responses["/c"].text == "plain c"
        assert responses["/c"].headers["content-type"] == "text/plain; charset=utf-8"

    def test_sweep_removes_only_stale_entries(self, service, clock):
        """Test a sweep evicts entries older than the TTL and keeps the rest."""
        with TestClient(service.app) as client:
            self._get(client, "/a")
            self._get(client, "/b")
            clock.advance(TTL_SECONDS + 1)
            self._get(client, "/c")

            result = service.sweeper.sweep_once()

            assert result.evicted == 2
            assert service.store.list_keys() == [derive_key("GET", "http://example.test/c")]
            assert self._get(client, "/c").headers["x-cache"] == "HIT"

    def test_sweeper_runs_on_interval(self, tmp_path, upstream, clock):
        """Test the background sweep fires without any request."""
        service = ProxyService(
            make_test_config(tmp_path / "cache", sweep_interval_seconds=0.05),
            transport=upstream.transport(),
            clock=clock,
        )
        service.store.set(derive_key("GET", "http://example.test/a"), b"old")
        clock.advance(TTL_SECONDS + 1)

        async def run():
            await service.start()
            try:
                for _ in range(100):
                    if not service.store.list_keys():
                        break
                    await asyncio.sleep(0.02)
            finally:
                await service.stop()

        asyncio.run(run())

        service.store.open()
        assert service.store.list_keys() == []
        assert service.sweeper.last_result is not None
        assert service.sweeper.last_result.evicted == 1

    def test_cache_survives_restart(self, tmp_path, upstream, clock):
        """Test entries on disk are served by a new process."""
        config = make_test_config(tmp_path / "cache")
        first = ProxyService(config, transport=upstream.transport(), clock=clock)
        with TestClient(first.app) as client:
            self._get(client, "/a")

        second = ProxyService(config, transport=upstream.transport(), clock=clock)
        with TestClient(second.app) as client:
            response = self._get(client, "/a")

        assert response.headers["x-cache"] == "HIT"
        assert upstream.call_count == 1
