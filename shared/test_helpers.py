"""
Test helper functions and factory methods for the caching proxy.
"""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx

from shared.config import ProxyConfig


class FakeClock:
    """Manually advanced clock; call it to read the current time."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class UpstreamStub:
    """Handler for :class:`httpx.MockTransport` that records upstream calls.

    Responses are looked up by URL path; unknown paths answer 404. Set
    ``fail_with`` to an httpx exception to simulate a transport failure.
    """

    def __init__(self, routes: Optional[Dict[str, httpx.Response]] = None):
        self.routes: Dict[str, httpx.Response] = routes or {}
        self.requests: List[httpx.Request] = []
        self.fail_with: Optional[Exception] = None

    def add_json(self, path: str, payload: Any, status_code: int = 200, headers: Optional[Dict[str, str]] = None):
        self.routes[path] = httpx.Response(status_code, json=payload, headers=headers)

    def add_text(self, path: str, text: str, status_code: int = 200, content_type: str = "text/plain"):
        self.routes[path] = httpx.Response(status_code, content=text.encode(), headers={"Content-Type": content_type})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        template = self.routes.get(request.url.path)
        if template is None:
            return httpx.Response(404, text="not found")
        return httpx.Response(
            template.status_code,
            content=template.content,
            headers=template.headers,
        )

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class ProxyTestData:
    """Factory for creating test data."""

    @staticmethod
    def create_test_payloads() -> List[bytes]:
        """Payloads covering empty, text, JSON and binary bodies."""
        return [
            b"",
            b"hello",
            json.dumps({"id": "item-1", "values": list(range(50))}).encode(),
            bytes(range(256)) * 8,
        ]

    @staticmethod
    def create_test_urls() -> List[str]:
        return [
            "http://example.test/data",
            "http://example.test/data/",
            "http://example.test/data?a=1&b=2",
            "http://example.test/data?b=2&a=1",
            "https://example.test/data",
        ]


def make_test_config(cache_dir: Union[str, Path], **overrides) -> ProxyConfig:
    """Config pinned to ``cache_dir`` and isolated from the developer's ``.env``."""
    settings: Dict[str, Any] = {
        "cache_dir": str(cache_dir),
        "cache_ttl_seconds": 60,
        "sweep_interval_seconds": 3600,
        "log_level": "warning",
    }
    settings.update(overrides)
    return ProxyConfig(_env_file=None, **settings)


def write_raw_entry(cache_dir: Union[str, Path], key: str, raw: bytes) -> Path:
    """Drop arbitrary bytes where the store expects an entry."""
    path = Path(cache_dir) / f"{key}.gz"
    path.write_bytes(raw)
    return path
