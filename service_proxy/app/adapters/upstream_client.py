"""
Upstream HTTP client for the proxy.
"""

import time
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple, TYPE_CHECKING

import httpx

from shared.logging import get_logger
from shared.errors import BadRequestError, UpstreamUnavailableError

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
})

# httpx negotiates and decodes content encoding itself
REQUEST_SKIP_HEADERS = HOP_BY_HOP_HEADERS | {"host", "content-length", "accept-encoding"}
RESPONSE_SKIP_HEADERS = HOP_BY_HOP_HEADERS | {"content-length", "content-encoding"}


def filter_headers(headers: Iterable[Tuple[str, str]], skip: frozenset) -> List[Tuple[str, str]]:
    """Drop headers that must not cross the proxy, keeping repeated values."""
    return [(name, value) for name, value in headers if name.lower() not in skip]


def _encode_headers(headers: List[Tuple[str, str]]) -> List[Tuple[bytes, bytes]]:
    # Inbound values arrive latin-1 decoded; httpx would encode str values as ASCII
    try:
        return [(name.encode("latin-1"), value.encode("latin-1")) for name, value in headers]
    except UnicodeEncodeError as exc:
        raise BadRequestError(f"invalid header value: {exc}")


@dataclass
class UpstreamResponse:
    """Fully-read upstream response."""
    status_code: int
    body: bytes
    headers: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def content_type(self) -> Optional[str]:
        for name, value in self.headers:
            if name.lower() == "content-type":
                return value
        return None


class UpstreamClient:
    """Issues the forwarded request on a cache miss.

    TLS certificates are verified unless ``verify_tls`` is switched off
    explicitly. Every request is bounded by ``timeout`` seconds.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        verify_tls: bool = True,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.timeout = timeout
        self.verify_tls = verify_tls
        self.metrics = metrics
        self.logger = get_logger("proxy.upstream_client")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        if not verify_tls:
            self.logger.warning("Upstream TLS certificate verification is disabled")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                verify=self.verify_tls,
                transport=self._transport,
                follow_redirects=False,
            )
        return self._client

    async def fetch(
        self,
        method: str,
        url: str,
        headers: Iterable[Tuple[str, str]] = (),
    ) -> UpstreamResponse:
        """Forward ``method url`` with the caller's headers and read the whole body.

        Raises:
            BadRequestError: ``url`` is not a usable absolute http(s) URL.
            UpstreamUnavailableError: Transport failure or timeout.
        """
        target = self._parse_target(url)
        forward_headers = _encode_headers(filter_headers(headers, REQUEST_SKIP_HEADERS))
        start_time = time.time()

        try:
            response = await self._get_client().request(method, target, headers=forward_headers)
        except httpx.HTTPError as exc:
            duration = time.time() - start_time
            self._record("error", duration)
            self.logger.error(
                "Upstream request failed",
                method=method,
                url=url,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise UpstreamUnavailableError(url, f"proxy request failed: {exc}")

        duration = time.time() - start_time
        self._record("success", duration)
        self.logger.debug(
            "Upstream response received",
            method=method,
            url=url,
            status_code=response.status_code,
            size=len(response.content),
            duration_ms=round(duration * 1000, 2),
        )

        return UpstreamResponse(
            status_code=response.status_code,
            body=response.content,
            headers=filter_headers(response.headers.multi_items(), RESPONSE_SKIP_HEADERS),
        )

    def _parse_target(self, url: str) -> httpx.URL:
        try:
            target = httpx.URL(url)
        except httpx.InvalidURL as exc:
            raise BadRequestError(f"invalid url parameter: {exc}", {"url": url})
        if target.scheme not in ("http", "https") or not target.host:
            raise BadRequestError("url parameter must be an absolute http(s) URL", {"url": url})
        return target

    def _record(self, outcome: str, duration: float):
        if self.metrics:
            self.metrics.record_upstream_request(outcome, duration)

    async def close(self):
        """Close the underlying connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
