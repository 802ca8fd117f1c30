"""
Caching proxy service.
"""

from datetime import datetime
from typing import Callable, Dict, Optional

import httpx
from fastapi import Query, Request, Response
from starlette.concurrency import run_in_threadpool

from shared.base_service import BaseService
from shared.config import ProxyConfig
from shared.logging import get_logger

from .adapters.upstream_client import UpstreamClient
from .cache.expiry import ExpiryPolicy
from .cache.store import CacheStore, CacheStoreError, utc_now
from .cache.sweeper import EvictionSweeper
from .domain.orchestrator import ProxyOrchestrator


class ProxyService(BaseService):
    """Caching proxy service implementation.

    Args:
        config: Settings; read from the environment when omitted.
        transport: Optional httpx transport for the upstream client
            (tests pass :class:`httpx.MockTransport`).
        clock: Time source shared by the store, the expiry checks and the
            sweeper.

    Raises:
        CacheStoreError: The cache directory cannot be created.
    """

    def __init__(
        self,
        config: Optional[ProxyConfig] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__("proxy", config)

        self.store = CacheStore(self.config.cache_dir, clock=clock)
        self.store.open()
        self.policy = ExpiryPolicy(self.config.cache_ttl)

        self.upstream = UpstreamClient(
            timeout=self.config.upstream_timeout_seconds,
            verify_tls=self.config.upstream_verify_tls,
            transport=transport,
            metrics=self.metrics,
        )
        self.orchestrator = ProxyOrchestrator(
            self.store,
            self.policy,
            self.upstream,
            vary_headers=self.config.vary_headers,
            cache_error_responses=self.config.cache_error_responses,
            metrics=self.metrics,
        )
        self.sweeper = EvictionSweeper(
            self.store,
            self.policy,
            interval_seconds=self.config.sweep_interval_seconds,
            metrics=self.metrics,
        )

        self._setup_proxy_routes()

        self.app.state.proxy_service = self

    def _setup_proxy_routes(self):
        """Set up proxy-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "proxy",
                "message": "Caching forward proxy",
                "version": "1.0.0",
                "forward_methods": self.config.forward_method_list,
                "cache_ttl_seconds": self.config.cache_ttl_seconds,
            }

        async def proxy(request: Request, url: Optional[str] = Query(default=None)):
            """Serve ``url`` from the cache or forward it upstream."""
            result = await self.orchestrator.handle(request.method, url, request.headers.items())

            response = Response(content=result.body, status_code=result.status_code)
            for name, value in result.headers:
                response.headers.append(name, value)
            return response

        self.app.add_api_route(
            "/proxy",
            proxy,
            methods=self.config.forward_method_list,
            response_class=Response,
        )

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check proxy dependencies."""
        return {
            "cache_store": "ok" if self.store.is_open else "error",
            "sweeper": "ok" if self.sweeper.running else "stopped",
        }

    async def _health_details(self) -> Dict[str, object]:
        if not self.store.is_open:
            return {}
        try:
            stats = await run_in_threadpool(self.store.stats)
        except CacheStoreError as exc:
            return {"cache": {"error": str(exc)}}
        return {"cache": stats}

    async def start(self):
        """Start proxy background components."""
        if not self.store.is_open:
            await run_in_threadpool(self.store.open)
        await self.sweeper.start()

        self.logger.info(
            "Proxy service started",
            port=self.config.port,
            cache_dir=self.config.cache_dir,
            cache_ttl_seconds=self.config.cache_ttl_seconds,
            sweep_interval_seconds=self.config.sweep_interval_seconds,
        )

    async def stop(self):
        """Stop proxy background components."""
        await self.sweeper.stop()
        await self.upstream.close()
        await run_in_threadpool(self.store.close)

        self.logger.info("Proxy service stopped")


def create_app(config: Optional[ProxyConfig] = None, **kwargs):
    """Create proxy service application."""
    service = ProxyService(config, **kwargs)
    return service.app


def main() -> int:
    try:
        service = ProxyService()
    except CacheStoreError as exc:
        get_logger("proxy.main").critical("Failed to create cache", error=str(exc))
        return 1

    service.logger.info(
        "Starting proxy server",
        port=service.config.port,
        cache_ttl_seconds=service.config.cache_ttl_seconds,
    )
    service.run()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
