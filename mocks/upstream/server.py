"""
Mock upstream server for exercising the caching proxy locally.

Point the proxy at it with ``/proxy?url=http://localhost:9000/data`` and
watch ``served`` in the body: it only increments on cache misses.
"""

import time
from typing import Dict
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from shared.logging import get_logger


class MockUpstreamServer:
    """Deterministic upstream with per-path request counters."""

    def __init__(self, port: int = 9000):
        self.port = port
        self.logger = get_logger("mock.upstream")
        self.app = FastAPI(title="Mock Upstream", version="1.0.0")
        self.hits: Dict[str, int] = {}

        self._setup_routes()

    def _count(self, path: str) -> int:
        self.hits[path] = self.hits.get(path, 0) + 1
        return self.hits[path]

    def _setup_routes(self):
        """Set up mock routes."""

        @self.app.get("/data")
        async def data(request: Request):
            """JSON payload; ``served`` counts upstream calls."""
            served = self._count("/data")
            self.logger.info("Served data", served=served)
            return {
                "message": "hello from upstream",
                "served": served,
                "query": dict(request.query_params),
                "generated_at": time.time(),
            }

        @self.app.get("/text")
        async def text():
            """Non-JSON payload, to check content type survives a cache hit."""
            served = self._count("/text")
            return PlainTextResponse(f"plain text response #{served}\n")

        @self.app.get("/slow")
        async def slow(seconds: float = 5.0):
            """Sleeps before answering; use to exercise the upstream timeout."""
            import asyncio
            await asyncio.sleep(seconds)
            return {"slept": seconds, "served": self._count("/slow")}

        @self.app.get("/status/{code}")
        async def status(code: int):
            """Answers with an arbitrary status code."""
            self._count(f"/status/{code}")
            if code >= 400:
                raise HTTPException(status_code=code, detail=f"mock status {code}")
            return JSONResponse(status_code=code, content={"status": code})

        @self.app.get("/stats")
        async def stats():
            return {"hits": self.hits}


def create_app():
    """Create mock upstream application."""
    server = MockUpstreamServer()
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=9000)
