"""
Adapters package for the proxy service.

Contains the HTTP client that performs the upstream call on a cache miss.
Keep adapters thin and side-effect free outside of explicit calls.
"""

from .upstream_client import UpstreamClient, UpstreamResponse

__all__ = [
    "UpstreamClient",
    "UpstreamResponse",
]
