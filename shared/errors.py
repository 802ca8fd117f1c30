"""
Shared error handling for the caching proxy.
"""

from typing import Dict, Any, Optional


class ProxyException(Exception):
    """Base exception for proxy request failures."""

    status_code = 500

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Structured form used for logging."""
        return {
            "code": self.code,
            "message": self.message,
            "status_code": self.status_code,
            "details": self.details,
        }


class BadRequestError(ProxyException):
    """Missing or invalid request input."""

    status_code = 400

    def __init__(self, message: str = "Bad request", details: Optional[Dict[str, Any]] = None):
        super().__init__("BAD_REQUEST", message, details)


class InternalError(ProxyException):
    """Unexpected cache or internal fault."""

    status_code = 500

    def __init__(self, message: str = "Internal error", details: Optional[Dict[str, Any]] = None):
        super().__init__("INTERNAL_ERROR", message, details)


class UpstreamUnavailableError(ProxyException):
    """Upstream could not be reached."""

    status_code = 502

    def __init__(self, url: str, message: str = "Upstream unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("UPSTREAM_UNAVAILABLE", message, {"url": url, **(details or {})})
