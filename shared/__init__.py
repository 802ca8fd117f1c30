"""
Shared utilities for the caching proxy.

This package aggregates common building blocks consumed by the proxy
service, its scripts and mocks:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Error types and their HTTP status mapping
- base_service: FastAPI application scaffolding
- test_helpers: Fake clock, upstream stub and config factories

Do not import from service_proxy into shared/.
"""
