"""
Caching proxy service package.

Forwards ``/proxy?url=...`` requests upstream and keeps the responses in a
compressed on-disk cache for a configurable TTL.

Structure:
- app.main: FastAPI app, routes, lifecycle wiring.
- app.cache: Key derivation, disk store, expiry policy and sweeper.
- app.adapters: Upstream HTTP client.
- app.domain: Request orchestration (lookup, fetch, store, respond).
"""
