#!/usr/bin/env python3
"""
Run one eviction sweep over a proxy cache directory.

Mirrors the sweep the proxy service runs on its timer, but can be executed
manually (e.g. from cron or while the service is stopped) to reclaim disk
space or to report how many entries are stale.
"""

import argparse
import json
from datetime import timedelta
from pathlib import Path
import sys
import os

sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from shared.config import DEFAULT_CACHE_TTL_SECONDS  # noqa: E402
from shared.logging import configure_logging  # noqa: E402
from service_proxy.app.cache.expiry import ExpiryPolicy  # noqa: E402
from service_proxy.app.cache.store import CacheStore  # noqa: E402
from service_proxy.app.cache.sweeper import EvictionSweeper  # noqa: E402


def sweep(*, cache_dir: Path, ttl_seconds: int, dry_run: bool) -> dict:
    """Execute one sweep and return the summary."""
    store = CacheStore(cache_dir).open()
    try:
        sweeper = EvictionSweeper(store, ExpiryPolicy(timedelta(seconds=ttl_seconds)))
        before = store.stats()
        result = sweeper.sweep_once(dry_run=dry_run)
        after = store.stats()
    finally:
        store.close()

    return {
        "cache_dir": str(cache_dir),
        "ttl_seconds": ttl_seconds,
        "dry_run": dry_run,
        "entries_before": before["entries"],
        "entries_after": after["entries"],
        "bytes_before": before["total_bytes"],
        "bytes_after": after["total_bytes"],
        **result.to_dict(),
    }


def _default_ttl() -> int:
    try:
        value = int(os.getenv("CACHE_TTL_SECONDS", DEFAULT_CACHE_TTL_SECONDS))
    except ValueError:
        return DEFAULT_CACHE_TTL_SECONDS
    return value if value > 0 else DEFAULT_CACHE_TTL_SECONDS


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Remove stale entries from a proxy cache directory.")
    parser.add_argument("--cache-dir", type=Path, default=Path(os.getenv("PROXY_CACHE_DIR", "./cache")), help="Cache directory")
    parser.add_argument("--ttl", type=int, default=_default_ttl(), help="Entry time-to-live in seconds")
    parser.add_argument("--dry-run", action="store_true", help="Count stale entries without deleting them")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to write JSON summary")
    parser.add_argument("--log-level", default=os.getenv("PROXY_LOG_LEVEL", "warning"), help="Log level")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = _parse_args(argv)
    configure_logging("proxy", args.log_level)

    if args.ttl <= 0:
        print("[cache-sweep] --ttl must be positive", file=sys.stderr)
        return 2
    if not args.cache_dir.is_dir():
        print(f"[cache-sweep] no cache directory at {args.cache_dir}", file=sys.stderr)
        return 1

    try:
        summary = sweep(cache_dir=args.cache_dir, ttl_seconds=args.ttl, dry_run=args.dry_run)
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[cache-sweep] failed: {exc}", file=sys.stderr)
        return 1

    if args.dry_run:
        print("[cache-sweep] DRY RUN - no entries removed")

    print(json.dumps(summary, indent=2))

    if args.output:
        args.output.write_text(json.dumps(summary, indent=2))

    return 0 if summary["errors"] == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
