"""
Compressed on-disk store for proxied responses.

Each entry lives in ``<cache_dir>/<key>.gz`` as a gzip-compressed JSON
document::

    {"data": "<base64 body>", "timestamp": "<ISO-8601 UTC>",
     "content_type": "application/json", "status_code": 200}

Writes land in a temporary file in the same directory and are moved over
the target with :func:`os.replace`, so a reader sees either the previous
entry or the new one, never a partial file. A single store-wide
:class:`~service_proxy.app.cache.rwlock.ReadWriteLock` serializes writes
against all reads; unrelated keys therefore contend during writes. That is
the known scalability limit of this store.
"""

import base64
import binascii
import gzip
import json
import os
import tempfile
import zlib
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from shared.logging import get_logger
from .keys import is_valid_key
from .rwlock import ReadWriteLock


ENTRY_SUFFIX = ".gz"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CacheStoreError(OSError):
    """Storage-layer fault (permissions, disk, closed store)."""


class CacheCorruptionError(CacheStoreError):
    """Entry exists but cannot be decoded (truncated or garbage file)."""


@dataclass
class CacheEntry:
    """A cached upstream response."""
    key: str
    payload: bytes
    stored_at: datetime
    content_type: Optional[str] = None
    status_code: int = 200


def encode_entry(entry: CacheEntry) -> bytes:
    """Serialize and compress an entry as one unit."""
    document = {
        "data": base64.b64encode(entry.payload).decode("ascii"),
        "timestamp": entry.stored_at.isoformat(),
        "content_type": entry.content_type,
        "status_code": entry.status_code,
    }
    return gzip.compress(json.dumps(document).encode("utf-8"))


def decode_entry(key: str, raw: bytes) -> CacheEntry:
    """Inverse of :func:`encode_entry`; raises :class:`CacheCorruptionError`."""
    try:
        document = json.loads(gzip.decompress(raw).decode("utf-8"))
        payload = base64.b64decode(document["data"], validate=True)
        stored_at = datetime.fromisoformat(document["timestamp"])
        status_code = int(document.get("status_code") or 200)
        content_type = document.get("content_type")
    except (OSError, EOFError, zlib.error, ValueError, KeyError, TypeError, binascii.Error) as exc:
        raise CacheCorruptionError(f"cannot decode cache entry {key}: {exc}") from exc

    if stored_at.tzinfo is None:
        stored_at = stored_at.replace(tzinfo=timezone.utc)

    return CacheEntry(
        key=key,
        payload=payload,
        stored_at=stored_at,
        content_type=content_type,
        status_code=status_code,
    )


class CacheStore:
    """Disk-backed cache addressed by key.

    Args:
        cache_dir: Directory holding one file per entry. Created by
            :meth:`open`.
        clock: Returns the current time; the write timestamp of every
            entry comes from here.

    Example::

        store = CacheStore("./cache")
        store.open()
        store.set(key, b'{"ok": true}', content_type="application/json")
        entry = store.get(key)
        store.close()
    """

    def __init__(self, cache_dir: Union[str, Path], clock: Callable[[], datetime] = utc_now):
        self.cache_dir = Path(cache_dir)
        self.clock = clock
        self.logger = get_logger("proxy.cache_store")
        self._lock = ReadWriteLock()
        self._open = False

    def open(self) -> "CacheStore":
        """Create the cache directory and make the store usable."""
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheStoreError(f"failed to create cache directory {self.cache_dir}: {exc}") from exc
        self._open = True
        self.logger.info("Cache store opened", directory=str(self.cache_dir))
        return self

    def close(self):
        """Mark the store closed. Waits for in-flight writers to finish."""
        with self._lock.write_locked():
            self._open = False
        self.logger.info("Cache store closed", directory=str(self.cache_dir))

    @property
    def is_open(self) -> bool:
        return self._open

    def __enter__(self) -> "CacheStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def path_for(self, key: str) -> Path:
        if not is_valid_key(key):
            raise ValueError(f"invalid cache key: {key!r}")
        return self.cache_dir / f"{key}{ENTRY_SUFFIX}"

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for ``key`` or ``None`` when absent.

        Raises:
            CacheCorruptionError: The file exists but does not decode.
            CacheStoreError: Any other storage fault.
        """
        path = self.path_for(key)
        with self._lock.read_locked():
            self._ensure_open()
            return self._read(key, path)

    def set(
        self,
        key: str,
        payload: bytes,
        content_type: Optional[str] = None,
        status_code: int = 200,
    ) -> CacheEntry:
        """Store ``payload`` under ``key``, replacing any previous entry."""
        path = self.path_for(key)
        entry = CacheEntry(
            key=key,
            payload=bytes(payload),
            stored_at=self.clock(),
            content_type=content_type,
            status_code=status_code,
        )
        data = encode_entry(entry)

        with self._lock.write_locked():
            self._ensure_open()
            self._atomic_write(path, data)

        self.logger.debug("Cached entry", key=key, size=len(entry.payload), compressed_size=len(data))
        return entry

    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns False when there was nothing to remove."""
        path = self.path_for(key)
        with self._lock.write_locked():
            self._ensure_open()
            return self._unlink(path)

    def evict_if(self, key: str, predicate: Callable[[CacheEntry], bool]) -> bool:
        """Delete ``key`` when ``predicate(entry)`` holds.

        The read and the delete happen under one write-lock acquisition so
        an entry refreshed by a concurrent ``set`` is never removed by a
        decision taken on its predecessor.
        """
        path = self.path_for(key)
        with self._lock.write_locked():
            self._ensure_open()
            entry = self._read(key, path)
            if entry is None or not predicate(entry):
                return False
            return self._unlink(path)

    def list_keys(self) -> List[str]:
        """Snapshot of the keys currently on disk."""
        with self._lock.read_locked():
            self._ensure_open()
            try:
                with os.scandir(self.cache_dir) as it:
                    names = [e.name for e in it if e.is_file() and e.name.endswith(ENTRY_SUFFIX)]
            except OSError as exc:
                raise CacheStoreError(f"failed to read cache directory {self.cache_dir}: {exc}") from exc

        keys = [name[: -len(ENTRY_SUFFIX)] for name in names]
        return sorted(k for k in keys if is_valid_key(k))

    def stats(self) -> Dict[str, Any]:
        """Entry count and on-disk size."""
        entries = 0
        total_bytes = 0
        for key in self.list_keys():
            try:
                total_bytes += self.path_for(key).stat().st_size
            except FileNotFoundError:
                continue
            entries += 1
        return {
            "directory": str(self.cache_dir),
            "entries": entries,
            "total_bytes": total_bytes,
        }

    def _ensure_open(self):
        if not self._open:
            raise CacheStoreError("cache store is not open")

    def _read(self, key: str, path: Path) -> Optional[CacheEntry]:
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise CacheStoreError(f"failed to read cache entry {key}: {exc}") from exc
        return decode_entry(key, raw)

    def _unlink(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise CacheStoreError(f"failed to remove {path.name}: {exc}") from exc
        return True

    def _atomic_write(self, path: Path, data: bytes):
        """Write via temp file + rename in the cache directory."""
        fd = None
        tmp_path: Optional[str] = None
        try:
            fd = tempfile.NamedTemporaryFile(
                mode="wb",
                dir=self.cache_dir,
                prefix=f".{path.name}.",
                suffix=".tmp",
                delete=False,
            )
            tmp_path = fd.name
            fd.write(data)
            fd.flush()
            os.fsync(fd.fileno())
            fd.close()
            fd = None
            os.replace(tmp_path, path)
        except OSError as exc:
            if fd is not None:
                fd.close()
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except FileNotFoundError:
                    pass
            raise CacheStoreError(f"failed to write {path.name}: {exc}") from exc
