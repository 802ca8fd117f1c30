"""
Cache key derivation for proxied requests.

Keys are the hex SHA-256 digest of the request method followed by the
target URL. Nothing is normalized: ``http://a/?x=1&y=2`` and
``http://a/?y=2&x=1`` are different entries, as are URLs differing only
in a trailing slash or in case.
"""

import hashlib
from typing import Iterable, Mapping, Optional


KEY_LENGTH = 64


def derive_key(
    method: str,
    url: str,
    headers: Optional[Mapping[str, str]] = None,
    vary_headers: Iterable[str] = (),
) -> str:
    """Compute the cache key for ``method`` + ``url``.

    When ``vary_headers`` names request headers, their values are folded
    into the digest so requests differing in those headers are cached
    separately. Header names are matched case-insensitively; a header
    missing from the request contributes an empty value.
    """
    digest = hashlib.sha256()
    digest.update(method.encode("utf-8"))
    digest.update(url.encode("utf-8"))

    names = sorted({name.lower() for name in vary_headers})
    if names:
        lowered = {k.lower(): v for k, v in (headers or {}).items()}
        for name in names:
            digest.update(b"\n")
            digest.update(name.encode("utf-8"))
            digest.update(b":")
            digest.update(lowered.get(name, "").encode("utf-8"))

    return digest.hexdigest()


def is_valid_key(candidate: str) -> bool:
    """True when ``candidate`` looks like a key produced by :func:`derive_key`."""
    if len(candidate) != KEY_LENGTH:
        return False
    try:
        int(candidate, 16)
    except ValueError:
        return False
    return candidate == candidate.lower()
