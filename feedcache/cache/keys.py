"""Cache key derivation. Single place for the SWR key format."""

import hashlib
import re
from typing import NamedTuple

DEFAULT_PREFIX = "swr"

_WHITESPACE = re.compile(r"\s\s+")


class CacheKeys(NamedTuple):
    """Freshness marker key and payload key for one query."""

    freshness_key: str
    payload_key: str


def query_digest(query_text: str) -> str:
    """SHA-256 hex digest of the fully rendered query text."""
    return hashlib.sha256(query_text.encode("utf-8")).hexdigest()


def derive_keys(query_text: str, prefix: str = DEFAULT_PREFIX) -> CacheKeys:
    """Derive the freshness and payload keys for a query.

    Keys depend only on the query text, so identical text always maps to
    the same entry and any textual difference (whitespace included) maps
    to a different one.

    Args:
        query_text: Fully rendered SQL, literal parameters included.
        prefix: Key namespace.

    Returns:
        CacheKeys(freshness_key, payload_key).
    """
    digest = query_digest(query_text)
    return CacheKeys(
        freshness_key=f"{prefix}:stillgood:{digest}",
        payload_key=f"{prefix}:response:{digest}",
    )


def user_index_key(identity: object, prefix: str = DEFAULT_PREFIX) -> str:
    """Key of the Redis set holding freshness keys read on behalf of a user."""
    return f"{prefix}:user:{identity}"


def query_preview(query_text: str, limit: int = 50) -> str:
    """Single-line, truncated rendering of a query for log lines."""
    collapsed = _WHITESPACE.sub(" ", query_text.replace("\n", ""))
    return collapsed[:limit].strip()
