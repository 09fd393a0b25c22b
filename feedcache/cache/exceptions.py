"""
Cache Exceptions

Raised by the Redis client and payload codec. None of these escape the
SWR layer: callers of SWRCache and CacheInvalidator only ever see errors
from the source-of-truth executor.
"""


class CacheError(Exception):
    """Base class for cache subsystem errors."""


class CacheUnavailableError(CacheError):
    """Redis is unreachable, not connected, or the circuit breaker is open."""


class PayloadDecodeError(CacheError):
    """A cached payload could not be decoded."""
