"""Exception hierarchy for httpcachekit.

All exceptions inherit from :class:`HTTPCacheKitError`. The caching client
catches :class:`CacheStoreError` and degrades to a live fetch; the other
subclasses propagate to the caller.

Subclass hierarchy::

    HTTPCacheKitError
    +-- ConfigError
    +-- TransportError
    +-- CacheStoreError
"""


class HTTPCacheKitError(Exception):
    """Base exception for all httpcachekit errors.

    Args:
        message: Human-readable error description.
    """

    def __init__(self, message: str):
        super().__init__(message)


class ConfigError(HTTPCacheKitError):
    """Raised for configuration problems (invalid JSON, bad environment overrides)."""


class TransportError(HTTPCacheKitError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused)
    after every attempt has been used."""


class CacheStoreError(HTTPCacheKitError):
    """Raised when the backing store cannot be read, written, or swept.

    Also raised when a stored entry cannot be decompressed or deserialised.
    """
