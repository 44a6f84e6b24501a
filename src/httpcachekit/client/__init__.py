"""HTTP client module for httpcachekit.

Classes:
    :class:`CachingClient` -- serves repeated GET/POST calls from a
    persistent response store and delegates misses to a transport.
    :class:`BaseTransport` -- interface for the transports it delegates to.
    :class:`HttpxTransport` -- blocking transport backed by :class:`httpx.Client`.

Example::

    from httpcachekit.cache import SQLiteCacheStore
    from httpcachekit.client import CachingClient
    from httpcachekit.models import Request

    with CachingClient(SQLiteCacheStore("cache.db")) as client:
        body = client.get(Request(url="https://example.com/"))
"""

from httpcachekit.client.caching_client import CachingClient
from httpcachekit.client.transport import BaseTransport, HttpxTransport

__all__ = ["BaseTransport", "CachingClient", "HttpxTransport"]
