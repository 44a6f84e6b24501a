"""httpcachekit -- a private, persistent response cache for GET/POST HTTP calls.

A :class:`~httpcachekit.client.CachingClient` sits in front of an httpx
transport. Successful responses are stored keyed by method, URL, and
request parameters for as long as their ``Cache-Control`` / ``Expires``
headers allow, and identical requests are answered from the store until
the entry expires.

Typical use::

    from httpcachekit import CachingClient, Request

    with CachingClient.from_config() as client:
        page = client.get(Request(url="https://example.com/", params={"q": "x"}))

Modules:
    models: Pydantic models shared across the package.
    config: XDG-aware configuration and precedence resolution.
    exceptions: Exception hierarchy.
    output: stderr diagnostics with Rich support.
    cache: Freshness policy, key helpers, and persistent stores.
    client: The caching client and its transports.
"""

from httpcachekit.client import BaseTransport, CachingClient, HttpxTransport
from httpcachekit.models import HTTPMethod, Request

__version__ = "0.1.0"

__all__ = [
    "BaseTransport",
    "CachingClient",
    "HTTPMethod",
    "HttpxTransport",
    "Request",
    "__version__",
]
