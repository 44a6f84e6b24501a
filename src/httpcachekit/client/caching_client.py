"""Caching HTTP client: serves repeated GET/POST calls from a persistent store.

Every call walks the same path::

    cleanup -> lookup -> hit:  return the cached body (status 200)
                      -> miss: fetch -> status 200 and TTL > 0: store
                                     -> return the fetched response

The TTL comes from :func:`~httpcachekit.cache.policy.freshness_ttl`. Only
responses with status exactly 200 are considered for storage; everything
else is handed back uncached. The cache is best-effort: when the store
cannot be swept, read, or written the failure is reported as a warning and
the call proceeds as a live fetch.

Requests are immutable :class:`~httpcachekit.models.Request` values passed
to each call. A default request can be given at construction for callers
that repeatedly hit the same endpoint.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Optional, Union

import httpx

from httpcachekit.cache.keys import build_response, canonical_params, header_mapping
from httpcachekit.cache.policy import freshness_ttl
from httpcachekit.cache.store import BaseCacheStore, open_store
from httpcachekit.client.transport import BaseTransport, HttpxTransport
from httpcachekit.config import resolve_config
from httpcachekit.exceptions import CacheStoreError
from httpcachekit.models import CacheEntry, GlobalConfig, HeaderValue, HTTPMethod, Request, RequestConfig
from httpcachekit.output import get_output

DEFAULT_MAX_AGE = 86400
CACHEABLE_STATUS = 200


class CachingClient:
    """HTTP client that caches successful GET and POST responses.

    Args:
        store: Backing response store, possibly shared with other clients.
        request: Default request used when a call does not pass one.
        transport: Transport performing live fetches. Defaults to an
            :class:`~httpcachekit.client.transport.HttpxTransport` built
            from *config*.
        config: Transport settings, used only when *transport* is omitted.
        max_age: Retention window in seconds. Every call purges entries
            older than this, whatever their own expiry.
        clock: Returns the current time in epoch seconds.

    Example::

        store = SQLiteCacheStore("/tmp/http-cache.db")
        with CachingClient(store) as client:
            page = client.get(Request(url="https://example.com/", params={"q": "x"}))
            assert client.last_code == 200
    """

    def __init__(
        self,
        store: BaseCacheStore,
        request: Optional[Request] = None,
        transport: Optional[BaseTransport] = None,
        config: Optional[RequestConfig] = None,
        max_age: int = DEFAULT_MAX_AGE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_age <= 0:
            raise ValueError(f"max_age must be positive, got {max_age}")
        self._store = store
        self._request = request
        self._owns_transport = transport is None
        self._transport = transport if transport is not None else HttpxTransport(config)
        self._max_age = max_age
        self._clock = clock
        self._owns_store = False
        self._last_code: Optional[int] = None
        self._last_headers: dict[str, HeaderValue] = {}
        self._stats = {"hits": 0, "misses": 0, "stores": 0}

    @classmethod
    def from_config(
        cls,
        config: Optional[GlobalConfig] = None,
        request: Optional[Request] = None,
        transport: Optional[BaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ) -> CachingClient:
        """Build a client whose store and transport come from configuration.

        When *config* is omitted it is resolved with
        :func:`~httpcachekit.config.resolve_config`. The store opened here
        is closed together with the client.
        """
        config = config or resolve_config()
        client = cls(
            open_store(config.cache),
            request=request,
            transport=transport,
            config=config.request,
            max_age=config.cache.max_age_seconds,
            clock=clock,
        )
        client._owns_store = True
        return client

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> CachingClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the transport and store if this client created them."""
        if self._owns_transport:
            self._transport.close()
        if self._owns_store:
            self._store.close()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    @property
    def store(self) -> BaseCacheStore:
        return self._store

    @property
    def max_age(self) -> int:
        return self._max_age

    @property
    def last_code(self) -> Optional[int]:
        """Status of the most recent call; 200 for a cache hit."""
        return self._last_code

    @property
    def last_headers(self) -> dict[str, HeaderValue]:
        """Response headers of the most recent call, cached or live."""
        return dict(self._last_headers)

    def header(self, name: str) -> Optional[HeaderValue]:
        """Return header *name* of the most recent response (literal match), or ``None``."""
        return self._last_headers.get(name)

    def get(self, request: Optional[Request] = None, retries: int = 1) -> str:
        """Execute a GET and return the response body as text."""
        return self.execute(HTTPMethod.GET, request, retries).text

    def post(self, request: Optional[Request] = None, retries: int = 1) -> str:
        """Execute a POST and return the response body as text."""
        return self.execute(HTTPMethod.POST, request, retries).text

    def execute(
        self,
        method: Union[HTTPMethod, str],
        request: Optional[Request] = None,
        retries: int = 1,
    ) -> httpx.Response:
        """Serve *request* from cache or fetch it through the transport.

        Args:
            method: ``GET`` or ``POST``.
            request: The request to send. Defaults to the client's default
                request.
            retries: Number of attempts, passed through to the transport.

        Returns:
            A synthetic status-200 :class:`httpx.Response` on a hit, the
            transport's response otherwise.

        Raises:
            ValueError: If no request is given and no default is configured,
                or *method* is not GET/POST.
            TransportError: Propagated unchanged from the transport.
        """
        verb = method if isinstance(method, HTTPMethod) else HTTPMethod(method.upper())
        request = self._resolve_request(request)
        params = canonical_params(request.params)
        output = get_output()

        self._cleanup()
        entry = self._lookup(verb, request.url, params)
        if entry is not None:
            self._stats["hits"] += 1
            output.debug(
                f"Cache hit: {verb.value} {request.url} (entry {entry.id}, ttl {entry.ttl}s)"
            )
            self._last_code = CACHEABLE_STATUS
            self._last_headers = dict(entry.headers)
            return build_response(verb.value, request.url, entry.body, entry.headers)

        self._stats["misses"] += 1
        output.debug(f"Cache miss: {verb.value} {request.url}")
        response = self._transport.call(
            verb, request.url, request.params, request.headers, retries
        )
        self._last_code = response.status_code
        self._last_headers = header_mapping(response)

        if response.status_code == CACHEABLE_STATUS:
            self._maybe_store(verb, request.url, params, response.content, self._last_headers)
        return response

    def stats(self) -> dict[str, Any]:
        """Return hit/miss/store counters for this client and the store's own stats."""
        return {**self._stats, "store": self._store.stats()}

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _resolve_request(self, request: Optional[Request]) -> Request:
        if request is not None:
            return request
        if self._request is None:
            raise ValueError("No request given and no default request configured")
        return self._request

    def _now(self) -> int:
        return int(self._clock())

    def _cleanup(self) -> None:
        try:
            removed = self._store.cleanup(self._max_age, now=self._now())
        except CacheStoreError as exc:
            get_output().warning(f"Cache cleanup failed, continuing: {exc}")
            return
        if removed:
            get_output().debug(f"Cache cleanup removed {removed} entr{'y' if removed == 1 else 'ies'}")

    def _lookup(self, method: HTTPMethod, url: str, params: str) -> Optional[CacheEntry]:
        try:
            return self._store.lookup(method, url, params, now=self._now())
        except CacheStoreError as exc:
            get_output().warning(f"Cache lookup failed, fetching live: {exc}")
            return None

    def _maybe_store(
        self,
        method: HTTPMethod,
        url: str,
        params: str,
        body: bytes,
        headers: dict[str, HeaderValue],
    ) -> None:
        output = get_output()
        now = self._now()
        ttl = freshness_ttl(headers, now=now)
        if ttl is None:
            output.debug(f"Not caching {method.value} {url}: Cache-Control forbids it")
            return
        if ttl <= 0:
            output.debug(f"Not caching {method.value} {url}: already stale")
            return
        try:
            self._store.insert(method, url, params, body, headers, ttl, now=now)
        except CacheStoreError as exc:
            output.warning(f"Cache write failed for {method.value} {url}: {exc}")
            return
        self._stats["stores"] += 1
        output.debug(f"Cached {method.value} {url} for {ttl}s")
