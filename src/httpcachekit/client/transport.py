"""HTTP transports the caching client delegates network calls to.

:class:`BaseTransport` is the interface the cache layer consumes: a single
:meth:`~BaseTransport.call` plus accessors for the status and headers of
the most recent response. :class:`HttpxTransport` implements it on
:class:`httpx.Client` and adds attempt-count retry with exponential
backoff (1x, 2x, 4x ``backoff_factor`` seconds, ...).

Non-success statuses are returned, never raised: interpreting them is the
caller's job. Only network-level failures raise
(:class:`~httpcachekit.exceptions.TransportError`).
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Union

import httpx

from httpcachekit.cache.keys import header_mapping, header_pairs
from httpcachekit.exceptions import TransportError
from httpcachekit.models import HeaderValue, HTTPMethod, RequestConfig
from httpcachekit.output import get_output

Params = Optional[Union[Mapping[str, Any], str, bytes]]


class BaseTransport(ABC):
    """Performs HTTP calls and remembers the last response.

    Subclasses implement :meth:`call` and pass each response through
    :meth:`_record` before returning it.
    """

    def __init__(self) -> None:
        self._last_code: Optional[int] = None
        self._last_headers: dict[str, HeaderValue] = {}

    @abstractmethod
    def call(
        self,
        method: Union[HTTPMethod, str],
        url: str,
        params: Params = None,
        headers: Optional[Mapping[str, HeaderValue]] = None,
        retries: int = 1,
    ) -> httpx.Response:
        """Send one request and return the final response.

        Args:
            method: ``GET`` or ``POST``.
            url: Absolute target URL.
            params: Query parameters (GET), form fields (POST), or a raw
                ``str``/``bytes`` body.
            headers: Request headers; list values are sent as repeated
                headers.
            retries: Number of attempts to make.
        """

    @property
    def last_code(self) -> Optional[int]:
        """Status code of the most recent response, ``None`` before any call."""
        return self._last_code

    @property
    def last_headers(self) -> dict[str, HeaderValue]:
        """Header mapping of the most recent response."""
        return dict(self._last_headers)

    def header(self, name: str) -> Optional[HeaderValue]:
        """Return header *name* of the most recent response (literal match), or ``None``."""
        return self._last_headers.get(name)

    def _record(self, response: httpx.Response) -> httpx.Response:
        self._last_code = response.status_code
        self._last_headers = header_mapping(response)
        return response

    def close(self) -> None:
        """Release network resources."""

    def __enter__(self) -> BaseTransport:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class HttpxTransport(BaseTransport):
    """Blocking transport backed by :class:`httpx.Client`.

    Args:
        config: Timeout, SSL, redirect, User-Agent and backoff settings.
        client: Pre-built :class:`httpx.Client` to use instead of creating
            one (e.g. with an :class:`httpx.MockTransport`). An injected
            client is not closed by :meth:`close`.

    Example::

        with HttpxTransport(RequestConfig(timeout=5)) as transport:
            response = transport.call("GET", "https://example.com/", {"q": "x"})
    """

    def __init__(
        self,
        config: Optional[RequestConfig] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        super().__init__()
        self._config = config or RequestConfig()
        self._client = client
        self._owns_client = client is None

    @property
    def config(self) -> RequestConfig:
        return self._config

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=self._config.timeout,
                verify=self._config.verify_ssl,
                follow_redirects=self._config.follow_redirects,
            )
        return self._client

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def call(
        self,
        method: Union[HTTPMethod, str],
        url: str,
        params: Params = None,
        headers: Optional[Mapping[str, HeaderValue]] = None,
        retries: int = 1,
    ) -> httpx.Response:
        """Send the request, retrying 5xx responses and network errors.

        Raises:
            TransportError: On network / timeout errors after the last attempt.
        """
        verb = method.value if isinstance(method, HTTPMethod) else method.upper()
        kwargs = self._build_kwargs(verb, url, params, headers)
        attempts = max(1, retries)
        output = get_output()
        client = self._get_client()

        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1
            try:
                response = client.request(**kwargs)
            except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as exc:
                if last_attempt:
                    raise TransportError(
                        f"{verb} {url} failed after {attempts} attempt(s): {exc}"
                    ) from exc
                delay = self._config.backoff_factor * 2 ** attempt
                output.debug(
                    f"Connection error: {exc}, retrying in {delay}s "
                    f"(attempt {attempt + 1}/{attempts})"
                )
                time.sleep(delay)
                continue

            if response.status_code >= 500 and not last_attempt:
                delay = self._config.backoff_factor * 2 ** attempt
                output.debug(
                    f"Server error {response.status_code}, retrying in {delay}s "
                    f"(attempt {attempt + 1}/{attempts})"
                )
                response.close()
                time.sleep(delay)
                continue

            return self._record(response)

        raise AssertionError("unreachable")  # pragma: no cover

    def _build_kwargs(
        self,
        method: str,
        url: str,
        params: Params,
        headers: Optional[Mapping[str, HeaderValue]],
    ) -> dict[str, Any]:
        pairs = header_pairs(headers or {})
        if self._config.user_agent and not any(
            name.lower() == "user-agent" for name, _ in pairs
        ):
            pairs.append(("User-Agent", self._config.user_agent))

        kwargs: dict[str, Any] = {"method": method, "url": url, "headers": pairs}
        if isinstance(params, Mapping):
            if method == HTTPMethod.POST.value:
                kwargs["data"] = dict(params)
            else:
                kwargs["params"] = dict(params)
        elif params is not None:
            kwargs["content"] = params
        return kwargs
