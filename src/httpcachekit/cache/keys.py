"""Cache key canonicalisation and entry (de)serialisation helpers.

* :func:`canonical_params` turns request parameters into the ``params``
  component of the ``(method, url, params)`` cache key.
* :func:`header_mapping` extracts response headers with their original
  name casing, folding repeated headers into lists.
* :func:`pack_body` / :func:`unpack_body` and :func:`pack_headers` /
  :func:`unpack_headers` produce the opaque compressed blobs kept by the
  stores (bz2, JSON for header mappings).
* :func:`build_response` rebuilds an :class:`httpx.Response` from a cache
  entry so that hits look like live responses to the caller.
"""

from __future__ import annotations

import bz2
import json
from typing import Any, Mapping, Optional, Union
from urllib.parse import urlencode

import httpx

from httpcachekit.exceptions import CacheStoreError
from httpcachekit.models import HeaderValue

# Headers describing the wire framing of the original body. Cached bodies are
# stored decoded, so these must not be replayed on a rebuilt response.
_FRAMING_HEADERS = frozenset({"content-encoding", "content-length", "transfer-encoding"})


def canonical_params(params: Optional[Union[Mapping[str, Any], str, bytes]]) -> str:
    """Encode request parameters as a deterministic, order-independent string.

    Mapping keys are sorted; list and tuple values expand into repeated
    pairs in their given order. Anything that is not a flat mapping (a raw
    ``str``/``bytes`` body, or a mapping holding nested mappings) yields an
    empty string.

    Example::

        >>> canonical_params({"b": "2", "a": ["x", "y"]})
        'a=x&a=y&b=2'
    """
    if not isinstance(params, Mapping):
        return ""

    pairs: list[tuple[str, str]] = []
    for key in sorted(params, key=str):
        value = params[key]
        if isinstance(value, (list, tuple)):
            if any(not _is_scalar(item) for item in value):
                return ""
            pairs.extend((str(key), _to_str(item)) for item in value)
        elif _is_scalar(value):
            pairs.append((str(key), _to_str(value)))
        else:
            return ""
    return urlencode(pairs)


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, (str, bytes, int, float, bool))


def _to_str(value: Any) -> str:
    # Same rendering httpx uses when it encodes query strings and form bodies.
    if value is True:
        return "true"
    if value is False:
        return "false"
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def header_mapping(response: httpx.Response) -> dict[str, HeaderValue]:
    """Return *response* headers keyed by their name as sent by the server.

    A header that appears once maps to its value; a repeated header maps to
    the list of its values in arrival order.
    """
    encoding = response.headers.encoding
    mapping: dict[str, HeaderValue] = {}
    for raw_name, raw_value in response.headers.raw:
        name = raw_name.decode(encoding)
        value = raw_value.decode(encoding)
        existing = mapping.get(name)
        if existing is None:
            mapping[name] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            mapping[name] = [existing, value]
    return mapping


def header_pairs(headers: Mapping[str, HeaderValue]) -> list[tuple[str, str]]:
    """Flatten a header mapping into ``(name, value)`` pairs, repeating list values."""
    pairs: list[tuple[str, str]] = []
    for name, value in headers.items():
        if isinstance(value, (list, tuple)):
            pairs.extend((name, str(item)) for item in value)
        else:
            pairs.append((name, str(value)))
    return pairs


def pack_body(body: bytes) -> bytes:
    """Compress a response body for storage."""
    return bz2.compress(body)


def unpack_body(blob: bytes) -> bytes:
    """Inverse of :func:`pack_body`.

    Raises:
        CacheStoreError: If *blob* is not a valid compressed body.
    """
    try:
        return bz2.decompress(blob)
    except (OSError, ValueError) as exc:
        raise CacheStoreError(f"Corrupt cached body: {exc}") from exc


def pack_headers(headers: Mapping[str, HeaderValue]) -> bytes:
    """Serialise and compress a header mapping for storage."""
    data = json.dumps(dict(headers), ensure_ascii=False, sort_keys=True)
    return bz2.compress(data.encode("utf-8"))


def unpack_headers(blob: bytes) -> dict[str, HeaderValue]:
    """Inverse of :func:`pack_headers`.

    Raises:
        CacheStoreError: If *blob* is not a valid compressed JSON object.
    """
    try:
        data = json.loads(bz2.decompress(blob).decode("utf-8"))
    except (OSError, ValueError) as exc:
        raise CacheStoreError(f"Corrupt cached headers: {exc}") from exc
    if not isinstance(data, dict):
        raise CacheStoreError("Corrupt cached headers: expected a JSON object")
    return data


def build_response(
    method: str,
    url: str,
    body: bytes,
    headers: Mapping[str, HeaderValue],
    status_code: int = 200,
) -> httpx.Response:
    """Build a synthetic :class:`httpx.Response` carrying a cached body.

    Framing headers (``Content-Encoding`` and friends) are dropped because
    cached bodies are stored already decoded. Names and values are passed
    to httpx as UTF-8 bytes so non-ASCII values survive the round trip.
    """
    pairs = [
        (name.encode("utf-8"), value.encode("utf-8"))
        for name, value in header_pairs(headers)
        if name.lower() not in _FRAMING_HEADERS
    ]
    return httpx.Response(
        status_code=status_code,
        headers=pairs,
        content=body,
        request=httpx.Request(method=method, url=url),
    )
