"""Freshness lifetime derived from HTTP caching headers.

:func:`freshness_ttl` maps the headers of a completed response to the
number of seconds the response may be served from cache. Precedence:

1. ``Cache-Control: no-cache`` or ``no-store`` (the whole value, exactly)
   -- never cache.
2. ``Cache-Control`` containing ``max-age=N`` -- ``N`` seconds.
3. ``Expires`` -- seconds until that date, floored at 0. An unparseable
   date counts as already expired.
4. Neither header -- one calendar year.

Header names are matched literally; ``cache-control`` is not
``Cache-Control``.
"""

from __future__ import annotations

import re
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Mapping, Optional

from httpcachekit.models import HeaderValue

CACHE_CONTROL = "Cache-Control"
EXPIRES = "Expires"

_UNCACHEABLE = frozenset({"no-cache", "no-store"})
_MAX_AGE_RE = re.compile(r"max-age=(?P<maxage>\d+)")


def freshness_ttl(
    headers: Mapping[str, HeaderValue],
    now: Optional[float] = None,
) -> Optional[int]:
    """Return the TTL in seconds for a response, or ``None`` if it must not be cached.

    Args:
        headers: Response header mapping (name -> value or list of values).
        now: Epoch seconds at response time. Defaults to the current time.

    Returns:
        ``None`` for ``no-cache``/``no-store``; otherwise a non-negative
        integer. Zero means "already stale".
    """
    now_s = int(time.time() if now is None else now)

    cache_control = _joined(headers.get(CACHE_CONTROL))
    if cache_control in _UNCACHEABLE:
        return None

    if cache_control is not None:
        match = _MAX_AGE_RE.search(cache_control)
        if match:
            return int(match.group("maxage"))

    expires = headers.get(EXPIRES)
    if expires is not None:
        if isinstance(expires, list):
            expires = expires[0] if expires else ""
        expiry = parse_http_date(expires)
        if expiry is None:
            return 0
        return max(expiry - now_s, 0)

    return _one_year_from(now_s)


def parse_http_date(value: str) -> Optional[int]:
    """Parse an ``Expires`` date into epoch seconds.

    HTTP dates (RFC 1123, RFC 850, asctime) are tried first, then ISO 8601
    (``2030-01-01T00:00:00Z``, ``2030-01-01 00:00:00``). Returns ``None``
    when *value* is neither. Dates without a zone are taken as UTC.
    """
    text = value.strip()
    try:
        parsed = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        parsed = None
    if parsed is None:
        parsed = _parse_iso(text)
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def _parse_iso(text: str) -> Optional[datetime]:
    # fromisoformat only learned the "Z" suffix in 3.11
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _joined(value: Optional[HeaderValue]) -> Optional[str]:
    if isinstance(value, list):
        return ", ".join(value)
    return value


def _one_year_from(now: int) -> int:
    start = datetime.fromtimestamp(now, tz=timezone.utc)
    try:
        end = start.replace(year=start.year + 1)
    except ValueError:
        # Feb 29 has no counterpart next year
        end = start.replace(year=start.year + 1, day=28)
    return int(end.timestamp()) - now
