"""Canonical Pydantic models shared across all httpcachekit modules.

The models fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`RequestConfig`, :class:`CacheConfig`, and :class:`GlobalConfig`.

**Request / cache models** -- passed between the client, the freshness
policy, and the cache stores:
    :class:`HTTPMethod`, :class:`Request`, and :class:`CacheEntry`.
"""

from __future__ import annotations

import enum
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


HeaderValue = Union[str, list[str]]
"""A response header value: a single string or every value of a repeated header."""


# --- Config ---


class RequestConfig(BaseModel):
    """HTTP transport settings applied to every outgoing request."""

    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    follow_redirects: bool = Field(default=True, description="Follow 3xx redirects")
    user_agent: Optional[str] = Field(
        default=None, description="User-Agent sent unless the request sets one"
    )
    backoff_factor: float = Field(
        default=1.0, description="Retry delay is backoff_factor * 2 ** attempt seconds"
    )


class CacheBackend(str, enum.Enum):
    """Persistence backends available for :class:`~httpcachekit.cache.store.BaseCacheStore`."""

    SQLITE = "sqlite"
    DISKCACHE = "diskcache"


class CacheConfig(BaseModel):
    """Response cache settings stored in :class:`GlobalConfig`."""

    backend: CacheBackend = Field(
        default=CacheBackend.SQLITE, description="Storage backend: sqlite or diskcache"
    )
    path: Optional[str] = Field(
        default=None,
        description="Database file (sqlite) or directory (diskcache); "
        "defaults to the XDG cache directory",
    )
    max_age_seconds: int = Field(
        default=86400,
        gt=0,
        description="Retention window: entries older than this are purged "
        "regardless of their own expiry",
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/httpcachekit/config.json``.

    Loaded and saved by :func:`~httpcachekit.config.load_global_config` and
    :func:`~httpcachekit.config.save_global_config`. Environment variables
    and explicit arguments take precedence; see
    :func:`~httpcachekit.config.resolve_config`.
    """

    request: RequestConfig = Field(default_factory=RequestConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)


# --- Requests and cache entries ---


class HTTPMethod(str, enum.Enum):
    """HTTP methods the cache understands.

    The SQLite schema constrains the ``method`` column to these values.
    """

    GET = "GET"
    POST = "POST"


class Request(BaseModel):
    """An immutable description of one HTTP call.

    ``params`` is sent as the query string for GET and as the form body for
    POST when it is a mapping. A ``str`` or ``bytes`` value is a raw POST
    body.

    Example::

        Request(url="https://example.com/search", params={"q": "squash"})
    """

    model_config = ConfigDict(frozen=True)

    url: str
    params: Optional[Union[Mapping[str, Any], str, bytes]] = None
    headers: Mapping[str, HeaderValue] = Field(default_factory=dict)

    def replace(self, **changes: Any) -> Request:
        """Return a copy of this request with *changes* applied."""
        return self.model_copy(update=changes)


class CacheEntry(BaseModel):
    """One cached response, decompressed.

    Entries are never mutated once written: stores only insert, read, and
    delete them.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    method: HTTPMethod
    url: str
    params: str = ""
    body: bytes
    headers: dict[str, HeaderValue] = Field(default_factory=dict)
    created_at: int
    expires_at: int

    @field_validator("expires_at")
    @classmethod
    def _expiry_after_creation(cls, value: int, info: ValidationInfo) -> int:
        created = info.data.get("created_at")
        if created is not None and value <= created:
            raise ValueError("expires_at must be after created_at")
        return value

    @property
    def ttl(self) -> int:
        """Lifetime in seconds the entry was stored with."""
        return self.expires_at - self.created_at

    def is_live(self, now: int) -> bool:
        """Return ``True`` while *now* has not passed ``expires_at``."""
        return now <= self.expires_at
