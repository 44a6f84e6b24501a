"""Persistent response stores keyed by ``(method, url, params)``.

Two backends share the :class:`BaseCacheStore` contract:

* :class:`SQLiteCacheStore` -- one row per response in an ``http_cache``
  table (``id, method, url, params, response, headers, datetime, expiry``).
  Every operation opens its own short-lived :mod:`sqlite3` connection, so a
  single store may be shared by threads and by several processes pointing
  at the same file.
* :class:`DiskCacheStore` -- a :class:`diskcache.Cache` directory whose
  values carry the same fields.

Bodies and header mappings are kept as opaque compressed blobs (see
:mod:`httpcachekit.cache.keys`). Timestamps are integer epoch seconds.
Storage failures surface as :class:`~httpcachekit.exceptions.CacheStoreError`.
"""

from __future__ import annotations

import sqlite3
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional, Union

import diskcache

from httpcachekit.cache.keys import pack_body, pack_headers, unpack_body, unpack_headers
from httpcachekit.exceptions import CacheStoreError
from httpcachekit.models import CacheBackend, CacheConfig, CacheEntry, HeaderValue, HTTPMethod

MethodLike = Union[HTTPMethod, str]

# Largest value an SQLite INTEGER column holds; expiries are capped here.
MAX_EXPIRY = 2**63 - 1


def _method(value: MethodLike) -> HTTPMethod:
    if isinstance(value, HTTPMethod):
        return value
    return HTTPMethod(value.upper())


def _now(now: Optional[float]) -> int:
    return int(time.time() if now is None else now)


class BaseCacheStore(ABC):
    """Contract shared by all response stores.

    ``cleanup`` must run before ``lookup`` on every request so that a
    returned entry is guaranteed live; :class:`~httpcachekit.client.CachingClient`
    does this for you.
    """

    def insert(
        self,
        method: MethodLike,
        url: str,
        params: str,
        body: bytes,
        headers: Mapping[str, HeaderValue],
        ttl: int,
        now: Optional[float] = None,
    ) -> None:
        """Store a response for ``ttl`` seconds, superseding older entries for the key.

        Args:
            method: ``GET`` or ``POST``.
            url: The exact request URL.
            params: Canonical parameter string (see
                :func:`~httpcachekit.cache.keys.canonical_params`).
            body: Raw response body.
            headers: Response header mapping.
            ttl: Lifetime in seconds. Must be positive. Expiries past
                :data:`MAX_EXPIRY` are capped to it.
            now: Creation time in epoch seconds. Defaults to the current time.

        Raises:
            ValueError: If *ttl* is not positive or *method* is unsupported.
            CacheStoreError: If the write fails.
        """
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        created = _now(now)
        self._insert(
            _method(method),
            url,
            params,
            pack_body(body),
            pack_headers(headers),
            created,
            min(created + int(ttl), MAX_EXPIRY),
        )

    @abstractmethod
    def _insert(
        self,
        method: HTTPMethod,
        url: str,
        params: str,
        body_blob: bytes,
        headers_blob: bytes,
        created_at: int,
        expires_at: int,
    ) -> None:
        ...

    @abstractmethod
    def lookup(
        self,
        method: MethodLike,
        url: str,
        params: str,
        now: Optional[float] = None,
    ) -> Optional[CacheEntry]:
        """Return the most recent live entry for the key, or ``None``."""

    @abstractmethod
    def cleanup(self, max_age: int, now: Optional[float] = None) -> int:
        """Delete expired entries and entries older than *max_age* seconds.

        Returns:
            The number of entries removed.
        """

    @abstractmethod
    def clear(self) -> None:
        """Remove every entry."""

    @abstractmethod
    def stats(self) -> dict[str, Any]:
        """Return a ``dict`` describing the store (backend, location, size)."""

    def close(self) -> None:
        """Release any resources held by the store."""

    def __enter__(self) -> BaseCacheStore:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


# ---------------------------------------------------------------------- #
# SQLite
# ---------------------------------------------------------------------- #


_TABLE = "http_cache"
_METHODS = ", ".join(repr(m.value) for m in HTTPMethod)

_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS {_TABLE} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    method TEXT NOT NULL CHECK (method IN ({_METHODS})),
    url TEXT NOT NULL,
    params TEXT NOT NULL,
    response BLOB NOT NULL,
    headers BLOB NOT NULL,
    datetime INTEGER NOT NULL,
    expiry INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_{_TABLE}_key ON {_TABLE}(method, url, params);
CREATE INDEX IF NOT EXISTS idx_{_TABLE}_expiry ON {_TABLE}(expiry);
"""


class SQLiteCacheStore(BaseCacheStore):
    """SQLite-backed response store.

    The schema is created on construction if it does not exist yet.
    ``:memory:`` databases are not supported because each operation uses
    a fresh connection.

    Args:
        path: Database file. Parent directories are created as needed.
        timeout: Seconds to wait on a locked database before failing.

    Example::

        store = SQLiteCacheStore("/tmp/http-cache.db")
        store.insert("GET", "https://example.com/", "", b"<html/>", {}, ttl=60)
        entry = store.lookup("GET", "https://example.com/", "")
    """

    def __init__(self, path: Union[str, Path], timeout: float = 10.0) -> None:
        self._path = Path(path)
        self._timeout = timeout
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(_SCHEMA)

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success, and map SQLite errors."""
        try:
            conn = sqlite3.connect(str(self._path), timeout=self._timeout)
        except sqlite3.Error as exc:
            raise CacheStoreError(f"Cannot open cache database {self._path}: {exc}") from exc
        try:
            with conn:
                yield conn
        except (sqlite3.Error, OverflowError) as exc:
            raise CacheStoreError(f"Cache database error ({self._path}): {exc}") from exc
        finally:
            conn.close()

    def _insert(
        self,
        method: HTTPMethod,
        url: str,
        params: str,
        body_blob: bytes,
        headers_blob: bytes,
        created_at: int,
        expires_at: int,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                f"DELETE FROM {_TABLE} WHERE method = ? AND url = ? AND params = ?",
                (method.value, url, params),
            )
            conn.execute(
                f"INSERT INTO {_TABLE} "
                "(method, url, params, response, headers, datetime, expiry) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    method.value,
                    url,
                    params,
                    sqlite3.Binary(body_blob),
                    sqlite3.Binary(headers_blob),
                    created_at,
                    expires_at,
                ),
            )

    def lookup(
        self,
        method: MethodLike,
        url: str,
        params: str,
        now: Optional[float] = None,
    ) -> Optional[CacheEntry]:
        """Return the most recent live row for the key, or ``None``.

        Raises:
            CacheStoreError: If the database cannot be read or the row is corrupt.
        """
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, method, url, params, response, headers, datetime, expiry "
                f"FROM {_TABLE} "
                "WHERE method = ? AND url = ? AND params = ? AND expiry >= ? "
                "ORDER BY id DESC LIMIT 1",
                (_method(method).value, url, params, _now(now)),
            ).fetchone()
        if row is None:
            return None
        return CacheEntry(
            id=row[0],
            method=row[1],
            url=row[2],
            params=row[3],
            body=unpack_body(bytes(row[4])),
            headers=unpack_headers(bytes(row[5])),
            created_at=row[6],
            expires_at=row[7],
        )

    def cleanup(self, max_age: int, now: Optional[float] = None) -> int:
        """Delete expired rows, rows older than *max_age*, and superseded duplicates."""
        current = _now(now)
        with self._connect() as conn:
            stale = conn.execute(
                f"DELETE FROM {_TABLE} WHERE expiry < ? OR datetime < ?",
                (current, current - int(max_age)),
            ).rowcount
            superseded = conn.execute(
                f"DELETE FROM {_TABLE} WHERE id NOT IN "
                f"(SELECT MAX(id) FROM {_TABLE} GROUP BY method, url, params)"
            ).rowcount
        return stale + superseded

    def clear(self) -> None:
        with self._connect() as conn:
            conn.execute(f"DELETE FROM {_TABLE}")

    def stats(self) -> dict[str, Any]:
        with self._connect() as conn:
            size = conn.execute(f"SELECT COUNT(*) FROM {_TABLE}").fetchone()[0]
        return {
            "backend": CacheBackend.SQLITE.value,
            "path": str(self._path),
            "size": size,
        }


# ---------------------------------------------------------------------- #
# diskcache
# ---------------------------------------------------------------------- #


_SEQUENCE_KEY = "__sequence__"


class DiskCacheStore(BaseCacheStore):
    """Response store on a :class:`diskcache.Cache` directory.

    Keys are ``(method, url, params)`` tuples, so a new insert replaces the
    previous value for the key outright. Entries also get a native
    ``expire`` equal to their TTL; the retention window is enforced by the
    :meth:`cleanup` sweep.

    Args:
        directory: Cache directory, created if missing.
    """

    def __init__(self, directory: Union[str, Path]) -> None:
        self._directory = Path(directory)
        with self._guard():
            self._cache = diskcache.Cache(str(self._directory))

    @property
    def path(self) -> Path:
        return self._directory

    @contextmanager
    def _guard(self) -> Iterator[None]:
        try:
            yield
        except (sqlite3.Error, OSError, OverflowError, diskcache.Timeout) as exc:
            raise CacheStoreError(f"Disk cache error ({self._directory}): {exc}") from exc

    def _insert(
        self,
        method: HTTPMethod,
        url: str,
        params: str,
        body_blob: bytes,
        headers_blob: bytes,
        created_at: int,
        expires_at: int,
    ) -> None:
        with self._guard():
            entry_id = self._cache.incr(_SEQUENCE_KEY)
            self._cache.set(
                (method.value, url, params),
                {
                    "id": entry_id,
                    "response": body_blob,
                    "headers": headers_blob,
                    "datetime": created_at,
                    "expiry": expires_at,
                },
                expire=expires_at - created_at,
            )

    def lookup(
        self,
        method: MethodLike,
        url: str,
        params: str,
        now: Optional[float] = None,
    ) -> Optional[CacheEntry]:
        key = (_method(method).value, url, params)
        with self._guard():
            value = self._cache.get(key)
        if value is None:
            return None
        entry = CacheEntry(
            id=value["id"],
            method=key[0],
            url=url,
            params=params,
            body=unpack_body(value["response"]),
            headers=unpack_headers(value["headers"]),
            created_at=value["datetime"],
            expires_at=value["expiry"],
        )
        return entry if entry.is_live(_now(now)) else None

    def cleanup(self, max_age: int, now: Optional[float] = None) -> int:
        """Evict natively expired items, then sweep by stored expiry and age."""
        current = _now(now)
        oldest = current - int(max_age)
        with self._guard():
            removed = self._cache.expire()
            for key in list(self._cache.iterkeys()):
                if not isinstance(key, tuple):
                    continue
                value = self._cache.get(key)
                if value is None:
                    continue
                if value["expiry"] < current or value["datetime"] < oldest:
                    if self._cache.delete(key):
                        removed += 1
        return removed

    def clear(self) -> None:
        with self._guard():
            self._cache.clear()

    def stats(self) -> dict[str, Any]:
        with self._guard():
            size = sum(1 for key in self._cache.iterkeys() if isinstance(key, tuple))
        return {
            "backend": CacheBackend.DISKCACHE.value,
            "path": str(self._directory),
            "size": size,
        }

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache`."""
        self._cache.close()


def open_store(config: CacheConfig) -> BaseCacheStore:
    """Open the store described by *config*.

    When ``config.path`` is unset the store lives under the XDG cache
    directory (see :func:`~httpcachekit.config.default_store_path`).
    """
    from httpcachekit.config import default_store_path

    path = Path(config.path).expanduser() if config.path else default_store_path(config.backend)
    if config.backend == CacheBackend.DISKCACHE:
        return DiskCacheStore(path)
    return SQLiteCacheStore(path)
