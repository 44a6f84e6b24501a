"""Persistent HTTP response caching for httpcachekit.

This package provides the pieces the caching client is assembled from:

* :func:`freshness_ttl` -- TTL from ``Cache-Control`` / ``Expires`` headers.
* :class:`SQLiteCacheStore` and :class:`DiskCacheStore` -- persistent
  stores keyed by ``(method, url, params)``, opened from a
  :class:`~httpcachekit.models.CacheConfig` via :func:`open_store`.
* :func:`canonical_params` -- the ``params`` component of the cache key.
"""

from httpcachekit.cache.keys import canonical_params
from httpcachekit.cache.policy import freshness_ttl
from httpcachekit.cache.store import BaseCacheStore, DiskCacheStore, SQLiteCacheStore, open_store

__all__ = [
    "BaseCacheStore",
    "DiskCacheStore",
    "SQLiteCacheStore",
    "canonical_params",
    "freshness_ttl",
    "open_store",
]
