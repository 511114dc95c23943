"""Namespace-versioned response store for precache.

This package provides :class:`CacheStore`, a flat store of captured
responses partitioned into version-tagged namespaces and persisted with
:mod:`diskcache`.  The worker's lifecycle controller fills a namespace at
install time and deletes stale ones at activation; the fetch interceptor
reads from it and writes successful same-origin responses back.
"""

from precache.cache.store import CacheStore, NamespaceHandle

__all__ = ["CacheStore", "NamespaceHandle"]
