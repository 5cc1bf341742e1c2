"""Disk-based, generation-partitioned response storage for cachegate.

This package provides :class:`CacheStore`, the persistent key/value store
the strategy engine and lifecycle manager share.  Entries are
:class:`~cachegate.models.CachedEntry` objects persisted with
:mod:`diskcache`, one directory per cache generation.
"""

from cachegate.cache.store import CacheStore, GenerationHandle

__all__ = ["CacheStore", "GenerationHandle"]
