"""Generation-partitioned response store backed by :mod:`diskcache`.

Every cache generation lives in its own :class:`diskcache.Cache` directory
under ``<root>/generations/<name>/``.  Entries are serialised
:class:`~cachegate.models.CachedEntry` dicts keyed by
:func:`~cachegate.models.make_cache_key`.

Writes go through a diskcache transaction that deletes and re-inserts the
key, so a rewritten entry moves to the end of the stored order and readers
never observe a half-written value.  :meth:`CacheStore.keys` returns keys in
stored order (oldest first), which is the order size-based eviction uses.

See Also:
    :class:`~cachegate.lifecycle.LifecycleManager` -- opens, prunes and
    deletes generations.
"""

from __future__ import annotations

import logging
import re
import shutil
import sqlite3
import threading
from pathlib import Path
from typing import Iterator, Optional

import diskcache

from cachegate.exceptions import StoreError
from cachegate.models import CacheConfig, CachedEntry

logger = logging.getLogger(__name__)

_GENERATION_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_STORE_FAILURES = (OSError, sqlite3.Error, diskcache.Timeout)


class GenerationHandle:
    """An open generation.  Obtain one from :meth:`CacheStore.open`."""

    def __init__(self, name: str, cache: diskcache.Cache) -> None:
        self.name = name
        self._cache = cache

    @property
    def cache(self) -> diskcache.Cache:
        return self._cache

    def __repr__(self) -> str:
        return f"GenerationHandle({self.name!r})"


class CacheStore:
    """Disk-backed key/value store of cached responses, partitioned by generation.

    Args:
        root: Root directory.  Generations are created under
            ``root/generations``.
        config: Cache bounds; ``evict_on_quota_error`` and
            ``size_limit_bytes`` are read here.

    Example::

        store = CacheStore("/tmp/cachegate", CacheConfig())
        handle = store.open("cachegate-v1.0.0")
        store.put(handle, entry.key, entry)
        hit = store.get(handle, entry.key)
    """

    def __init__(self, root: str | Path, config: CacheConfig) -> None:
        self._root = Path(root) / "generations"
        self._config = config
        self._handles: dict[str, GenerationHandle] = {}
        self._handles_lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    # ------------------------------------------------------------------ #
    # Generations
    # ------------------------------------------------------------------ #

    def open(self, name: str) -> GenerationHandle:
        """Open (creating if needed) the generation called *name*.

        Handles are cached, so repeated calls return the same object until
        the generation is deleted or the store is closed.  Safe to call from
        worker threads.

        Raises:
            StoreError: If *name* is not a valid generation name or the
                backing directory cannot be opened.
        """
        if not _GENERATION_NAME.match(name):
            raise StoreError(f"Invalid generation name: {name!r}")
        with self._handles_lock:
            handle = self._handles.get(name)
            if handle is not None:
                return handle
            try:
                cache = diskcache.Cache(
                    str(self._root / name),
                    size_limit=self._config.size_limit_bytes,
                )
            except _STORE_FAILURES as exc:
                raise StoreError(f"Cannot open generation '{name}': {exc}") from exc
            handle = GenerationHandle(name, cache)
            self._handles[name] = handle
            return handle

    def has_generation(self, name: str) -> bool:
        return name in self.list_generations()

    def list_generations(self) -> set[str]:
        """Return the names of every generation present on disk."""
        if not self._root.is_dir():
            return set()
        try:
            return {p.name for p in self._root.iterdir() if p.is_dir()}
        except OSError as exc:
            raise StoreError(f"Cannot list generations in {self._root}: {exc}") from exc

    def delete_generation(self, name: str) -> bool:
        """Delete generation *name* and all its entries.

        Idempotent: deleting a generation that does not exist is a no-op.

        Returns:
            ``True`` if something was deleted.
        """
        with self._handles_lock:
            handle = self._handles.pop(name, None)
            if handle is not None:
                handle.cache.close()
            path = self._root / name
            if not path.exists():
                return False
            try:
                shutil.rmtree(path)
            except OSError as exc:
                raise StoreError(f"Cannot delete generation '{name}': {exc}") from exc
        logger.debug("Deleted generation %s", name)
        return True

    # ------------------------------------------------------------------ #
    # Entries
    # ------------------------------------------------------------------ #

    def get(self, handle: GenerationHandle, key: str) -> Optional[CachedEntry]:
        """Return the entry stored under *key*, or ``None`` on a miss."""
        try:
            raw = handle.cache.get(key)
        except _STORE_FAILURES as exc:
            raise StoreError(f"Cannot read from '{handle.name}': {exc}") from exc
        if raw is None:
            return None
        return CachedEntry.model_validate(raw)

    def put(self, handle: GenerationHandle, key: str, entry: CachedEntry) -> None:
        """Store *entry* under *key*, replacing any previous entry.

        When the write fails and ``evict_on_quota_error`` is enabled, the
        oldest half of the generation is purged and the write retried once.

        Raises:
            StoreError: If the write (or its retry) fails.
        """
        try:
            self._write(handle, key, entry)
            return
        except _STORE_FAILURES as exc:
            if not self._config.evict_on_quota_error:
                raise StoreError(f"Cannot write to '{handle.name}': {exc}") from exc
            logger.warning("Write to %s failed (%s); purging oldest entries", handle.name, exc)

        self.purge_oldest(handle, max(1, self.count(handle) // 2))
        try:
            self._write(handle, key, entry)
        except _STORE_FAILURES as exc:
            raise StoreError(f"Cannot write to '{handle.name}' after purge: {exc}") from exc

    def delete(self, handle: GenerationHandle, key: str) -> bool:
        """Remove *key* from the generation.  Returns ``True`` if it existed."""
        try:
            return bool(handle.cache.delete(key))
        except _STORE_FAILURES as exc:
            raise StoreError(f"Cannot delete from '{handle.name}': {exc}") from exc

    def keys(self, handle: GenerationHandle) -> list[str]:
        """Return every key in stored order, oldest first."""
        try:
            return list(handle.cache)
        except _STORE_FAILURES as exc:
            raise StoreError(f"Cannot list keys of '{handle.name}': {exc}") from exc

    def entries(self, handle: GenerationHandle) -> Iterator[CachedEntry]:
        """Yield every entry in stored order, skipping keys deleted mid-iteration."""
        for key in self.keys(handle):
            entry = self.get(handle, key)
            if entry is not None:
                yield entry

    def count(self, handle: GenerationHandle) -> int:
        try:
            return len(handle.cache)
        except _STORE_FAILURES as exc:
            raise StoreError(f"Cannot count entries of '{handle.name}': {exc}") from exc

    def purge_oldest(self, handle: GenerationHandle, count: int) -> int:
        """Delete the *count* oldest entries.  Returns how many were removed."""
        removed = 0
        for key in self.keys(handle)[:count]:
            if self.delete(handle, key):
                removed += 1
        return removed

    def clear(self, handle: GenerationHandle) -> int:
        """Remove every entry from the generation.  Returns the number removed."""
        try:
            return handle.cache.clear()
        except _STORE_FAILURES as exc:
            raise StoreError(f"Cannot clear '{handle.name}': {exc}") from exc

    def close(self) -> None:
        """Close every open generation and release resources."""
        with self._handles_lock:
            for handle in self._handles.values():
                handle.cache.close()
            self._handles.clear()

    def _write(self, handle: GenerationHandle, key: str, entry: CachedEntry) -> None:
        cache = handle.cache
        with cache.transact():
            cache.delete(key)
            cache.set(key, entry.model_dump())
