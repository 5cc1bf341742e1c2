"""Caching strategies and the dispatcher that picks one per resource class.

Three strategies coordinate the :class:`~cachegate.cache.CacheStore` and the
:class:`~cachegate.client.NetworkFetcher`:

* **cache-first** (``APP``) -- serve a stored copy when present; otherwise
  fetch, store a 2xx copy and return the network response.
* **network-first** (``DATA`` and ``OTHER``) -- always fetch; store 2xx
  copies; fall back to the stored copy only when the fetch fails at the
  transport level.  Non-2xx responses are returned as-is and not stored.
* **stale-while-revalidate** (``EXTERNAL``) -- return a stored copy at once
  and refresh it in a background task; with nothing stored, wait for the
  fetch.

Storing a copy is opportunistic: a :class:`~cachegate.exceptions.StoreError`
while writing is logged and the network response is still returned.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

import httpx

from cachegate.exceptions import NetworkError, StoreError
from cachegate.models import CachedEntry, RequestDescriptor, ResourceClass

if TYPE_CHECKING:
    from cachegate.context import CacheContext

logger = logging.getLogger(__name__)

Strategy = Callable[[RequestDescriptor], Awaitable[httpx.Response]]


class StrategyEngine:
    """Executes the caching strategy selected for each request.

    Args:
        ctx: Runtime context providing the store, fetcher and clock.

    Example::

        engine = StrategyEngine(ctx)
        response = await engine.handle(descriptor, ResourceClass.APP)
        await engine.drain()  # wait for background revalidations
    """

    def __init__(self, ctx: CacheContext) -> None:
        self._ctx = ctx
        self._background: set[asyncio.Task[httpx.Response]] = set()

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #

    def strategy_for(self, resource_class: ResourceClass) -> Strategy:
        """Return the strategy coroutine function used for *resource_class*."""
        if resource_class is ResourceClass.APP:
            return self.cache_first
        if resource_class is ResourceClass.EXTERNAL:
            return self.stale_while_revalidate
        return self.network_first

    async def handle(
        self, descriptor: RequestDescriptor, resource_class: ResourceClass
    ) -> httpx.Response:
        """Run the strategy for *resource_class* against *descriptor*.

        Raises:
            NetworkError: When the strategy can satisfy the request from
                neither the network nor the store.
        """
        strategy = self.strategy_for(resource_class)
        logger.debug("%s -> %s (%s)", descriptor.url, strategy.__name__, resource_class.value)
        return await strategy(descriptor)

    # ------------------------------------------------------------------ #
    # Strategies
    # ------------------------------------------------------------------ #

    async def cache_first(self, descriptor: RequestDescriptor) -> httpx.Response:
        """Serve from the store; fetch and store only on a miss."""
        cached = self._lookup(descriptor)
        if cached is not None:
            logger.debug("Cache hit: %s", descriptor.url)
            return cached.to_response()

        response = await self._ctx.fetcher.fetch(descriptor)
        if response.is_success:
            self._store_copy(descriptor, response)
        return response

    async def network_first(self, descriptor: RequestDescriptor) -> httpx.Response:
        """Fetch; fall back to the store only when the network is unreachable."""
        try:
            response = await self._ctx.fetcher.fetch(descriptor)
        except NetworkError as exc:
            logger.warning("Network unavailable for %s (%s); trying cache", descriptor.url, exc)
            cached = self._lookup(descriptor)
            if cached is not None:
                logger.debug("Serving offline copy: %s", descriptor.url)
                return cached.to_response()
            raise

        if response.is_success:
            self._store_copy(descriptor, response)
        return response

    async def stale_while_revalidate(self, descriptor: RequestDescriptor) -> httpx.Response:
        """Return the stored copy immediately while refreshing it in the background."""
        cached = self._lookup(descriptor)
        task = asyncio.create_task(self._revalidate(descriptor))

        if cached is None:
            return await task

        self._background.add(task)
        task.add_done_callback(self._settle)
        logger.debug("Serving stale copy, revalidating: %s", descriptor.url)
        return cached.to_response()

    async def drain(self) -> None:
        """Wait for every outstanding background revalidation to settle."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    @property
    def pending(self) -> int:
        """Number of background revalidations still running."""
        return len(self._background)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _revalidate(self, descriptor: RequestDescriptor) -> httpx.Response:
        response = await self._ctx.fetcher.fetch(descriptor)
        if response.is_success:
            self._store_copy(descriptor, response)
            logger.debug("Revalidated %s", descriptor.url)
        return response

    def _settle(self, task: asyncio.Task[httpx.Response]) -> None:
        """Done-callback for background revalidations: log and discard failures."""
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background revalidation failed: %s", exc)

    def _lookup(self, descriptor: RequestDescriptor) -> Optional[CachedEntry]:
        try:
            return self._ctx.store.get(self._ctx.current(), descriptor.cache_key)
        except StoreError as exc:
            logger.warning("Cache lookup failed for %s: %s", descriptor.url, exc)
            return None

    def _store_copy(self, descriptor: RequestDescriptor, response: httpx.Response) -> None:
        entry = CachedEntry.from_response(descriptor, response, stored_at=self._ctx.now())
        try:
            self._ctx.store.put(self._ctx.current(), entry.key, entry)
        except StoreError as exc:
            logger.warning("Could not cache %s: %s", descriptor.url, exc)
            return
        logger.debug("Cached %s", descriptor.url)
