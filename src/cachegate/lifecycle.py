"""Cache generation lifecycle: install, activate, maintenance and background sync.

A generation moves through :class:`~cachegate.models.LifecycleState`::

    IDLE -> INSTALLING -> INSTALLED -> ACTIVATING -> ACTIVE

* **install** opens the new generation and populates it with the core URLs
  (2xx required) and the external URLs (any response is stored, since a
  cross-origin response cannot be verified).  Assets are fetched
  concurrently; each failure is logged and counted, never fatal.  Only a
  store that cannot be opened fails the install.
* **activate** deletes every other generation in this namespace, leaving
  exactly one.
* **maintenance** expires entries older than ``max_age_seconds`` and then
  evicts the oldest entries until at most ``max_entries`` remain.  The
  periodic task survives failed passes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional, Sequence
from urllib.parse import urljoin

from cachegate.cache import GenerationHandle
from cachegate.exceptions import CachegateError, StoreError
from cachegate.models import (
    CachedEntry,
    InstallTally,
    LifecycleState,
    MaintenanceReport,
    RequestDescriptor,
    format_timestamp,
)

if TYPE_CHECKING:
    from cachegate.context import CacheContext

logger = logging.getLogger(__name__)


class LifecycleManager:
    """Owns generation transitions and periodic maintenance.

    Args:
        ctx: Runtime context whose configuration names the current
            generation.

    Example::

        lifecycle = LifecycleManager(ctx)
        tally = await lifecycle.install()
        await lifecycle.activate(start_maintenance=True)
    """

    def __init__(self, ctx: CacheContext) -> None:
        self._ctx = ctx
        self.state = LifecycleState.IDLE
        self._skip_waiting = False
        self._maintenance_task: Optional[asyncio.Task[None]] = None

    @property
    def sync_tag(self) -> str:
        """The only background-sync tag this manager responds to."""
        return f"{self._ctx.config.namespace}-background-sync"

    def resolve_url(self, url: str) -> str:
        """Resolve *url* against the application origin (absolute URLs pass through)."""
        return urljoin(self._ctx.config.classifier.origin + "/", url)

    # ------------------------------------------------------------------ #
    # Install
    # ------------------------------------------------------------------ #

    async def install(
        self,
        core_urls: Optional[Sequence[str]] = None,
        external_urls: Optional[Sequence[str]] = None,
    ) -> InstallTally:
        """Populate the current generation.

        Args:
            core_urls: Same-origin URLs to cache; defaults to
                ``config.core_urls``.  Relative URLs are resolved against
                the origin.
            external_urls: Cross-origin URLs cached without a status check;
                defaults to ``config.external_urls``.

        Returns:
            How many assets were and were not stored.

        Raises:
            StoreError: If the generation cannot be opened.
        """
        config = self._ctx.config
        core = list(config.core_urls if core_urls is None else core_urls)
        external = list(config.external_urls if external_urls is None else external_urls)

        self.state = LifecycleState.INSTALLING
        logger.info("Installing generation %s", self._ctx.generation)
        try:
            handle = self._ctx.current()
        except StoreError:
            self.state = LifecycleState.IDLE
            raise

        urls = [self.resolve_url(url) for url in core] + external
        jobs = [self._cache(handle, url, opaque=False) for url in core]
        jobs += [self._cache(handle, url, opaque=True) for url in external]
        results = await asyncio.gather(*jobs, return_exceptions=True)

        tally = InstallTally()
        for url, result in zip(urls, results):
            if isinstance(result, BaseException):
                logger.warning("Could not cache %s during install: %s", url, result)
                tally.failed += 1
            else:
                tally.succeeded += 1

        self.state = LifecycleState.INSTALLED
        logger.info(
            "Installation finished: %d succeeded, %d failed", tally.succeeded, tally.failed
        )
        await self._ctx.clients.notify_all(
            {"type": "SW_INSTALLED", "version": config.version, "cached": tally.succeeded}
        )

        if self._skip_waiting:
            await self.activate()
        return tally

    async def cache_url(self, url: str) -> CachedEntry:
        """Fetch *url* and store it in the current generation (2xx required).

        Raises:
            NetworkError: If the fetch fails.
            CachegateError: If the origin answers with a non-2xx status.
            StoreError: If the entry cannot be written.
        """
        return await self._cache(self._ctx.current(), self.resolve_url(url), opaque=False)

    async def _cache(self, handle: GenerationHandle, url: str, opaque: bool) -> CachedEntry:
        descriptor = RequestDescriptor(url=self.resolve_url(url))
        response = await self._ctx.fetcher.fetch(descriptor)
        if not opaque and not response.is_success:
            raise CachegateError(f"HTTP {response.status_code}")
        entry = CachedEntry.from_response(descriptor, response, stored_at=self._ctx.now())
        self._ctx.store.put(handle, entry.key, entry)
        return entry

    # ------------------------------------------------------------------ #
    # Activate
    # ------------------------------------------------------------------ #

    async def activate(self, start_maintenance: bool = False) -> list[str]:
        """Make the configured generation the only one in this namespace.

        Args:
            start_maintenance: Also start the periodic maintenance task.

        Returns:
            Names of the generations that were deleted.

        Raises:
            StoreError: If a stale generation cannot be deleted.
        """
        previous = self.state
        self.state = LifecycleState.ACTIVATING
        self._skip_waiting = False
        current = self._ctx.generation
        prefix = f"{self._ctx.config.namespace}-"
        try:
            self._ctx.current()
            stale = sorted(
                name
                for name in self._ctx.store.list_generations()
                if name.startswith(prefix) and name != current
            )
            for name in stale:
                self._ctx.store.delete_generation(name)
        except StoreError:
            self.state = previous
            raise

        if stale:
            logger.info("Deleted stale generations: %s", ", ".join(stale))
        self.state = LifecycleState.ACTIVE
        logger.info("Generation %s is active", current)

        if start_maintenance:
            self.start_maintenance()
        await self._ctx.clients.notify_all(
            {
                "type": "SW_ACTIVATED",
                "version": self._ctx.config.version,
                "timestamp": format_timestamp(self._ctx.now()),
            }
        )
        return stale

    async def request_activation(self) -> None:
        """Activate as soon as possible (the ``SKIP_WAITING`` command).

        Activates immediately when installed; during an install, activation
        follows as soon as the install completes.
        """
        if self.state is LifecycleState.INSTALLED:
            await self.activate()
        elif self.state is LifecycleState.INSTALLING:
            self._skip_waiting = True
        else:
            logger.debug("Skip-waiting ignored in state %s", self.state.value)

    # ------------------------------------------------------------------ #
    # Maintenance
    # ------------------------------------------------------------------ #

    def run_maintenance(self) -> MaintenanceReport:
        """Run one maintenance pass over the current generation.

        Entries whose age exceeds ``max_age_seconds`` are deleted first.
        If more than ``max_entries`` remain, the oldest (by stored order)
        are deleted until exactly ``max_entries`` are left.

        Raises:
            StoreError: Aborts this pass only.
        """
        cache_config = self._ctx.config.cache
        store = self._ctx.store
        handle = self._ctx.current()
        now = self._ctx.now()

        report = MaintenanceReport()
        for entry in list(store.entries(handle)):
            if now - entry.stored_at > cache_config.max_age_seconds:
                if store.delete(handle, entry.key):
                    report.expired += 1

        excess = store.count(handle) - cache_config.max_entries
        if excess > 0:
            logger.info("Cache over capacity, evicting %d oldest entries", excess)
            report.evicted = store.purge_oldest(handle, excess)

        report.remaining = store.count(handle)
        if report.expired or report.evicted:
            logger.info(
                "Maintenance: %d expired, %d evicted, %d remaining",
                report.expired, report.evicted, report.remaining,
            )
        return report

    def start_maintenance(self) -> None:
        """Start the periodic maintenance task if it is not already running."""
        if self._maintenance_task is not None and not self._maintenance_task.done():
            return
        self._maintenance_task = asyncio.create_task(self._maintenance_loop())

    async def stop_maintenance(self) -> None:
        """Cancel the periodic maintenance task and wait for it to finish."""
        task, self._maintenance_task = self._maintenance_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @property
    def maintenance_running(self) -> bool:
        return self._maintenance_task is not None and not self._maintenance_task.done()

    async def _maintenance_loop(self) -> None:
        interval = self._ctx.config.cache.maintenance_interval_seconds
        while True:
            await asyncio.sleep(interval)
            try:
                await asyncio.to_thread(self.run_maintenance)
            except Exception:
                logger.exception("Periodic maintenance pass failed")

    # ------------------------------------------------------------------ #
    # Background sync
    # ------------------------------------------------------------------ #

    async def sync(self, tag: str) -> bool:
        """Refresh every cached URL of the current generation.

        Only :attr:`sync_tag` is handled; other tags are ignored.  Clients
        are sent ``SYNC_START`` before and ``SYNC_COMPLETE`` after the
        refresh.  Individual refresh failures are logged and skipped.

        Returns:
            ``True`` if the tag was handled.
        """
        if tag != self.sync_tag:
            logger.debug("Ignoring sync tag %s", tag)
            return False

        clients = self._ctx.clients
        await clients.notify_all(
            {"type": "SYNC_START", "timestamp": format_timestamp(self._ctx.now())}
        )
        handle = self._ctx.current()
        urls = [entry.url for entry in self._ctx.store.entries(handle)]
        results = await asyncio.gather(
            *(self._cache(handle, url, opaque=False) for url in urls),
            return_exceptions=True,
        )
        refreshed = 0
        for url, result in zip(urls, results):
            if isinstance(result, BaseException):
                logger.warning("Background sync could not refresh %s: %s", url, result)
            else:
                refreshed += 1
        await clients.notify_all(
            {
                "type": "SYNC_COMPLETE",
                "refreshed": refreshed,
                "timestamp": format_timestamp(self._ctx.now()),
            }
        )
        logger.info("Background sync refreshed %d of %d entries", refreshed, len(urls))
        return True
