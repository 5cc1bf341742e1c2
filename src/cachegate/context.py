"""Explicit runtime state shared by the cachegate components.

:class:`CacheContext` bundles the effective configuration, the cache store,
the network fetcher, the client notification hub and a clock.  Components
receive the context instead of reading module globals, so tests can build an
isolated context per case (a ``tmp_path`` store, a mock transport, a fixed
clock).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

import httpx

from cachegate.cache import CacheStore, GenerationHandle
from cachegate.channel.clients import ClientHub
from cachegate.client import NetworkFetcher
from cachegate.models import GlobalConfig

logger = logging.getLogger(__name__)


@dataclass
class CacheContext:
    """Everything a request, lifecycle step or control command needs.

    Attributes:
        config: Effective configuration (namespace, version, bounds).
        store: The generation-partitioned cache store.
        fetcher: Outbound HTTP fetcher.
        clients: Hub used to broadcast lifecycle events.
        clock: Returns the current POSIX time; replaced in tests.
    """

    config: GlobalConfig
    store: CacheStore
    fetcher: NetworkFetcher
    clients: ClientHub = field(default_factory=ClientHub)
    clock: Callable[[], float] = time.time

    @classmethod
    def create(
        cls,
        config: GlobalConfig,
        cache_dir: str | Path,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ) -> CacheContext:
        """Build a context with a store under *cache_dir* and a fresh fetcher."""
        return cls(
            config=config,
            store=CacheStore(cache_dir, config.cache),
            fetcher=NetworkFetcher(config.request, transport=transport),
            clock=clock,
        )

    async def __aenter__(self) -> CacheContext:
        self.fetcher.open()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.fetcher.aclose()
        self.store.close()

    @property
    def generation(self) -> str:
        """Name of the current generation."""
        return self.config.generation_name

    def current(self) -> GenerationHandle:
        """Open (or reuse) the current generation."""
        return self.store.open(self.generation)

    def now(self) -> float:
        return self.clock()


def log_startup_summary(ctx: CacheContext) -> None:
    """Log the effective configuration and whether the current generation exists."""
    cache = ctx.config.cache
    logger.info(
        "cachegate configured: generation=%s max_age=%.1f days max_entries=%d",
        ctx.generation,
        cache.max_age_seconds / 86400,
        cache.max_entries,
    )
    if ctx.store.has_generation(ctx.generation):
        logger.info("Current generation %s is present", ctx.generation)
    else:
        logger.info("Current generation %s not found; run install", ctx.generation)
