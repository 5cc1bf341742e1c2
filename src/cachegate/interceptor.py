"""The interception entry point a host calls once per request.

:meth:`Interceptor.handle` applies the bypass rules, classifies the request,
runs the selected strategy and converts any strategy failure into a
fallback response, so every intercepted request yields exactly one
response.  Bypassed requests yield ``None`` and the host forwards them
unmodified.

Example::

    async with CacheContext.create(config, cache_dir) as ctx:
        interceptor = Interceptor(ctx)
        response = await interceptor.handle(
            RequestDescriptor(url="http://localhost:8000/index.html")
        )
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Optional

import httpx

from cachegate.classifier import classify, should_bypass
from cachegate.exceptions import CachegateError
from cachegate.models import (
    ClassifierConfig,
    RequestDescriptor,
    ResourceClass,
    format_timestamp,
)
from cachegate.strategy import StrategyEngine, build_fallback_response

if TYPE_CHECKING:
    from cachegate.context import CacheContext

logger = logging.getLogger(__name__)

Classifier = Callable[[RequestDescriptor, ClassifierConfig], ResourceClass]


class Interceptor:
    """Routes intercepted requests through the strategy engine.

    Args:
        ctx: Runtime context.
        engine: Strategy engine; a new one bound to *ctx* by default.
        classifier: Classification function; :func:`~cachegate.classifier.classify`
            by default.
    """

    def __init__(
        self,
        ctx: CacheContext,
        engine: Optional[StrategyEngine] = None,
        classifier: Classifier = classify,
    ) -> None:
        self._ctx = ctx
        self.engine = engine if engine is not None else StrategyEngine(ctx)
        self._classify = classifier

    def should_bypass(self, descriptor: RequestDescriptor) -> bool:
        return should_bypass(descriptor, self._ctx.config.classifier)

    async def handle(self, descriptor: RequestDescriptor) -> Optional[httpx.Response]:
        """Produce the response for *descriptor*, or ``None`` if it is bypassed.

        Strategy failures never escape: a
        :class:`~cachegate.exceptions.CachegateError` becomes the fallback
        response.  Any other exception is additionally broadcast to clients
        as ``SW_ERROR`` before falling back.
        """
        if self.should_bypass(descriptor):
            logger.debug("Bypassing %s %s", descriptor.method, descriptor.url)
            return None

        resource_class = self._classify(descriptor, self._ctx.config.classifier)
        try:
            return await self.engine.handle(descriptor, resource_class)
        except CachegateError as exc:
            logger.error("Serving fallback for %s: %s", descriptor.url, exc)
        except Exception as exc:
            logger.exception("Unexpected failure handling %s", descriptor.url)
            await self._ctx.clients.notify_all(
                {
                    "type": "SW_ERROR",
                    "error": str(exc),
                    "timestamp": format_timestamp(self._ctx.now()),
                }
            )
        return build_fallback_response(descriptor, self._ctx.now())

    async def respond(self, descriptor: RequestDescriptor) -> httpx.Response:
        """Like :meth:`handle`, but send bypassed requests straight to the network.

        This is the behaviour a simple host (the CLI ``fetch`` command, a
        proxy) wants: one response for every request.

        Raises:
            NetworkError: If a bypassed request cannot reach the network.
        """
        response = await self.handle(descriptor)
        if response is None:
            response = await self._ctx.fetcher.fetch(descriptor)
        return response
