"""Message-based control interface for cache introspection and invalidation.

Clients send dict messages with a ``type`` field (and an optional ``data``
dict).  :meth:`ControlChannel.handle` returns the single reply for the
message, or ``None`` for messages that take no reply:

=================  ======================================================
``SKIP_WAITING``   no reply; asks the lifecycle manager to activate
``GET_VERSION``    ``{version, cacheName, timestamp}``
``CLEAR_CACHE``    ``{success, message}`` or ``{success: False, error}``
``CACHE_RESOURCE`` ``{success, message}`` or ``{success: False, error}``
``GET_CACHE_INFO`` ``{success, data: {cacheName, version, entries, urls, timestamp}}``
=================  ======================================================

Unknown types are logged and get no reply.  Failures never escape
:meth:`~ControlChannel.handle`; they are reported in the reply.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping, Optional

from cachegate.models import format_timestamp

if TYPE_CHECKING:
    from cachegate.context import CacheContext
    from cachegate.lifecycle import LifecycleManager

logger = logging.getLogger(__name__)

Reply = Optional[dict[str, Any]]


class ControlChannel:
    """Dispatches control messages to the cache store and lifecycle manager.

    Args:
        ctx: Runtime context.
        lifecycle: Lifecycle manager used for activation and resource caching.

    Example::

        channel = ControlChannel(ctx, lifecycle)
        reply = await channel.handle({"type": "GET_CACHE_INFO"})
    """

    def __init__(self, ctx: CacheContext, lifecycle: LifecycleManager) -> None:
        self._ctx = ctx
        self._lifecycle = lifecycle
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[Reply]]] = {
            "SKIP_WAITING": self._skip_waiting,
            "GET_VERSION": self._get_version,
            "CLEAR_CACHE": self._clear_cache,
            "CACHE_RESOURCE": self._cache_resource,
            "GET_CACHE_INFO": self._get_cache_info,
        }

    async def handle(self, message: Mapping[str, Any]) -> Reply:
        """Execute *message* and return its reply (``None`` if it has none).

        Anything that is not a mapping is treated as an unknown message.
        """
        if not isinstance(message, Mapping):
            logger.info("Ignoring malformed control message: %r", message)
            return None
        msg_type = message.get("type")
        data = message.get("data")
        if not isinstance(data, dict):
            data = {k: v for k, v in message.items() if k not in ("type", "data")}
        logger.debug("Control message: %s", msg_type)

        handler = self._handlers.get(msg_type) if isinstance(msg_type, str) else None
        if handler is None:
            logger.info("Unrecognised control message %r: %s", msg_type, data)
            return None

        try:
            return await handler(data)
        except Exception as exc:
            logger.warning("Control message %s failed: %s", msg_type, exc)
            if msg_type == "SKIP_WAITING":
                return None
            return {"success": False, "error": str(exc)}

    # ------------------------------------------------------------------ #
    # Handlers
    # ------------------------------------------------------------------ #

    async def _skip_waiting(self, data: dict[str, Any]) -> Reply:
        await self._lifecycle.request_activation()
        return None

    async def _get_version(self, data: dict[str, Any]) -> Reply:
        return {
            "version": self._ctx.config.version,
            "cacheName": self._ctx.generation,
            "timestamp": self._timestamp(),
        }

    async def _clear_cache(self, data: dict[str, Any]) -> Reply:
        self._ctx.store.delete_generation(self._ctx.generation)
        logger.info("Cleared generation %s", self._ctx.generation)
        return {"success": True, "message": "Cache cleared"}

    async def _cache_resource(self, data: dict[str, Any]) -> Reply:
        url = data.get("url")
        if not url:
            logger.warning("CACHE_RESOURCE without a url ignored")
            return None
        entry = await self._lifecycle.cache_url(str(url))
        return {"success": True, "message": f"Resource {entry.url} cached"}

    async def _get_cache_info(self, data: dict[str, Any]) -> Reply:
        store = self._ctx.store
        entries = list(store.entries(self._ctx.current()))
        return {
            "success": True,
            "data": {
                "cacheName": self._ctx.generation,
                "version": self._ctx.config.version,
                "entries": len(entries),
                "urls": [entry.url for entry in entries],
                "timestamp": self._timestamp(),
            },
        }

    def _timestamp(self) -> str:
        return format_timestamp(self._ctx.now())
