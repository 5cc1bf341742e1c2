"""Client registry and broadcast primitive.

Clients of the cache layer (browser tabs behind a proxy, test doubles, a
CLI progress printer) register a callback with :class:`ClientHub`.  The
lifecycle manager and interceptor call :meth:`ClientHub.notify_all` to
broadcast events such as ``SW_INSTALLED`` or ``SW_ACTIVATED``.

Callbacks may be plain functions or coroutine functions.  A failing
callback is logged and skipped so one broken client never prevents the
others from being notified.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Union

logger = logging.getLogger(__name__)

ClientCallback = Callable[[dict[str, Any]], Union[None, Awaitable[None]]]


class ClientHub:
    """Delivers payloads to every registered client in registration order."""

    def __init__(self) -> None:
        self._clients: list[ClientCallback] = []

    def register(self, callback: ClientCallback) -> None:
        """Add *callback* to the set of notified clients."""
        self._clients.append(callback)

    def unregister(self, callback: ClientCallback) -> None:
        """Remove *callback*; unknown callbacks are ignored."""
        try:
            self._clients.remove(callback)
        except ValueError:
            pass

    def __len__(self) -> int:
        return len(self._clients)

    async def notify_all(self, payload: dict[str, Any]) -> int:
        """Send *payload* to every client.

        Returns:
            The number of clients that received the payload without error.
        """
        delivered = 0
        for client in list(self._clients):
            try:
                result = client(dict(payload))
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.warning(
                    "Client notification %s failed", payload.get("type"), exc_info=True
                )
                continue
            delivered += 1
        logger.debug("Notified %d client(s) of %s", delivered, payload.get("type"))
        return delivered
