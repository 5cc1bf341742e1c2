"""Outbound HTTP for cachegate -- the network fetcher.

:class:`NetworkFetcher` wraps :class:`httpx.AsyncClient` and is the only
place the package talks to an origin.  Transport-level failures (connection
refused, DNS, timeouts, protocol errors) are mapped to
:class:`~cachegate.exceptions.NetworkError`; HTTP error statuses are
returned as ordinary responses so each strategy can decide whether to cache
them.

The fetcher applies ``RequestConfig.timeout`` to every request.  Pass
``timeout=None`` in the config to wait indefinitely.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from cachegate.exceptions import NetworkError
from cachegate.models import RequestConfig, RequestDescriptor

logger = logging.getLogger(__name__)

# Request headers that describe the hop to the cache, not the request itself.
_HOP_HEADERS = frozenset(
    {"connection", "keep-alive", "proxy-connection", "te", "trailer",
     "transfer-encoding", "upgrade", "host", "content-length"}
)


class NetworkFetcher:
    """Asynchronous HTTP fetcher used by strategies, install and control commands.

    Must be used as an async context manager (or opened with
    :meth:`open` and closed with :meth:`aclose`).

    Args:
        config: Timeout and SSL verification settings.
        transport: Optional custom :mod:`httpx` transport, e.g. an
            :class:`httpx.MockTransport` in tests.

    Example::

        async with NetworkFetcher(RequestConfig()) as fetcher:
            response = await fetcher.fetch(descriptor)
    """

    def __init__(
        self,
        config: RequestConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> NetworkFetcher:
        self.open()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    def open(self) -> None:
        """Create the underlying :class:`httpx.AsyncClient` if not already open."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._config.timeout,
                verify=self._config.verify_ssl,
                follow_redirects=True,
                transport=self._transport,
            )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    async def fetch(self, descriptor: RequestDescriptor) -> httpx.Response:
        """Perform *descriptor* against its origin and return the full response.

        The body is read before returning so the response can be stored
        and replayed.

        Raises:
            NetworkError: On any transport-level failure.
        """
        assert self._client is not None, "Fetcher not open -- use as async context manager"

        headers = {
            name: value
            for name, value in descriptor.headers.items()
            if name not in _HOP_HEADERS
        }
        logger.debug("Fetching %s %s", descriptor.method, descriptor.url)
        try:
            response = await self._client.request(
                descriptor.method, descriptor.url, headers=headers
            )
        except httpx.TransportError as exc:
            raise NetworkError(f"{descriptor.method} {descriptor.url} failed: {exc}") from exc
        return response

    async def fetch_url(self, url: str) -> httpx.Response:
        """Shorthand for a plain GET of *url* with no extra headers."""
        return await self.fetch(RequestDescriptor(method="GET", url=url))
