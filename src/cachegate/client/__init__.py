"""HTTP client module for cachegate.

Classes:
    :class:`NetworkFetcher` -- non-blocking fetcher backed by
    :class:`httpx.AsyncClient`, mapping transport failures to
    :class:`~cachegate.exceptions.NetworkError`.

Example::

    from cachegate.client import NetworkFetcher

    async with NetworkFetcher(config.request) as fetcher:
        resp = await fetcher.fetch_url("https://app.example.com/")
"""

from cachegate.client.fetcher import NetworkFetcher

__all__ = ["NetworkFetcher"]
