"""Caching strategies and fallback responses.

Classes:
    :class:`StrategyEngine` -- cache-first, network-first and
    stale-while-revalidate, dispatched by resource class.

Functions:
    :func:`build_fallback_response` -- the offline page / 503 payload
    returned when a strategy fails.
"""

from cachegate.strategy.engine import StrategyEngine
from cachegate.strategy.fallback import build_fallback_response

__all__ = ["StrategyEngine", "build_fallback_response"]
