"""Client-facing side of cachegate: notifications and control messages.

Classes:
    :class:`ClientHub` -- registry of clients and the ``notify_all``
    broadcast primitive.
    :class:`ControlChannel` -- handles ``GET_VERSION``, ``CLEAR_CACHE``,
    ``CACHE_RESOURCE``, ``GET_CACHE_INFO`` and ``SKIP_WAITING`` messages.
"""

from cachegate.channel.clients import ClientHub
from cachegate.channel.control import ControlChannel

__all__ = ["ClientHub", "ControlChannel"]
