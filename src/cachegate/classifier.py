"""Resource classification and interception bypass rules.

:func:`classify` maps a :class:`~cachegate.models.RequestDescriptor` to a
:class:`~cachegate.models.ResourceClass`.  Rules are checked in priority
order and the first match wins:

1. ``APP`` -- same-origin and a static-asset extension, the root path, or a
   path containing ``manifest``.
2. ``DATA`` -- ``/api/`` or ``/data/`` in the path, a ``data`` query key, or
   a ``.json`` path.  Because rule 1 runs first, a same-origin
   ``/api/x.json`` is ``APP``.
3. ``EXTERNAL`` -- cross-origin and the host matches a known CDN/font host.
4. ``OTHER`` -- everything else.

:func:`should_bypass` decides whether a request is intercepted at all; it is
consulted by :class:`~cachegate.interceptor.Interceptor` before
classification.
"""

from __future__ import annotations

from cachegate.models import ClassifierConfig, RequestDescriptor, ResourceClass

_DATA_SEGMENTS = ("/api/", "/data/")


def is_app_resource(descriptor: RequestDescriptor, config: ClassifierConfig) -> bool:
    """Return ``True`` for same-origin static assets of the hosting application."""
    if descriptor.origin != config.origin:
        return False
    path = descriptor.path
    return (
        path.endswith(tuple(config.static_extensions))
        or path == "/"
        or "manifest" in path
    )


def is_data_resource(descriptor: RequestDescriptor) -> bool:
    """Return ``True`` for dynamic data endpoints, regardless of origin."""
    path = descriptor.path
    return (
        any(segment in path for segment in _DATA_SEGMENTS)
        or "data" in descriptor.query
        or path.endswith(".json")
    )


def is_external_resource(descriptor: RequestDescriptor, config: ClassifierConfig) -> bool:
    """Return ``True`` for cross-origin requests to an allow-listed CDN or font host."""
    if descriptor.origin == config.origin:
        return False
    host = descriptor.host
    return any(known in host for known in config.external_hosts)


def classify(descriptor: RequestDescriptor, config: ClassifierConfig) -> ResourceClass:
    """Classify *descriptor*.  Pure and total: every request gets a class.

    Args:
        descriptor: The intercepted request.
        config: Origin and host lists the rules are evaluated against.

    Returns:
        The first matching :class:`~cachegate.models.ResourceClass`.
    """
    if is_app_resource(descriptor, config):
        return ResourceClass.APP
    if is_data_resource(descriptor):
        return ResourceClass.DATA
    if is_external_resource(descriptor, config):
        return ResourceClass.EXTERNAL
    return ResourceClass.OTHER


def should_bypass(descriptor: RequestDescriptor, config: ClassifierConfig) -> bool:
    """Return ``True`` when *descriptor* must go straight to the network.

    Non-GET requests, browser-extension schemes and analytics hosts are
    never cached or classified.
    """
    if descriptor.method != "GET":
        return True
    scheme = descriptor.scheme
    if any(scheme.startswith(reserved) for reserved in config.bypass_schemes):
        return True
    host = descriptor.host
    return any(blocked in host for blocked in config.blocked_hosts)
