"""Lifecycle and request commands -- install, activate, maintain, sync, fetch.

These are registered directly on the root application by
:func:`cachegate.app.main`:

* ``cachegate install`` -- populate the configured generation.
* ``cachegate activate`` -- delete every stale generation.
* ``cachegate maintain`` -- run one age/size eviction pass.
* ``cachegate sync`` -- refresh every cached URL.
* ``cachegate fetch URL`` -- send one request through the interceptor.
"""

from __future__ import annotations

from typing import Optional

import typer

from cachegate.commands.common import run_with_context
from cachegate.context import CacheContext
from cachegate.models import InstallTally, MaintenanceReport, RequestDescriptor
from cachegate.output import debug, format_response, info, print_response, success, suggest, warning


def install_command(
    ctx: typer.Context,
    url: Optional[list[str]] = typer.Option(
        None, "--url", "-u", help="Core URL to cache (repeatable; defaults to config)."
    ),
    external: Optional[list[str]] = typer.Option(
        None, "--external", "-e", help="External URL to cache without status checks."
    ),
    activate: bool = typer.Option(
        False, "--activate", help="Activate the generation once installed."
    ),
) -> None:
    """Populate the current cache generation.

    Fetches the core URLs (2xx required) and external URLs (any response)
    concurrently.  Individual failures are reported but do not fail the
    install.

    Example::

        cachegate install
        cachegate install -u / -u /app.js --activate
    """
    from cachegate.lifecycle import LifecycleManager

    async def _install(c: CacheContext) -> tuple[str, InstallTally]:
        lifecycle = LifecycleManager(c)
        tally = await lifecycle.install(url or None, external or None)
        if activate:
            await lifecycle.activate()
        return c.generation, tally

    generation, tally = run_with_context(ctx, _install)
    success(f"Installed {generation}: {tally.succeeded} cached, {tally.failed} failed")
    if tally.failed:
        warning(f"{tally.failed} asset(s) could not be cached; run with --verbose for details")
    if not activate:
        suggest("Run: cachegate activate")


def activate_command(ctx: typer.Context) -> None:
    """Make the configured generation current and delete stale ones.

    Example::

        cachegate activate
        cachegate --cache-version 2.0.0 activate
    """
    from cachegate.lifecycle import LifecycleManager

    async def _activate(c: CacheContext) -> tuple[str, list[str]]:
        removed = await LifecycleManager(c).activate()
        return c.generation, removed

    generation, removed = run_with_context(ctx, _activate)
    for name in removed:
        info(f"Deleted stale generation {name}")
    success(f"Generation {generation} is active")


def maintain_command(ctx: typer.Context) -> None:
    """Run one maintenance pass (age expiry, then size eviction).

    Example::

        cachegate maintain --json
    """
    from cachegate.lifecycle import LifecycleManager

    async def _maintain(c: CacheContext) -> MaintenanceReport:
        return LifecycleManager(c).run_maintenance()

    report = run_with_context(ctx, _maintain)
    format_response(report.model_dump())


def sync_command(
    ctx: typer.Context,
    tag: Optional[str] = typer.Option(
        None, "--tag", help="Sync tag (defaults to '<namespace>-background-sync')."
    ),
) -> None:
    """Refresh every URL in the current generation from the network.

    Example::

        cachegate sync
    """
    from cachegate.lifecycle import LifecycleManager

    async def _sync(c: CacheContext) -> bool:
        lifecycle = LifecycleManager(c)
        return await lifecycle.sync(tag or lifecycle.sync_tag)

    if run_with_context(ctx, _sync):
        success("Background sync complete")
    else:
        warning(f"Sync tag '{tag}' is not handled")


def fetch_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="Absolute URL to request."),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method."),
    accept: str = typer.Option("*/*", "--accept", help="Accept header to send."),
) -> None:
    """Send one request through the interceptor and print the response.

    Bypassed requests (non-GET, extension schemes, analytics hosts) go
    straight to the network.

    Example::

        cachegate fetch http://localhost:8000/index.html
        cachegate fetch http://localhost:8000/ --accept text/html
    """
    from cachegate.classifier import classify
    from cachegate.exceptions import InvalidUsageError
    from cachegate.interceptor import Interceptor

    descriptor = RequestDescriptor(method=method, url=url, headers={"accept": accept})

    async def _fetch(c: CacheContext):  # noqa: ANN202
        if not descriptor.scheme:
            raise InvalidUsageError(f"Expected an absolute URL, got: {url}")
        interceptor = Interceptor(c)
        if interceptor.should_bypass(descriptor):
            debug("Request bypasses the cache")
        else:
            debug(f"Classified as {classify(descriptor, c.config.classifier).value}")
        response = await interceptor.respond(descriptor)
        await interceptor.engine.drain()
        return response

    print_response(run_with_context(ctx, _fetch))
