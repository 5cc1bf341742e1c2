"""Cache commands -- inspect and invalidate the current generation.

Provides the ``cachegate cache`` sub-command group.  ``info``, ``clear``,
``add`` and ``version`` are sent as messages through
:class:`~cachegate.channel.ControlChannel`, exactly as a connected client
would send them; ``show`` and ``generations`` read the store directly.
"""

from __future__ import annotations

from typing import Any

import typer

from cachegate.commands.common import run_with_context
from cachegate.context import CacheContext
from cachegate.models import CachedEntry, format_timestamp, make_cache_key
from cachegate.output import error, format_response, get_output, info, success


cache_app = typer.Typer(no_args_is_help=True)


def _send(ctx: typer.Context, message: dict[str, Any]) -> dict[str, Any]:
    """Send *message* through a control channel and return its reply.

    Raises:
        typer.Exit: With code 1 when the reply reports a failure.
    """
    from cachegate.channel import ControlChannel
    from cachegate.lifecycle import LifecycleManager

    async def _handle(c: CacheContext) -> Any:
        return await ControlChannel(c, LifecycleManager(c)).handle(message)

    reply = run_with_context(ctx, _handle)
    if reply is None:
        error(f"No reply to {message['type']}")
        raise typer.Exit(code=1)
    if reply.get("success") is False:
        error(reply.get("error", "unknown error"))
        raise typer.Exit(code=1)
    return reply


@cache_app.command("info")
def cache_info(ctx: typer.Context) -> None:
    """Show the current generation's name, version and cached URLs.

    Example::

        cachegate cache info
        cachegate --json cache info
    """
    format_response(_send(ctx, {"type": "GET_CACHE_INFO"})["data"])


@cache_app.command("version")
def cache_version(ctx: typer.Context) -> None:
    """Show the version and name of the current generation."""
    format_response(_send(ctx, {"type": "GET_VERSION"}))


@cache_app.command("clear")
def cache_clear(ctx: typer.Context) -> None:
    """Delete every entry of the current generation.

    Asks for confirmation unless ``--force`` is active.

    Example::

        cachegate --force cache clear
    """
    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm("Delete every cached entry of the current generation?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()
    success(_send(ctx, {"type": "CLEAR_CACHE"})["message"])


@cache_app.command("add")
def cache_add(
    ctx: typer.Context,
    url: str = typer.Argument(help="URL to fetch and cache (relative URLs use the origin)."),
) -> None:
    """Fetch a URL and store it in the current generation.

    Example::

        cachegate cache add /offline.html
    """
    success(_send(ctx, {"type": "CACHE_RESOURCE", "data": {"url": url}})["message"])


@cache_app.command("show")
def cache_show(
    ctx: typer.Context,
    url: str = typer.Argument(help="URL of the cached entry."),
    body: bool = typer.Option(False, "--body", help="Print the cached body instead."),
) -> None:
    """Show one cached entry's metadata (or its body with ``--body``).

    Exits with code 4 when the URL is not cached.
    """
    from cachegate.exceptions import NotFoundError
    from cachegate.lifecycle import LifecycleManager

    async def _lookup(c: CacheContext) -> CachedEntry:
        absolute = LifecycleManager(c).resolve_url(url)
        entry = c.store.get(c.current(), make_cache_key("GET", absolute))
        if entry is None:
            raise NotFoundError(f"No cached entry for {absolute} in {c.generation}")
        return entry

    entry = run_with_context(ctx, _lookup)
    if body:
        get_output().print_data(entry.body.decode("utf-8", errors="replace"))
        return
    format_response(
        {
            "url": entry.url,
            "status_code": entry.status_code,
            "stored_at": format_timestamp(entry.stored_at),
            "size": len(entry.body),
            "headers": entry.headers,
        }
    )


@cache_app.command("generations")
def cache_generations(ctx: typer.Context) -> None:
    """List every generation on disk, marking the current one."""

    async def _list(c: CacheContext) -> tuple[str, list[tuple[str, int]]]:
        rows = []
        for name in sorted(c.store.list_generations()):
            rows.append((name, c.store.count(c.store.open(name))))
        return c.generation, rows

    current, generations = run_with_context(ctx, _list)
    get_output().print_table(
        ["Generation", "Entries", "Current"],
        [[name, str(count), "yes" if name == current else ""] for name, count in generations],
        title="Cache generations",
    )
