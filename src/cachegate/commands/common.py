"""Helpers shared by the CLI commands.

Every command that touches the cache builds a
:class:`~cachegate.context.CacheContext` from the resolved configuration and
runs one coroutine against it with :func:`run_with_context`.  Errors from
the library surface as the matching process exit code.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import typer

from cachegate.context import CacheContext, log_startup_summary
from cachegate.exceptions import CachegateError
from cachegate.output import error

T = TypeVar("T")


def build_context(options: dict[str, Any]) -> CacheContext:
    """Resolve configuration for the current invocation and build a context.

    Args:
        options: The Typer ``ctx.obj`` dict populated by the root callback
            (``origin`` and ``cache_version`` overrides).
    """
    from cachegate.config import get_cache_dir, resolve_config

    config = resolve_config(
        cli_origin=options.get("origin"),
        cli_version=options.get("cache_version"),
    )
    return CacheContext.create(config, get_cache_dir())


def run_with_context(
    typer_ctx: typer.Context,
    fn: Callable[[CacheContext], Awaitable[T]],
) -> T:
    """Run *fn* inside a freshly opened context on a new event loop.

    Raises:
        typer.Exit: With the error's exit code when *fn* raises a
            :class:`~cachegate.exceptions.CachegateError`.
    """
    options = typer_ctx.obj or {}

    async def _main() -> T:
        async with build_context(options) as ctx:
            log_startup_summary(ctx)
            return await fn(ctx)

    try:
        return asyncio.run(_main())
    except CachegateError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
