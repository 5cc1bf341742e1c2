"""Typer application and CLI entry point for cachegate.

This module wires together the top-level Typer application and registers
the built-in commands (``install``, ``activate``, ``maintain``, ``sync``,
``fetch``) and groups (``cache``, ``config``).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``.  It installs a SIGINT handler and invokes the Typer
app.  :class:`~cachegate.exceptions.CachegateError` exits with the error's
code; any other exception is written to a crash log under the data
directory.

See Also:
    :mod:`cachegate.config`: Configuration resolution.
    :mod:`cachegate.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from cachegate import __version__
from cachegate.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="cachegate",
    help="Offline-first request cache with versioned generations.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"cachegate {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    origin: Optional[str] = typer.Option(
        None, "--origin", help="Application origin (overrides config)."
    ),
    cache_version: Optional[str] = typer.Option(
        None, "--cache-version", help="Generation version (overrides config)."
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output and library logs."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Skip confirmations."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~cachegate.output.OutputManager`, routes
    library logging through it, and stores shared options in ``ctx.obj``.
    """
    from cachegate.output import OutputFormat, OutputManager, configure_logging, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(
        format=fmt,
        no_color=no_color,
        quiet=quiet,
        verbose=verbose,
    )
    set_output(output)
    configure_logging(output)

    ctx.ensure_object(dict)
    ctx.obj["origin"] = origin
    ctx.obj["cache_version"] = cache_version
    ctx.obj["force"] = force
    ctx.obj["verbose"] = verbose


# ------------------------------------------------------------------ #
# Commands
# ------------------------------------------------------------------ #

from cachegate.commands.cache import cache_app  # noqa: E402
from cachegate.commands.config import config_app  # noqa: E402
from cachegate.commands.lifecycle import (  # noqa: E402
    activate_command,
    fetch_command,
    install_command,
    maintain_command,
    sync_command,
)

app.command("install")(install_command)
app.command("activate")(activate_command)
app.command("maintain")(maintain_command)
app.command("sync")(sync_command)
app.command("fetch")(fetch_command)
app.add_typer(cache_app, name="cache", help="Inspect and invalidate the cache.")
app.add_typer(config_app, name="config", help="Configuration management.")


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from cachegate.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``cachegate`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from cachegate.exceptions import CachegateError
        from cachegate.output import error

        if isinstance(exc, CachegateError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
