"""Config commands -- view and modify global configuration.

Provides the ``cachegate config`` sub-command group for reading, updating
and resetting the user's global configuration file
(:class:`~cachegate.models.GlobalConfig`).
"""

from __future__ import annotations

from typing import Any

import typer

from cachegate.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show the effective configuration.

    Applies project config, environment variables and the ``--origin`` /
    ``--cache-version`` flags on top of the global config file.

    Example::

        cachegate config show --json
    """
    from cachegate.config import get_config_dir, resolve_config
    from cachegate.exceptions import ConfigError

    options = ctx.obj or {}
    try:
        config = resolve_config(
            cli_origin=options.get("origin"),
            cli_version=options.get("cache_version"),
        )
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


def _coerce(key: str, current: Any, value: str) -> Any:
    """Convert the string *value* to the type of the existing field value."""
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes")
    if isinstance(current, int):
        try:
            return int(value)
        except ValueError:
            error(f"Expected integer for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    if isinstance(current, float) or (current is None and key.endswith("timeout")):
        if value.lower() in ("none", "null", ""):
            return None
        try:
            return float(value)
        except ValueError:
            error(f"Expected number for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    if isinstance(current, list):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g., 'cache.max_entries')."
    ),
    value: str = typer.Argument(help="Value to set (comma-separated for lists)."),
) -> None:
    """Set a configuration value in the global config file.

    The value is coerced to the existing field's type and the result is
    validated against :class:`~cachegate.models.GlobalConfig` before
    saving.

    Example::

        cachegate config set version 2.0.0
        cachegate config set classifier.origin https://app.example.com
        cachegate config set core_urls /,/index.html,/app.js
    """
    from cachegate.config import load_global_config, save_global_config
    from cachegate.models import GlobalConfig

    config = load_global_config()
    data = config.model_dump(mode="json")

    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=2)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target:
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    coerced = _coerce(key, target[final_key], value)
    target[final_key] = coerced

    try:
        new_config = GlobalConfig.model_validate(data)
    except ValueError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_global_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Reset configuration to defaults.

    Asks for confirmation unless ``--force`` is active.
    """
    from cachegate.config import save_global_config
    from cachegate.models import GlobalConfig

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm("Reset all config to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")
