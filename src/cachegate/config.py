"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for cachegate:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.cachegate/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`.
* **Global config** -- A single :class:`~cachegate.models.GlobalConfig`
  JSON file storing the namespace, version, install URLs and cache bounds.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project-local config, and global config into the
  final effective configuration.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from cachegate.exceptions import ConfigError
from cachegate.models import GlobalConfig, normalise_origin

_APP_NAME = "cachegate"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "cachegate.json"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True on Linux and the BSDs, where XDG base directories apply."""
    system = platform.system()
    return system == "Linux" or system.endswith("BSD")


def _app_dir(xdg_var: str, xdg_default: tuple[str, ...], fallback: tuple[str, ...]) -> Path:
    """Resolve and create one of the application's directories.

    Args:
        xdg_var: XDG environment variable naming the base directory.
        xdg_default: Base directory segments under ``$HOME`` when *xdg_var*
            is unset or empty.
        fallback: Segments under ``~/.cachegate`` on non-XDG platforms.
    """
    if _is_xdg_platform():
        env_value = os.environ.get(xdg_var, "")
        base = Path(env_value) if env_value else Path.home().joinpath(*xdg_default)
        path = base / _APP_NAME
    else:
        path = Path.home().joinpath(f".{_APP_NAME}", *fallback)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/cachegate/`` (default ``~/.config/cachegate/``).
    On macOS/Windows: ``~/.cachegate/``.
    """
    return _app_dir("XDG_CONFIG_HOME", (".config",), ())


def get_cache_dir() -> Path:
    """Return the directory holding every cache generation.

    ``CACHEGATE_CACHE_DIR`` overrides the platform default of
    ``$XDG_CACHE_HOME/cachegate/`` (Linux/BSD) or ``~/.cachegate/cache/``.
    """
    override = os.environ.get("CACHEGATE_CACHE_DIR", "")
    if override:
        path = Path(override)
        path.mkdir(parents=True, exist_ok=True)
        return path
    return _app_dir("XDG_CACHE_HOME", (".cache",), ("cache",))


def get_data_dir() -> Path:
    """Return the data directory used for crash logs."""
    return _app_dir("XDG_DATA_HOME", (".local", "share"), ("logs",))


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Replace *path* with *data* via a temp file in the same directory.

    ``os.replace`` is atomic on POSIX, so readers see either the old or
    the new file.  The temp file is removed if anything fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = tempfile.NamedTemporaryFile(
        mode="w",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
        encoding="utf-8",
    )
    try:
        with tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp.name, path)
    except BaseException:
        try:
            os.unlink(tmp.name)
        except OSError:
            pass
        raise


# --- Global config ---


def _global_config_path() -> Path:
    """Path to the global config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the XDG config directory.

    Returns:
        The deserialised :class:`~cachegate.models.GlobalConfig`, or a
        default instance if the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    _atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local configuration from ``./cachegate.json``.

    Project-local values are deep-merged over the global config, so a
    repository can pin its own origin, version and install URLs.

    Returns:
        The parsed JSON as a dict, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Project config at {path} must be a JSON object")
    return data


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# --- Precedence resolution ---


def resolve_config(
    cli_origin: Optional[str] = None,
    cli_version: Optional[str] = None,
) -> GlobalConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_origin``, ``cli_version``)
        2. Environment variables (``CACHEGATE_ORIGIN``, ``CACHEGATE_VERSION``)
        3. Project config (``./cachegate.json``)
        4. User config (``~/.config/cachegate/config.json``)
        5. Defaults

    Returns:
        The effective :class:`~cachegate.models.GlobalConfig`.

    Raises:
        ConfigError: If any layer is invalid.
    """
    # 5 + 4. Global config fills in defaults automatically
    config = load_global_config()

    # 3. Project-local overlay
    project = load_project_config()
    if project is not None:
        merged = _deep_merge(config.model_dump(mode="json"), project)
        try:
            config = GlobalConfig.model_validate(merged)
        except ValueError as exc:
            raise ConfigError(f"Invalid project config: {exc}") from exc

    # 2. Environment variables
    env_origin = os.environ.get("CACHEGATE_ORIGIN")
    env_version = os.environ.get("CACHEGATE_VERSION")
    origin = cli_origin if cli_origin is not None else env_origin
    version = cli_version if cli_version is not None else env_version

    # 1. CLI flags (highest precedence)
    if origin:
        config.classifier.origin = normalise_origin(origin.rstrip("/"))
    if version:
        config.version = version

    return config
