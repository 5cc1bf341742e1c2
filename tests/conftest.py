"""Shared test fixtures for cachegate.

Provides a scriptable fake origin served through :class:`httpx.MockTransport`,
a controllable clock, isolated cache contexts and config environments, and
output/logging resets between tests.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

import httpx
import pytest

from cachegate.context import CacheContext
from cachegate.models import CacheConfig, ClassifierConfig, GlobalConfig, RequestDescriptor
from cachegate.output import OutputFormat, OutputManager, reset_output, set_output

ORIGIN = "https://app.example.com"


# ---------------------------------------------------------------------------
# Auto-reset global output and logging state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager and drop CLI log handlers after every test.

    Both hold references to the sys.stdout/sys.stderr that were current when
    they were created; CliRunner replaces and closes those streams.
    """
    yield
    reset_output()
    logger = logging.getLogger("cachegate")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Fake origin and clock
# ---------------------------------------------------------------------------


class FakeOrigin:
    """In-memory origin server.

    Routes map absolute URLs to ``(status, body, headers)``.  Unknown URLs
    answer 404.  Setting :attr:`offline` makes every request fail with
    :class:`httpx.ConnectError`; setting :attr:`gate` to an
    :class:`asyncio.Event` holds every request until the event is set.
    """

    def __init__(self) -> None:
        self.routes: dict[str, tuple[int, bytes, dict[str, str]]] = {}
        self.calls: list[str] = []
        self.methods: list[str] = []
        self.offline = False
        self.gate: Optional[asyncio.Event] = None

    def add(
        self,
        url: str,
        body: bytes | str = b"",
        status: int = 200,
        content_type: str = "text/plain",
    ) -> None:
        if isinstance(body, str):
            body = body.encode()
        self.routes[url] = (status, body, {"content-type": content_type})

    def count(self, url: str) -> int:
        return self.calls.count(url)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls.append(url)
        self.methods.append(request.method)
        if self.gate is not None:
            await self.gate.wait()
        if self.offline:
            raise httpx.ConnectError("connection refused", request=request)
        status, body, headers = self.routes.get(url, (404, b"not found", {}))
        return httpx.Response(status, headers=headers, content=body, request=request)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class FakeClock:
    """Callable clock whose time only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def origin() -> FakeOrigin:
    return FakeOrigin()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Config and context fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config() -> GlobalConfig:
    """A configuration for https://app.example.com with small bounds."""
    return GlobalConfig(
        namespace="testapp",
        version="1.0.0",
        core_urls=["/", "/index.html", "/manifest.json"],
        cache=CacheConfig(max_age_seconds=3600, max_entries=50),
        classifier=ClassifierConfig(origin=ORIGIN),
    )


@pytest.fixture
def make_context(tmp_path: Path, origin: FakeOrigin, clock: FakeClock):
    """Factory building a CacheContext on tmp_path wired to the fake origin."""

    def _make(config: GlobalConfig) -> CacheContext:
        return CacheContext.create(
            config, tmp_path / "cache", transport=origin.transport(), clock=clock
        )

    return _make


@pytest.fixture
def context(make_context, config: GlobalConfig) -> CacheContext:
    return make_context(config)


def get(url: str, **headers: Any) -> RequestDescriptor:
    """Build a GET descriptor; keyword args become headers."""
    return RequestDescriptor(method="GET", url=url, headers=headers)


# ---------------------------------------------------------------------------
# Config isolation and output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points the XDG directories at tmp_path, clears every CACHEGATE_*
    variable, and changes the working directory to tmp_path.
    """
    monkeypatch.setattr("cachegate.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    for var in ["CACHEGATE_ORIGIN", "CACHEGATE_VERSION", "CACHEGATE_CACHE_DIR"]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def json_output() -> OutputManager:
    output = OutputManager(format=OutputFormat.JSON, no_color=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    from typer.testing import CliRunner

    return CliRunner()
