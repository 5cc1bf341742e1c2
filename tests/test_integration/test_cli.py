"""End-to-end tests of the cachegate CLI.

Every command runs through the real Typer application.  The context
builder is patched so the store lives under the test's temporary directory
and outbound requests reach the in-memory fake origin.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import ORIGIN

from cachegate.app import app
from cachegate.config import resolve_config
from cachegate.context import CacheContext
from cachegate.exit_codes import EXIT_INVALID_USAGE, EXIT_NOT_FOUND


@pytest.fixture
def cli(monkeypatch: pytest.MonkeyPatch, isolated_config: Path, origin, clock):
    """Project config for the fake origin plus a patched context builder."""
    (isolated_config / "cachegate.json").write_text(
        json.dumps({"namespace": "testapp", "classifier": {"origin": ORIGIN}}),
        encoding="utf-8",
    )

    def _build(options):
        config = resolve_config(
            cli_origin=options.get("origin"),
            cli_version=options.get("cache_version"),
        )
        return CacheContext.create(
            config, isolated_config / "store", transport=origin.transport(), clock=clock
        )

    monkeypatch.setattr("cachegate.commands.common.build_context", _build)

    origin.add(f"{ORIGIN}/", "<html>root</html>", content_type="text/html")
    origin.add(f"{ORIGIN}/index.html", "<html>index</html>", content_type="text/html")
    origin.add(f"{ORIGIN}/manifest.json", '{"name": "test"}', content_type="application/json")
    origin.add(f"{ORIGIN}/extra.css", "body {}", content_type="text/css")
    return origin


def _json(cli_runner, *args):
    result = cli_runner.invoke(app, ["--json", "--quiet", *args])
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


class TestVersion:
    def test_version_flag(self, cli_runner) -> None:
        from cachegate import __version__

        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"cachegate {__version__}" in result.output


class TestInstallAndActivate:
    def test_install_then_info(self, cli_runner, cli) -> None:
        result = cli_runner.invoke(app, ["install"])
        assert result.exit_code == 0, result.output

        info = _json(cli_runner, "cache", "info")
        assert info["cacheName"] == "testapp-v1.0.0"
        assert info["entries"] == 3

    def test_install_with_failures_still_succeeds(self, cli_runner, cli) -> None:
        result = cli_runner.invoke(app, ["install", "-u", "/", "-u", "/missing.js"])
        assert result.exit_code == 0, result.output

        assert _json(cli_runner, "cache", "info")["entries"] == 1

    def test_new_version_replaces_old_generation(self, cli_runner, cli) -> None:
        assert cli_runner.invoke(app, ["install", "--activate"]).exit_code == 0
        result = cli_runner.invoke(app, ["--cache-version", "2.0.0", "install", "--activate"])
        assert result.exit_code == 0, result.output

        rows = _json(cli_runner, "--cache-version", "2.0.0", "cache", "generations")
        assert [row["Generation"] for row in rows] == ["testapp-v2.0.0"]
        assert rows[0]["Current"] == "yes"

    def test_activate(self, cli_runner, cli) -> None:
        result = cli_runner.invoke(app, ["activate"])
        assert result.exit_code == 0, result.output
        assert "testapp-v1.0.0" in result.output


class TestFetch:
    def test_app_resource_served_offline_after_install(self, cli_runner, cli) -> None:
        assert cli_runner.invoke(app, ["install"]).exit_code == 0
        cli.offline = True

        result = cli_runner.invoke(app, ["--quiet", "fetch", f"{ORIGIN}/index.html"])
        assert result.exit_code == 0, result.output
        assert result.stdout.strip() == "<html>index</html>"

    def test_uncached_data_offline_gets_json_503(self, cli_runner, cli) -> None:
        cli.offline = True
        payload = _json(cli_runner, "fetch", f"{ORIGIN}/api/items")
        assert payload["offline"] is True
        assert payload["error"] == "Resource unavailable offline"

    def test_uncached_page_offline_gets_offline_page(self, cli_runner, cli) -> None:
        cli.offline = True
        result = cli_runner.invoke(
            app, ["--quiet", "fetch", f"{ORIGIN}/about", "--accept", "text/html"]
        )
        assert result.exit_code == 0, result.output
        assert "You are offline" in result.stdout

    def test_relative_url_is_invalid_usage(self, cli_runner, cli) -> None:
        result = cli_runner.invoke(app, ["fetch", "/index.html"])
        assert result.exit_code == EXIT_INVALID_USAGE
        assert cli.calls == []

    def test_post_bypasses_cache(self, cli_runner, cli) -> None:
        cli.add(f"{ORIGIN}/api/items", '{"id": 1}', status=201, content_type="application/json")
        payload = _json(cli_runner, "fetch", f"{ORIGIN}/api/items", "-X", "POST")
        assert payload == {"id": 1}
        assert cli.methods == ["POST"]
        assert _json(cli_runner, "cache", "info")["entries"] == 0


class TestCacheCommands:
    def test_add_and_show(self, cli_runner, cli) -> None:
        result = cli_runner.invoke(app, ["cache", "add", "/extra.css"])
        assert result.exit_code == 0, result.output

        entry = _json(cli_runner, "cache", "show", "/extra.css")
        assert entry["url"] == f"{ORIGIN}/extra.css"
        assert entry["status_code"] == 200
        assert entry["size"] == len("body {}")

        body = cli_runner.invoke(app, ["cache", "show", "/extra.css", "--body"])
        assert body.stdout.strip() == "body {}"

    def test_add_failure_exits_nonzero(self, cli_runner, cli) -> None:
        result = cli_runner.invoke(app, ["cache", "add", "/missing.css"])
        assert result.exit_code == 1
        assert "HTTP 404" in result.output

    def test_show_missing_exits_not_found(self, cli_runner, cli) -> None:
        result = cli_runner.invoke(app, ["cache", "show", "/nothing.js"])
        assert result.exit_code == EXIT_NOT_FOUND

    def test_clear_with_force(self, cli_runner, cli) -> None:
        assert cli_runner.invoke(app, ["install"]).exit_code == 0
        result = cli_runner.invoke(app, ["--force", "cache", "clear"])
        assert result.exit_code == 0, result.output
        assert "Cache cleared" in result.output

        assert _json(cli_runner, "cache", "info")["entries"] == 0

    def test_clear_declined(self, cli_runner, cli) -> None:
        assert cli_runner.invoke(app, ["install"]).exit_code == 0
        result = cli_runner.invoke(app, ["cache", "clear"], input="n\n")
        assert result.exit_code == 0
        assert _json(cli_runner, "cache", "info")["entries"] == 3

    def test_version(self, cli_runner, cli) -> None:
        reply = _json(cli_runner, "--cache-version", "3.1.0", "cache", "version")
        assert reply["version"] == "3.1.0"
        assert reply["cacheName"] == "testapp-v3.1.0"


class TestMaintainAndSync:
    def test_maintain_reports(self, cli_runner, cli, clock) -> None:
        assert cli_runner.invoke(app, ["install"]).exit_code == 0
        clock.advance(8 * 24 * 60 * 60)

        report = _json(cli_runner, "maintain")
        assert report == {"expired": 3, "evicted": 0, "remaining": 0}

    def test_sync_refreshes(self, cli_runner, cli) -> None:
        assert cli_runner.invoke(app, ["install"]).exit_code == 0
        cli.add(f"{ORIGIN}/index.html", "<html>v2</html>", content_type="text/html")

        result = cli_runner.invoke(app, ["sync"])
        assert result.exit_code == 0, result.output

        cli.offline = True
        fetched = cli_runner.invoke(app, ["--quiet", "fetch", f"{ORIGIN}/index.html"])
        assert fetched.stdout.strip() == "<html>v2</html>"

    def test_sync_unknown_tag(self, cli_runner, cli) -> None:
        result = cli_runner.invoke(app, ["sync", "--tag", "other"])
        assert result.exit_code == 0
        assert "not handled" in result.output


class TestConfigCommands:
    def test_set_then_show(self, cli_runner, isolated_config) -> None:
        result = cli_runner.invoke(app, ["config", "set", "cache.max_entries", "25"])
        assert result.exit_code == 0, result.output

        shown = _json(cli_runner, "config", "show")
        assert shown["cache"]["max_entries"] == 25

    def test_set_list_value(self, cli_runner, isolated_config) -> None:
        result = cli_runner.invoke(app, ["config", "set", "core_urls", "/,/app.js"])
        assert result.exit_code == 0, result.output
        assert _json(cli_runner, "config", "show")["core_urls"] == ["/", "/app.js"]

    def test_set_unknown_key(self, cli_runner, isolated_config) -> None:
        result = cli_runner.invoke(app, ["config", "set", "cache.nope", "1"])
        assert result.exit_code == 2

    def test_set_bad_integer(self, cli_runner, isolated_config) -> None:
        result = cli_runner.invoke(app, ["config", "set", "cache.max_entries", "many"])
        assert result.exit_code == 2

    def test_show_applies_cli_overrides(self, cli_runner, isolated_config) -> None:
        shown = _json(cli_runner, "--origin", "https://cli.example.com", "config", "show")
        assert shown["classifier"]["origin"] == "https://cli.example.com"

    def test_reset_with_force(self, cli_runner, isolated_config) -> None:
        cli_runner.invoke(app, ["config", "set", "version", "5.0.0"])
        result = cli_runner.invoke(app, ["--force", "config", "reset"])
        assert result.exit_code == 0, result.output
        assert _json(cli_runner, "config", "show")["version"] == "1.0.0"
