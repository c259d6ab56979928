"""Tests for the instructsync CLI via CliRunner."""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from instructsync.cli import main
from instructsync.config import load_settings, save_settings
from instructsync.errors import RemoteAuthError
from instructsync.models import SyncSettings

OLD = "<!--VERSION:1.0.0 LAST_MODIFIED:2026-01-01T00:00:00.000Z-->"
NEW = "<!--VERSION:1.0.1 LAST_MODIFIED:2026-02-01T00:00:00.000Z-->"


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def configured(sync_home, settings):
    save_settings(settings, sync_home)
    return sync_home


@pytest.fixture
def gist(store):
    """Route every GistStore the CLI builds to the in-memory store."""
    with patch("instructsync.cli._common.GistStore", return_value=store):
        yield store


def _args(command, project, home, *extra):
    return [command, "--project", str(project), "--home", str(home), *extra]


class TestConfigure:
    """instructsync configure."""

    def test_saves_options(self, runner, sync_home):
        result = runner.invoke(main, [
            "configure", "--home", str(sync_home),
            "--token", "ghp_abc123", "--remote-id", "abc123",
            "--no-auto-exclude", "--interval-minutes", "10",
        ])

        assert result.exit_code == 0, result.output
        assert "Configuration saved" in result.output
        settings = load_settings(sync_home)
        assert settings.remote_token == "ghp_abc123"
        assert settings.remote_id == "abc123"
        assert settings.auto_exclude is False
        assert settings.interval_sync_minutes == 10

    def test_empty_remote_id_clears(self, runner, configured):
        result = runner.invoke(main, [
            "configure", "--home", str(configured), "--remote-id", "",
        ])
        assert result.exit_code == 0, result.output
        assert load_settings(configured).remote_id is None

    def test_rejects_bad_token(self, runner, sync_home):
        result = runner.invoke(main, [
            "configure", "--home", str(sync_home), "--token", "hunter2",
        ])
        assert result.exit_code == 1
        assert "Invalid token format" in result.output
        assert load_settings(sync_home).remote_token == ""

    def test_rejects_bad_remote_id(self, runner, sync_home):
        result = runner.invoke(main, [
            "configure", "--home", str(sync_home), "--remote-id", "not-hex",
        ])
        assert result.exit_code == 1
        assert "Invalid Gist ID format" in result.output

    def test_interval_out_of_range(self, runner, sync_home):
        result = runner.invoke(main, [
            "configure", "--home", str(sync_home), "--interval-minutes", "0",
        ])
        assert result.exit_code != 0


class TestStatus:
    """instructsync status."""

    def test_json(self, runner, configured, project):
        result = runner.invoke(main, _args("status", project, configured, "--json-out"))

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["remote_token"] is True
        assert data["remote_id"] == "abc000"
        assert data["local_path"] is None
        assert data["interval_sync_minutes"] == 30

    def test_table_masks_token(self, runner, configured, project):
        result = runner.invoke(main, _args("status", project, configured))
        assert result.exit_code == 0, result.output
        assert "ghp_testtoken" not in result.output
        assert "abc000" in result.output


class TestCheck:
    """instructsync check."""

    def test_reports_without_acting(self, runner, configured, project, gist):
        local = project / ".github" / "copilot-instructions.md"
        local.parent.mkdir()
        local.write_text(OLD + "Hello", encoding="utf-8")
        gist.items["abc000"] = NEW + "Hello world"

        result = runner.invoke(main, _args("check", project, configured, "--json-out"))

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["classification"] == "diverged"
        assert data["direction"] == "remote_newer"
        assert data["action"] == "no_op"
        assert gist.puts == []
        assert local.read_text(encoding="utf-8") == OLD + "Hello"

    def test_transport_failure(self, runner, configured, project, gist):
        gist.fail_with = RemoteAuthError("Bad credentials", status_code=401)
        result = runner.invoke(main, _args("check", project, configured))
        assert result.exit_code == 1
        assert "Bad credentials" in result.output


class TestSync:
    """instructsync sync (interactive)."""

    def test_download_after_confirm(self, runner, configured, project, gist):
        gist.items["abc000"] = "# Guide"

        result = runner.invoke(main, _args("sync", project, configured), input="y\n")

        assert result.exit_code == 0, result.output
        target = project / ".github" / "copilot-instructions.md"
        assert target.read_text(encoding="utf-8") == "# Guide"
        assert "download" in result.output

    def test_declined_is_cancelled(self, runner, configured, project, gist):
        gist.items["abc000"] = "# Guide"

        result = runner.invoke(main, _args("sync", project, configured), input="n\n")

        assert result.exit_code == 0, result.output
        assert "cancelled" in result.output
        assert not (project / ".github").exists()

    def test_new_gist_id_is_saved(self, runner, sync_home, project, gist):
        save_settings(SyncSettings(remote_token="ghp_testtoken"), sync_home)

        result = runner.invoke(main, _args("sync", project, sync_home), input="y\ny\n")

        assert result.exit_code == 0, result.output
        assert (project / ".github" / "copilot-instructions.md").exists()
        assert load_settings(sync_home).remote_id == "abc001"
        assert "abc001" in gist.items

    def test_missing_token_fails(self, runner, sync_home, project, gist):
        result = runner.invoke(main, _args("sync", project, sync_home))
        assert result.exit_code == 1
        assert "not configured" in result.output
        assert gist.fetches == []


class TestVerifyToken:
    """instructsync verify-token."""

    def test_no_token(self, runner, sync_home):
        result = runner.invoke(main, ["verify-token", "--home", str(sync_home)])
        assert result.exit_code == 1
        assert "No token configured" in result.output

    @patch("instructsync.cli.config_cmd.GistStore")
    def test_valid(self, mock_store, runner, configured):
        mock_store.return_value.verify_token.return_value = "octocat"

        result = runner.invoke(main, ["verify-token", "--home", str(configured)])

        assert result.exit_code == 0, result.output
        assert "octocat" in result.output
        mock_store.assert_called_once_with("ghp_testtoken")

    @patch("instructsync.cli.config_cmd.GistStore")
    def test_rejected(self, mock_store, runner, configured):
        mock_store.return_value.verify_token.side_effect = RemoteAuthError("401 Bad")

        result = runner.invoke(main, ["verify-token", "--home", str(configured)])

        assert result.exit_code == 1
        assert "Token test failed" in result.output


def test_version(runner):
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "instructsync" in result.output
