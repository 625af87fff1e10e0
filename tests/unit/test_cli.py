"""Tests for the devtools-mcp CLI (JSON envelopes via click's CliRunner)."""

import json
import os
import threading
from typing import Any, Dict, List
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from devtools_mcp.cli.main import cli


def _json_lines(text: str) -> List[Dict[str, Any]]:
    lines = []
    for line in text.splitlines():
        line = line.strip()
        if line.startswith("{"):
            lines.append(json.loads(line))
    return lines


def _envelope(text: str) -> Dict[str, Any]:
    """Return the last response-v2 envelope found in ``text``."""
    envelopes = [line for line in _json_lines(text) if "success" in line]
    assert envelopes, f"no envelope in output: {text!r}"
    return envelopes[-1]


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with patch.dict(os.environ, {"DEVTOOLS_MCP_LOG_LEVEL": "WARNING"}, clear=True):
        yield CliRunner()


class TestCacheCommands:
    def test_namespaces(self, runner, response_validator):
        result = runner.invoke(cli, ["cache", "namespaces"])

        assert result.exit_code == 0, result.output
        response = _envelope(result.stdout)
        response_validator(response)
        names = {ns["namespace"]: ns for ns in response["data"]["namespaces"]}
        assert len(names) == 7
        assert names["fileLists"] == {
            "namespace": "fileLists",
            "max_items": 200,
            "ttl_ms": 30_000,
        }
        assert response["meta"]["request_id"].startswith("cli_")

    def test_namespaces_from_config_file(self, runner, tmp_path):
        config_file = tmp_path / "custom.toml"
        config_file.write_text("[cache.namespaces.fileLists]\nmax_items = 2\n")

        result = runner.invoke(cli, ["--config", str(config_file), "cache", "namespaces"])

        assert result.exit_code == 0, result.output
        names = {ns["namespace"]: ns for ns in _envelope(result.stdout)["data"]["namespaces"]}
        assert names["fileLists"]["max_items"] == 2

    def test_stats(self, runner, response_validator):
        result = runner.invoke(cli, ["cache", "stats"])

        assert result.exit_code == 0, result.output
        response = _envelope(result.stdout)
        response_validator(response)
        assert response["data"]["enabled"] is True
        assert len(response["data"]["stats"]) == 7
        assert response["data"]["over_memory_budget"] is False

    def test_stats_single_namespace(self, runner):
        result = runner.invoke(cli, ["cache", "stats", "--namespace", "goModules"])

        assert result.exit_code == 0, result.output
        stats = _envelope(result.stdout)["data"]["stats"]
        assert [s["namespace"] for s in stats] == ["goModules"]
        assert stats[0]["max_size"] == 50

    def test_stats_unknown_namespace(self, runner, response_validator):
        result = runner.invoke(cli, ["cache", "stats", "--namespace", "nope"])

        assert result.exit_code == 1
        response = _envelope(result.stderr)
        response_validator(response)
        assert response["data"]["error_code"] == "NOT_FOUND"

    def test_stats_disabled(self, runner):
        with patch.dict(os.environ, {"DEVTOOLS_MCP_CACHE_ENABLED": "false"}):
            result = runner.invoke(cli, ["cache", "stats"])

        assert result.exit_code == 0, result.output
        assert _envelope(result.stdout)["data"]["enabled"] is False

    def test_stats_help_explains_process_scope(self, runner):
        result = runner.invoke(cli, ["cache", "stats", "--help"])

        assert result.exit_code == 0, result.output
        help_text = " ".join(result.output.split())
        assert "do not reflect a running server" in help_text


class TestChecksumCommands:
    def test_compute(self, runner, tmp_path):
        path = tmp_path / "a.txt"
        path.write_text("a")

        result = runner.invoke(cli, ["checksum", "compute", str(path)])

        assert result.exit_code == 0, result.output
        data = _envelope(result.stdout)["data"]
        assert data["algorithm"] == "sha256"
        assert data["files"][0]["path"] == str(path)
        assert len(data["files"][0]["checksum"]) == 64
        assert data["errors"] == {}

    def test_compute_md5_with_missing_file(self, runner, tmp_path):
        path = tmp_path / "a.txt"
        path.write_text("a")
        missing = tmp_path / "missing.txt"

        result = runner.invoke(
            cli, ["checksum", "compute", str(path), str(missing), "--algorithm", "md5"]
        )

        assert result.exit_code == 0, result.output
        response = _envelope(result.stdout)
        assert len(response["data"]["files"][0]["checksum"]) == 32
        assert str(missing) in response["data"]["errors"]
        assert response["meta"]["warnings"] == [f"Could not read {missing}"]

    def test_compute_all_missing(self, runner, tmp_path):
        result = runner.invoke(cli, ["checksum", "compute", str(tmp_path / "missing")])

        assert result.exit_code == 1
        assert _envelope(result.stderr)["data"]["error_code"] == "FILE_UNREADABLE"

    def test_watch_without_changes(self, runner, tmp_path):
        path = tmp_path / "a.txt"
        path.write_text("a")

        result = runner.invoke(
            cli,
            ["checksum", "watch", str(path), "--interval-ms", "10", "--duration", "0.05"],
        )

        assert result.exit_code == 0, result.output
        data = _envelope(result.stdout)["data"]
        assert data["tracked"] == [str(path)]
        assert data["change_count"] == 0
        assert data["interval_ms"] == 10

    def test_watch_reports_change(self, runner, tmp_path, edit_file):
        path = tmp_path / "a.txt"
        path.write_text("a")
        timer = threading.Timer(0.1, edit_file, args=(path, "b"))
        timer.start()
        try:
            result = runner.invoke(
                cli,
                ["checksum", "watch", str(path), "--interval-ms", "10", "--duration", "0.6"],
            )
        finally:
            timer.cancel()

        assert result.exit_code == 0, result.output
        lines = _json_lines(result.stdout)
        events = [line for line in lines if line.get("event") == "changed"]
        assert [event["path"] for event in events] == [str(path)]
        assert _envelope(result.stdout)["data"]["change_count"] == 1

    def test_watch_untrackable(self, runner, tmp_path):
        result = runner.invoke(
            cli, ["checksum", "watch", str(tmp_path / "missing"), "--duration", "0"]
        )

        assert result.exit_code == 1
        assert _envelope(result.stderr)["data"]["error_code"] == "FILE_UNREADABLE"

    def test_dev_files(self, runner, tmp_path):
        (tmp_path / "go.mod").write_text("module demo\n")

        result = runner.invoke(cli, ["checksum", "dev-files", "--root", str(tmp_path)])

        assert result.exit_code == 0, result.output
        files = {f["file"]: f for f in _envelope(result.stdout)["data"]["files"]}
        assert files["go.mod"]["tracked"] is True
        assert files["go.mod"]["namespaces"] == ["projectDetection", "goModules"]
        assert files["go.sum"]["tracked"] is False


class TestRootGroup:
    def test_invalid_config(self, runner):
        with patch.dict(os.environ, {"DEVTOOLS_MCP_CHECKSUM_ALGORITHM": "crc32"}):
            result = runner.invoke(cli, ["cache", "namespaces"])

        assert result.exit_code == 1
        response = _envelope(result.stderr)
        assert response["data"]["error_code"] == "INVALID_CONFIG"
        assert response["data"]["error_type"] == "validation"

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "devtools-mcp" in result.output
