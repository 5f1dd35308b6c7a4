"""
Tests for the CLI commands via Click's CliRunner.

``run`` and ``check`` are pointed at a SimulatedHost by replacing the
use case's ``build_orchestrator``.
"""

import hashlib
import json

import click
import pytest
from click.testing import CliRunner

from hostprep.core.use_cases.provision import build_orchestrator
from hostprep.main import cli


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    monkeypatch.setenv("HOSTPREP_LOG_FILE", str(tmp_path / "hostprep.log"))
    monkeypatch.delenv("HOSTPREP_CONFIG", raising=False)
    monkeypatch.delenv("HOSTPREP_LOG_LEVEL", raising=False)


def _use_host(monkeypatch, host):
    def _build(settings=None, reporter=None, **kwargs):
        return build_orchestrator(
            settings=host.settings(),
            reporter=reporter,
            runner=host.runner,
            release_source=host.release_source,
            host_probe=host.host_info,
            architecture=host.architecture,
        )

    monkeypatch.setattr("hostprep.core.use_cases.provision.build_orchestrator", _build)


# ── Group ────────────────────────────────────────────────────────────


class TestGroup:
    def test_help(self, cli_runner):
        result = cli_runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("run", "check", "advice", "verify"):
            assert command in result.output

    def test_version(self, cli_runner):
        result = cli_runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_bad_config(self, cli_runner, tmp_path):
        result = cli_runner.invoke(cli, ["--config", str(tmp_path / "nope.yml"), "run", "--quiet"])
        assert result.exit_code == 1
        assert "not found" in result.output


# ── Support commands ─────────────────────────────────────────────────


class TestAdviceCommand:
    def test_known_category(self, cli_runner):
        result = cli_runner.invoke(cli, ["advice", "network"])
        assert result.exit_code == 0
        assert "Network Connection Error" in result.output

    def test_error_code_tailoring(self, cli_runner):
        result = cli_runner.invoke(
            cli, ["advice", "subsystem_install_failed", "--error", "Wsl/0x80370102"],
        )
        assert result.exit_code == 0
        assert "1. Virtualization is disabled" in result.output

    def test_unknown_category(self, cli_runner):
        result = cli_runner.invoke(cli, ["advice", "bogus"])
        assert result.exit_code == 2


class TestVerifyCommand:
    def test_match(self, cli_runner, tmp_path):
        path = tmp_path / "runner.wsl"
        path.write_bytes(b"image")
        digest = hashlib.sha256(b"image").hexdigest()
        result = cli_runner.invoke(cli, ["verify", str(path), f"sha256:{digest.upper()}"])
        assert result.exit_code == 0
        assert "SHA-256 matches" in result.output

    def test_mismatch(self, cli_runner, tmp_path):
        path = tmp_path / "runner.wsl"
        path.write_bytes(b"image")
        result = cli_runner.invoke(cli, ["verify", str(path), "0" * 64])
        assert result.exit_code == 1
        assert "mismatch" in result.output
        assert hashlib.sha256(b"image").hexdigest() in result.output

    def test_missing_file(self, cli_runner, tmp_path):
        result = cli_runner.invoke(cli, ["verify", str(tmp_path / "gone.wsl"), "0" * 64])
        assert result.exit_code == 2


# ── run ──────────────────────────────────────────────────────────────


class TestRunCommand:
    def test_quiet_success(self, cli_runner, make_host, monkeypatch):
        _use_host(monkeypatch, make_host())
        result = cli_runner.invoke(cli, ["run", "--quiet"])
        assert result.exit_code == 0
        assert "ready for the BUDA runner" in result.output

    def test_quiet_companion_running(self, cli_runner, make_host, monkeypatch):
        _use_host(monkeypatch, make_host(boinc_running=True))
        result = cli_runner.invoke(cli, ["run", "--quiet"])
        assert result.exit_code == 6
        assert "companion_process" in result.output
        assert "Log file:" in result.output

    def test_very_quiet_restart(self, cli_runner, make_host, monkeypatch):
        host = make_host(
            features={"VirtualMachinePlatform": "Disabled", "Microsoft-Windows-Subsystem-Linux": "Enabled"},
            feature_restart=True,
        )
        _use_host(monkeypatch, host)
        result = cli_runner.invoke(cli, ["run", "--very-quiet"])
        assert result.exit_code == 3
        assert result.output.strip().splitlines()[-1] == "hostprep: restart_required (exit 3)"

    def test_json(self, cli_runner, make_host, monkeypatch, tmp_path):
        _use_host(monkeypatch, make_host(image_version=None))
        result = cli_runner.invoke(cli, ["run", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["exit_code"] == 0
        assert data["pipeline"]["status"] == "completed"
        steps = {s["step"]: s for s in data["pipeline"]["steps"]}
        assert steps["runtime_image"]["remediated"] is True
        assert data["log_file"] == str(tmp_path / "hostprep.log")

    def test_interactive_decline(self, cli_runner, make_host, monkeypatch):
        host = make_host()
        _use_host(monkeypatch, host)
        result = cli_runner.invoke(cli, ["run"], input="n\n")
        assert result.exit_code == 8
        assert "Cancelled" in result.output
        assert host.runner.call_count == 0

    def test_interactive_confirm(self, cli_runner, make_host, monkeypatch):
        _use_host(monkeypatch, make_host())
        result = cli_runner.invoke(cli, ["run"], input="y\n")
        assert result.exit_code == 0
        assert "✓ os_version" in result.output

    def test_failure_offers_issue_report(self, cli_runner, make_host, monkeypatch):
        _use_host(monkeypatch, make_host(image_version=None, publish_digests=False))
        launched = []
        monkeypatch.setattr(click, "launch", lambda url, **kw: launched.append(url))

        result = cli_runner.invoke(cli, ["run", "--yes"], input="y\n")
        assert result.exit_code == 7
        assert "Download Verification Failed" in result.output
        assert len(launched) == 1
        assert "title=%5Bhostprep%5D+Download+Verification+Failed" in launched[0]

    def test_no_issue_report_for_running_client(self, cli_runner, make_host, monkeypatch):
        _use_host(monkeypatch, make_host(boinc_running=True))
        launched = []
        monkeypatch.setattr(click, "launch", lambda url, **kw: launched.append(url))

        result = cli_runner.invoke(cli, ["run", "--yes"])
        assert result.exit_code == 6
        assert "BOINC Client Is Running" in result.output
        assert launched == []


# ── check ────────────────────────────────────────────────────────────


class TestCheckCommand:
    def test_ready(self, cli_runner, make_host, monkeypatch):
        _use_host(monkeypatch, make_host())
        result = cli_runner.invoke(cli, ["check"])
        assert result.exit_code == 0
        assert "All requirements are satisfied" in result.output

    def test_needs_action(self, cli_runner, make_host, monkeypatch):
        host = make_host(wsl_version=None, image_version=None)
        _use_host(monkeypatch, host)
        result = cli_runner.invoke(cli, ["check"])
        assert result.exit_code == 5
        assert "Needs action: subsystem, runtime_image" in result.output
        assert host.runner.calls_matching("msiexec") == []

    def test_json(self, cli_runner, make_host, monkeypatch):
        _use_host(monkeypatch, make_host(default_mode=1))
        result = cli_runner.invoke(cli, ["check", "--json"])
        data = json.loads(result.stdout)
        assert result.exit_code == 5
        assert data["pipeline"]["probe_only"] is True
        assert data["pipeline"]["halted_at"] == "subsystem"
        assert data["advisory"]["category"] == "subsystem_version_mismatch"

    def test_offline_reports_network(self, cli_runner, make_host, monkeypatch):
        _use_host(monkeypatch, make_host(online=False))
        result = cli_runner.invoke(cli, ["check", "--json"])
        data = json.loads(result.stdout)
        assert result.exit_code == 5
        assert data["advisory"]["category"] == "network"
        steps = {s["step"]: s for s in data["pipeline"]["steps"]}
        assert steps["subsystem"]["probe"] == "unknown"
        assert steps["runtime_image"]["probe"] == "unknown"
