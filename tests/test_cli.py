"""
Tests for CLI commands — global options, health, modules, phases, recover.
"""

import json

import pytest
from click.testing import CliRunner

from modrecovery.main import cli


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    """Run every command outside any real recovery.yml."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("MRE_LOG_FILE", raising=False)
    return tmp_path


def invoke(*args: str):
    return CliRunner().invoke(cli, ["--mock", *args])


class TestCLIGlobal:
    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Module Recovery Engine" in result.output
        for group in ("modules", "phases", "recover", "health", "web"):
            assert group in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_missing_explicit_config(self, tmp_path):
        result = CliRunner().invoke(cli, ["--config", str(tmp_path / "nope.yml"), "health"])
        assert result.exit_code == 1
        assert "❌ Config file not found" in result.output

    def test_invalid_config(self, tmp_path):
        config = tmp_path / "recovery.yml"
        config.write_text("modules:\n  billing: {}\n")
        result = CliRunner().invoke(cli, ["--mock", "--config", str(config), "health"])
        assert result.exit_code == 1
        assert "unknown modules: billing" in result.output


class TestHealthCommand:
    def test_health(self):
        result = invoke("health")
        assert result.exit_code == 0
        assert "WORKSPACE HEALTH: 100.0/100" in result.output
        assert "auth" in result.output
        assert "Engine:" in result.output

    def test_health_json(self):
        result = invoke("health", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["workspace"]["overall_status"] == "healthy"
        assert len(data["workspace"]["module_health_scores"]) == 11
        assert data["engine"]["status"] == "healthy"


class TestModulesCommands:
    def test_list(self):
        result = invoke("modules", "list")
        assert result.exit_code == 0
        assert "MODULES: 11" in result.output
        assert "public-profiles" in result.output

    def test_list_json(self):
        data = json.loads(invoke("modules", "list", "--json").output)
        assert data["summary"]["total"] == 11
        assert data["modules"][0]["module_id"] == "auth"

    def test_show(self):
        result = invoke("modules", "show", "i18n")
        assert result.exit_code == 0
        assert "Layer 1, tier 2" in result.output
        assert "Dependencies: 1/1 resolved" in result.output

    def test_show_unknown_module(self):
        result = invoke("modules", "show", "unknown-module")
        assert result.exit_code == 1
        assert "❌" in result.output
        assert "unknown-module" in result.output

    def test_deps_json(self):
        data = json.loads(invoke("modules", "deps", "admin", "--json").output)
        assert data["layer_info"]["tier"] == 5
        assert data["direct"] == 1

    def test_build_status(self):
        result = invoke("modules", "build-status", "auth")
        assert result.exit_code == 0
        assert "Last build:           succeeded" in result.output

    def test_build(self):
        result = invoke("modules", "build", "auth")
        assert result.exit_code == 0
        assert "✅ auth built" in result.output

    def test_recover(self):
        result = invoke("modules", "recover", "payments")
        assert result.exit_code == 0
        assert "payments: success (4/4 steps)" in result.output

    def test_validate(self):
        result = invoke("modules", "validate", "auth", "i18n")
        assert result.exit_code == 0
        assert "VALIDATION: 2/2 valid" in result.output


class TestPhasesCommands:
    def test_list(self):
        result = invoke("phases", "list")
        assert result.exit_code == 0
        assert "1. Emergency Stabilization" in result.output
        assert "5. Validation and Completion" in result.output
        assert "Estimated total: ~510s" in result.output

    def test_show(self):
        result = invoke("phases", "show", "4")
        assert result.exit_code == 0
        assert "Integration tests: core-integrations" in result.output

    def test_show_out_of_range(self):
        result = invoke("phases", "show", "9")
        assert result.exit_code == 1
        assert "between 1 and 5" in result.output

    def test_deps_json(self):
        data = json.loads(invoke("phases", "deps", "3", "--json").output)
        assert data["depends_on"] == [1, 2]
        assert data["unblocks"] == [4, 5]


class TestRecoverCommand:
    def test_recover_selected_modules(self):
        result = invoke("recover", "--session-id", "cli-1", "-m", "auth", "-m", "i18n")
        assert result.exit_code == 0
        assert "✓ Phase 1: Emergency Stabilization" in result.output
        assert "✅ Session cli-1 completed (100.0%)" in result.output

    def test_recover_json(self):
        result = invoke("recover", "-m", "auth", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["status"] == "completed"
        assert data["session_id"].startswith("recovery-")
        assert data["target_modules"] == ["auth"]

    def test_recover_unknown_module(self):
        result = invoke("recover", "-m", "billing")
        assert result.exit_code == 1
        assert "❌ Invalid module IDs: billing" in result.output


class TestMonitorCommand:
    def test_once(self):
        result = invoke("monitor", "--once")
        assert result.exit_code == 0
        assert "healthy 100.0/100, 0 alert(s)" in result.output

    def test_cycles_json(self):
        result = invoke("monitor", "--cycles", "2", "--interval", "0.01", "--json")
        assert result.exit_code == 0
        reports = [json.loads(line) for line in result.output.splitlines() if line]
        assert len(reports) == 2
        assert reports[0]["workspace"]["overall_status"] == "healthy"

    def test_invalid_interval(self):
        result = invoke("monitor", "--once", "--interval", "0")
        assert result.exit_code == 1
        assert "❌ Invalid monitoring option" in result.output

    def test_listed_in_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert "monitor" in result.output
