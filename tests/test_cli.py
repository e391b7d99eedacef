"""
Tests for CLI commands — deploy, status, history, config check, extract.
"""

import json
import os
from pathlib import Path

import pytest
from click.testing import CliRunner

from rollupctl.main import cli
from tests.factories import DEPLOYER_KEY, TX_HASH, write_deploy_yml


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def orbit_yml(tmp_path: Path, orbit_config, orbit_base) -> Path:
    return write_deploy_yml(tmp_path, orbit_config)


class TestCLIGlobal:
    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "provision rollup chains" in result.output
        for command in ("deploy", "status", "history", "config", "extract"):
            assert command in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_deploy_help(self, runner):
        result = runner.invoke(cli, ["deploy", "--help"])
        assert result.exit_code == 0
        assert "orbit" in result.output
        assert "op-stack" in result.output


# ── deploy ──────────────────────────────────────────────────────────


class TestDeployCommand:
    def test_missing_arguments(self, runner, orbit_yml: Path, tmp_path: Path):
        result = runner.invoke(cli, ["--config", str(orbit_yml), "deploy", "orbit", "412346"])
        assert result.exit_code == 1
        assert "Missing required value(s): CHAIN_NAME" in result.output
        assert "Usage: rollupctl deploy orbit <CHAIN_ID> <CHAIN_NAME>" in result.output
        assert not (tmp_path / "logs").exists()

    def test_opstack_missing_arguments(self, runner, tmp_path: Path, opstack_config):
        path = write_deploy_yml(tmp_path, opstack_config)
        result = runner.invoke(cli, ["--config", str(path), "deploy", "op-stack"])
        assert result.exit_code == 1
        assert "L1_CHAIN_ID" in result.output

    def test_dry_run(self, runner, orbit_yml: Path, orbit_base: Path):
        result = runner.invoke(cli, ["--config", str(orbit_yml), "deploy", "orbit", "412346", "my-chain", "--dry-run"])
        assert result.exit_code == 0, result.output
        assert "orbit (dry run)" in result.output
        assert "deploy-contracts" in result.output
        assert "Deployment completed." in result.output
        assert DEPLOYER_KEY not in result.output
        assert not (orbit_base / "contracts" / ".env").exists()

    def test_dry_run_json(self, runner, orbit_yml: Path):
        result = runner.invoke(
            cli, ["--quiet", "--config", str(orbit_yml), "deploy", "orbit", "412346", "my-chain", "--dry-run", "--json"]
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["ok"] is True
        assert data["report"]["dry_run"] is True
        assert data["report"]["steps"][0]["name"] == "install-toolchain"

    def test_failure_summary(self, runner, orbit_yml: Path, mock_registry, monkeypatch):
        registry, mock = mock_registry
        mock.set_failure("deploy-contracts", error="Command exited with code 1", output="Error: nonce too low")
        monkeypatch.setattr("rollupctl.core.use_cases.deploy.default_registry", lambda: registry)
        monkeypatch.setattr(os, "geteuid", lambda: 0)

        result = runner.invoke(cli, ["--config", str(orbit_yml), "deploy", "orbit", "412346", "my-chain"])

        assert result.exit_code == 1
        assert "Deployment aborted at deploy-contracts" in result.output
        assert "│ Error: nonce too low" in result.output
        assert "Check " in result.output

    def test_success(self, runner, orbit_yml: Path, mock_registry, monkeypatch):
        registry, mock = mock_registry
        mock.set_output("deploy-contracts", f"tx {TX_HASH}")
        monkeypatch.setattr("rollupctl.core.use_cases.deploy.default_registry", lambda: registry)
        monkeypatch.setattr(os, "geteuid", lambda: 0)

        result = runner.invoke(cli, ["--config", str(orbit_yml), "deploy", "orbit", "412346", "my-chain"])

        assert result.exit_code == 0, result.output
        assert f"TX_HASH={TX_HASH}" in result.output
        assert "Logs: " in result.output


# ── status / history ────────────────────────────────────────────────


class TestStatusCommand:
    def test_no_runs(self, runner, orbit_yml: Path):
        result = runner.invoke(cli, ["--config", str(orbit_yml), "status"])
        assert result.exit_code == 0
        assert "test-rollup" in result.output
        assert "No deployments recorded yet." in result.output

    def test_after_dry_run(self, runner, orbit_yml: Path):
        runner.invoke(cli, ["--config", str(orbit_yml), "deploy", "orbit", "412346", "my-chain", "--dry-run"])
        result = runner.invoke(cli, ["--config", str(orbit_yml), "status"])
        assert result.exit_code == 0
        assert "orbit: done (dry run)" in result.output

    def test_json(self, runner, orbit_yml: Path):
        runner.invoke(cli, ["--config", str(orbit_yml), "deploy", "orbit", "412346", "my-chain", "--dry-run"])
        result = runner.invoke(cli, ["--quiet", "--config", str(orbit_yml), "status", "--json"])
        data = json.loads(result.output)
        assert data["pipelines"]["orbit"]["dry_run"] is True
        assert data["last_run"]["context"]["DEPLOYER_PRIVATE_KEY"] == "****"

    def test_missing_config(self, runner, tmp_path: Path):
        result = runner.invoke(cli, ["--config", str(tmp_path / "absent.yml"), "status"])
        assert result.exit_code == 1
        assert "Config file not found" in result.output


class TestHistoryCommand:
    def test_empty(self, runner, orbit_yml: Path):
        result = runner.invoke(cli, ["--config", str(orbit_yml), "history"])
        assert result.exit_code == 0
        assert "No deployment history." in result.output

    def test_entries(self, runner, orbit_yml: Path):
        for _ in range(2):
            runner.invoke(cli, ["--config", str(orbit_yml), "deploy", "orbit", "412346", "my-chain", "--dry-run"])
        result = runner.invoke(cli, ["--config", str(orbit_yml), "history", "-n", "1"])
        assert result.exit_code == 0
        assert "Last 1 of 2 run(s)" in result.output

    def test_json(self, runner, orbit_yml: Path):
        runner.invoke(cli, ["--config", str(orbit_yml), "deploy", "orbit", "412346", "my-chain", "--dry-run"])
        result = runner.invoke(cli, ["--quiet", "--config", str(orbit_yml), "history", "--json"])
        data = json.loads(result.output)
        assert data["total"] == 1
        assert data["entries"][0]["pipeline"] == "orbit"


# ── config check ────────────────────────────────────────────────────


class TestConfigCheckCommand:
    def test_valid(self, runner, orbit_yml: Path):
        result = runner.invoke(cli, ["--config", str(orbit_yml), "config", "check"])
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output
        assert "test-rollup" in result.output

    def test_invalid(self, runner, tmp_path: Path):
        path = tmp_path / "deploy.yml"
        path.write_text("orbit:\n  parent_rpc_url: ftp://example.org\n")
        result = runner.invoke(cli, ["--config", str(path), "config", "check"])
        assert result.exit_code == 1
        assert "not an http(s) URL" in result.output

    def test_json(self, runner, orbit_yml: Path):
        result = runner.invoke(cli, ["--quiet", "--config", str(orbit_yml), "config", "check", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["valid"] is True
        assert data["deployment_name"] == "test-rollup"


# ── extract ─────────────────────────────────────────────────────────


class TestExtractCommand:
    def test_stdin(self, runner):
        result = runner.invoke(cli, ["extract"], input=f"Deploying...\nTransaction Hash: {TX_HASH}\n")
        assert result.exit_code == 0
        assert result.output.strip() == TX_HASH

    def test_file(self, runner, tmp_path: Path):
        log = tmp_path / "yarn.log"
        log.write_text(f"a {TX_HASH}\nb {'0x' + 'cd' * 32}\n")
        result = runner.invoke(cli, ["extract", str(log), "--all"])
        assert result.exit_code == 0
        assert result.output.split() == [TX_HASH, "0x" + "cd" * 32]

    def test_custom_pattern(self, runner):
        result = runner.invoke(cli, ["extract", "-p", r"Rollup: (0x[0-9a-f]+)"], input="Rollup: 0xabc\n")
        assert result.output.strip() == "0xabc"

    def test_no_match(self, runner):
        result = runner.invoke(cli, ["extract"], input="Done in 2.1s\n")
        assert result.exit_code == 1
        assert "pattern not found" in result.output

    def test_invalid_pattern(self, runner):
        result = runner.invoke(cli, ["extract", "-p", "(unclosed"], input="x\n")
        assert result.exit_code == 1
        assert "Invalid pattern" in result.output
