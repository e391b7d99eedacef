"""
Tests for systemd unit rendering and the service provisioner.
"""

from pathlib import Path

from rollupctl.core.models.service import ServiceSpec
from rollupctl.core.services.provisioner import ServiceProvisioner
from rollupctl.core.services.units import quote_arg, render_unit


def _spec(**overrides) -> ServiceSpec:
    data = {
        "name": "op-node",
        "description": "OP Stack rollup node",
        "working_directory": "/data/optimism/op-node",
        "executable": "/usr/local/bin/op-node",
        "args": ["--l2=http://localhost:8551", "--p2p.sequencer.key=${GS_SEQUENCER_PRIVATE_KEY}"],
        "environment_file": "/data/.wallet",
        "log_path": "/var/log/op-node.log",
    }
    data.update(overrides)
    return ServiceSpec(**data)


# ── Unit rendering ─────────────────────────────────────────────────


class TestQuoteArg:
    def test_plain(self):
        assert quote_arg("--http") == "--http"

    def test_env_reference_kept(self):
        assert quote_arg("--private-key=${GS_BATCHER_PRIVATE_KEY}") == "--private-key=${GS_BATCHER_PRIVATE_KEY}"

    def test_bare_dollar_escaped(self):
        assert quote_arg("$HOME") == "$$HOME"

    def test_percent_escaped(self):
        assert quote_arg("100%") == "100%%"

    def test_whitespace_quoted(self):
        assert quote_arg("a b") == '"a b"'

    def test_quotes_escaped(self):
        assert quote_arg('say "hi"') == '"say \\"hi\\""'

    def test_empty(self):
        assert quote_arg("") == '""'


class TestRenderUnit:
    def test_sections(self):
        unit = render_unit(_spec())
        assert "[Unit]\nDescription=OP Stack rollup node\nAfter=network.target\n" in unit
        assert "User=root\n" in unit
        assert "WorkingDirectory=/data/optimism/op-node\n" in unit
        assert "EnvironmentFile=/data/.wallet\n" in unit
        assert "StandardOutput=append:/var/log/op-node.log\n" in unit
        assert "StandardError=append:/var/log/op-node.log\n" in unit
        assert "Restart=on-failure\nRestartSec=10\n" in unit
        assert unit.endswith("[Install]\nWantedBy=multi-user.target\n")

    def test_exec_start_continuation_lines(self):
        unit = render_unit(_spec())
        assert (
            "ExecStart=/usr/local/bin/op-node \\\n"
            "  --l2=http://localhost:8551 \\\n"
            "  --p2p.sequencer.key=${GS_SEQUENCER_PRIVATE_KEY}\n"
        ) in unit

    def test_no_environment_file(self):
        unit = render_unit(_spec(environment_file=None))
        assert "EnvironmentFile" not in unit

    def test_default_log_path(self):
        unit = render_unit(_spec(log_path=None, name="geth"))
        assert "append:/var/log/geth.log" in unit


# ── Provisioner ────────────────────────────────────────────────────


class TestServiceProvisioner:
    def test_installs_and_starts(self, mock_registry, tmp_path: Path):
        registry, mock = mock_registry
        provisioner = ServiceProvisioner(registry, unit_dir=tmp_path)
        report = provisioner.provision([_spec(name="geth"), _spec(name="op-node")])

        assert report.all_ok
        assert (tmp_path / "geth.service").is_file()
        assert (tmp_path / "op-node.service").is_file()
        assert [c.action.name for c in mock.call_log] == [
            "daemon-reload",
            "enable:geth",
            "start:geth",
            "enable:op-node",
            "start:op-node",
        ]
        assert mock.calls_for("enable:geth") == [["systemctl", "enable", "geth"]]

    def test_failure_does_not_stop_next_service(self, mock_registry, tmp_path: Path):
        registry, mock = mock_registry
        mock.set_failure("start:op-node", error="Command exited with code 1", output="Job for op-node.service failed.")
        report = ServiceProvisioner(registry, unit_dir=tmp_path).provision(
            [_spec(name="op-node"), _spec(name="op-batcher")]
        )
        assert report.failed == {"op-node": "systemctl start failed: Job for op-node.service failed."}
        assert report.outcomes[1].status == "started"
        assert not report.all_ok

    def test_daemon_reload_failure_fails_all(self, mock_registry, tmp_path: Path):
        registry, mock = mock_registry
        mock.set_failure("daemon-reload", error="Command exited with code 1")
        report = ServiceProvisioner(registry, unit_dir=tmp_path).provision([_spec(name="geth")])
        assert set(report.failed) == {"geth"}
        assert mock.calls_for("start:geth") == []

    def test_unwritable_unit_dir(self, mock_registry, tmp_path: Path):
        registry, mock = mock_registry
        blocker = tmp_path / "units"
        blocker.write_text("not a directory")
        report = ServiceProvisioner(registry, unit_dir=blocker).provision([_spec(name="geth")])
        assert report.outcomes[0].status == "failed"
        assert "cannot write unit" in report.outcomes[0].error

    def test_dry_run_renders_only(self, mock_registry, tmp_path: Path):
        registry, mock = mock_registry
        report = ServiceProvisioner(registry, unit_dir=tmp_path / "units", dry_run=True).provision([_spec()])
        assert report.outcomes[0].status == "rendered"
        assert not (tmp_path / "units").exists()
        assert mock.call_count == 0

    def test_nothing_to_do(self, mock_registry, tmp_path: Path):
        registry, mock = mock_registry
        report = ServiceProvisioner(registry, unit_dir=tmp_path).provision([])
        assert report.outcomes == []
        assert mock.call_count == 0

    def test_report_dict(self, mock_registry, tmp_path: Path):
        registry, _ = mock_registry
        report = ServiceProvisioner(registry, unit_dir=tmp_path).provision([_spec(name="geth")])
        data = report.to_dict()
        assert data["ok"] is True
        assert data["services"][0]["status"] == "started"
