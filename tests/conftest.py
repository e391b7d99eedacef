"""
Shared test fixtures and configuration.
"""

import logging
from pathlib import Path

import pytest

from rollupctl.adapters.mock import MockAdapter
from rollupctl.adapters.registry import AdapterRegistry
from rollupctl.core.models.deployment import DeployConfig, OpStackSettings, OrbitSettings, ReadinessSettings
from tests.factories import build_orbit_checkout, write_credentials


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """Runs attach handlers to the root logger; leave it as it was."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.fixture
def tmp_state_dir(tmp_path: Path) -> Path:
    """Return a temporary directory for state files."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def mock_registry() -> tuple[AdapterRegistry, MockAdapter]:
    """A registry whose ``shell`` adapter is a MockAdapter."""
    registry = AdapterRegistry()
    mock = MockAdapter(adapter_name="shell")
    registry.register(mock)
    return registry, mock


@pytest.fixture
def orbit_base(tmp_path: Path) -> Path:
    base = tmp_path / "raas"
    build_orbit_checkout(base)
    return base


@pytest.fixture
def credentials_file(tmp_path: Path) -> Path:
    return write_credentials(tmp_path / "credentials.env")


@pytest.fixture
def orbit_config(tmp_path: Path, credentials_file: Path) -> DeployConfig:
    return DeployConfig(
        name="test-rollup",
        log_dir=str(tmp_path / "logs"),
        state_dir=str(tmp_path / ".state"),
        credentials_file=str(credentials_file),
        orbit=OrbitSettings(base_dir=str(tmp_path / "raas"), token_bridge=False),
        readiness=ReadinessSettings(timeout=5, initial_delay=0.01, max_delay=0.01),
    )


@pytest.fixture
def opstack_config(tmp_path: Path) -> DeployConfig:
    return DeployConfig(
        name="test-op",
        log_dir=str(tmp_path / "logs"),
        state_dir=str(tmp_path / ".state"),
        op_stack=OpStackSettings(
            workdir=str(tmp_path / "data"),
            bin_dir=str(tmp_path / "bin"),
            unit_dir=str(tmp_path / "units"),
            log_dir=str(tmp_path / "var-log"),
            binaries=["op-deployer-test-absent", "op-node-test-absent"],
        ),
    )
