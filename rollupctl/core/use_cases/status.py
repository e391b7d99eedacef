"""
Status use case — last runs from the state file, history from the ledger.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from rollupctl.core.config.loader import ConfigError, load_config
from rollupctl.core.models.deployment import DeployConfig
from rollupctl.core.models.state import ProjectState
from rollupctl.core.persistence.audit import AuditEntry, AuditWriter
from rollupctl.core.persistence.state_file import default_state_path, load_state


@dataclass
class StatusResult:
    """Deployment status as recorded by previous runs."""

    config: DeployConfig | None = None
    state: ProjectState | None = None
    state_path: Path | None = None
    error: str | None = None

    @property
    def has_runs(self) -> bool:
        return self.state is not None and bool(self.state.last_run.run_id)

    def to_dict(self) -> dict:
        result: dict = {}
        if self.error:
            result["error"] = self.error
            return result

        result["deployment_name"] = self.config.name if self.config else ""
        result["state_path"] = str(self.state_path) if self.state_path else None

        if self.state and self.has_runs:
            result["last_run"] = self.state.last_run.model_dump(mode="json")
            result["pipelines"] = {
                name: {
                    "run_id": run.run_id,
                    "state": run.state,
                    "ended_at": run.ended_at,
                    "failed_step": run.failed_step,
                    "dry_run": run.dry_run,
                }
                for name, run in self.state.runs_by_pipeline.items()
            }
        else:
            result["last_run"] = None
            result["pipelines"] = {}

        return result


@dataclass
class HistoryResult:
    """Recent audit ledger entries, oldest first."""

    entries: list[AuditEntry] = field(default_factory=list)
    ledger_path: Path | None = None
    total: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {
            "ledger_path": str(self.ledger_path) if self.ledger_path else None,
            "total": self.total,
            "entries": [e.model_dump(mode="json") for e in self.entries],
        }


def get_status(config_path: Path | None = None) -> StatusResult:
    """Load the recorded state of the deployment."""
    result = StatusResult()

    try:
        config = load_config(config_path)
    except ConfigError as e:
        result.error = str(e)
        return result
    result.config = config

    result.state_path = default_state_path(config.state_dir)
    result.state = load_state(result.state_path)
    return result


def get_history(config_path: Path | None = None, n: int = 10) -> HistoryResult:
    """Read the last ``n`` audit entries."""
    result = HistoryResult()

    try:
        config = load_config(config_path)
    except ConfigError as e:
        result.error = str(e)
        return result

    writer = AuditWriter(state_dir=Path(config.state_dir))
    result.ledger_path = writer.path
    result.entries = writer.read_recent(n)
    result.total = writer.entry_count()
    return result
