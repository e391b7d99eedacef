"""
ProjectState — what rollupctl remembers between runs.

Serialized to .state/current.json after every run that got past
validation.  It's disposable: delete it and the next run starts fresh
(idempotency comes from the step guards, not from this file).
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class StepRecord(BaseModel):
    """Outcome of a single pipeline step."""

    name: str
    status: str = ""  # ok, skipped, failed
    duration_ms: int = 0
    detail: str = ""


class RunRecord(BaseModel):
    """Summary of one pipeline run."""

    run_id: str = ""
    pipeline: str = ""
    state: str = ""  # done, aborted
    started_at: str = ""
    ended_at: str = ""
    dry_run: bool = False
    failed_step: str | None = None
    error: str | None = None
    log_file: str | None = None
    steps: list[StepRecord] = Field(default_factory=list)
    services: dict[str, str] = Field(default_factory=dict)
    context: dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.state == "done"


class ProjectState(BaseModel):
    """Root state model — serialized to .state/current.json."""

    schema_version: int = 1

    deployment_name: str = ""

    created_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)

    last_run: RunRecord = Field(default_factory=RunRecord)
    runs_by_pipeline: dict[str, RunRecord] = Field(default_factory=dict)

    metadata: dict[str, Any] = Field(default_factory=dict)

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = _now_iso()

    def record_run(self, run: RunRecord) -> None:
        """Make ``run`` the last run, and the last run of its pipeline."""
        self.last_run = run
        if run.pipeline:
            self.runs_by_pipeline[run.pipeline] = run
