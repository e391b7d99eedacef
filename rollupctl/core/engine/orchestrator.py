"""
Orchestrator — run a pipeline from validation to provisioned services.

State machine:

    VALIDATING ──▶ PROVISIONING (one sub-state per step) ──▶ FINALIZING ──▶ DONE
        │                  │                                      │
        └──────────────────┴──────────────── ABORTED ◀────────────┘

- VALIDATING checks arguments, credentials and privilege.  Nothing has
  been written yet; a failure here leaves no trace (not even a run log).
- PROVISIONING runs steps strictly in declared order.  The first
  failing step aborts the run; completed steps stay in place so a rerun
  resumes through their guards.
- FINALIZING hands the context to the service provisioner.
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from rollupctl.adapters.registry import AdapterRegistry
from rollupctl.core.context import PipelineContext
from rollupctl.core.engine.extractor import extract
from rollupctl.core.engine.guard import IdempotencyGuard
from rollupctl.core.engine.patcher import EnvPatcher
from rollupctl.core.engine.readiness import CancelToken
from rollupctl.core.engine.runner import StepRunner, log_excerpt
from rollupctl.core.engine.step import Extraction, Step
from rollupctl.core.errors import (
    DeployError,
    ExtractionFailure,
    PipelineCancelled,
    ProvisionFailure,
    StepFailure,
    ValidationError,
)
from rollupctl.core.models.service import ServiceSpec
from rollupctl.core.models.state import RunRecord, StepRecord
from rollupctl.core.observability.logging_config import (
    SUCCESS,
    RunLogHandler,
    attach_run_log,
    detach_run_log,
)
from rollupctl.core.services.provisioner import ProvisionReport, ServiceProvisioner

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    VALIDATING = "validating"
    PROVISIONING = "provisioning"
    FINALIZING = "finalizing"
    DONE = "done"
    ABORTED = "aborted"


@dataclass
class Pipeline:
    """A declared deployment: ordered steps plus the services they lead to."""

    name: str
    steps: list[Step] = field(default_factory=list)
    required: list[str] = field(default_factory=list)
    usage: str = ""
    requires_root: bool = True
    services: Callable[[PipelineContext], list[ServiceSpec]] | None = None
    unit_dir: str = "/etc/systemd/system"

    def step(self, name: str) -> Step | None:
        for s in self.steps:
            if s.name == name:
                return s
        return None


@dataclass
class PipelineReport:
    """Everything that happened during one run."""

    run_id: str = ""
    pipeline: str = ""
    state: PipelineState = PipelineState.VALIDATING
    dry_run: bool = False
    started_at: str = ""
    ended_at: str = ""
    steps: list[StepRecord] = field(default_factory=list)
    failed_step: str | None = None
    error: str | None = None
    log_excerpt: str = ""
    log_file: str | None = None
    validated: bool = False
    services: ProvisionReport | None = None
    context: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.state == PipelineState.DONE

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def to_record(self) -> RunRecord:
        return RunRecord(
            run_id=self.run_id,
            pipeline=self.pipeline,
            state=self.state.value,
            started_at=self.started_at,
            ended_at=self.ended_at,
            dry_run=self.dry_run,
            failed_step=self.failed_step,
            error=self.error,
            log_file=self.log_file,
            steps=list(self.steps),
            services={o.name: o.status for o in self.services.outcomes} if self.services else {},
            context=dict(self.context),
        )

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "pipeline": self.pipeline,
            "state": self.state.value,
            "dry_run": self.dry_run,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "failed_step": self.failed_step,
            "error": self.error,
            "log_excerpt": self.log_excerpt,
            "log_file": self.log_file,
            "steps": [s.model_dump(mode="json") for s in self.steps],
            "services": self.services.to_dict() if self.services else None,
        }


def is_privileged() -> bool:
    """Whether the effective user is root."""
    return os.geteuid() == 0


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"


class Orchestrator:
    """Drives one pipeline run through its states."""

    def __init__(
        self,
        registry: AdapterRegistry,
        dry_run: bool = False,
        log_path: Path | None = None,
        cancel: CancelToken | None = None,
        run_id: str | None = None,
        privilege_check: Callable[[], bool] = is_privileged,
    ):
        self.registry = registry
        self.dry_run = dry_run
        self.log_path = log_path
        self.cancel = cancel or CancelToken()
        self.run_id = run_id or generate_run_id()
        self.privilege_check = privilege_check

        self.guard = IdempotencyGuard()
        self.patcher = EnvPatcher(dry_run=dry_run)
        self.runner = StepRunner(registry, run_id=self.run_id, dry_run=dry_run, log_path=log_path)

    def run(self, pipeline: Pipeline, context: PipelineContext) -> PipelineReport:
        report = PipelineReport(
            run_id=self.run_id,
            pipeline=pipeline.name,
            dry_run=self.dry_run,
            started_at=datetime.now(UTC).isoformat(),
        )

        # ── VALIDATING ──────────────────────────────────────────
        try:
            self._validate(pipeline, context)
        except ValidationError as e:
            logger.error("%s", e)
            if pipeline.usage:
                logger.error("Usage: %s", pipeline.usage)
            report.state = PipelineState.ABORTED
            report.error = str(e)
            report.ended_at = datetime.now(UTC).isoformat()
            return report

        report.validated = True
        handler: RunLogHandler | None = None
        current: Step | None = None

        try:
            # ── PROVISIONING ────────────────────────────────────
            if self.log_path:
                handler = attach_run_log(self.log_path)
                report.log_file = str(self.log_path)
            report.state = PipelineState.PROVISIONING
            mode = " [dry-run]" if self.dry_run else ""
            logger.info("Starting %s deployment%s (run %s)", pipeline.name, mode, self.run_id)

            for step in pipeline.steps:
                current = step
                self.cancel.check()
                report.steps.append(self._run_step(step, context))
            current = None

            # ── FINALIZING ──────────────────────────────────────
            report.state = PipelineState.FINALIZING
            self.cancel.check()
            specs = pipeline.services(context) if pipeline.services else []
            provisioner = ServiceProvisioner(
                self.registry,
                unit_dir=pipeline.unit_dir,
                run_id=self.run_id,
                dry_run=self.dry_run,
            )
            report.services = provisioner.provision(specs)
            report.services.raise_for_failures()

            report.state = PipelineState.DONE
            logger.log(SUCCESS, "All deployment steps completed successfully for %s.", pipeline.name)

        except StepFailure as e:
            report.state = PipelineState.ABORTED
            report.failed_step = e.step_name or (current.name if current else None)
            report.error = str(e)
            report.log_excerpt = e.log_excerpt
            self._record_failure(report, current, str(e))
            logger.error("Deployment aborted at step '%s': %s", report.failed_step, e)
        except ProvisionFailure as e:
            report.state = PipelineState.ABORTED
            report.failed_step = "provision-services"
            report.error = str(e)
            for name, detail in e.failures.items():
                logger.error("  %s: %s", name, detail)
            logger.error("Deployment aborted: %s", e)
        except PipelineCancelled as e:
            report.state = PipelineState.ABORTED
            report.failed_step = current.name if current else None
            report.error = f"Cancelled: {e}"
            logger.error("Deployment cancelled before %s", report.failed_step or "finalizing")
        except DeployError as e:
            report.state = PipelineState.ABORTED
            report.failed_step = current.name if current else None
            report.error = str(e)
            self._record_failure(report, current, str(e))
            logger.error("Deployment aborted at step '%s': %s", report.failed_step, e)
        except OSError as e:
            report.state = PipelineState.ABORTED
            report.failed_step = current.name if current else None
            report.error = f"{type(e).__name__}: {e}"
            self._record_failure(report, current, report.error)
            logger.error("Deployment aborted at step '%s': %s", report.failed_step or "setup", report.error)
        finally:
            report.ended_at = datetime.now(UTC).isoformat()
            report.context = context.snapshot()
            if handler is not None:
                detach_run_log(handler)

        return report

    # ── Validation ──────────────────────────────────────────────

    def _validate(self, pipeline: Pipeline, context: PipelineContext) -> None:
        missing = context.missing(pipeline.required)
        if missing:
            raise ValidationError(f"Missing required value(s): {', '.join(missing)}")

        names = [s.name for s in pipeline.steps]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValidationError(f"Duplicate step names: {', '.join(dupes)}")

        if pipeline.requires_root and not self.dry_run and not self.privilege_check():
            raise ValidationError("This deployment must be run as root.")

    # ── Steps ───────────────────────────────────────────────────

    def _run_step(self, step: Step, context: PipelineContext) -> StepRecord:
        start = time.monotonic()

        if self.guard.should_skip(step, context):
            return StepRecord(name=step.name, status="skipped", detail=step.guard.describe() if step.guard else "")

        receipt = self.runner.run(step, context)
        if receipt.failed:
            raise self.runner.failure_for(step, receipt, context)

        detail = ""
        if step.extract is not None:
            detail = self._extract(step, step.extract, receipt.output, context)

        for config_patch in step.patches:
            self.patcher.apply(config_patch, context)
            if not self.dry_run:
                logger.debug("Patched %s", context.render(config_patch.target))

        if step.task is not None:
            if self.dry_run:
                logger.info("[dry-run] Would run %s", step.label)
            else:
                step.task(context)

        if self.dry_run:
            for key in step.produced_keys:
                if key not in context:
                    context.set(key, f"<{key}>")

        if step.patches or step.task is not None:
            if not step.commands and not self.dry_run:
                logger.log(SUCCESS, "%s completed successfully.", step.label)

        return StepRecord(
            name=step.name,
            status="skipped" if self.dry_run else "ok",
            duration_ms=int((time.monotonic() - start) * 1000),
            detail=detail,
        )

    def _extract(self, step: Step, extraction: Extraction, output: str, context: PipelineContext) -> str:
        if self.dry_run:
            return ""

        try:
            value = extract(output, extraction.pattern)
        except ExtractionFailure as e:
            logger.error("%s: value for %s not found in output.", step.label, extraction.key)
            raise ExtractionFailure(
                reason=e.reason,
                step_name=step.name,
                log_excerpt=context.redact(log_excerpt(output)),
            ) from e

        context.set(extraction.key, value, overwrite=True, secret=extraction.secret)
        shown = context.redact(value)
        logger.log(SUCCESS, "%s extracted: %s", extraction.key, shown)
        return f"{extraction.key}={shown}"

    @staticmethod
    def _record_failure(report: PipelineReport, step: Step | None, detail: str) -> None:
        if step is None:
            return
        if report.steps and report.steps[-1].name == step.name:
            return
        report.steps.append(StepRecord(name=step.name, status="failed", detail=detail))
