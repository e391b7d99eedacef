"""
Deploy use case — run one pipeline end to end.

Loads deploy.yml and the credentials, builds the pipeline and its
context, hands them to the orchestrator and, when the run got past
validation, records it in the state file and the audit ledger.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from rollupctl.adapters.registry import AdapterRegistry
from rollupctl.core.config.loader import ConfigError, load_config, load_credentials
from rollupctl.core.context import PipelineContext
from rollupctl.core.engine.orchestrator import (
    Orchestrator,
    Pipeline,
    PipelineReport,
    is_privileged,
)
from rollupctl.core.engine.readiness import CancelToken, Probe
from rollupctl.core.models.deployment import DeployConfig
from rollupctl.core.persistence.audit import AuditEntry, AuditWriter
from rollupctl.core.persistence.state_file import default_state_path, load_state, save_state
from rollupctl.pipelines import opstack, orbit

logger = logging.getLogger(__name__)

@dataclass
class DeployResult:
    """Result of a deploy command."""

    pipeline: str = ""
    report: PipelineReport | None = None
    config: DeployConfig | None = None
    state_path: Path | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None and self.report is not None and self.report.ok

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def to_dict(self) -> dict:
        result: dict = {"pipeline": self.pipeline, "ok": self.ok}
        if self.error:
            result["error"] = self.error
        if self.report:
            result["report"] = self.report.to_dict()
        return result


def log_file_path(log_dir: str | Path, pipeline: str, now: datetime | None = None) -> Path:
    """``<log_dir>/deploy_<pipeline>_<YYYYmmdd_HHMMSS>.log``"""
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return Path(log_dir) / f"deploy_{pipeline}_{stamp}.log"


def build_context(
    arguments: dict[str, str | None],
    credentials: dict[str, str],
    defaults: dict[str, str],
    secret_keys: tuple[str, ...] = (),
) -> PipelineContext:
    """Arguments first, then configuration defaults, then credentials.

    Empty arguments are left out so validation reports them as missing.
    Credentials never replace an argument.
    """
    context = PipelineContext()
    for key, value in arguments.items():
        if value:
            context.set(key, value)
    for key, value in defaults.items():
        if key not in context and value:
            context.set(key, value)
    for key, value in credentials.items():
        if key in context:
            continue
        context.set(key, value, secret=key in secret_keys or key.endswith("PRIVATE_KEY"))
    return context


def default_registry() -> AdapterRegistry:
    from rollupctl.adapters.shell.command import CommandAdapter

    registry = AdapterRegistry()
    registry.register(CommandAdapter())
    return registry


def build_pipeline(
    name: str,
    config: DeployConfig,
    probe: Probe | None = None,
    cancel: CancelToken | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> tuple[Pipeline, tuple[str, ...], dict[str, str]]:
    """Pipeline, its credential keys and its configuration defaults."""
    if name == orbit.NAME:
        return (
            orbit.build_orbit_pipeline(config, probe=probe, cancel=cancel, sleep=sleep),
            orbit.credential_keys(config),
            {},
        )
    if name == opstack.NAME:
        return opstack.build_opstack_pipeline(config), (), opstack.defaults(config)
    raise ValueError(f"Unknown pipeline: {name}")


def run_deployment(
    pipeline_name: str,
    arguments: dict[str, str | None],
    config_path: Path | None = None,
    dry_run: bool = False,
    registry: AdapterRegistry | None = None,
    cancel: CancelToken | None = None,
    privilege_check: Callable[[], bool] = is_privileged,
    probe: Probe | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> DeployResult:
    """Deploy ``pipeline_name`` with the given positional arguments.

    Args:
        pipeline_name: ``orbit`` or ``op-stack``.
        arguments: Argument name → value; None or "" counts as missing.
        config_path: Optional explicit path to deploy.yml.
        dry_run: Validate and log every step without side effects.
        registry: Optional pre-configured adapter registry.
        cancel: Token set by signal handlers to stop between steps.
        privilege_check: Replaces the effective-uid check.
        probe: Replaces the chain readiness probe.
        sleep: Replaces ``time.sleep`` while polling.

    Returns:
        DeployResult with the orchestrator's report.
    """
    result = DeployResult(pipeline=pipeline_name)

    # ── Load config ──────────────────────────────────────────────
    try:
        config = load_config(config_path)
    except ConfigError as e:
        result.error = str(e)
        logger.error("%s", e)
        return result
    result.config = config

    pipeline, credential_keys, defaults = build_pipeline(
        pipeline_name, config, probe=probe, cancel=cancel, sleep=sleep
    )

    # ── Credentials ──────────────────────────────────────────────
    try:
        credentials = load_credentials(config.credentials_file, credential_keys)
    except ConfigError as e:
        result.error = str(e)
        logger.error("%s", e)
        return result

    context = build_context(arguments, credentials, defaults, credential_keys)

    # ── Run ──────────────────────────────────────────────────────
    orchestrator = Orchestrator(
        registry or default_registry(),
        dry_run=dry_run,
        log_path=log_file_path(config.log_dir, pipeline_name),
        cancel=cancel,
        privilege_check=privilege_check,
    )
    report = orchestrator.run(pipeline, context)
    result.report = report

    if not report.validated:
        result.error = report.error
        return result

    # ── Persist state + audit ────────────────────────────────────
    state_dir = Path(config.state_dir)
    state_path = default_state_path(state_dir)
    result.state_path = state_path

    state = load_state(state_path)
    state.deployment_name = config.name
    state.record_run(report.to_record())
    try:
        save_state(state, state_path)
    except OSError as e:
        result.warnings.append(f"State not saved: {e}")

    AuditWriter(state_dir=state_dir).write(_audit_entry(report))

    if not report.ok:
        result.error = report.error
    return result


def _audit_entry(report: PipelineReport) -> AuditEntry:
    started = _parse_iso(report.started_at)
    ended = _parse_iso(report.ended_at)
    duration_ms = int((ended - started).total_seconds() * 1000) if started and ended else 0

    return AuditEntry(
        run_id=report.run_id,
        pipeline=report.pipeline,
        dry_run=report.dry_run,
        status=report.state.value,
        steps_total=len(report.steps),
        steps_ok=sum(1 for s in report.steps if s.status == "ok"),
        steps_skipped=sum(1 for s in report.steps if s.status == "skipped"),
        failed_step=report.failed_step,
        duration_ms=duration_ms,
        errors=[report.error] if report.error else [],
        log_file=report.log_file,
        context=dict(report.context),
    )


def _parse_iso(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None
