"""
Service provisioner — install and start systemd units for node processes.

For every ServiceSpec: render the unit, write it into the unit
directory, then (after a single daemon-reload) enable and start it.
Services are independent, so a failure on one does not stop the next;
the report records every outcome and the run fails if any service did.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from rollupctl.adapters.registry import AdapterRegistry
from rollupctl.core.engine.patcher import write_atomic
from rollupctl.core.errors import DeployError, ProvisionFailure
from rollupctl.core.models.action import Action, Receipt
from rollupctl.core.models.service import ServiceSpec
from rollupctl.core.observability.logging_config import SUCCESS
from rollupctl.core.services.units import render_unit

logger = logging.getLogger(__name__)

DEFAULT_UNIT_DIR = "/etc/systemd/system"


@dataclass
class ServiceOutcome:
    name: str
    unit_path: str = ""
    status: str = "pending"  # started, rendered, failed
    error: str = ""

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "unit_path": self.unit_path,
            "status": self.status,
            "error": self.error,
        }


@dataclass
class ProvisionReport:
    """Per-service results of one provisioning pass."""

    outcomes: list[ServiceOutcome] = field(default_factory=list)

    @property
    def failed(self) -> dict[str, str]:
        return {o.name: o.error for o in self.outcomes if o.status == "failed"}

    @property
    def all_ok(self) -> bool:
        return not self.failed

    def raise_for_failures(self) -> None:
        if self.failed:
            raise ProvisionFailure(self.failed)

    def to_dict(self) -> dict:
        return {
            "ok": self.all_ok,
            "services": [o.to_dict() for o in self.outcomes],
        }


class ServiceProvisioner:
    """Writes units and drives ``systemctl`` through the adapter registry."""

    def __init__(
        self,
        registry: AdapterRegistry,
        unit_dir: str | Path = DEFAULT_UNIT_DIR,
        run_id: str = "run",
        dry_run: bool = False,
    ):
        self.registry = registry
        self.unit_dir = Path(unit_dir)
        self.run_id = run_id
        self.dry_run = dry_run

    def provision(self, specs: list[ServiceSpec]) -> ProvisionReport:
        report = ProvisionReport()
        if not specs:
            return report

        logger.info("Creating systemd services...")
        for spec in specs:
            report.outcomes.append(self._install_unit(spec))

        if self.dry_run:
            return report

        reload = self._systemctl("daemon-reload", ["daemon-reload"])
        if reload.failed:
            for outcome in report.outcomes:
                if outcome.status != "failed":
                    outcome.status = "failed"
                    outcome.error = f"daemon-reload failed: {reload.error}"
            logger.error("systemctl daemon-reload failed: %s", reload.error)
            return report

        logger.info("Starting services...")
        for outcome in report.outcomes:
            if outcome.status == "failed":
                continue
            self._start(outcome)

        if report.all_ok:
            logger.log(SUCCESS, "All services started successfully!")
        return report

    # ── Internals ───────────────────────────────────────────────

    def _install_unit(self, spec: ServiceSpec) -> ServiceOutcome:
        path = self.unit_dir / spec.unit_name
        outcome = ServiceOutcome(name=spec.name, unit_path=str(path))
        content = render_unit(spec)

        if self.dry_run:
            logger.info("[dry-run] Would write %s", path)
            logger.debug("%s", content)
            outcome.status = "rendered"
            return outcome

        try:
            self.unit_dir.mkdir(parents=True, exist_ok=True)
            write_atomic(path, content)
        except (OSError, DeployError) as e:
            outcome.status = "failed"
            outcome.error = f"cannot write unit: {e}"
            logger.error("Failed to write %s: %s", path, e)
            return outcome

        logger.debug("Wrote %s", path)
        return outcome

    def _start(self, outcome: ServiceOutcome) -> None:
        for verb in ("enable", "start"):
            receipt = self._systemctl(f"{verb}:{outcome.name}", [verb, outcome.name])
            if receipt.failed:
                outcome.status = "failed"
                outcome.error = f"systemctl {verb} failed: {_last_line(receipt)}"
                logger.error("Failed to %s %s", verb, outcome.name)
                return
        outcome.status = "started"
        logger.info("Started %s", outcome.name)

    def _systemctl(self, name: str, args: list[str]) -> Receipt:
        action = Action(
            id=f"{self.run_id}:service:{name}",
            name=name,
            adapter="shell",
            params={"argv": ["systemctl", *args], "timeout": 120},
        )
        return self.registry.execute_action(action)


def _last_line(receipt: Receipt) -> str:
    text = (receipt.output or receipt.error or "").strip()
    return text.splitlines()[-1] if text else "unknown error"
