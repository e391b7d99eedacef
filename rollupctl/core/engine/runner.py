"""
Step runner — execute a step's commands through the adapter registry.

For every command of a step the runner resolves the argv template,
dispatches an Action to the ``shell`` adapter and streams the captured
output into the run log.  The first failing command ends the step; the
failed Receipt goes back to the orchestrator, which aborts the run.

Log lines per step:
    INFO     <description>
    SUCCESS  <description> completed successfully.
    ERROR    <description> failed. Check <run log> for details.
"""

from __future__ import annotations

import logging
from pathlib import Path

from rollupctl.adapters.registry import AdapterRegistry
from rollupctl.core.context import PipelineContext
from rollupctl.core.engine.patcher import write_atomic
from rollupctl.core.engine.step import Step
from rollupctl.core.errors import PatchFailure, StepFailure
from rollupctl.core.models.action import Action, Receipt
from rollupctl.core.observability.logging_config import OUTPUT_LOGGER, SUCCESS

logger = logging.getLogger(__name__)
output_logger = logging.getLogger(OUTPUT_LOGGER)

EXCERPT_LINES = 20


def log_excerpt(text: str, lines: int = EXCERPT_LINES) -> str:
    """Last ``lines`` non-blank lines of ``text``."""
    kept = [line for line in text.splitlines() if line.strip()]
    return "\n".join(kept[-lines:])


class StepRunner:
    """Runs step commands; never decides whether the pipeline continues."""

    def __init__(
        self,
        registry: AdapterRegistry,
        run_id: str = "run",
        dry_run: bool = False,
        log_path: Path | None = None,
    ):
        self.registry = registry
        self.run_id = run_id
        self.dry_run = dry_run
        self.log_path = log_path

    def run(self, step: Step, context: PipelineContext) -> Receipt:
        """Execute every command of ``step`` in order.

        Returns the receipt of the last command, or the first failed one.
        Output of all commands is concatenated into the returned receipt.
        """
        logger.info("%s", step.label)
        cwd = context.render(step.cwd) if step.cwd else None
        env = {k: context.render(v) for k, v in step.env.items()}

        outputs: list[str] = []
        receipt = Receipt.skip(adapter="shell", action_id=f"{self.run_id}:{step.name}", reason="no commands")

        for index, template in enumerate(step.commands):
            argv = [context.render(arg) for arg in template]
            action = Action(
                id=f"{self.run_id}:{step.name}:{index}",
                name=step.name,
                adapter="shell",
                params={
                    "argv": argv,
                    "timeout": step.timeout,
                    "merge_stderr": step.stdout_to is None,
                },
            )
            logger.debug("$ %s", context.redact(" ".join(argv)))

            receipt = self.registry.execute_action(action, cwd=cwd, env=env, dry_run=self.dry_run)
            self._log_output(receipt, context, include_stdout=step.stdout_to is None)
            outputs.append(receipt.output)

            if receipt.failed:
                logger.error("%s failed. Check %s for details.", step.label, self._log_name)
                return receipt.model_copy(update={"output": _join(outputs)})

        if step.stdout_to and receipt.ok:
            self._write_stdout(context.render(step.stdout_to), receipt.output)

        if step.commands and not self.dry_run:
            logger.log(SUCCESS, "%s completed successfully.", step.label)

        return receipt.model_copy(update={"output": _join(outputs)})

    def failure_for(self, step: Step, receipt: Receipt, context: PipelineContext) -> StepFailure:
        """Convert a failed receipt into the error that aborts the run."""
        text = "\n".join(filter(None, [receipt.output, receipt.metadata.get("stderr"), receipt.error]))
        excerpt = context.redact(log_excerpt(text))
        return StepFailure(step.name, receipt.return_code, excerpt)

    @property
    def _log_name(self) -> str:
        return str(self.log_path) if self.log_path else "the run log"

    def _log_output(self, receipt: Receipt, context: PipelineContext, include_stdout: bool = True) -> None:
        # stdout captured to a file may hold values not yet known to be secret
        if include_stdout:
            for line in receipt.output.splitlines():
                output_logger.debug("%s", context.redact(line))
        stderr = receipt.metadata.get("stderr") or ""
        for line in stderr.splitlines():
            output_logger.debug("%s", context.redact(line))
        if receipt.error:
            output_logger.debug("%s", receipt.error)

    @staticmethod
    def _write_stdout(path: str, content: str) -> None:
        target = Path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.touch(mode=0o600, exist_ok=True)
        except OSError as e:
            raise PatchFailure(path, str(e)) from e
        write_atomic(target, content)
        logger.debug("Wrote %d bytes of command output to %s", len(content), target)


def _join(outputs: list[str]) -> str:
    return "\n".join(o.rstrip("\n") for o in outputs if o)
