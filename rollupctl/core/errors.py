"""
Deployment error taxonomy.

Every fatal condition in a pipeline run is one of these. The
orchestrator catches ``DeployError`` at the step boundary, records
it, and moves the run to ABORTED. Adapters never raise: command
failures arrive as failed Receipts and are converted here.
"""

from __future__ import annotations


class DeployError(Exception):
    """Base class for every fatal pipeline error."""


class ValidationError(DeployError):
    """Bad or missing arguments, or insufficient privilege.

    Raised before any side effect has been performed.
    """


class MissingValueError(DeployError):
    """A required pipeline context value is absent or empty."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Required value '{key}' is not set")


class StepFailure(DeployError):
    """An external command exited non-zero."""

    def __init__(self, step_name: str, exit_code: int | None, log_excerpt: str = "", message: str = ""):
        self.step_name = step_name
        self.exit_code = exit_code
        self.log_excerpt = log_excerpt
        if not message:
            code = f"exit {exit_code}" if exit_code is not None else "no exit code"
            message = f"Step '{step_name}' failed ({code})"
        super().__init__(message)


class ExtractionFailure(StepFailure):
    """A value required downstream was not found in a step's output."""

    def __init__(self, reason: str = "pattern not found", step_name: str = "", log_excerpt: str = ""):
        self.reason = reason
        super().__init__(
            step_name,
            exit_code=None,
            log_excerpt=log_excerpt,
            message=f"Extraction failed: {reason}",
        )


class PatchFailure(DeployError):
    """A configuration file is missing or cannot be written."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot patch {path}: {reason}")


class ProvisionFailure(DeployError):
    """One or more services failed to install or start."""

    def __init__(self, failures: dict[str, str]):
        self.failures = failures
        names = ", ".join(failures)
        super().__init__(f"Failed to provision service(s): {names}")


class ReadinessTimeout(DeployError):
    """A dependent service did not become ready in time."""

    def __init__(self, target: str, timeout: float, attempts: int):
        self.target = target
        self.timeout = timeout
        self.attempts = attempts
        super().__init__(
            f"{target} not ready after {timeout:.0f}s ({attempts} attempts)"
        )


class PipelineCancelled(DeployError):
    """The run was cancelled between steps."""
