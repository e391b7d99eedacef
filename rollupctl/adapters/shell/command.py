"""
Command adapter — run an external program from an argv list.

Commands are always a program name plus an explicit argument list.
Nothing is passed through a shell, so arguments need no quoting and
cannot inject further commands.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from pathlib import Path

from rollupctl.adapters.base import Adapter, ExecutionContext
from rollupctl.core.models.action import Receipt

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 1800


class CommandAdapter(Adapter):
    """Execute argv commands and capture output.

    Action params:
        argv (list[str]): Program and arguments.
        cwd (str): Override working directory (default: context.working_dir).
        timeout (int): Timeout in seconds (default: 1800).
        merge_stderr (bool): Interleave stderr into the output (default: True).
            When False, stdout is the output and stderr goes to metadata.
    """

    @property
    def name(self) -> str:
        return "shell"

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        argv = context.action.params.get("argv")
        if not argv or not isinstance(argv, list):
            return False, "Missing required param: 'argv'"
        if not all(isinstance(a, str) for a in argv):
            return False, "All argv entries must be strings"

        cwd = context.working_dir
        # earlier steps of a dry run never create it
        if cwd and not context.dry_run and not Path(cwd).is_dir():
            return False, f"Working directory does not exist: {cwd}"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        argv: list[str] = context.action.params["argv"]
        timeout = context.action.params.get("timeout", DEFAULT_TIMEOUT)
        merge_stderr = context.action.params.get("merge_stderr", True)
        cwd = context.working_dir

        env = os.environ.copy()
        env.update(context.env)

        logger.debug("Executing: %s (cwd=%s)", argv[0], cwd)
        start = time.monotonic()

        try:
            result = subprocess.run(
                argv,
                cwd=cwd,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command timed out after {timeout}s",
                metadata={"program": argv[0], "timeout": timeout},
            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command execution error: {e}",
                metadata={"program": argv[0]},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output = result.stdout or ""
        stderr = result.stderr or ""
        metadata = {
            "program": argv[0],
            "return_code": result.returncode,
            "stderr": stderr,
        }

        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                action_id=context.action.id,
                output=output,
                duration_ms=elapsed_ms,
                metadata=metadata,
            )
        return Receipt.failure(
            adapter=self.name,
            action_id=context.action.id,
            error=f"Command exited with code {result.returncode}",
            output=output,
            duration_ms=elapsed_ms,
            metadata=metadata,
        )

