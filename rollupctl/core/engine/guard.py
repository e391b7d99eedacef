"""
Idempotency guard — decide whether a step's work is already done.

Each guard is a precondition evaluated immediately before a step runs.
When it holds, the step is skipped, which makes re-running a pipeline
after a partial failure safe: completed clones, installs and generated
credentials are left alone.
"""

from __future__ import annotations

import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

from rollupctl.core.context import PipelineContext

if TYPE_CHECKING:
    from rollupctl.core.engine.step import Step

logger = logging.getLogger(__name__)


class Guard(ABC):
    """A precondition that, when it holds, makes a step a no-op."""

    @abstractmethod
    def holds(self, context: PipelineContext) -> bool:
        """Whether the step's effect is already present."""

    @abstractmethod
    def describe(self) -> str:
        """Short human description, used in logs."""


class DirectoryExists(Guard):
    def __init__(self, path: str):
        self.path = path

    def holds(self, context: PipelineContext) -> bool:
        return Path(context.render(self.path)).is_dir()

    def describe(self) -> str:
        return f"directory {self.path} exists"


class FileExists(Guard):
    def __init__(self, path: str):
        self.path = path

    def holds(self, context: PipelineContext) -> bool:
        return Path(context.render(self.path)).is_file()

    def describe(self) -> str:
        return f"file {self.path} exists"


class FileNonEmpty(Guard):
    """File exists and has content (a generated credentials file)."""

    def __init__(self, path: str):
        self.path = path

    def holds(self, context: PipelineContext) -> bool:
        target = Path(context.render(self.path))
        return target.is_file() and target.stat().st_size > 0

    def describe(self) -> str:
        return f"file {self.path} is non-empty"


class BinariesPresent(Guard):
    """Every named program resolves on PATH."""

    def __init__(self, *binaries: str):
        self.binaries = binaries

    def holds(self, context: PipelineContext) -> bool:
        return all(shutil.which(b) is not None for b in self.binaries)

    def describe(self) -> str:
        return f"{', '.join(self.binaries)} on PATH"


class IdempotencyGuard:
    """Evaluates step preconditions before the runner is invoked."""

    def should_skip(self, step: Step, context: PipelineContext) -> bool:
        if step.guard is None:
            return False
        if step.guard.holds(context):
            logger.info("%s: already present (%s), skipping.", step.label, step.guard.describe())
            return True
        return False
