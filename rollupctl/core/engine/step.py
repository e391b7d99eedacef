"""
Step — one unit of a deployment pipeline.

A step may run commands, pull a value out of their output, write their
standard output to a file, patch configuration files and run an
in-process task — in that order.  Any of these may be absent.

Commands are argv lists.  Each argument, the working directory and
every patch value may contain ``{KEY}`` placeholders, resolved against
the pipeline context when the step runs (not when it's declared), so a
step can use values produced by the steps before it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from rollupctl.core.context import PipelineContext
from rollupctl.core.engine.extractor import TX_HASH_PATTERN
from rollupctl.core.engine.guard import Guard
from rollupctl.core.models.patch import ConfigPatch


@dataclass
class Extraction:
    """Store the first ``pattern`` match of a step's output as ``key``."""

    key: str
    pattern: str = TX_HASH_PATTERN
    secret: bool = False


@dataclass
class Step:
    """A named, declared-order pipeline step.  Failure aborts the run."""

    name: str
    description: str = ""
    commands: list[list[str]] = field(default_factory=list)
    cwd: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    timeout: int = 1800
    guard: Guard | None = None
    extract: Extraction | None = None
    stdout_to: str | None = None
    patches: list[ConfigPatch] = field(default_factory=list)
    task: Callable[[PipelineContext], None] | None = None
    provides: list[str] = field(default_factory=list)

    @property
    def label(self) -> str:
        return self.description or self.name

    @property
    def produced_keys(self) -> list[str]:
        """Context keys this step writes (used for dry-run placeholders)."""
        keys = list(self.provides)
        if self.extract is not None:
            keys.append(self.extract.key)
        return keys
