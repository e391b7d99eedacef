"""
Adapter contract: validate an Action, then execute it into a Receipt.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

from rollupctl.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """An action plus where, and whether, to run it."""

    action: Action
    cwd: str | None = None
    dry_run: bool = False
    env: dict[str, str] = Field(default_factory=dict)

    @property
    def working_dir(self) -> str:
        return self.action.params.get("cwd") or self.cwd or "."


class Adapter(ABC):
    """Runs one kind of Action.

    ``execute`` reports failure through the returned Receipt rather than
    raising; the registry still guards against adapters that do raise.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Matched against ``Action.adapter``."""

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """``(True, "")`` when the action can run, else ``(False, reason)``."""

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        ...
