"""
Adapter registry — routes each Action to the adapter it names.

``execute_action`` always answers with a Receipt.  A missing adapter, a
rejected action, a dry run and an adapter that raised each come back as
one, so the step runner and the service provisioner only ever inspect
receipts.
"""

from __future__ import annotations

import logging
import time

from rollupctl.adapters.base import Adapter, ExecutionContext
from rollupctl.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Adapters keyed by name."""

    def __init__(self) -> None:
        self._adapters: dict[str, Adapter] = {}

    def register(self, adapter: Adapter) -> None:
        if adapter.name in self._adapters:
            logger.warning("Replacing adapter: %s", adapter.name)
        self._adapters[adapter.name] = adapter

    def execute_action(
        self,
        action: Action,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        dry_run: bool = False,
    ) -> Receipt:
        """Validate ``action``, then run it unless ``dry_run`` is set."""
        adapter = self._adapters.get(action.adapter)
        if adapter is None:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"No adapter registered for '{action.adapter}'",
            )

        context = ExecutionContext(action=action, cwd=cwd, dry_run=dry_run, env=env or {})
        rejection = self._rejection(adapter, context)
        if rejection:
            return Receipt.failure(adapter=action.adapter, action_id=action.id, error=rejection)

        if dry_run:
            return Receipt.skip(
                adapter=action.adapter,
                action_id=action.id,
                reason=f"[dry-run] Would execute {action.name or action.id}",
                metadata={"dry_run": True},
            )

        start = time.monotonic()
        try:
            receipt = adapter.execute(context)
        except Exception as e:
            logger.error("Adapter %s raised during execution: %s", action.adapter, e)
            receipt = Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Unexpected error: {e}",
            )
        receipt.duration_ms = int((time.monotonic() - start) * 1000)
        return receipt

    @staticmethod
    def _rejection(adapter: Adapter, context: ExecutionContext) -> str:
        try:
            valid, reason = adapter.validate(context)
        except Exception as e:
            return f"Validation error: {e}"
        return "" if valid else f"Validation failed: {reason}"
