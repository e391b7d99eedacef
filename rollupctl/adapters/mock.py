"""
Mock adapter — scripted test double for command execution.

Pipeline tests register it as the ``shell`` adapter to script what each
step prints or fails with, and which files it leaves behind.
"""

from __future__ import annotations

from collections.abc import Callable

from rollupctl.adapters.base import Adapter, ExecutionContext
from rollupctl.core.models.action import Receipt


class MockAdapter(Adapter):
    """Universal mock adapter for testing.

    By default, returns success for everything. Responses can be keyed
    by exact action ID or by step name (``Action.name``); the ID wins.
    An optional side effect runs before the response is returned, to
    simulate files a real tool would have written.
    """

    def __init__(
        self,
        adapter_name: str = "shell",
        default_output: str = "[mock] executed",
    ):
        self._name = adapter_name
        self._default_output = default_output
        self._responses: dict[str, Receipt] = {}
        self._side_effects: dict[str, Callable[[ExecutionContext], None]] = {}
        self._call_log: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        """Number of times execute has been called."""
        return len(self._call_log)

    def calls_for(self, step_name: str) -> list[list[str]]:
        """The argv of every call made on behalf of ``step_name``."""
        return [
            c.action.params.get("argv", [])
            for c in self._call_log
            if c.action.name == step_name
        ]

    def set_response(self, key: str, receipt: Receipt) -> None:
        """Set a custom response for an action ID or step name."""
        self._responses[key] = receipt

    def set_output(self, key: str, output: str) -> None:
        """Succeed with the given output."""
        self._responses[key] = Receipt.success(
            adapter=self._name,
            action_id=key,
            output=output,
            metadata={"mock": True, "return_code": 0},
        )

    def set_failure(self, key: str, error: str = "Mock failure", return_code: int = 1, output: str = "") -> None:
        """Configure an action or step to fail."""
        self._responses[key] = Receipt.failure(
            adapter=self._name,
            action_id=key,
            error=error,
            output=output,
            metadata={"mock": True, "return_code": return_code},
        )

    def set_side_effect(self, key: str, effect: Callable[[ExecutionContext], None]) -> None:
        """Run ``effect`` whenever the action or step is executed."""
        self._side_effects[key] = effect

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self._call_log.append(context)
        action = context.action

        effect = self._side_effects.get(action.id) or self._side_effects.get(action.name)
        if effect is not None:
            effect(context)

        receipt = self._responses.get(action.id) or self._responses.get(action.name)
        if receipt is not None:
            return receipt.model_copy(update={"action_id": action.id})

        return Receipt.success(
            adapter=self._name,
            action_id=action.id,
            output=self._default_output,
            metadata={"mock": True, "return_code": 0},
        )

    def reset(self) -> None:
        """Clear call log and custom responses."""
        self._call_log.clear()
        self._responses.clear()
        self._side_effects.clear()
