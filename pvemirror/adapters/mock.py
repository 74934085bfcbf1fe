"""
Mock adapter — a stand-in for the shell that only takes notes.

Tests register it under the ``shell`` name and then read back which
commands a run issued, in which order and with which environment.
"""

from __future__ import annotations

from pvemirror.adapters.base import Adapter, ExecutionContext
from pvemirror.core.models.action import Receipt


class MockAdapter(Adapter):
    """Records every context and answers ``ok`` unless told otherwise."""

    def __init__(
        self,
        adapter_name: str = "shell",
        available: bool = True,
        default_output: str = "",
    ):
        self._name = adapter_name
        self._available = available
        self._output = default_output
        self._scripted: dict[str, Receipt] = {}
        self.call_log: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_count(self) -> int:
        return len(self.call_log)

    @property
    def commands(self) -> list[list[str]]:
        """argv of each executed action, oldest first."""
        return [ctx.action.argv for ctx in self.call_log]

    def is_available(self) -> bool:
        return self._available

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def set_response(self, action_id: str, receipt: Receipt) -> None:
        self._scripted[action_id] = receipt

    def set_failure(self, action_id: str, error: str = "Mock failure") -> None:
        """Make the action with this id fail with ``error``."""
        self.set_response(
            action_id,
            Receipt.failure(adapter=self._name, action_id=action_id, error=error),
        )

    def execute(self, context: ExecutionContext) -> Receipt:
        self.call_log.append(context)
        action = context.action
        scripted = self._scripted.get(action.id)
        if scripted is not None:
            return scripted
        return Receipt.success(
            adapter=self._name,
            action_id=action.id,
            output=self._output,
            metadata={"mock": True, "argv": action.argv},
        )

    def reset(self) -> None:
        self.call_log.clear()
        self._scripted.clear()
