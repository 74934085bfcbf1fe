"""
Adapter registry — the single door every external command goes through.

Services build an Action and hand it here; the registry picks the
adapter, checks the command can run, and answers with a Receipt.
"""

from __future__ import annotations

import logging
import time

from pvemirror.adapters.base import Adapter, ExecutionContext
from pvemirror.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Adapters keyed by name, plus the dispatch that uses them."""

    def __init__(self) -> None:
        self._adapters: dict[str, Adapter] = {}

    def register(self, adapter: Adapter) -> None:
        if adapter.name in self._adapters:
            logger.warning("Replacing adapter %r", adapter.name)
        self._adapters[adapter.name] = adapter

    def __contains__(self, name: str) -> bool:
        return name in self._adapters

    def execute_action(
        self,
        action: Action,
        env: dict[str, str] | None = None,
    ) -> Receipt:
        """Run ``action`` on its adapter. Never raises."""
        started = time.monotonic()
        context = ExecutionContext(
            action=action,
            env=env or {},
            params=action.params,
        )

        refusal = self._refuse(context)
        if refusal is not None:
            logger.debug("Refused %s: %s", action.id, refusal)
            return Receipt.failure(adapter=action.adapter, action_id=action.id, error=refusal)

        command = " ".join(action.argv)
        adapter = self._adapters[action.adapter]
        try:
            receipt = adapter.execute(context)
        except Exception as e:
            # Adapters are not supposed to raise
            logger.error("%s raised while running %r: %s", adapter, command, e)
            receipt = Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Unexpected error: {e}",
            )

        receipt.duration_ms = int((time.monotonic() - started) * 1000)
        return receipt

    def _refuse(self, context: ExecutionContext) -> str | None:
        """Why this action cannot be dispatched, or None if it can."""
        name = context.action.adapter
        adapter = self._adapters.get(name)
        if adapter is None:
            return f"No adapter registered for '{name}'"
        if not adapter.is_available():
            return f"Adapter '{name}' is not available on this host"
        try:
            ok, reason = adapter.validate(context)
        except Exception as e:
            return f"Validation error: {e}"
        if not ok:
            return f"Validation failed: {reason}"
        return None
