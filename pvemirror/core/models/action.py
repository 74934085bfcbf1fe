"""
Action and Receipt models — the command execution contract.

An Action is a command the pipeline wants run (``apt-get update``,
``pveam update``, ``systemctl restart ...``). A Receipt is what came
back. Adapters answer with receipts, never with exceptions; deciding
whether a failed receipt is fatal is the caller's job.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class Action(BaseModel):
    """A command to dispatch through the adapter registry."""

    id: str                         # stable step id, e.g. "apt-update"
    name: str = ""                  # display form, usually the command line
    adapter: str = "shell"
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def argv(self) -> list[str]:
        return list(self.params.get("argv", []))


class Receipt(BaseModel):
    """Outcome of one dispatched action."""

    adapter: str
    action_id: str
    status: Literal["ok", "skipped", "failed"] = "ok"
    finished_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    duration_ms: int = 0

    output: str = ""
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @classmethod
    def success(cls, adapter: str, action_id: str, output: str = "", **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, status="ok", output=output, **kwargs)

    @classmethod
    def failure(cls, adapter: str, action_id: str, error: str, **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, status="failed", error=error, **kwargs)

    @classmethod
    def skip(cls, adapter: str, action_id: str, reason: str = "", **kwargs: Any) -> Receipt:
        """A step that was deliberately not run; ``reason`` lands in ``output``."""
        return cls(adapter=adapter, action_id=action_id, status="skipped", output=reason, **kwargs)
