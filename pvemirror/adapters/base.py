"""
Adapter base — how the pipeline reaches apt-get, pveam and systemctl.

Every command that changes the host (package index refreshes, package
installs, service restarts) is described as an Action and an adapter turns
it into a Receipt, so a whole run can be replayed against a recording
double. Read-only probes (ceph -v, fuser, pgrep) are plain subprocess
calls in the detection services.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from pvemirror.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """One dispatch: the action plus the environment it runs with."""

    action: Action
    env: dict[str, str] = Field(default_factory=dict)   # merged over os.environ
    params: dict[str, Any] = Field(default_factory=dict)


class Adapter(ABC):
    """Runs actions. Answers with receipts, never with exceptions."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry key; actions select their adapter by this name."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether this adapter can run anything on this host at all."""

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Pre-flight check for one action: ``(ok, reason_if_not)``."""

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Run the action. A failure is a ``failed`` receipt."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
