"""
Lock wait state — transient bookkeeping for the lock guard's poll loop.
"""

from __future__ import annotations

from pydantic import BaseModel


class LockWaitState(BaseModel):
    elapsed_seconds: float = 0
    timeout_seconds: float = 300
    locked: bool = False
    polls: int = 0
