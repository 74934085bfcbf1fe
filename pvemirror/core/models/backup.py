"""
Backup models — one record per file copied before mutation.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


class BackupRecord(BaseModel):
    """A file copied into the per-run backup directory."""

    status: Literal["backed_up"] = "backed_up"
    source_path: str
    destination_path: str
    timestamp: str


class BackupSkipped(BaseModel):
    """A backup that was not needed because the source does not exist."""

    status: Literal["skipped"] = "skipped"
    source_path: str
    reason: str = "source not found"


BackupOutcome = BackupRecord | BackupSkipped
