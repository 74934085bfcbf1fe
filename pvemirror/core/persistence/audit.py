"""
Audit ledger — one NDJSON line per run, kept beside the backups.

``<backup_dir>/audit.ndjson`` says, for each run that got as far as
taking backups, where it stopped, whether it succeeded, and which
backup directory holds the originals. Lines are only ever appended.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Iterator

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_FILE = "audit.ndjson"


class AuditEntry(BaseModel):
    """What one run did."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    run_id: str = ""
    codename: str = ""
    mirror_url: str = ""

    stage: str = ""                # last stage reached
    status: str = ""               # ok, failed
    backup_dir: str | None = None
    backups_taken: int = 0
    mutations_applied: int = 0
    mutations_skipped: int = 0
    commands_run: int = 0

    error_kind: str | None = None
    error: str | None = None


class AuditWriter:
    """Appends entries to, and reads them back from, the ledger file."""

    def __init__(self, path: Path | None = None, backup_root: Path | None = None):
        if path is None:
            path = (backup_root or Path(".")) / DEFAULT_AUDIT_FILE
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        """Append ``entry``. A ledger write failure is logged, not raised."""
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            logger.error("Could not append to audit ledger %s: %s", self._path, e)
            return
        logger.debug("Audit: run %s %s at %s", entry.run_id, entry.status, entry.stage)

    def iter_entries(self) -> Iterator[AuditEntry]:
        """Yield entries oldest first, skipping lines that do not parse."""
        if not self._path.is_file():
            return
        with self._path.open(encoding="utf-8") as f:
            for n, raw in enumerate(f, start=1):
                if not raw.strip():
                    continue
                try:
                    yield AuditEntry.model_validate(json.loads(raw))
                except (json.JSONDecodeError, ValidationError) as e:
                    logger.warning("%s:%d: unreadable audit entry: %s", self._path, n, e)

    def read_all(self) -> list[AuditEntry]:
        return list(self.iter_entries())

    def read_recent(self, n: int = 20) -> list[AuditEntry]:
        return self.read_all()[-n:]

    def by_backup_dir(self) -> dict[str, AuditEntry]:
        """Latest entry for each backup directory a run wrote into."""
        return {e.backup_dir: e for e in self.iter_entries() if e.backup_dir}
