"""
Backup manager — snapshot files before anything touches them.

Backups land in ``<backup_root>/<YYYYmmdd-HHMMSS>/<basename>``. Run
directories are never reused and destinations are never overwritten,
so repeated runs accumulate history. There is no pruning.
"""

from __future__ import annotations

import logging
import os
import shutil
import time
from pathlib import Path

from pvemirror.core.errors import MutationIOError
from pvemirror.core.models.backup import BackupOutcome, BackupRecord, BackupSkipped

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"


def make_timestamp() -> str:
    return time.strftime(TIMESTAMP_FORMAT)


class BackupManager:
    """Copies source files into a per-run timestamped directory.

    The run directory is created lazily on the first real backup, so a
    run that only meets missing files leaves nothing behind.
    """

    def __init__(self, root: Path, timestamp: str | None = None):
        self._root = Path(root)
        self._timestamp = timestamp or make_timestamp()
        self._run_dir: Path | None = None
        self._records: list[BackupRecord] = []

    @property
    def root(self) -> Path:
        return self._root

    @property
    def timestamp(self) -> str:
        return self._timestamp

    @property
    def run_dir(self) -> Path | None:
        """The directory this run writes into, once it exists."""
        return self._run_dir

    @property
    def records(self) -> list[BackupRecord]:
        return list(self._records)

    def backup(self, path: Path | str) -> BackupOutcome:
        """Copy ``path`` into the run directory.

        Returns BackupSkipped when the source does not exist.

        Raises:
            MutationIOError: the copy itself failed.
        """
        source = Path(path)
        if not source.is_file():
            logger.info("File not found, skipping backup: %s", source)
            return BackupSkipped(source_path=str(source))

        try:
            run_dir = self._ensure_run_dir()
            dest = _free_destination(run_dir / source.name)
            shutil.copy2(source, dest)
            _copy_ownership(source, dest)
        except OSError as e:
            raise MutationIOError(str(source), e) from e

        record = BackupRecord(
            source_path=str(source),
            destination_path=str(dest),
            timestamp=self._timestamp,
        )
        self._records.append(record)
        logger.info("Backed up '%s' to '%s/'", source, run_dir)
        return record

    def backup_all(self, paths: list[Path]) -> list[BackupOutcome]:
        """Back up every path, in order. All of them finish before returning."""
        return [self.backup(p) for p in paths]

    def _ensure_run_dir(self) -> Path:
        if self._run_dir is not None:
            return self._run_dir

        self._root.mkdir(parents=True, exist_ok=True)
        candidate = self._root / self._timestamp
        n = 0
        # Another run in the same second already owns this name
        while True:
            try:
                candidate.mkdir()
                break
            except FileExistsError:
                n += 1
                candidate = self._root / f"{self._timestamp}-{n}"
        self._run_dir = candidate
        return candidate


def _free_destination(dest: Path) -> Path:
    """Pick ``dest`` or ``dest.N`` so an existing backup is never overwritten."""
    candidate = dest
    n = 0
    while candidate.exists():
        n += 1
        candidate = dest.with_name(f"{dest.name}.{n}")
    return candidate


def _copy_ownership(source: Path, dest: Path) -> None:
    st = source.stat()
    dst = dest.stat()
    if (st.st_uid, st.st_gid) != (dst.st_uid, dst.st_gid):
        os.chown(dest, st.st_uid, st.st_gid)


def list_runs(root: Path) -> list[dict]:
    """List backup run directories under ``root``, newest first."""
    if not root.is_dir():
        return []

    runs = []
    for entry in sorted(root.iterdir(), key=lambda p: p.name, reverse=True):
        if not entry.is_dir():
            continue
        files = sorted(p.name for p in entry.iterdir() if p.is_file())
        runs.append({
            "name": entry.name,
            "path": str(entry),
            "files": files,
            "count": len(files),
        })
    return runs
