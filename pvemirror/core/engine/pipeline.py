"""
Pipeline — the one linear procedure this tool exists to run.

    Detect → BackupAll → AcquireLock → ApplyMutations → UpdatePackages
           → RefreshServices → Done

Each stage finishes before the next starts. Any fatal error moves the
run straight to Failed; there is no retry and no rollback. Backups are
always complete before the first edit, so a failed run can be undone
by hand from its backup directory.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Callable

from pvemirror.adapters.registry import AdapterRegistry
from pvemirror.core.errors import MutationIOError, PipelineError
from pvemirror.core.models.action import Receipt
from pvemirror.core.models.backup import BackupOutcome, BackupRecord
from pvemirror.core.models.host import HostFacts
from pvemirror.core.models.lock import LockWaitState
from pvemirror.core.models.mutation import MutationOutcome
from pvemirror.core.models.settings import Settings
from pvemirror.core.persistence.audit import AuditEntry, AuditWriter
from pvemirror.core.services import mutation_applier
from pvemirror.core.services.backup_manager import BackupManager
from pvemirror.core.services.decisions import DecisionProvider
from pvemirror.core.services.lock_guard import LockProbe, select_probe, wait_for_lock
from pvemirror.core.services.package_ops import refresh_services, update_packages
from pvemirror.core.services.repo_plan import RepoPlan, build_plan
from pvemirror.core.services.state_detector import (
    check_privileges,
    detect,
    require_supported,
)

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    START = "start"
    DETECT = "detect"
    BACKUP = "backup"
    LOCK = "lock"
    APPLY = "apply"
    UPDATE = "update"
    REFRESH = "refresh"
    DONE = "done"


# Stages at or past BACKUP have been allowed to write to the backup root
_WRITING_STAGES = {Stage.BACKUP, Stage.LOCK, Stage.APPLY, Stage.UPDATE, Stage.REFRESH, Stage.DONE}


@dataclass
class PipelineReport:
    """Everything a run did, up to where it stopped."""

    run_id: str = ""
    stage: Stage = Stage.START
    status: str = "running"          # running, ok, failed
    dry_run: bool = False
    facts: HostFacts | None = None
    plan: RepoPlan | None = None
    backups: list[BackupOutcome] = field(default_factory=list)
    backup_dir: str | None = None
    lock: LockWaitState | None = None
    outcomes: list[MutationOutcome] = field(default_factory=list)
    receipts: list[Receipt] = field(default_factory=list)
    error: str | None = None
    error_kind: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def applied(self) -> list[MutationOutcome]:
        return [o for o in self.outcomes if o.applied]

    @property
    def skipped(self) -> list[MutationOutcome]:
        return [o for o in self.outcomes if not o.applied]

    @property
    def backed_up(self) -> list[BackupRecord]:
        return [b for b in self.backups if isinstance(b, BackupRecord)]

    def fail(self, error: PipelineError) -> None:
        self.status = "failed"
        self.error = str(error)
        self.error_kind = error.kind

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "stage": self.stage.value,
            "status": self.status,
            "dry_run": self.dry_run,
            "facts": self.facts.to_dict() if self.facts else None,
            "plan": self.plan.to_dict() if self.plan else None,
            "backup_dir": self.backup_dir,
            "backups": [b.model_dump(mode="json") for b in self.backups],
            "lock_waited_seconds": self.lock.elapsed_seconds if self.lock else None,
            "mutations": [
                {
                    "kind": o.target.kind,
                    "path": o.path,
                    "status": o.status,
                    "detail": o.detail,
                }
                for o in self.outcomes
            ],
            "commands": [
                {
                    "id": r.action_id,
                    "status": r.status,
                    "duration_ms": r.duration_ms,
                }
                for r in self.receipts
            ],
            "error": self.error,
            "error_kind": self.error_kind,
        }


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    return f"run-{now}-{uuid.uuid4().hex[:6]}"


def run_pipeline(
    settings: Settings,
    decisions: DecisionProvider,
    registry: AdapterRegistry,
    probe: LockProbe | None = None,
    sleep: Callable[[float], None] = time.sleep,
    on_wait: Callable[[LockWaitState], None] | None = None,
    dry_run: bool = False,
    timestamp: str | None = None,
) -> PipelineReport:
    """Run the whole procedure once. Never raises PipelineError.

    Args:
        settings: Validated configuration.
        decisions: Answers for the autoremove / openvswitch questions.
        registry: Where external commands are dispatched.
        probe: Lock probe override (default: fuser, else pgrep).
        sleep: Sleep function used by the lock wait loop.
        on_wait: Called once per lock poll while waiting.
        dry_run: Detect and plan only; write nothing, run nothing.
        timestamp: Backup directory name override.

    Returns:
        PipelineReport; ``status`` is "ok" or "failed".
    """
    report = PipelineReport(run_id=generate_run_id(), dry_run=dry_run)

    try:
        _run_stages(
            report, settings, decisions, registry,
            probe=probe, sleep=sleep, on_wait=on_wait,
            dry_run=dry_run, timestamp=timestamp,
        )
    except PipelineError as e:
        logger.error("%s", e)
        report.fail(e)
    except OSError as e:
        err = MutationIOError(getattr(e, "filename", None) or "?", e)
        logger.error("%s", err)
        report.fail(err)

    if report.ok:
        report.stage = Stage.DONE
    elif report.applied:
        logger.error(
            "%d change(s) were applied before the failure; originals are in %s",
            len(report.applied), report.backup_dir,
        )

    if report.stage in _WRITING_STAGES and not dry_run:
        _write_audit(report, settings)

    return report


def _run_stages(
    report: PipelineReport,
    settings: Settings,
    decisions: DecisionProvider,
    registry: AdapterRegistry,
    probe: LockProbe | None,
    sleep: Callable[[float], None],
    on_wait: Callable[[LockWaitState], None] | None,
    dry_run: bool,
    timestamp: str | None,
) -> None:
    # ── 1. Detect ──────────────────────────────────────────────────
    report.stage = Stage.DETECT
    # A dry run only reads, so it can run unprivileged
    if not dry_run:
        check_privileges(settings.require_root)
    facts = detect(settings)
    report.facts = facts
    require_supported(facts)
    plan = build_plan(facts, settings)
    report.plan = plan

    if dry_run:
        logger.info("[dry-run] %d backup(s) and %d edit(s) planned", len(plan.backup_paths), len(plan.targets))
        report.status = "ok"
        return

    # ── 2. Backup everything that will be touched ──────────────────
    report.stage = Stage.BACKUP
    logger.info("Backing up existing configuration files to %s...", settings.backup_root)
    manager = BackupManager(settings.backup_root, timestamp=timestamp)
    for path in plan.backup_paths:
        report.backups.append(manager.backup(path))
        report.backup_dir = str(manager.run_dir) if manager.run_dir else None
    logger.info("Configuration backup complete.")

    # ── 3. Package database lock ───────────────────────────────────
    report.stage = Stage.LOCK
    probe = probe or select_probe(settings.lock_process_names)

    def _wait() -> LockWaitState:
        return wait_for_lock(
            settings.lock_paths,
            timeout_seconds=settings.lock_timeout,
            probe=probe,
            sleep=sleep,
            on_wait=on_wait,
        )

    report.lock = _wait()

    # ── 4. Edits ───────────────────────────────────────────────────
    report.stage = Stage.APPLY
    logger.info("Configuring APT repositories to use mirror: %s", settings.mirror_url)
    for target in plan.targets:
        report.outcomes.append(mutation_applier.apply(target))
    logger.info(
        "APT repositories configured: %d change(s), %d already in place.",
        len(report.applied), len(report.skipped),
    )

    # ── 5. Package refresh ─────────────────────────────────────────
    report.stage = Stage.UPDATE
    report.receipts.extend(update_packages(
        registry, decisions, wait_for_lock=_wait, turnkey=settings.turnkey,
    ))

    # ── 6. Services ────────────────────────────────────────────────
    report.stage = Stage.REFRESH
    report.receipts.append(refresh_services(
        registry, settings.services, delay_seconds=settings.restart_delay_seconds,
    ))

    report.status = "ok"
    logger.info("Proxmox mirror configuration completed successfully!")


def _write_audit(report: PipelineReport, settings: Settings) -> None:
    entry = AuditEntry(
        run_id=report.run_id,
        codename=report.facts.codename if report.facts else "",
        mirror_url=settings.mirror_url,
        stage=report.stage.value,
        status=report.status,
        backup_dir=report.backup_dir,
        backups_taken=len(report.backed_up),
        mutations_applied=len(report.applied),
        mutations_skipped=len(report.skipped),
        commands_run=len(report.receipts),
        error_kind=report.error_kind,
        error=report.error,
    )
    AuditWriter(backup_root=settings.backup_root).write(entry)
