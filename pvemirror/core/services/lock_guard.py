"""
Resource lock guard — wait for the package database to be free.

apt-get aborts outright when another process holds its lock. This
guard turns that into a bounded, observable wait: poll once per
interval, fail with LockTimeoutError once the budget is spent.

Two probes sit behind one interface. ``fuser`` asks the kernel who has
the lock files open; when it is not installed, ``pgrep`` looks for the
usual package-manager process names instead.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Iterable

from pvemirror.core.errors import LockTimeoutError
from pvemirror.core.models.lock import LockWaitState
from pvemirror.core.models.settings import DEFAULT_LOCK_PROCESS_NAMES

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300
POLL_INTERVAL = 1.0


class LockProbe(ABC):
    """Answers one question: is any of these resources held right now?"""

    name = "probe"

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the probe's underlying tool can be used."""

    @abstractmethod
    def is_locked(self, resources: Iterable[Path]) -> bool:
        """True if some process currently holds any of ``resources``."""


class FuserProbe(LockProbe):
    """Ask the OS which processes have the lock files open."""

    name = "fuser"

    def is_available(self) -> bool:
        return shutil.which("fuser") is not None

    def is_locked(self, resources: Iterable[Path]) -> bool:
        for resource in resources:
            if not Path(resource).exists():
                continue
            try:
                r = subprocess.run(
                    ["fuser", str(resource)],
                    capture_output=True, timeout=10,
                )
            except (OSError, subprocess.TimeoutExpired) as e:
                logger.debug("fuser %s failed: %s", resource, e)
                continue
            # fuser exits 0 only when at least one process uses the file
            if r.returncode == 0:
                logger.debug("Lock held: %s", resource)
                return True
        return False


class ProcessNameProbe(LockProbe):
    """Coarser fallback: look for running package-manager processes."""

    name = "pgrep"

    def __init__(self, process_names: list[str] | None = None):
        self.process_names = list(process_names or DEFAULT_LOCK_PROCESS_NAMES)

    def is_available(self) -> bool:
        return shutil.which("pgrep") is not None

    def is_locked(self, resources: Iterable[Path]) -> bool:
        for proc in self.process_names:
            try:
                r = subprocess.run(
                    ["pgrep", "-x", proc],
                    capture_output=True, timeout=10,
                )
            except (OSError, subprocess.TimeoutExpired) as e:
                logger.debug("pgrep %s failed: %s", proc, e)
                continue
            if r.returncode == 0:
                logger.debug("Package manager process running: %s", proc)
                return True
        return False


def select_probe(process_names: list[str] | None = None) -> LockProbe:
    """Prefer the precise fuser probe; fall back to process names."""
    fuser = FuserProbe()
    if fuser.is_available():
        return fuser
    logger.debug("fuser not found, falling back to process-name lock detection")
    return ProcessNameProbe(process_names)


def wait_for_lock(
    resources: Iterable[Path],
    timeout_seconds: float = DEFAULT_TIMEOUT,
    probe: LockProbe | None = None,
    interval: float = POLL_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
    on_wait: Callable[[LockWaitState], None] | None = None,
) -> LockWaitState:
    """Block until none of ``resources`` is held, or time out.

    Returns immediately (no sleep) when nothing holds the lock. After a
    wait, ``on_wait`` gets one last call with ``state.locked`` false.

    Raises:
        LockTimeoutError: still locked once ``timeout_seconds`` elapsed.
    """
    resources = list(resources)
    probe = probe or select_probe()
    state = LockWaitState(timeout_seconds=timeout_seconds)

    logger.info("Checking for active APT locks...")
    while True:
        state.polls += 1
        state.locked = probe.is_locked(resources)
        if not state.locked:
            break

        if state.elapsed_seconds >= timeout_seconds:
            logger.error(
                "Timed out waiting for APT locks after %gs", state.elapsed_seconds
            )
            raise LockTimeoutError(state.elapsed_seconds, timeout_seconds)

        if on_wait is not None:
            on_wait(state)
        logger.debug(
            "Waiting for other package management processes to finish... (%gs)",
            state.elapsed_seconds,
        )
        sleep(interval)
        state.elapsed_seconds += interval

    if state.elapsed_seconds > 0:
        if on_wait is not None:
            on_wait(state)
        logger.info("Locks released after %gs. Proceeding...", state.elapsed_seconds)
    return state
