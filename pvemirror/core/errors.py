"""
Pipeline errors — the fatal conditions that abort a run.

Every fatal condition is a ``PipelineError`` with a short ``kind``
string, which the pipeline report and the audit ledger carry. Things
that merely did not need doing (missing files, missing tools, targets
already in the desired state) are *not* errors; they come back as
skipped outcomes.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for fatal pipeline errors."""

    kind = "error"


class HostEnvironmentError(PipelineError):
    """Missing OS identity source or insufficient privileges."""

    kind = "environment"


class UnsupportedVersionError(PipelineError):
    """The host's release codename is outside the supported set."""

    kind = "unsupported_version"

    def __init__(self, codename: str, supported: tuple[str, ...]):
        self.codename = codename
        self.supported = supported
        super().__init__(
            f"Unsupported Debian version: {codename!r}. "
            f"Supported: {', '.join(supported)}."
        )


class LockTimeoutError(PipelineError):
    """The package database stayed locked for the whole wait budget."""

    kind = "lock_timeout"

    def __init__(self, elapsed: float, timeout: float):
        self.elapsed = elapsed
        self.timeout = timeout
        super().__init__(
            f"Timed out after {elapsed:g}s waiting for package manager locks "
            "to be released. Check running processes manually."
        )


class MutationIOError(PipelineError):
    """Unrecoverable filesystem failure during backup or mutation.

    Mutations applied before the failure stay applied; restore from the
    run's backup directory.
    """

    kind = "io"

    def __init__(self, path: str, cause: OSError | str):
        self.path = path
        self.cause = cause
        super().__init__(f"{path}: {cause}")


class CommandError(PipelineError):
    """An external command (apt-get, pveam, systemctl) failed."""

    kind = "command"
