"""
State detector — read-only probes that produce the run's HostFacts.

Nothing here mutates the host. The only fatal outcomes are a missing or
unreadable OS identity file and insufficient privileges; a missing tool
is an ordinary ``False``.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from pathlib import Path

from pvemirror.core.errors import HostEnvironmentError, UnsupportedVersionError
from pvemirror.core.models.host import HostFacts
from pvemirror.core.models.settings import Settings

logger = logging.getLogger(__name__)

OS_RELEASE_PATH = "/etc/os-release"

# Debian release branches this tool knows how to configure
SUPPORTED_CODENAMES: tuple[str, ...] = ("bookworm", "trixie")


def check_privileges(require_root: bool = True) -> None:
    """Fail unless running as root (when root is required)."""
    if require_root and os.geteuid() != 0:
        raise HostEnvironmentError(
            "This command must be run as root. Please use 'sudo'."
        )


def parse_os_release(text: str) -> dict[str, str]:
    """Parse os-release(5) ``KEY=VALUE`` lines, honouring shell quoting."""
    info: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, raw = line.partition("=")
        try:
            parts = shlex.split(raw)
        except ValueError:
            parts = [raw.strip().strip("\"'")]
        info[key.strip()] = parts[0] if parts else ""
    return info


def read_os_release(path: Path) -> dict[str, str]:
    if not path.is_file():
        raise HostEnvironmentError(
            f"{path} not found. Cannot determine Debian version."
        )
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise HostEnvironmentError(f"Cannot read {path}: {e}") from e
    return parse_os_release(text)


def probe_tools(names: list[str]) -> frozenset[str]:
    """Return the subset of ``names`` found on the search path."""
    return frozenset(name for name in names if shutil.which(name) is not None)


def parse_ceph_release(version_output: str) -> str | None:
    """Extract the release codename from ``ceph -v`` output.

    The codename is the field before the last one on the line carrying
    ``ceph version``, e.g. ``reef`` in
    ``ceph version 18.2.2 (e9fe...) reef (stable)``.
    """
    for line in version_output.splitlines():
        if "ceph version " not in line:
            continue
        fields = line.split()
        if len(fields) >= 2:
            return fields[-2]
    return None


def detect_ceph_release() -> str | None:
    try:
        r = subprocess.run(
            ["ceph", "-v"],
            capture_output=True, text=True, timeout=30,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.warning("Could not run 'ceph -v': %s", e)
        return None
    if r.returncode != 0:
        logger.warning("'ceph -v' exited with code %d", r.returncode)
        return None
    return parse_ceph_release(r.stdout)


def detect(settings: Settings) -> HostFacts:
    """Take the host snapshot for this run.

    Raises:
        HostEnvironmentError: os-release is missing, unreadable, or has
            no VERSION_CODENAME.
    """
    info = read_os_release(settings.host_path(OS_RELEASE_PATH))

    codename = info.get("VERSION_CODENAME", "")
    if not codename:
        raise HostEnvironmentError(
            f"VERSION_CODENAME not set in {OS_RELEASE_PATH}. "
            "Cannot determine Debian version."
        )
    logger.info("Detected Debian Codename: %s", codename)

    tools = probe_tools(settings.probe_tools)
    logger.debug("Tools on PATH: %s", ", ".join(sorted(tools)) or "(none)")

    ceph_release = None
    if "ceph" in tools:
        ceph_release = detect_ceph_release()
        if ceph_release:
            logger.info("Detected Ceph version: %s", ceph_release)
        else:
            logger.warning("Could not determine Ceph codename.")

    return HostFacts(
        codename=codename,
        os_id=info.get("ID", ""),
        pretty_name=info.get("PRETTY_NAME", ""),
        tools=tools,
        ceph_release=ceph_release,
    )


def require_supported(facts: HostFacts) -> None:
    """Abort unless the codename is one this tool can configure."""
    if facts.codename not in SUPPORTED_CODENAMES:
        raise UnsupportedVersionError(facts.codename, SUPPORTED_CODENAMES)
