"""
Repository plan — which files to back up and which edits to make.

This is pure: given HostFacts and Settings it returns data, touching
nothing. Bookworm (PVE 8) uses one-line ``.list`` descriptors; trixie
(PVE 9) uses deb822 ``.sources`` blocks. The ceph descriptor is only
planned when the ceph tool is installed and reported its release.
"""

from __future__ import annotations

import logging
import re
import textwrap
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from pvemirror.core.errors import UnsupportedVersionError
from pvemirror.core.models.host import HostFacts
from pvemirror.core.models.mutation import (
    CommentOutLines,
    MutationTarget,
    OverwriteWithTemplate,
    RenameToDisabled,
    SubstituteText,
)
from pvemirror.core.models.settings import Settings

logger = logging.getLogger(__name__)

# ── Host paths ──────────────────────────────────────────────────────

SOURCES_LIST = "/etc/apt/sources.list"
SOURCES_DIR = "/etc/apt/sources.list.d"
APLINFO_PM = "/usr/share/perl5/PVE/APLInfo.pm"
NETWORK_INTERFACES = "/etc/network/interfaces"
PVECEPH_PM = "/usr/share/perl5/PVE/CLI/pveceph.pm"
TURNKEY_DROPIN = (
    "/etc/systemd/system/pve-daily-update.service.d/update-turnkey-releases.conf"
)
TURNKEY_RELEASES_INDEX = "/var/lib/pve-manager/apl-info/releases.turnkeylinux.org"

# Backed up on every host, whatever the release
ALWAYS_BACKUP = [SOURCES_LIST, APLINFO_PM, NETWORK_INTERFACES, PVECEPH_PM]

# ── Upstream URLs replaced by the mirror ───────────────────────────

PROXMOX_DOWNLOAD_URL = "http://download.proxmox.com"
TURNKEY_METADATA_URL = "https://releases.turnkeylinux.org/pve"
TURNKEY_DOWNLOAD_URL = "http://mirror.turnkeylinux.org"

DEBIAN_KEYRING = "/usr/share/keyrings/debian-archive-keyring.gpg"
PROXMOX_KEYRING = "/usr/share/keyrings/proxmox-archive-keyring.gpg"
COMPONENTS = "main contrib non-free non-free-firmware"


@dataclass
class RepoPlan:
    """The backup set and ordered edits for one host."""

    codename: str
    backup_paths: list[Path] = field(default_factory=list)
    targets: list[MutationTarget] = field(default_factory=list)

    @property
    def target_paths(self) -> set[str]:
        return {t.path for t in self.targets}

    def to_dict(self) -> dict:
        return {
            "codename": self.codename,
            "backup_paths": [str(p) for p in self.backup_paths],
            "targets": [t.model_dump(mode="json") for t in self.targets],
        }


def _src(name: str) -> str:
    return f"{SOURCES_DIR}/{name}"


def _pveceph_write_pattern(descriptor: str, variable: str) -> str:
    """Regex for the line where pveceph.pm rewrites the ceph descriptor."""
    call = f'PVE::Tools::file_set_contents("{_src(descriptor)}", ${variable});'
    return re.escape(call)


# ── Bookworm (PVE 8, one-line format) ──────────────────────────────


def _bookworm(facts: HostFacts, settings: Settings) -> RepoPlan:
    mirror = settings.mirror_url
    hp = settings.host_path
    plan = RepoPlan(codename="bookworm")
    plan.backup_paths = [hp(_src("pve-enterprise.list")), hp(_src("ceph.list"))]

    plan.targets.append(CommentOutLines(
        path=str(hp(_src("pve-enterprise.list"))),
        pattern=r"^deb",
        description="Disabled PVE Enterprise repository",
    ))
    plan.targets.append(OverwriteWithTemplate(
        path=str(hp(SOURCES_LIST)),
        content=(
            f"deb {mirror}/debian/ bookworm {COMPONENTS}\n"
            f"deb {mirror}/debian/ bookworm-updates {COMPONENTS}\n"
            f"deb {mirror}/debian-security bookworm-security {COMPONENTS}\n"
        ),
        description="Updated Debian sources",
    ))
    plan.targets.append(OverwriteWithTemplate(
        path=str(hp(_src("pve-no-subscription.list"))),
        content=f"deb {mirror}/proxmox/debian/pve bookworm pve-no-subscription\n",
        description="Updated PVE no-subscription source",
    ))
    if _plan_ceph(facts):
        plan.targets.append(OverwriteWithTemplate(
            path=str(hp(_src("ceph.list"))),
            content=(
                f"deb {mirror}/proxmox/debian/ceph-{facts.ceph_release} "
                "bookworm no-subscription\n"
            ),
            description="Updated Ceph source",
        ))
    plan.targets.append(CommentOutLines(
        path=str(hp(PVECEPH_PM)),
        pattern=_pveceph_write_pattern("ceph.list", "repolist"),
        description="Patched pveceph.pm for ceph.list",
    ))
    return plan


# ── Trixie (PVE 9, deb822 format) ──────────────────────────────────


def _trixie(facts: HostFacts, settings: Settings) -> RepoPlan:
    mirror = settings.mirror_url
    hp = settings.host_path
    plan = RepoPlan(codename="trixie")
    plan.backup_paths = [
        hp(_src("pve-enterprise.sources")),
        hp(_src("debian.sources")),
        hp(_src("ceph.sources")),
    ]

    plan.targets.append(RenameToDisabled(
        path=str(hp(_src("pve-enterprise.sources"))),
        suffix=".bak",
        description="Disabled PVE Enterprise repository",
    ))
    plan.targets.append(OverwriteWithTemplate(
        path=str(hp(SOURCES_LIST)),
        content=f"# See {SOURCES_DIR}/ for repository configuration\n",
        description="Cleared legacy sources.list",
    ))
    plan.targets.append(OverwriteWithTemplate(
        path=str(hp(_src("debian.sources"))),
        content=textwrap.dedent(f"""\
            Types: deb
            URIs: {mirror}/debian
            Suites: trixie trixie-updates
            Components: {COMPONENTS}
            Signed-By: {DEBIAN_KEYRING}

            Types: deb
            URIs: {mirror}/debian-security
            Suites: trixie-security
            Components: {COMPONENTS}
            Signed-By: {DEBIAN_KEYRING}
        """),
        description="Updated Debian sources",
    ))
    plan.targets.append(OverwriteWithTemplate(
        path=str(hp(_src("pve-no-subscription.sources"))),
        content=textwrap.dedent(f"""\
            Types: deb
            URIs: {mirror}/proxmox/debian/pve
            Suites: trixie
            Components: pve-no-subscription
            Signed-By: {PROXMOX_KEYRING}
        """),
        description="Updated PVE no-subscription source",
    ))
    if _plan_ceph(facts):
        plan.targets.append(OverwriteWithTemplate(
            path=str(hp(_src("ceph.sources"))),
            content=textwrap.dedent(f"""\
                Types: deb
                URIs: {mirror}/proxmox/debian/ceph-{facts.ceph_release}
                Suites: trixie
                Components: no-subscription
                Signed-By: {PROXMOX_KEYRING}
            """),
            description="Updated Ceph source",
        ))
    plan.targets.append(CommentOutLines(
        path=str(hp(PVECEPH_PM)),
        pattern=_pveceph_write_pattern("ceph.sources", "repo_source"),
        description="Patched pveceph.pm for ceph.sources",
    ))
    return plan


_BUILDERS: dict[str, Callable[[HostFacts, Settings], RepoPlan]] = {
    "bookworm": _bookworm,
    "trixie": _trixie,
}


def _plan_ceph(facts: HostFacts) -> bool:
    if not facts.has_tool("ceph"):
        logger.info("Ceph not found. Skipping Ceph repository configuration.")
        return False
    if not facts.ceph_release:
        logger.warning("Could not determine Ceph codename. Skipping Ceph repository update.")
        return False
    return True


def _template_catalog_targets(settings: Settings) -> list[MutationTarget]:
    """Point CT template metadata and downloads at the mirror."""
    mirror = settings.mirror_url
    aplinfo = str(settings.host_path(APLINFO_PM))
    targets: list[MutationTarget] = [
        SubstituteText(
            path=aplinfo,
            old=PROXMOX_DOWNLOAD_URL,
            new=f"{mirror}/proxmox",
            description="Updated standard CT template download URL",
        ),
    ]
    if settings.turnkey:
        targets.append(SubstituteText(
            path=aplinfo,
            old=TURNKEY_METADATA_URL,
            new=f"{mirror}/turnkeylinux/metadata/pve",
            description="Replaced TurnKey metadata URL in APLInfo.pm",
        ))
        # TurnKey metadata carries absolute download URLs; patch them after
        # every pve-daily-update fetch.
        targets.append(OverwriteWithTemplate(
            path=str(settings.host_path(TURNKEY_DROPIN)),
            content=(
                "[Service]\n"
                f"ExecStopPost=/bin/sed -i 's|{TURNKEY_DOWNLOAD_URL}|{mirror}|' "
                f"{TURNKEY_RELEASES_INDEX}\n"
            ),
            description="Created pve-daily-update override for TurnKey downloads",
        ))
    return targets


def build_plan(facts: HostFacts, settings: Settings) -> RepoPlan:
    """Build the backup set and edits for this host.

    Raises:
        UnsupportedVersionError: no plan exists for the host's codename.
    """
    builder = _BUILDERS.get(facts.codename)
    if builder is None:
        raise UnsupportedVersionError(facts.codename, tuple(_BUILDERS))

    plan = builder(facts, settings)
    plan.backup_paths = [
        settings.host_path(p) for p in ALWAYS_BACKUP
    ] + plan.backup_paths
    plan.targets.extend(_template_catalog_targets(settings))

    # Every file an edit touches is backed up first, even ones not listed above
    for target in plan.targets:
        path = Path(target.path)
        if path not in plan.backup_paths:
            plan.backup_paths.append(path)
    return plan
