"""
Tests for repository plan construction — branch selection per codename.
"""

from pathlib import Path

import pytest

from pvemirror.core.errors import UnsupportedVersionError
from pvemirror.core.models.host import HostFacts
from pvemirror.core.models.mutation import (
    CommentOutLines,
    OverwriteWithTemplate,
    RenameToDisabled,
    SubstituteText,
)
from pvemirror.core.models.settings import Settings
from pvemirror.core.services.repo_plan import build_plan

MIRROR = "https://mirrors.example.org"


@pytest.fixture
def cfg() -> Settings:
    return Settings(root="/", mirror_url=MIRROR)


def _by_path(plan, suffix: str):
    return [t for t in plan.targets if t.path.endswith(suffix)]


class TestBookworm:
    def test_targets(self, cfg: Settings):
        plan = build_plan(HostFacts(codename="bookworm"), cfg)

        (enterprise,) = _by_path(plan, "pve-enterprise.list")
        assert isinstance(enterprise, CommentOutLines)
        assert enterprise.pattern == "^deb"

        (sources,) = _by_path(plan, "/etc/apt/sources.list")
        assert isinstance(sources, OverwriteWithTemplate)
        assert f"deb {MIRROR}/debian/ bookworm main" in sources.content
        assert f"deb {MIRROR}/debian-security bookworm-security" in sources.content

        (nosub,) = _by_path(plan, "pve-no-subscription.list")
        assert nosub.content == f"deb {MIRROR}/proxmox/debian/pve bookworm pve-no-subscription\n"

    def test_no_ceph_descriptor_without_tool(self, cfg: Settings):
        plan = build_plan(HostFacts(codename="bookworm"), cfg)
        assert _by_path(plan, "ceph.list") == []

    def test_ceph_descriptor_with_tool(self, cfg: Settings):
        facts = HostFacts(codename="bookworm", tools=frozenset({"ceph"}), ceph_release="reef")
        (ceph,) = _by_path(build_plan(facts, cfg), "ceph.list")
        assert ceph.content == f"deb {MIRROR}/proxmox/debian/ceph-reef bookworm no-subscription\n"

    def test_ceph_without_release_is_skipped(self, cfg: Settings):
        facts = HostFacts(codename="bookworm", tools=frozenset({"ceph"}))
        assert _by_path(build_plan(facts, cfg), "ceph.list") == []

    def test_pveceph_patch_targets_list_write(self, cfg: Settings):
        (patch,) = _by_path(build_plan(HostFacts(codename="bookworm"), cfg), "pveceph.pm")
        assert isinstance(patch, CommentOutLines)
        assert "ceph\\.list" in patch.pattern


class TestTrixie:
    def test_targets(self, cfg: Settings):
        plan = build_plan(HostFacts(codename="trixie"), cfg)

        (enterprise,) = _by_path(plan, "pve-enterprise.sources")
        assert isinstance(enterprise, RenameToDisabled)
        assert enterprise.disabled_path.endswith("pve-enterprise.sources.bak")

        (debian,) = _by_path(plan, "debian.sources")
        assert f"URIs: {MIRROR}/debian\n" in debian.content
        assert "Suites: trixie-security" in debian.content

        (sources,) = _by_path(plan, "/etc/apt/sources.list")
        assert sources.content.startswith("# See /etc/apt/sources.list.d/")

    def test_ceph_sources(self, cfg: Settings):
        facts = HostFacts(codename="trixie", tools=frozenset({"ceph"}), ceph_release="squid")
        (ceph,) = _by_path(build_plan(facts, cfg), "ceph.sources")
        assert f"URIs: {MIRROR}/proxmox/debian/ceph-squid" in ceph.content

    def test_pveceph_patch_targets_sources_write(self, cfg: Settings):
        (patch,) = _by_path(build_plan(HostFacts(codename="trixie"), cfg), "pveceph.pm")
        assert "ceph\\.sources" in patch.pattern
        assert "repo_source" in patch.pattern


class TestCommon:
    def test_unsupported_codename(self, cfg: Settings):
        with pytest.raises(UnsupportedVersionError):
            build_plan(HostFacts(codename="bullseye"), cfg)

    def test_template_catalog_substitutions(self, cfg: Settings):
        plan = build_plan(HostFacts(codename="bookworm"), cfg)
        subs = [t for t in plan.targets if isinstance(t, SubstituteText)]
        assert {(s.old, s.new) for s in subs} == {
            ("http://download.proxmox.com", f"{MIRROR}/proxmox"),
            ("https://releases.turnkeylinux.org/pve", f"{MIRROR}/turnkeylinux/metadata/pve"),
        }

    def test_turnkey_disabled(self):
        cfg = Settings(mirror_url=MIRROR, turnkey=False)
        plan = build_plan(HostFacts(codename="bookworm"), cfg)
        assert not any("turnkey" in t.path or "turnkey" in getattr(t, "old", "") for t in plan.targets)

    def test_turnkey_dropin(self, cfg: Settings):
        (dropin,) = _by_path(build_plan(HostFacts(codename="trixie"), cfg), "update-turnkey-releases.conf")
        assert dropin.content.startswith("[Service]\nExecStopPost=/bin/sed -i ")
        assert f"s|http://mirror.turnkeylinux.org|{MIRROR}|" in dropin.content

    def test_every_target_is_backed_up(self, cfg: Settings):
        for codename in ("bookworm", "trixie"):
            plan = build_plan(HostFacts(codename=codename), cfg)
            assert plan.target_paths <= {str(p) for p in plan.backup_paths}

    def test_interfaces_backed_up_never_mutated(self, cfg: Settings):
        plan = build_plan(HostFacts(codename="bookworm"), cfg)
        assert Path("/etc/network/interfaces") in plan.backup_paths
        assert "/etc/network/interfaces" not in plan.target_paths

    def test_paths_resolve_under_root(self, tmp_path: Path):
        cfg = Settings(root=str(tmp_path))
        plan = build_plan(HostFacts(codename="bookworm"), cfg)
        assert all(t.path.startswith(str(tmp_path)) for t in plan.targets)
