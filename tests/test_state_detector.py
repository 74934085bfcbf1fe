"""
Tests for the state detector — os-release parsing, tools, ceph release.
"""

from pathlib import Path

import pytest

from pvemirror.core.errors import HostEnvironmentError, UnsupportedVersionError
from pvemirror.core.models.host import HostFacts
from pvemirror.core.models.settings import Settings
from pvemirror.core.services import state_detector
from pvemirror.core.services.state_detector import (
    check_privileges,
    detect,
    parse_ceph_release,
    parse_os_release,
    require_supported,
)


class TestParseOsRelease:
    def test_quoted_and_bare_values(self):
        info = parse_os_release(
            'PRETTY_NAME="Debian GNU/Linux 13 (trixie)"\n'
            "VERSION_CODENAME=trixie\n"
            "# comment\n"
            "\n"
            "ID='debian'\n"
        )
        assert info["PRETTY_NAME"] == "Debian GNU/Linux 13 (trixie)"
        assert info["VERSION_CODENAME"] == "trixie"
        assert info["ID"] == "debian"

    def test_empty_value(self):
        assert parse_os_release("VARIANT=\n")["VARIANT"] == ""


class TestParseCephRelease:
    def test_release_before_last_field(self):
        out = "ceph version 18.2.2 (e9fe820e7fffd1b7cde143a9f77653b73fcec748) reef (stable)\n"
        assert parse_ceph_release(out) == "reef"

    def test_ignores_other_lines(self):
        out = "warning: something\nceph version 19.2.0 (abc) squid (stable)\n"
        assert parse_ceph_release(out) == "squid"

    def test_no_version_line(self):
        assert parse_ceph_release("command not found\n") is None


class TestDetect:
    def test_bookworm_host(self, settings: Settings):
        facts = detect(settings)
        assert facts.codename == "bookworm"
        assert facts.os_id == "debian"
        assert facts.tools == frozenset()
        assert facts.ceph_release is None

    def test_missing_os_release(self, tmp_path: Path):
        with pytest.raises(HostEnvironmentError, match="not found"):
            detect(Settings(root=str(tmp_path), probe_tools=[]))

    def test_non_utf8_os_release(self, tmp_path: Path):
        (tmp_path / "etc").mkdir()
        (tmp_path / "etc" / "os-release").write_bytes(
            b"ID=debian\nPRETTY_NAME=\"Debian \xe9dition\"\nVERSION_CODENAME=bookworm\n"
        )
        facts = detect(Settings(root=str(tmp_path), probe_tools=[]))
        assert facts.codename == "bookworm"

    def test_missing_codename(self, tmp_path: Path):
        (tmp_path / "etc").mkdir()
        (tmp_path / "etc" / "os-release").write_text("ID=debian\n")
        with pytest.raises(HostEnvironmentError, match="VERSION_CODENAME"):
            detect(Settings(root=str(tmp_path), probe_tools=[]))

    def test_tools_and_ceph(self, settings: Settings, monkeypatch):
        monkeypatch.setattr(
            state_detector.shutil, "which",
            lambda name: "/usr/bin/ceph" if name == "ceph" else None,
        )
        monkeypatch.setattr(state_detector, "detect_ceph_release", lambda: "reef")
        facts = detect(settings.model_copy(update={"probe_tools": ["ceph", "fuser"]}))
        assert facts.has_tool("ceph")
        assert not facts.has_tool("fuser")
        assert facts.ceph_release == "reef"

    def test_ceph_not_queried_without_tool(self, settings: Settings, monkeypatch):
        monkeypatch.setattr(state_detector.shutil, "which", lambda name: None)
        monkeypatch.setattr(
            state_detector, "detect_ceph_release",
            lambda: pytest.fail("ceph should not be queried"),
        )
        facts = detect(settings.model_copy(update={"probe_tools": ["ceph"]}))
        assert not facts.has_tool("ceph")


class TestGuards:
    def test_supported(self):
        require_supported(HostFacts(codename="bookworm"))
        require_supported(HostFacts(codename="trixie"))

    def test_unsupported(self):
        with pytest.raises(UnsupportedVersionError) as exc:
            require_supported(HostFacts(codename="bullseye"))
        assert exc.value.codename == "bullseye"
        assert "bookworm" in str(exc.value)

    def test_privileges_not_required(self):
        check_privileges(require_root=False)

    def test_privileges_required_as_user(self, monkeypatch):
        monkeypatch.setattr(state_detector.os, "geteuid", lambda: 1000)
        with pytest.raises(HostEnvironmentError, match="root"):
            check_privileges(require_root=True)

    def test_privileges_as_root(self, monkeypatch):
        monkeypatch.setattr(state_detector.os, "geteuid", lambda: 0)
        check_privileges(require_root=True)
