"""
Shared test fixtures — a fake Proxmox host laid out under tmp_path.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from pvemirror.adapters.mock import MockAdapter
from pvemirror.adapters.registry import AdapterRegistry
from pvemirror.core.models.settings import Settings
from tests.hosts import FakeSleep, make_host


@pytest.fixture
def host_root(tmp_path: Path) -> Path:
    """A fresh bookworm host under tmp_path/host."""
    return make_host(tmp_path / "host")


@pytest.fixture
def settings(host_root: Path) -> Settings:
    """Settings rooted at the fake host, with no tool probing."""
    return Settings(
        root=str(host_root),
        require_root=False,
        probe_tools=[],
        lock_timeout=5,
    )


@pytest.fixture
def mock_shell() -> MockAdapter:
    return MockAdapter(adapter_name="shell")


@pytest.fixture
def registry(mock_shell: MockAdapter) -> AdapterRegistry:
    reg = AdapterRegistry()
    reg.register(mock_shell)
    return reg


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()
