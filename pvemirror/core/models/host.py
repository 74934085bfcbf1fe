"""
Host facts — the immutable snapshot taken by the state detector.

Constructed once at pipeline start and passed explicitly to every
component that branches on it.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class HostFacts(BaseModel):
    """What the pipeline knows about the host it is running on."""

    model_config = ConfigDict(frozen=True)

    codename: str
    os_id: str = ""
    pretty_name: str = ""
    tools: frozenset[str] = Field(default_factory=frozenset)
    ceph_release: str | None = None   # e.g. "reef", only when ceph is installed

    def has_tool(self, name: str) -> bool:
        """Whether ``name`` was found on the search path at detection time."""
        return name in self.tools

    def to_dict(self) -> dict:
        return {
            "codename": self.codename,
            "os_id": self.os_id,
            "pretty_name": self.pretty_name,
            "tools": sorted(self.tools),
            "ceph_release": self.ceph_release,
        }
