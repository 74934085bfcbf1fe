"""
Settings model — everything the pipeline can be told from pvemirror.yml.

Every field has a default that matches a stock Proxmox VE host, so an
absent config file is a valid configuration.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

DEFAULT_MIRROR_URL = "https://mirrors.ustc.edu.cn"
DEFAULT_BACKUP_DIR = "/root/pve_config_backups"

DEFAULT_LOCK_FILES = [
    "/var/lib/apt/lists/lock",
    "/var/lib/dpkg/lock",
    "/var/lib/dpkg/lock-frontend",
]
DEFAULT_LOCK_PROCESS_NAMES = ["apt", "apt-get", "dpkg"]
DEFAULT_SERVICES = ["pveproxy.service", "pvedaemon.service"]
DEFAULT_PROBE_TOOLS = ["ceph", "fuser", "pgrep", "pveam", "systemctl", "apt-get"]


class Settings(BaseModel):
    """Runtime configuration for a pvemirror run."""

    mirror_url: str = DEFAULT_MIRROR_URL

    # Prefix for every host path. "/" on a real host; a scratch tree in tests.
    root: str = "/"
    backup_dir: str = DEFAULT_BACKUP_DIR

    lock_timeout: int = 300
    lock_files: list[str] = Field(default_factory=lambda: list(DEFAULT_LOCK_FILES))
    lock_process_names: list[str] = Field(
        default_factory=lambda: list(DEFAULT_LOCK_PROCESS_NAMES)
    )

    services: list[str] = Field(default_factory=lambda: list(DEFAULT_SERVICES))
    restart_delay_seconds: int = 0

    turnkey: bool = True
    require_root: bool = True
    probe_tools: list[str] = Field(default_factory=lambda: list(DEFAULT_PROBE_TOOLS))

    @field_validator("mirror_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"mirror_url must be an http(s) URL, got {value!r}")
        return value

    @field_validator("lock_timeout", "restart_delay_seconds")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    def host_path(self, path: str) -> Path:
        """Resolve an absolute host path under the configured root."""
        return Path(self.root) / path.lstrip("/")

    @property
    def backup_root(self) -> Path:
        return self.host_path(self.backup_dir)

    @property
    def lock_paths(self) -> list[Path]:
        return [self.host_path(p) for p in self.lock_files]
