"""
Config check use case — validate pvemirror.yml and report issues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from pvemirror.core.config.loader import ConfigError, find_config_file, load_settings
from pvemirror.core.models.settings import Settings


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    settings: Settings | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "settings": self.settings.model_dump(mode="json") if self.settings else None,
        }


def check_config(config_path: Path | None = None) -> ConfigCheckResult:
    """Validate configuration and report issues.

    Args:
        config_path: Optional explicit path to pvemirror.yml.
    """
    result = ConfigCheckResult()
    result.config_path = config_path or find_config_file()

    try:
        settings = load_settings(config_path)
    except ConfigError as e:
        result.errors.append(str(e))
        return result
    result.settings = settings

    if result.config_path is None:
        result.warnings.append("No pvemirror.yml found; using built-in defaults.")

    if settings.lock_timeout == 0:
        result.warnings.append("lock_timeout is 0: any held APT lock fails the run at once.")

    if not settings.services:
        result.warnings.append("No services configured; nothing will be restarted.")

    if not settings.require_root:
        result.warnings.append("require_root is disabled.")

    result.valid = True
    return result
