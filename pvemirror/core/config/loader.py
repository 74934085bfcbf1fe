"""
Configuration loader — reads pvemirror.yml into the Settings model.

The file is optional: with no file anywhere, the stock defaults apply.
An explicitly requested file that is missing or malformed is an error.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

from pvemirror.core.models.settings import Settings

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "pvemirror.yml"

# Host-wide fallback when nothing is found walking up from cwd
SYSTEM_CONFIG_FILE = Path("/etc") / CONFIG_FILE

# Environment overrides (env var → settings field)
_ENV_OVERRIDES = {
    "PVEMIRROR_MIRROR_URL": "mirror_url",
    "PVEMIRROR_BACKUP_DIR": "backup_dir",
}


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for pvemirror.yml starting from the given directory, walking up.

    Falls back to /etc/pvemirror.yml.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to the config file, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    if SYSTEM_CONFIG_FILE.is_file():
        return SYSTEM_CONFIG_FILE
    return None


def load_settings(
    path: Path | None = None,
    overrides: dict | None = None,
) -> Settings:
    """Load and validate settings.

    Args:
        path: Explicit path to pvemirror.yml. If None, searches upward
            and falls back to defaults when nothing is found.
        overrides: Values that win over both file and environment
            (typically CLI options).

    Returns:
        Validated Settings model.

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    data: dict = {}

    if path is not None and not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    if path is None:
        path = find_config_file()

    if path is not None:
        data = _read_yaml(path)
    else:
        logger.debug("No %s found, using defaults", CONFIG_FILE)

    for env_var, field_name in _ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            data[field_name] = value

    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value

    try:
        settings = Settings.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    logger.debug("Settings: mirror=%s root=%s", settings.mirror_url, settings.root)
    return settings


def _read_yaml(path: Path) -> dict:
    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "pvemirror" key or be flat
    if isinstance(data.get("pvemirror"), dict):
        data = dict(data["pvemirror"])

    return data
