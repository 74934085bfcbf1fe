"""
Run use case — load settings, wire adapters, run the pipeline.

The vertical slice from CLI intent to a finished (or failed) run.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from pvemirror.adapters.registry import AdapterRegistry
from pvemirror.core.config.loader import ConfigError, load_settings
from pvemirror.core.engine.pipeline import PipelineReport, run_pipeline
from pvemirror.core.models.lock import LockWaitState
from pvemirror.core.models.settings import Settings
from pvemirror.core.services.decisions import DecisionProvider, FlagDecisions
from pvemirror.core.services.lock_guard import LockProbe

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Result of a pvemirror run."""

    report: PipelineReport | None = None
    settings: Settings | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.report is not None and self.report.ok

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error, "error_kind": "config"}
        result: dict = {}
        if self.settings:
            result["mirror_url"] = self.settings.mirror_url
        if self.report:
            result.update(self.report.to_dict())
        return result


def default_registry() -> AdapterRegistry:
    from pvemirror.adapters.shell.command import ShellCommandAdapter

    registry = AdapterRegistry()
    registry.register(ShellCommandAdapter())
    return registry


def run_mirror_setup(
    config_path: Path | None = None,
    overrides: dict | None = None,
    decisions: DecisionProvider | None = None,
    registry: AdapterRegistry | None = None,
    probe: LockProbe | None = None,
    sleep: Callable[[float], None] = time.sleep,
    on_wait: Callable[[LockWaitState], None] | None = None,
    dry_run: bool = False,
) -> RunResult:
    """Configure the host to use the mirror.

    Args:
        config_path: Optional explicit path to pvemirror.yml.
        overrides: Settings values from the command line.
        decisions: Optional-step answers (default: no to both).
        registry: Pre-configured adapter registry (default: real shell).
        probe: Lock probe override.
        sleep: Sleep function for the lock wait loop.
        on_wait: Lock-wait progress callback.
        dry_run: Detect and plan only.

    Returns:
        RunResult with the pipeline report.
    """
    result = RunResult()

    try:
        settings = load_settings(config_path, overrides=overrides)
    except ConfigError as e:
        result.error = str(e)
        return result
    result.settings = settings

    result.report = run_pipeline(
        settings,
        decisions or FlagDecisions(),
        registry or default_registry(),
        probe=probe,
        sleep=sleep,
        on_wait=on_wait,
        dry_run=dry_run,
    )
    return result
