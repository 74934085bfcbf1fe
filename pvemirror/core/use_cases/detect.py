"""
Detect use case — show host facts and the plan, without changing anything.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pvemirror.core.config.loader import ConfigError, load_settings
from pvemirror.core.errors import PipelineError
from pvemirror.core.models.host import HostFacts
from pvemirror.core.services.repo_plan import RepoPlan, build_plan
from pvemirror.core.services.state_detector import SUPPORTED_CODENAMES, detect


@dataclass
class DetectResult:
    facts: HostFacts | None = None
    plan: RepoPlan | None = None
    supported: bool = False
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "facts": self.facts.to_dict() if self.facts else None,
            "supported": self.supported,
            "supported_codenames": list(SUPPORTED_CODENAMES),
            "plan": self.plan.to_dict() if self.plan else None,
            "error": self.error,
        }


def run_detect(
    config_path: Path | None = None,
    overrides: dict | None = None,
) -> DetectResult:
    """Detect host facts and build the plan. Read-only; no root needed."""
    result = DetectResult()

    try:
        settings = load_settings(config_path, overrides=overrides)
        result.facts = detect(settings)
    except (ConfigError, PipelineError) as e:
        result.error = str(e)
        return result

    result.supported = result.facts.codename in SUPPORTED_CODENAMES
    if result.supported:
        result.plan = build_plan(result.facts, settings)
    else:
        result.error = (
            f"Unsupported Debian version: {result.facts.codename!r}. "
            f"Supported: {', '.join(SUPPORTED_CODENAMES)}."
        )
    return result
