"""
Mutation targets — declarative descriptions of idempotent file edits.

Each target names one file and one kind of edit. The mutation applier
is the only code that interprets them, so every kind is guaranteed to
be a no-op when applied a second time.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class _TargetBase(BaseModel):
    path: str
    description: str = ""


class OverwriteWithTemplate(_TargetBase):
    """Replace the whole file with rendered content."""

    kind: Literal["overwrite"] = "overwrite"
    content: str
    mode: int | None = None


class SubstituteText(_TargetBase):
    """Replace every literal occurrence of ``old`` with ``new``."""

    kind: Literal["substitute"] = "substitute"
    old: str
    new: str


class CommentOutLines(_TargetBase):
    """Prefix lines matching ``pattern`` (a regex) with ``prefix``."""

    kind: Literal["comment_out"] = "comment_out"
    pattern: str
    prefix: str = "#"


class RenameToDisabled(_TargetBase):
    """Move ``path`` aside to ``path + suffix``."""

    kind: Literal["rename_disabled"] = "rename_disabled"
    suffix: str = ".bak"

    @property
    def disabled_path(self) -> str:
        return self.path + self.suffix


MutationTarget = Annotated[
    Union[OverwriteWithTemplate, SubstituteText, CommentOutLines, RenameToDisabled],
    Field(discriminator="kind"),
]


class MutationOutcome(BaseModel):
    """Result of applying one target."""

    target: MutationTarget
    status: Literal["applied", "skipped"]
    detail: str = ""
    changed_lines: int = 0

    @property
    def applied(self) -> bool:
        return self.status == "applied"

    @property
    def path(self) -> str:
        return self.target.path
