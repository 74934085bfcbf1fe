"""
Mutation applier — the single interpreter for MutationTarget edits.

Idempotence lives here rather than at each call site: every kind
checks whether the file is already in the desired state and reports
``skipped`` instead of touching it. A missing file is likewise a skip,
never an error. Only real filesystem failures (permissions, disk full)
raise, as MutationIOError; earlier edits in the same run stay applied.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path

from pvemirror.core.errors import MutationIOError
from pvemirror.core.models.mutation import (
    CommentOutLines,
    MutationOutcome,
    MutationTarget,
    OverwriteWithTemplate,
    RenameToDisabled,
    SubstituteText,
)

logger = logging.getLogger(__name__)


def apply(target: MutationTarget) -> MutationOutcome:
    """Apply one target and report whether anything changed."""
    try:
        if isinstance(target, OverwriteWithTemplate):
            outcome = _overwrite(target)
        elif isinstance(target, SubstituteText):
            outcome = _substitute(target)
        elif isinstance(target, CommentOutLines):
            outcome = _comment_out(target)
        elif isinstance(target, RenameToDisabled):
            outcome = _rename(target)
        else:
            raise TypeError(f"Unknown mutation target: {target!r}")
    except OSError as e:
        logger.error("Failed to modify %s: %s", target.path, e)
        raise MutationIOError(target.path, e) from e

    label = target.description or f"{target.kind} {target.path}"
    if outcome.applied:
        logger.info("%s (%s)", label, outcome.detail)
    else:
        logger.info("Skipped: %s (%s)", label, outcome.detail)
    return outcome


def apply_all(targets: list[MutationTarget]) -> list[MutationOutcome]:
    """Apply targets in order; the first fatal error stops the rest."""
    return [apply(t) for t in targets]


# ── Kinds ───────────────────────────────────────────────────────────


def _overwrite(target: OverwriteWithTemplate) -> MutationOutcome:
    path = Path(target.path)
    if path.is_file() and path.read_bytes() == target.content.encode("utf-8"):
        return _skipped(target, "already up to date")

    existed = path.exists()
    _atomic_write(path, target.content, mode=target.mode)
    return MutationOutcome(
        target=target,
        status="applied",
        detail="rewritten" if existed else "created",
        changed_lines=len(target.content.splitlines()),
    )


def replace_outside(content: str, old: str, new: str) -> str:
    """Replace ``old`` with ``new``, leaving existing ``new`` text untouched.

    This keeps the substitution idempotent when ``new`` itself contains
    ``old`` (e.g. a mirror path that embeds the upstream host name).
    """
    if not new:
        return content.replace(old, new)
    return new.join(piece.replace(old, new) for piece in content.split(new))


def _substitute(target: SubstituteText) -> MutationOutcome:
    path = Path(target.path)
    if not path.is_file():
        return _skipped(target, "file not found")
    if not target.old:
        raise ValueError(f"Empty search text for {target.path}")

    content = _read(path)
    updated = replace_outside(content, target.old, target.new)
    if updated == content:
        return _skipped(target, "already updated or not found")

    _atomic_write(path, updated)
    return MutationOutcome(
        target=target,
        status="applied",
        detail=f"replaced {target.old!r}",
        changed_lines=_changed_lines(content, updated),
    )


def _comment_out(target: CommentOutLines) -> MutationOutcome:
    path = Path(target.path)
    if not path.is_file():
        return _skipped(target, "file not found")

    regex = re.compile(target.pattern)
    content = _read(path)
    lines = content.splitlines(keepends=True)

    changed = 0
    for i, line in enumerate(lines):
        if line.lstrip().startswith(target.prefix):
            continue
        if regex.search(line):
            lines[i] = target.prefix + line
            changed += 1

    if not changed:
        return _skipped(target, "no uncommented lines match")

    _atomic_write(path, "".join(lines))
    return MutationOutcome(
        target=target,
        status="applied",
        detail=f"commented out {changed} line(s)",
        changed_lines=changed,
    )


def _rename(target: RenameToDisabled) -> MutationOutcome:
    path = Path(target.path)
    if not path.exists():
        return _skipped(target, "already disabled or not present")

    os.replace(path, target.disabled_path)
    return MutationOutcome(
        target=target,
        status="applied",
        detail=f"renamed to {Path(target.disabled_path).name}",
    )


# ── Helpers ─────────────────────────────────────────────────────────


def _skipped(target: MutationTarget, detail: str) -> MutationOutcome:
    return MutationOutcome(target=target, status="skipped", detail=detail)


def _read(path: Path) -> str:
    # Bytes that are not UTF-8 survive the round trip through _atomic_write unchanged
    return path.read_text(encoding="utf-8", errors="surrogateescape")


def _changed_lines(before: str, after: str) -> int:
    a, b = before.splitlines(), after.splitlines()
    return sum(1 for x, y in zip(a, b) if x != y) + abs(len(a) - len(b))


def _atomic_write(path: Path, content: str, mode: int | None = None) -> None:
    """Write via a sibling temp file + rename, keeping mode and owner."""
    path.parent.mkdir(parents=True, exist_ok=True)

    st = path.stat() if path.exists() else None
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", errors="surrogateescape") as f:
            f.write(content)
        if mode is not None:
            os.chmod(tmp, mode)
        elif st is not None:
            os.chmod(tmp, st.st_mode & 0o7777)
        else:
            os.chmod(tmp, 0o644)
        if st is not None:
            tst = tmp.stat()
            if (st.st_uid, st.st_gid) != (tst.st_uid, tst.st_gid):
                os.chown(tmp, st.st_uid, st.st_gid)
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
