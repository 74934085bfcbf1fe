"""
Domain models — Pydantic types for the mirror pipeline.

All models are re-exported here for convenient access:

    from pvemirror.core.models import HostFacts, MutationTarget, Settings
"""

from pvemirror.core.models.action import Action, Receipt
from pvemirror.core.models.backup import BackupOutcome, BackupRecord, BackupSkipped
from pvemirror.core.models.host import HostFacts
from pvemirror.core.models.lock import LockWaitState
from pvemirror.core.models.mutation import (
    CommentOutLines,
    MutationOutcome,
    MutationTarget,
    OverwriteWithTemplate,
    RenameToDisabled,
    SubstituteText,
)
from pvemirror.core.models.settings import Settings

__all__ = [
    # action.py
    "Action",
    "Receipt",
    # backup.py
    "BackupOutcome",
    "BackupRecord",
    "BackupSkipped",
    # host.py
    "HostFacts",
    # lock.py
    "LockWaitState",
    # mutation.py
    "CommentOutLines",
    "MutationOutcome",
    "MutationTarget",
    "OverwriteWithTemplate",
    "RenameToDisabled",
    "SubstituteText",
    # settings.py
    "Settings",
]
