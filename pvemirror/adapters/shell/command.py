"""
Shell command adapter — run an external command and capture its output.

Commands are always argv lists; nothing goes through a shell.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time

from pvemirror.adapters.base import Adapter, ExecutionContext
from pvemirror.core.models.action import Receipt

logger = logging.getLogger(__name__)


class ShellCommandAdapter(Adapter):
    """Execute commands and capture output.

    Action params:
        argv (list[str]): The command and its arguments.
        timeout (int): Timeout in seconds (default: 3600, upgrades are slow).
        stream (bool): Let output go straight to the terminal instead of
            capturing it (default: False).
    """

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        argv = context.action.argv
        if not argv:
            return False, "Missing required param: 'argv'"
        if shutil.which(argv[0]) is None:
            return False, f"Command not found: {argv[0]}"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        argv = context.action.argv
        timeout = context.action.params.get("timeout", 3600)
        stream = context.action.params.get("stream", False)

        env = os.environ.copy()
        env.update(context.env)

        logger.debug("Executing: %s", " ".join(argv))
        start = time.monotonic()

        try:
            result = subprocess.run(
                argv,
                capture_output=not stream,
                text=True,
                timeout=timeout,
                env=env,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command timed out after {timeout}s",
                metadata={"argv": argv, "timeout": timeout},
            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command execution error: {e}",
                metadata={"argv": argv},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output = (result.stdout or "").strip()
        stderr = (result.stderr or "").strip()

        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                action_id=context.action.id,
                output=output,
                duration_ms=elapsed_ms,
                metadata={"argv": argv, "return_code": 0, "stderr": stderr},
            )
        return Receipt.failure(
            adapter=self.name,
            action_id=context.action.id,
            error=stderr or f"Command exited with code {result.returncode}",
            duration_ms=elapsed_ms,
            metadata={"argv": argv, "return_code": result.returncode, "stdout": output},
        )
