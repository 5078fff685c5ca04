"""
Shell command adapter — run configured module commands.

Serves the builder and test-runner roles: the same adapter class is
registered once under each role name. Commands run as asyncio
subprocesses so concurrent module work never blocks the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import time
from pathlib import Path

from modrecovery.adapters.base import Adapter, ExecutionContext
from modrecovery.core.models.action import Receipt

logger = logging.getLogger(__name__)

_MAX_OUTPUT = 4000


class ShellCommandAdapter(Adapter):
    """Execute shell commands and capture output.

    Action params:
        command (str): The command to execute. Empty means nothing to do.
        timeout (int): Timeout in seconds (default: 300).
        cwd (str): Override working directory (default: context.working_dir).
    """

    def __init__(self, role: str):
        self._role = role

    @property
    def name(self) -> str:
        return self._role

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        if not context.action.params.get("command", ""):
            return True, ""

        cwd = context.action.params.get("cwd", context.working_dir)
        if cwd and not Path(cwd).is_dir():
            return False, f"Working directory does not exist: {cwd}"

        return True, ""

    async def execute(self, context: ExecutionContext) -> Receipt:
        command = context.action.params.get("command", "")
        timeout = context.action.params.get("timeout", 300)
        cwd = context.action.params.get("cwd", context.working_dir)

        if not command:
            return Receipt.skip(
                adapter=self.name,
                action_id=context.action.id,
                reason=f"No {context.action.capability.value} command configured",
            )

        logger.debug("Executing: %s (cwd=%s)", command, cwd)
        start = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                cwd=cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            try:
                stdout_b, stderr_b = await asyncio.wait_for(proc.communicate(), timeout)
            except TimeoutError:
                proc.kill()
                await proc.wait()
                return Receipt.failure(
                    adapter=self.name,
                    action_id=context.action.id,
                    error=f"Command timed out after {timeout}s",
                    metadata={"command": command, "timeout": timeout},
                )
        except Exception as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command execution error: {e}",
                metadata={"command": command},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output = stdout_b.decode("utf-8", errors="replace").strip()[-_MAX_OUTPUT:]
        stderr = stderr_b.decode("utf-8", errors="replace").strip()[-_MAX_OUTPUT:]

        if proc.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                action_id=context.action.id,
                output=output,
                duration_ms=elapsed_ms,
                metadata={"command": command, "return_code": 0, "stderr": stderr},
            )
        return Receipt.failure(
            adapter=self.name,
            action_id=context.action.id,
            error=stderr or f"Command exited with code {proc.returncode}",
            duration_ms=elapsed_ms,
            metadata={"command": command, "return_code": proc.returncode, "stdout": output},
        )
