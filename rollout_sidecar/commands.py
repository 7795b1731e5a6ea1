"""Container runtime command execution.

The orchestrator only depends on the ``CommandRunner`` protocol so tests can
substitute a scripted runner for the real ``docker`` binary.
"""

from __future__ import annotations

import asyncio
import os
import shlex
from collections.abc import Mapping, Sequence
from typing import Protocol

from rollout_sidecar.logging import get_logger

log = get_logger("rollout_sidecar.commands")


class CommandError(Exception):
    """An external command failed to start or exited non-zero."""

    def __init__(
        self,
        message: str,
        *,
        command: Sequence[str] = (),
        returncode: int | None = None,
        output: str = "",
    ) -> None:
        super().__init__(message)
        self.command = list(command)
        self.returncode = returncode
        self.output = output


class CommandRunner(Protocol):
    """Runs one container runtime command.

    ``args`` exclude the binary itself. ``env`` entries are layered over the
    process environment. Returns combined stdout/stderr.

    Raises:
        CommandError: If the command cannot be run or exits non-zero.
    """

    async def run(self, args: Sequence[str], env: Mapping[str, str] | None = None) -> str: ...


class SubprocessRunner:
    """Spawns the real container runtime CLI."""

    def __init__(
        self,
        binary: str = "docker",
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._binary = binary
        self._cwd = cwd
        self._timeout = timeout

    async def run(self, args: Sequence[str], env: Mapping[str, str] | None = None) -> str:
        argv = [self._binary, *args]
        cmd = shlex.join(argv)
        full_env = {**os.environ, **(env or {})}
        log.debug("command_start", cmd=cmd)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=self._cwd,
                env=full_env,
            )
        except OSError as exc:
            raise CommandError(f"{cmd}: {exc}", command=argv) from exc

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise CommandError(
                f"{cmd}: timed out after {self._timeout}s", command=argv
            ) from exc

        output = stdout.decode(errors="replace")
        if proc.returncode != 0:
            log.warning(
                "command_failed",
                cmd=cmd,
                returncode=proc.returncode,
                output=output[:500],
            )
            raise CommandError(
                f"exit status {proc.returncode}: {output.strip()}",
                command=argv,
                returncode=proc.returncode,
                output=output,
            )
        return output
