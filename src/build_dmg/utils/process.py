"""Asynchronous execution of the macOS command line tools.

hdiutil, SetFile, sips and friends are short-lived processes whose combined
output is only interesting when they fail, so most calls capture it and hand
it to ToolError. Long-running commands can stream their output instead.

Cancelling the awaiting task (for example when the build deadline expires)
kills the child process before the cancellation propagates.
"""

import asyncio
import os
from collections.abc import Awaitable, Callable
from pathlib import Path

from build_dmg.errors import ToolError

OutputSink = Callable[[str], Awaitable[None]]


class ProcessRunner:
    """Async subprocess runner used for every external tool invocation."""

    def __init__(self, env: dict[str, str] | None = None) -> None:
        """Initialize the process runner.

        Args:
            env: Extra environment variables for every child process
        """
        self.env = env or {}

    def _full_env(self, env: dict[str, str] | None) -> dict[str, str]:
        full_env = os.environ.copy()
        full_env.update(self.env)
        if env:
            full_env.update(env)
        return full_env

    async def run(
        self,
        cmd: list[str],
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
        on_output: OutputSink | None = None,
    ) -> int:
        """Run command, streaming merged stdout/stderr line by line.

        Args:
            cmd: Command and arguments to run
            cwd: Working directory for the command
            env: Additional environment variables
            on_output: Async callback for output lines

        Returns:
            Process exit code
        """
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=cwd,
            env=self._full_env(env),
        )
        try:
            if process.stdout:
                async for line in process.stdout:
                    if on_output:
                        await on_output(line.decode("utf-8", errors="replace"))
            await process.wait()
        except asyncio.CancelledError:
            await _kill(process)
            raise
        return process.returncode or 0

    async def capture(
        self,
        cmd: list[str],
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
    ) -> tuple[int, str]:
        """Run command and collect its combined output.

        Returns:
            Tuple of (exit code, decoded stdout+stderr)
        """
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=cwd,
            env=self._full_env(env),
        )
        try:
            stdout, _ = await process.communicate()
        except asyncio.CancelledError:
            await _kill(process)
            raise
        return process.returncode or 0, stdout.decode("utf-8", errors="replace")

    async def check(self, cmd: list[str], cwd: Path | None = None) -> str:
        """Run command and return its output, raising ToolError on failure."""
        exit_code, output = await self.capture(cmd, cwd=cwd)
        if exit_code != 0:
            raise ToolError(cmd, exit_code, output)
        return output


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            # Exited between the check and the signal
            pass
        await process.wait()
