"""Command runner for executing shell commands.

This module provides the base command execution functionality used by
the container engine and Kubernetes command modules. Blocking subprocess
calls run in worker threads so that independent operations can proceed
concurrently on the event loop.
"""

from __future__ import annotations

import asyncio
import os
import subprocess
import threading
from collections.abc import Callable, Sequence
from pathlib import Path

from loguru import logger

from .types import CommandResult

DEFAULT_TIMEOUT = 30.0


class CommandRunner:
    """Low-level command executor with consistent result handling.

    Every invocation carries a timeout. Exceeding it kills the child process
    and is reported as a failed ``CommandResult`` with ``timed_out=True``;
    the runner itself never raises for command failures.
    """

    def __init__(
        self, project_root: Path, default_timeout: float = DEFAULT_TIMEOUT
    ) -> None:
        """Initialize the command runner.

        Args:
            project_root: Path to the project root directory.
                         Commands will be executed from this directory by default.
            default_timeout: Timeout in seconds used when a call does not pass one
        """
        self.project_root = project_root
        self.default_timeout = default_timeout

    async def run(
        self,
        cmd: Sequence[str],
        *,
        cwd: Path | None = None,
        timeout: float | None = None,
        input_data: str | None = None,
    ) -> CommandResult:
        """Execute a command and return a structured result.

        Args:
            cmd: Command and arguments as a sequence
            cwd: Working directory (defaults to project_root)
            timeout: Timeout in seconds (defaults to default_timeout)
            input_data: Optional text sent to stdin

        Returns:
            CommandResult with success status, output, and return code
        """
        args = list(cmd)
        limit = timeout if timeout is not None else self.default_timeout
        logger.debug(f"Executing: {' '.join(args)}")

        def _run() -> CommandResult:
            try:
                result = subprocess.run(
                    args,
                    cwd=cwd or self.project_root,
                    capture_output=True,
                    text=True,
                    input=input_data,
                    timeout=limit,
                )
            except subprocess.TimeoutExpired as e:
                return CommandResult(
                    success=False,
                    stdout=_as_text(e.stdout),
                    stderr=f"Command timed out after {limit}s: {' '.join(args)}",
                    returncode=-1,
                    timed_out=True,
                )
            except FileNotFoundError:
                return CommandResult(
                    success=False,
                    stderr=f"Executable not found: {args[0]}",
                    returncode=127,
                )
            return CommandResult(
                success=result.returncode == 0,
                stdout=result.stdout or "",
                stderr=result.stderr or "",
                returncode=result.returncode,
            )

        result = await asyncio.to_thread(_run)
        if not result.success:
            logger.debug(
                f"Command failed (exit code {result.returncode}): {' '.join(args)}"
            )
        return result

    async def run_streaming(
        self,
        cmd: Sequence[str],
        *,
        cwd: Path | None = None,
        timeout: float | None = None,
        on_output: Callable[[str], None] | None = None,
    ) -> CommandResult:
        """Execute a command with real-time output streaming.

        Calls the on_output callback for each non-empty line of output
        (stderr is merged into stdout).

        Args:
            cmd: Command and arguments as a sequence
            cwd: Working directory (defaults to project_root)
            timeout: Timeout in seconds (defaults to default_timeout)
            on_output: Callback called with each line of output.
                      If None, output is collected but not streamed.

        Returns:
            CommandResult with success status, collected output, and return code
        """
        args = list(cmd)
        limit = timeout if timeout is not None else self.default_timeout
        logger.debug(f"Executing (streaming): {' '.join(args)}")

        def _run() -> CommandResult:
            env = os.environ.copy()
            env["PYTHONUNBUFFERED"] = "1"
            try:
                process = subprocess.Popen(
                    args,
                    cwd=cwd or self.project_root,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                    bufsize=1,
                    env=env,
                )
            except FileNotFoundError:
                return CommandResult(
                    success=False,
                    stderr=f"Executable not found: {args[0]}",
                    returncode=127,
                )

            expired = threading.Event()

            def _kill() -> None:
                expired.set()
                process.kill()

            timer = threading.Timer(limit, _kill)
            timer.start()
            stdout_lines: list[str] = []
            try:
                if process.stdout:
                    for line in iter(process.stdout.readline, ""):
                        line = line.rstrip("\n")
                        if line:
                            stdout_lines.append(line)
                            if on_output:
                                on_output(line)
                process.wait()
            finally:
                timer.cancel()

            if expired.is_set():
                return CommandResult(
                    success=False,
                    stdout="\n".join(stdout_lines),
                    stderr=f"Command timed out after {limit}s: {' '.join(args)}",
                    returncode=-1,
                    timed_out=True,
                )
            return CommandResult(
                success=process.returncode == 0,
                stdout="\n".join(stdout_lines),
                stderr="",
                returncode=process.returncode or 0,
            )

        return await asyncio.to_thread(_run)


def _as_text(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode(errors="replace")
    return value
