"""Data types for shell command results.

This module contains the dataclasses shared by the shell runner, the
container engine commands and the Kubernetes controllers.
"""

from __future__ import annotations

from dataclasses import dataclass

__all__ = ["CommandResult"]


@dataclass
class CommandResult:
    """Result of a command execution.

    Attributes:
        success: Whether the command exited with code 0
        stdout: Captured standard output (merged output when streaming)
        stderr: Captured standard error
        returncode: Process exit code (127 if the executable was not found)
        timed_out: Whether the command was killed after exceeding its timeout
    """

    success: bool
    stdout: str = ""
    stderr: str = ""
    returncode: int = 0
    timed_out: bool = False

    @property
    def error_output(self) -> str:
        """Best available error text for reporting a failed command."""
        return (self.stderr or self.stdout).strip()
