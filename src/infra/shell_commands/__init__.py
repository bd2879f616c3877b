"""Shell command abstractions for the container engine.

This package provides the process-invocation primitives the engine
consumes as capabilities:

- runner: Timeout-bounded command execution with captured or streamed output
- docker: Container engine operations (probe, build, tag, push, remove)

Usage:
    from src.infra.shell_commands import CommandRunner, DockerCommands

    runner = CommandRunner(project_root=Path("."))
    docker = DockerCommands(runner)
    if await docker.image_exists("my-app:latest"):
        print("Image already built")
"""

from .docker import DockerCommands
from .runner import CommandRunner
from .types import CommandResult

__all__ = [
    "CommandResult",
    "CommandRunner",
    "DockerCommands",
]
