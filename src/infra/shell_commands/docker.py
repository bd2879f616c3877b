"""Docker command abstractions.

This module provides the container engine capabilities the build engine
depends on: a connectivity probe, building, tagging, pushing and removing
images.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING

from .types import CommandResult

if TYPE_CHECKING:
    from .runner import CommandRunner


class DockerCommands:
    """Docker-related shell commands.

    Provides operations for:
    - Engine connectivity (docker info)
    - Image management (build, tag, push, remove, check existence)
    """

    def __init__(
        self,
        runner: CommandRunner,
        *,
        build_timeout: float = 900.0,
        push_timeout: float = 300.0,
    ) -> None:
        """Initialize Docker commands.

        Args:
            runner: Command runner for executing shell commands
            build_timeout: Timeout in seconds for a single image build
            push_timeout: Timeout in seconds for a single push attempt
        """
        self._runner = runner
        self._build_timeout = build_timeout
        self._push_timeout = push_timeout

    # =========================================================================
    # Engine
    # =========================================================================

    async def info(self) -> CommandResult:
        """Probe the Docker daemon.

        Returns:
            CommandResult whose stdout holds the server version on success
        """
        return await self._runner.run(
            ["docker", "info", "--format", "{{.ServerVersion}}"]
        )

    # =========================================================================
    # Image Management
    # =========================================================================

    async def build(
        self,
        image_tag: str,
        context: Path,
        *,
        dockerfile: Path | None = None,
        build_args: Mapping[str, str] | None = None,
        on_output: Callable[[str], None] | None = None,
    ) -> CommandResult:
        """Build an image from a build context.

        Args:
            image_tag: Tag to give the built image (e.g., "my-app")
            context: Build context directory
            dockerfile: Dockerfile path (defaults to <context>/Dockerfile)
            build_args: Build arguments passed as --build-arg KEY=VALUE
            on_output: Callback receiving each line of build output

        Returns:
            CommandResult with build status and collected output

        Example:
            >>> await docker.build("my-app", Path("./app"), build_args={"ENV": "dev"})
        """
        cmd = ["docker", "build", "-t", image_tag]
        if dockerfile is not None:
            cmd.extend(["-f", str(dockerfile)])
        for key, value in sorted((build_args or {}).items()):
            cmd.extend(["--build-arg", f"{key}={value}"])
        cmd.append(str(context))
        return await self._runner.run_streaming(
            cmd, timeout=self._build_timeout, on_output=on_output
        )

    async def image_exists(self, image_tag: str) -> bool:
        """Check if a Docker image with the given tag exists locally.

        Args:
            image_tag: Full image tag (e.g., "my-app:latest")

        Returns:
            True if image exists, False otherwise
        """
        result = await self._runner.run(["docker", "images", "-q", image_tag])
        return result.success and bool(result.stdout.strip())

    async def tag_image(self, source_tag: str, target_tag: str) -> CommandResult:
        """Tag a Docker image with a new tag.

        Args:
            source_tag: Existing image tag (e.g., "my-app")
            target_tag: New tag to apply (e.g., "localhost:5000/my-app")

        Returns:
            CommandResult with tagging status
        """
        return await self._runner.run(["docker", "tag", source_tag, target_tag])

    async def push_image(
        self,
        image_tag: str,
        *,
        on_output: Callable[[str], None] | None = None,
    ) -> CommandResult:
        """Push a Docker image to a remote registry.

        Args:
            image_tag: Full image tag including registry
                      (e.g., "registry.example.com/app")
            on_output: Callback receiving each line of push progress

        Returns:
            CommandResult with push status
        """
        return await self._runner.run_streaming(
            ["docker", "push", image_tag],
            timeout=self._push_timeout,
            on_output=on_output,
        )

    async def remove_image(self, image_tag: str, *, force: bool = False) -> CommandResult:
        """Remove a local image reference.

        Args:
            image_tag: Image reference to remove
            force: Remove even if the image is referenced by other tags

        Returns:
            CommandResult with removal status
        """
        cmd = ["docker", "rmi"]
        if force:
            cmd.append("--force")
        cmd.append(image_tag)
        return await self._runner.run(cmd)
