"""Container image building and registry push.

For each image the side effects are strictly ordered: build, verify,
tag, push. A failed step stops the sequence. Pushes are retried with
exponential backoff; retries for one image never overlap.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .errors import (
    BuildEngineUnreachable,
    BuildFailed,
    InvalidBuildContext,
    PushFailed,
)
from .models import BuildSpec

if TYPE_CHECKING:
    from src.infra.shell_commands import CommandResult, DockerCommands

    from .settings import EngineSettings


class _PushAttemptFailed(Exception):
    """One failed push attempt; retried until attempts run out."""

    def __init__(self, result: CommandResult):
        self.result = result
        super().__init__(result.error_output or f"exit code {result.returncode}")


class BuildEngine:
    """Builds, tags and pushes images for registered builds.

    Attributes:
        docker: Container engine commands
        registry: Registry address images are tagged and pushed to
        project_root: Directory relative build contexts are resolved against
    """

    def __init__(
        self,
        docker: DockerCommands,
        registry: str,
        settings: EngineSettings,
        *,
        project_root: Path | None = None,
    ) -> None:
        self.docker = docker
        self.registry = registry.rstrip("/")
        self.project_root = project_root or Path.cwd()
        self._max_attempts = max(1, settings.push_max_attempts)
        self._backoff_base = settings.push_backoff_base
        self._verified = False

    def registry_tag(self, image_name: str) -> str:
        """Registry reference for an image (``<registry>/<image>``)."""
        return f"{self.registry}/{image_name}"

    async def verify_engine(self) -> None:
        """Probe the container engine, once per instance.

        Raises:
            BuildEngineUnreachable: If the engine does not answer
        """
        if self._verified:
            return
        result = await self.docker.info()
        if not result.success:
            raise BuildEngineUnreachable(
                "Container engine is not reachable",
                details=result.error_output or "Is the Docker daemon running?",
            )
        logger.debug(f"Container engine reachable (server {result.stdout.strip()})")
        self._verified = True

    def resolve_context(self, spec: BuildSpec) -> tuple[Path, Path]:
        """Absolute build context directory and Dockerfile path for a spec."""
        context = Path(spec.build_context.context)
        if not context.is_absolute():
            context = self.project_root / context
        dockerfile = Path(spec.build_context.dockerfile)
        if not dockerfile.is_absolute():
            dockerfile = context / dockerfile
        return context, dockerfile

    async def build(self, spec: BuildSpec) -> None:
        """Build, tag and push one image.

        Args:
            spec: Build to run

        Raises:
            BuildEngineUnreachable: If the engine does not answer
            InvalidBuildContext: If the context or Dockerfile is missing
            BuildFailed: If the build, verification or tag fails
            PushFailed: If every push attempt fails
        """
        image = spec.image_name
        await self.verify_engine()

        context, dockerfile = self.resolve_context(spec)
        if not context.is_dir():
            raise InvalidBuildContext(
                image, f"Build context for {image} not found: {context}"
            )
        if not dockerfile.is_file():
            raise InvalidBuildContext(
                image, f"Dockerfile for {image} not found: {dockerfile}"
            )

        logger.info(f"Building image {image}")
        result = await self.docker.build(
            image,
            context,
            dockerfile=dockerfile,
            build_args=spec.build_context.build_args,
            on_output=lambda line: logger.debug(f"[{image}] {line}"),
        )
        if not result.success:
            await self._cleanup_failed_build(image)
            raise BuildFailed(
                image,
                f"Build of {image} failed (exit code {result.returncode})",
                details=_tail(result.error_output),
            )

        if not await self.docker.image_exists(image):
            raise BuildFailed(image, f"Image {image} not found after a successful build")

        target = self.registry_tag(image)
        result = await self.docker.tag_image(image, target)
        if not result.success:
            raise BuildFailed(
                image, f"Failed to tag {image} as {target}", details=result.error_output
            )
        logger.info(f"Tagged {target}")

        await self._push_with_retry(image, target)
        logger.success(f"Built and pushed {image}")

    async def _push_with_retry(self, image: str, target: str) -> None:
        attempts = 0
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._backoff_base, exp_base=2),
            retry=retry_if_exception_type(_PushAttemptFailed),
            sleep=asyncio.sleep,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    result = await self.docker.push_image(
                        target, on_output=lambda line: logger.debug(f"[{image}] {line}")
                    )
                    if not result.success:
                        logger.warning(
                            f"Push of {target} failed "
                            f"(attempt {attempts}/{self._max_attempts})"
                        )
                        raise _PushAttemptFailed(result)
        except RetryError as e:
            last = e.last_attempt.exception()
            raise PushFailed(
                image,
                f"Failed to push {target} after {attempts} attempts",
                details=str(last) if last else None,
                attempts=attempts,
            ) from last

    async def _cleanup_failed_build(self, image: str) -> None:
        try:
            await self.docker.remove_image(image, force=True)
        except Exception as e:
            logger.debug(f"Cleanup after failed build of {image} failed: {e}")

    async def remove(self, image_name: str) -> None:
        """Remove the local and registry-tagged references of an image.

        Best effort: each reference is removed independently and failures
        are logged, never raised.
        """
        for ref, force in ((image_name, False), (self.registry_tag(image_name), True)):
            try:
                result = await self.docker.remove_image(ref, force=force)
            except Exception as e:
                logger.warning(f"Failed to remove image {ref}: {e}")
                continue
            if result.success:
                logger.info(f"Removed image {ref}")
            else:
                logger.warning(f"Failed to remove image {ref}: {result.error_output}")


def _tail(text: str, lines: int = 20) -> str:
    return "\n".join(text.splitlines()[-lines:])
