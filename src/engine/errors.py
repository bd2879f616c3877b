"""Error taxonomy for the reconciliation engine.

Every error carries a human-readable message and optional details with a
recovery hint. Whether an error aborts a pass depends on where it is
raised; the orchestrator catches resource-local errors per category.
"""

from __future__ import annotations


class DevLoopError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


# Fatal to the current pass
class ConfigError(DevLoopError):
    """Bad or missing registration input."""


class NothingToDo(DevLoopError):
    """No build and no manifest is registered."""


class ClusterUnreachable(DevLoopError):
    """The declared cluster context is unknown, cannot be selected, or does not answer."""


class BuildEngineUnreachable(DevLoopError):
    """The container engine does not answer its connectivity probe."""


# Fatal to one resource
class InvalidManifest(DevLoopError):
    """A manifest file failed validation or apply."""

    def __init__(self, path: str, message: str, details: str | None = None):
        self.path = path
        super().__init__(message, details)


class ImageError(DevLoopError):
    """Base class for failures local to one image build."""

    def __init__(self, image_name: str, message: str, details: str | None = None):
        self.image_name = image_name
        super().__init__(message, details)


class InvalidBuildContext(ImageError):
    """The build context directory or Dockerfile does not exist."""


class BuildFailed(ImageError):
    """The image build, verification, or registry tag failed."""


class PushFailed(ImageError):
    """Pushing to the registry failed on every attempt."""

    def __init__(
        self,
        image_name: str,
        message: str,
        details: str | None = None,
        *,
        attempts: int = 0,
    ):
        self.attempts = attempts
        super().__init__(image_name, message, details)


# Warnings: logged, the pass continues
class ReadinessTimeout(DevLoopError):
    """A namespace or workload did not become ready in time."""


class SyncTargetNotFound(DevLoopError):
    """No running container was found for a live-sync session."""


class PersistError(DevLoopError):
    """The desired state could not be written to disk."""
