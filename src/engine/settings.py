"""Engine settings and constants.

This module centralizes the paths, defaults, timeouts and retry policy
used throughout a reconciliation pass.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path

ENV_PREFIX = "DEVLOOP_"


@dataclass(frozen=True)
class EngineSettings:
    """Settings for one engine instance.

    All values have working defaults; ``from_env`` overrides any of them
    from ``DEVLOOP_<FIELD_NAME>`` environment variables.
    """

    # Persisted state
    state_dir: Path = Path(".devloop")
    port: int = 3001

    # Defaults for the desired state document
    default_registry: str = "localhost:5000"
    default_context: str = "k3d-local-dev"
    default_namespace: str = "dev"

    # Configuration script
    devfile: Path = Path("devfile.py")

    # Kubernetes backend: "kr8s" or "kubectl"
    k8s_backend: str = "kr8s"

    # Timeouts (seconds)
    command_timeout: float = 30.0
    build_timeout: float = 900.0
    push_timeout: float = 300.0
    namespace_ready_timeout: float = 30.0
    workload_ready_timeout: float = 120.0
    exec_timeout: float = 60.0

    # Registry push retry policy
    push_max_attempts: int = 3
    push_backoff_base: float = 1.0

    # Live sync
    sync_debounce: float = 0.1
    sync_queue_size: int = 256
    session_stagger: float = 2.0

    # Builds run concurrently; None means uncapped
    max_concurrent_builds: int | None = None

    @property
    def state_file(self) -> Path:
        """Path of the persisted state document for this instance."""
        return self.state_dir / f"state-{self.port}.json"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> EngineSettings:
        """Build settings from ``DEVLOOP_*`` environment variables.

        Args:
            env: Environment mapping (defaults to os.environ)

        Returns:
            EngineSettings with overrides applied

        Raises:
            ValueError: If a variable cannot be converted to the field type
        """
        env = os.environ if env is None else env
        defaults = cls()
        overrides: dict[str, object] = {}
        for f in fields(cls):
            raw = env.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is None:
                continue
            current = getattr(defaults, f.name)
            overrides[f.name] = _convert(f.name, raw, current)
        return cls(**overrides)  # type: ignore[arg-type]


def _convert(name: str, raw: str, current: object) -> object:
    try:
        if isinstance(current, Path):
            return Path(raw)
        if isinstance(current, bool):
            return raw.strip().lower() in ("1", "true", "yes", "on")
        if isinstance(current, int):
            return int(raw)
        if isinstance(current, float):
            return float(raw)
        if current is None:
            return int(raw) if raw.strip() else None
    except ValueError as e:
        raise ValueError(f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}") from e
    return raw
