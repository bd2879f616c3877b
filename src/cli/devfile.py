"""Evaluation of the project's devfile.

A devfile is a plain Python script. It is executed with four helpers in
its globals and registers resources by calling them::

    docker_build(
        "web",
        context="./web",
        ignore=["*.md"],
        live_update=[
            sync("src/**/*", "/app/src/"),
            run("npm ci", trigger=["package.json"]),
        ],
    )
    k8s_yaml(["k8s/deployment.yaml", "k8s/service.yaml"])
"""

from __future__ import annotations

import runpy
import traceback
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

from loguru import logger

from src.engine.errors import ConfigError, DevLoopError
from src.engine.models import BuildContext, BuildSpec, HotReload, RunStep, SyncStep
from src.engine.state_store import StateStore


def sync(src: str, dest: str) -> SyncStep:
    """Live step copying files matching ``src`` to ``dest`` in the container."""
    return SyncStep(src=src, dest=dest)


def run(command: str, trigger: str | Iterable[str] = ()) -> RunStep:
    """Live step running ``command`` in the container when ``trigger`` matches."""
    triggers = [trigger] if isinstance(trigger, str) else list(trigger)
    return RunStep(command=command, trigger_patterns=frozenset(triggers))


class DevfileRegistry:
    """Registration helpers bound to one state store."""

    def __init__(self, store: StateStore) -> None:
        self.store = store
        self.builds: list[str] = []
        self.manifests: list[str] = []

    def docker_build(
        self,
        image_name: str,
        context: str = ".",
        dockerfile: str = "Dockerfile",
        build_args: Mapping[str, str] | None = None,
        *,
        ignore: Iterable[str] = (),
        live_update: Sequence[SyncStep | RunStep] = (),
    ) -> BuildSpec:
        hot_reload = None
        if ignore or live_update:
            hot_reload = {
                "ignore_patterns": frozenset(ignore),
                "live_steps": tuple(live_update),
            }
        spec = self.store.register_build(
            image_name,
            BuildContext(
                context=context,
                dockerfile=dockerfile,
                build_args=dict(build_args or {}),
            ),
            HotReload.model_validate(hot_reload) if hot_reload is not None else None,
        )
        self.builds.append(spec.image_name)
        return spec

    def k8s_yaml(self, paths: str | Sequence[str]) -> list[str]:
        keys = self.store.register_manifest(paths)
        self.manifests.extend(keys)
        return keys

    def script_globals(self) -> dict[str, Any]:
        return {
            "docker_build": self.docker_build,
            "k8s_yaml": self.k8s_yaml,
            "sync": sync,
            "run": run,
        }


def load_devfile(path: Path, store: StateStore) -> DevfileRegistry:
    """Run a devfile against an initialized store.

    Registrations from earlier runs are cleared first, so resources the
    devfile no longer declares show up as removed in the next diff.

    Args:
        path: Devfile to execute
        store: Loaded state store receiving the registrations

    Returns:
        The registry with the names registered by the script

    Raises:
        ConfigError: If the file is missing or the script fails
    """
    if not path.is_file():
        raise ConfigError(
            f"Devfile not found: {path}",
            details="Create a devfile.py or pass --file.",
        )

    store.clear_registrations()
    registry = DevfileRegistry(store)
    logger.debug(f"Evaluating {path}")
    try:
        runpy.run_path(str(path), init_globals=registry.script_globals(), run_name="__devfile__")
    except DevLoopError:
        raise
    except Exception as e:
        raise ConfigError(
            f"Devfile {path} failed: {e}",
            details="".join(traceback.format_exception(e)),
        ) from e

    logger.debug(
        f"Devfile registered {len(registry.builds)} build(s) and "
        f"{len(registry.manifests)} manifest(s)"
    )
    return registry
