from __future__ import annotations

from cachetools.func import lru_cache  # type: ignore

from src.infra.k8s.controller import KubernetesController
from src.infra.shell_commands.runner import CommandRunner


@lru_cache(maxsize=2)
def get_k8s_controller(
    backend: str = "kr8s", runner: CommandRunner | None = None
) -> KubernetesController:
    """Get the KubernetesController for a backend.

    Args:
        backend: "kr8s" (native async reads) or "kubectl" (subprocess only)
        runner: Command runner shared with the other shell collaborators

    Returns:
        A cached controller instance per (backend, runner)

    Raises:
        ValueError: If the backend name is unknown
    """
    if backend == "kubectl":
        from src.infra.k8s.kubectl_controller import KubectlController

        return KubectlController(runner)
    if backend == "kr8s":
        from src.infra.k8s.kr8s_controller import Kr8sController

        return Kr8sController(runner)
    raise ValueError(f"Unknown Kubernetes backend: {backend!r}")
