"""Kubernetes infrastructure abstraction layer.

This module provides a clean abstraction over Kubernetes operations,
supporting multiple backends (kubectl subprocess, kr8s library).

Example:
    from src.infra.k8s import get_k8s_controller

    controller = get_k8s_controller("kubectl")
    exists = await controller.namespace_exists("my-namespace")
    containers = await controller.list_pods_for_image("my-app", "my-namespace")
"""

from .controller import (
    WORKLOAD_KINDS,
    CommandResult,
    ContainerInfo,
    KubernetesController,
    WorkloadRef,
    image_matches,
)
from .helpers import get_k8s_controller
from .kubectl_controller import KubectlController

__all__ = [
    # Controller classes
    "KubernetesController",
    "KubectlController",
    # Data classes
    "CommandResult",
    "ContainerInfo",
    "WorkloadRef",
    "WORKLOAD_KINDS",
    # Utilities
    "get_k8s_controller",
    "image_matches",
]
