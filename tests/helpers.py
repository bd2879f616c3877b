"""Small builders shared by the unit tests."""

from __future__ import annotations

from pathlib import Path

from src.infra.shell_commands import CommandResult


def ok(stdout: str = "") -> CommandResult:
    return CommandResult(success=True, stdout=stdout)


def failed(stderr: str = "boom", returncode: int = 1) -> CommandResult:
    return CommandResult(success=False, stderr=stderr, returncode=returncode)


def write_manifest(path: Path, kind: str = "Deployment", name: str = "web") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"apiVersion: apps/v1\nkind: {kind}\nmetadata:\n  name: {name}\n")
    return path


def write_build_context(root: Path, name: str = "app") -> Path:
    context = root / name
    context.mkdir(parents=True, exist_ok=True)
    (context / "Dockerfile").write_text("FROM scratch\n")
    return context
