"""Manifest path resolution and local YAML checks."""

from __future__ import annotations

import glob
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

import yaml

YAML_SUFFIXES = frozenset({".yaml", ".yml"})
_GLOB_CHARS = frozenset("*?[")


def is_glob_pattern(pattern: str) -> bool:
    """Check whether a path contains glob wildcard characters."""
    return any(ch in _GLOB_CHARS for ch in pattern)


def is_yaml_file(path: Path) -> bool:
    """Check whether a path has a YAML file suffix."""
    return path.suffix.lower() in YAML_SUFFIXES


def resolve_manifest_files(path: str | Path, base_dir: Path | None = None) -> list[Path]:
    """Resolve a manifest path to concrete YAML files.

    Args:
        path: A file, a directory (searched recursively), or a glob pattern
        base_dir: Directory relative paths are resolved against (defaults to cwd)

    Returns:
        Sorted, deduplicated list of existing YAML files (empty if nothing matches)
    """
    base = base_dir or Path.cwd()
    raw = str(path)
    candidate = Path(raw)
    if not candidate.is_absolute():
        candidate = base / candidate

    if is_glob_pattern(raw):
        matches = (Path(p) for p in glob.glob(str(candidate), recursive=True))
    elif candidate.is_dir():
        matches = (p for p in candidate.rglob("*") if p.is_file())
    else:
        matches = iter([candidate])

    return sorted({p for p in matches if p.is_file() and is_yaml_file(p)})


@dataclass
class YamlValidation:
    """Result of parsing one manifest file locally."""

    path: Path
    valid: bool
    error: str | None = None
    documents: int = 0
    kinds: list[str] = field(default_factory=list)


def validate_yaml_file(path: Path) -> YamlValidation:
    """Parse a manifest file and check every document looks like a resource.

    Args:
        path: Manifest file

    Returns:
        YamlValidation with the parse outcome and the declared kinds
    """
    try:
        content = path.read_text()
    except OSError as e:
        return YamlValidation(path=path, valid=False, error=f"Cannot read file: {e}")

    try:
        documents = [doc for doc in yaml.safe_load_all(content) if doc is not None]
    except yaml.YAMLError as e:
        return YamlValidation(path=path, valid=False, error=f"Invalid YAML: {e}")

    kinds: list[str] = []
    for index, doc in enumerate(documents):
        if not isinstance(doc, dict):
            return YamlValidation(
                path=path,
                valid=False,
                error=f"Document {index + 1} is not a mapping",
                documents=len(documents),
            )
        missing = [key for key in ("apiVersion", "kind") if key not in doc]
        if missing:
            return YamlValidation(
                path=path,
                valid=False,
                error=f"Document {index + 1} is missing {', '.join(missing)}",
                documents=len(documents),
            )
        kinds.append(str(doc["kind"]))

    if not documents:
        return YamlValidation(path=path, valid=False, error="File contains no documents")
    return YamlValidation(path=path, valid=True, documents=len(documents), kinds=kinds)


@dataclass
class ManifestStats:
    """Aggregate counts over a set of manifest files."""

    files: int = 0
    documents: int = 0
    invalid: int = 0
    kinds: Counter[str] = field(default_factory=Counter)


def manifest_stats(paths: Iterable[Path]) -> ManifestStats:
    """Count files, documents and resource kinds across manifest files."""
    stats = ManifestStats()
    for path in paths:
        result = validate_yaml_file(path)
        stats.files += 1
        stats.documents += result.documents
        stats.kinds.update(result.kinds)
        if not result.valid:
            stats.invalid += 1
    return stats
