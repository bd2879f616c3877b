"""File pattern matching for live steps.

Patterns are relative to a build context and use forward slashes.
``**`` matches across directories (``**/`` also matches no directory at
all), while ``*`` and ``?`` stay within one path segment. A pattern
without wildcards matches the path itself or anything below it.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from functools import lru_cache
from pathlib import Path, PurePosixPath

from loguru import logger

from .models import RunStep, SyncStep

# Always ignored by file watches, on top of per-build ignore patterns
DEFAULT_IGNORES = ("**/node_modules/**", "**/.git/**", "**/.*", "**/*.tmp", "**/*.log")

_WILDCARDS = frozenset("*?")


def has_wildcards(pattern: str) -> bool:
    """True if the pattern contains ``*`` or ``?``."""
    return any(ch in _WILDCARDS for ch in pattern)


def _normalize(path: str) -> str:
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path


@lru_cache(maxsize=512)
def pattern_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a wildcard pattern into an anchored regular expression."""
    parts: list[str] = []
    i = 0
    pattern = _normalize(pattern)
    while i < len(pattern):
        ch = pattern[i]
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
            continue
        if pattern.startswith("**", i):
            parts.append(".*")
            i += 2
            continue
        if ch == "*":
            parts.append("[^/]*")
        elif ch == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(ch))
        i += 1
    return re.compile("^" + "".join(parts) + "$")


def matches_pattern(path: str, pattern: str) -> bool:
    """Check whether a context-relative path matches a pattern.

    Examples:
        >>> matches_pattern("src/a/b.js", "src/**/*")
        True
        >>> matches_pattern("src/package.json", "package.json")
        False
        >>> matches_pattern("public/css/site.css", "public")
        True
    """
    path = _normalize(path)
    if has_wildcards(pattern):
        return pattern_to_regex(pattern).match(path) is not None
    pattern = _normalize(pattern).rstrip("/")
    return path == pattern or path.startswith(pattern + "/")


def matches_any(path: str, patterns: Iterable[str]) -> bool:
    """True if the path matches at least one of the patterns."""
    return any(matches_pattern(path, pattern) for pattern in patterns)


def static_prefix(pattern: str) -> str:
    """Leading directory part of a pattern before its first wildcard segment.

    ``src/**/*`` gives ``src``; ``server.js`` gives ``server.js``.
    """
    pattern = _normalize(pattern)
    if not has_wildcards(pattern):
        return pattern.rstrip("/")
    head = re.sub(r"/?[^/]*[*?].*$", "", pattern)
    return head


def sync_destination(pattern: str, path: str, dest: str) -> str:
    """Container path a changed file is copied to for a sync step.

    For a wildcard pattern the part of ``path`` below the pattern's static
    prefix is kept under ``dest``. For a plain file pattern the file is
    copied to ``dest`` itself, and for a plain directory pattern the
    remainder below that directory is kept.
    """
    path = _normalize(path)
    if has_wildcards(pattern):
        prefix = static_prefix(pattern)
    else:
        prefix = _normalize(pattern).rstrip("/")
        if path == prefix:
            return dest
    relative = path[len(prefix) :].lstrip("/") if prefix else path
    return str(PurePosixPath(dest) / relative) if relative else dest


def is_ignored(path: str, patterns: Iterable[str]) -> bool:
    """Check a context-relative path against ignore patterns.

    Besides full-path matching, a pattern without a slash is also tried
    against every path segment, so ``*.log`` ignores ``logs/app.log`` and
    ``node_modules`` ignores anything inside such a directory.
    """
    path = _normalize(path)
    segments = path.split("/")
    for pattern in patterns:
        pattern = _normalize(pattern)
        if matches_pattern(path, pattern):
            return True
        if "/" not in pattern.rstrip("/"):
            segment_pattern = pattern.rstrip("/")
            if any(matches_pattern(segment, segment_pattern) for segment in segments):
                return True
    return False


def step_patterns(steps: Iterable[SyncStep | RunStep]) -> list[str]:
    """All patterns that should be watched for a sequence of live steps."""
    patterns: list[str] = []
    for step in steps:
        match step:
            case SyncStep(src=src):
                patterns.append(src)
            case RunStep(trigger_patterns=triggers):
                patterns.extend(sorted(triggers))
    return patterns


def watch_roots(context: Path, patterns: Iterable[str]) -> list[Path]:
    """Directories to watch recursively so every pattern is covered.

    Each pattern contributes the directory of its static prefix (its parent
    when the prefix names a file). Roots nested inside another root are
    dropped. Missing directories fall back to their closest existing parent
    inside ``context``. A missing ``context`` or a pattern pointing outside
    it contributes nothing.
    """
    base = context.resolve()
    if not base.is_dir():
        logger.warning(f"Build context {context} does not exist, nothing to watch")
        return []

    candidates: set[Path] = set()
    for pattern in patterns:
        prefix = static_prefix(pattern)
        root = (base / prefix).resolve() if prefix else base
        if not has_wildcards(pattern) and not root.is_dir():
            root = root.parent
        if not root.is_relative_to(base):
            logger.warning(f"Pattern {pattern!r} points outside {context}, not watched")
            continue
        while not root.exists() and root != base:
            root = root.parent
        candidates.add(root)

    roots: list[Path] = []
    for root in sorted(candidates, key=lambda p: len(p.parts)):
        if not any(root.is_relative_to(kept) for kept in roots):
            roots.append(root)
    return sorted(roots)
