"""Kubernetes namespace name normalization.

The same function is used by the state store and the cluster manager so
that both agree on the identity of the target namespace.
"""

from __future__ import annotations

import re

DEFAULT_NAMESPACE = "default-ns"
MAX_NAMESPACE_LENGTH = 63

_INVALID_CHARS = re.compile(r"[^a-z0-9-]")
_REPEATED_DASHES = re.compile(r"-{2,}")


def normalize_namespace(name: str) -> str:
    """Normalize an arbitrary string into a valid RFC 1123 label.

    Lowercases, replaces characters outside ``[a-z0-9-]`` with ``-``,
    collapses repeated dashes and strips them from both ends. Empty results
    fall back to DEFAULT_NAMESPACE. Results longer than 63 characters are
    truncated and re-stripped so they still end with an alphanumeric.

    Args:
        name: Raw namespace name

    Returns:
        A name matching ``^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$``

    Example:
        >>> normalize_namespace("Eco_Test")
        'eco-test'
    """
    value = _INVALID_CHARS.sub("-", name.lower())
    value = _REPEATED_DASHES.sub("-", value).strip("-")
    if not value:
        return DEFAULT_NAMESPACE

    if not value[0].isalnum():
        value = f"ns-{value}"
    if not value[-1].isalnum():
        value = f"{value}-ns"

    if len(value) > MAX_NAMESPACE_LENGTH:
        value = value[:MAX_NAMESPACE_LENGTH].rstrip("-")
    return value
