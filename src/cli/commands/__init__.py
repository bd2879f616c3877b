"""CLI command modules.

Commands:
- up, down: Reconciliation and teardown
- status, validate, logs: Read-only inspection
"""

from .inspection import logs, status, validate
from .lifecycle import down, up

__all__ = [
    "down",
    "logs",
    "status",
    "up",
    "validate",
]
