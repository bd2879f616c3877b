"""Logging setup shared by the CLI and the engine.

The engine logs through loguru; the CLI routes those records to a rich
handler so they interleave cleanly with console output.
"""

from __future__ import annotations

from loguru import logger
from rich.console import Console
from rich.logging import RichHandler

_handler_id: int | None = None


def configure_logging(verbose: bool = False, console: Console | None = None) -> None:
    """Send loguru records to a rich console.

    Args:
        verbose: Include debug records (command lines, build output)
        console: Console to write to (a stderr console by default)
    """
    global _handler_id

    if _handler_id is None:
        # Drop loguru's default stderr sink
        logger.remove()
    else:
        logger.remove(_handler_id)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=verbose,
        show_time=verbose,
        markup=False,
        rich_tracebacks=True,
    )
    _handler_id = logger.add(
        handler,
        level="DEBUG" if verbose else "INFO",
        format="{message}",
        backtrace=False,
        diagnose=False,
    )
