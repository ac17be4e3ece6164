"""Logging setup for the CLI and MCP server."""

import logging

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(name)s: %(message)s"


def configure_logging(level: str | int = "WARNING") -> logging.Logger:
    """
    Route trace_lab log records to stderr through rich.

    stdout stays untouched because the MCP stdio transport owns it.
    """
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        log_time_format="[%H:%M:%S]"
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger("trace_lab")
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False
    return root
