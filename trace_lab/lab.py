"""Greeting and host information tools."""

from __future__ import annotations

import getpass
import logging
import os
import platform
import socket
import struct
import sys
from datetime import datetime, timezone

import psutil

from trace_lab.errors import InvalidArgumentError

module_logger = logging.getLogger(__name__)

GREETING = "Hello, {name}! Welcome to the MCP Hello World Lab."


def greet(name: str, logger: logging.Logger | None = None) -> str:
    """Return a personalized greeting for name."""
    if name is None or not name.strip():
        raise InvalidArgumentError("Name cannot be empty")

    (logger or module_logger).info("HelloWorld called for: %s", name)
    return GREETING.format(name=name)


def _user_name() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return ""


def get_system_info() -> dict:
    """Snapshot of the host machine, the interpreter and this process."""
    uname = platform.uname()
    is_64bit_process = struct.calcsize("P") * 8 == 64
    os_architecture = platform.machine()

    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "machine": {
            "name": socket.gethostname(),
            "user_name": _user_name(),
            "os_version": f"{uname.system} {uname.release} {uname.version}".strip(),
            "processor_count": os.cpu_count(),
            "working_set": psutil.Process().memory_info().rss,
            "platform": sys.platform
        },
        "runtime": {
            "python_version": platform.python_version(),
            "implementation": f"{platform.python_implementation()} {sys.version.split()[0]}",
            "architecture": "64bit" if is_64bit_process else "32bit",
            "os_architecture": os_architecture
        },
        "environment": {
            "current_directory": os.getcwd(),
            "command_line": " ".join(sys.argv),
            "is_64bit_process": is_64bit_process,
            "is_64bit_operating_system": os_architecture.lower().endswith("64")
        }
    }
