"""Helpers shared by the trace analyses."""

from __future__ import annotations

import os
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Iterable

from trace_lab.errors import InvalidArgumentError, TraceNotFoundError
from trace_lab.models import CpuSample, ProcessRecord, TraceFileInfo

MISSING_COMMAND_LINE = "N/A"
MAX_PROCESS_ID = 2**32 - 1


def require_trace_path(trace_path: str | None) -> str:
    if trace_path is None or not str(trace_path).strip():
        raise InvalidArgumentError("Trace path cannot be empty")
    return str(trace_path)


def require_existing_file(trace_path: str) -> None:
    """Raise TraceNotFoundError unless trace_path is an existing regular file."""
    if not os.path.isfile(trace_path):
        raise TraceNotFoundError(f"Trace file not found: {trace_path}")


def normalize_process_ids(process_ids: Iterable[int] | None) -> tuple[int, ...]:
    """
    Validate requested process ids as unsigned 32-bit integers.

    Duplicates are dropped, keeping first-seen order.
    """
    if process_ids is None:
        raise InvalidArgumentError("Process IDs cannot be null or empty")
    seen: dict[int, None] = {}
    for pid in process_ids:
        if isinstance(pid, bool) or not isinstance(pid, int):
            raise InvalidArgumentError(f"Process ID must be an integer, got {pid!r}")
        if pid < 0 or pid > MAX_PROCESS_ID:
            raise InvalidArgumentError(f"Process ID out of range: {pid}")
        seen.setdefault(pid, None)
    if not seen:
        raise InvalidArgumentError("Process IDs cannot be null or empty")
    return tuple(seen)


def read_file_info(trace_path: str) -> TraceFileInfo:
    """Size and modification time straight from the filesystem."""
    stat = os.stat(trace_path)
    return TraceFileInfo(
        path=trace_path,
        size_bytes=stat.st_size,
        last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
    )


def named_processes(processes: Iterable[ProcessRecord]) -> list[ProcessRecord]:
    return [process for process in processes if process.image_name]


def count_samples_by_pid(samples: Iterable[CpuSample], pids: set[int]) -> Counter:
    """Count samples per owning pid in one pass, keeping only pids of interest."""
    counts: Counter = Counter()
    for sample in samples:
        if sample.owner_pid in pids:
            counts[sample.owner_pid] += 1
    return counts


def duration_ms(duration: timedelta) -> float:
    return duration.total_seconds() * 1000.0


def format_seconds(duration: timedelta) -> str:
    return f"{duration.total_seconds():.2f} seconds"


def command_line_or_default(process: ProcessRecord) -> str:
    if process.command_line is None:
        return MISSING_COMMAND_LINE
    return process.command_line
