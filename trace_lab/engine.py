"""Scoped trace handles over the Perfetto trace processor."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator

from perfetto.trace_processor import TraceProcessor

from trace_lab.config import LabConfig
from trace_lab.models import CpuSample, ProcessRecord, TraceTimeline

logger = logging.getLogger(__name__)

SOURCE_PROCESSES = "processes"
SOURCE_CPU_SAMPLES = "cpu_samples"
SOURCE_METADATA = "metadata"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _q(tp: TraceProcessor, sql: str) -> list[dict]:
    """Execute a SQL query and return results as a list of dictionaries."""
    return list(_iter_q(tp, sql))


def _iter_q(tp: TraceProcessor, sql: str) -> Iterator[dict]:
    result = tp.query(sql)
    for row in result:
        yield {col: getattr(row, col) for col in result.column_names}


def ns_to_datetime(ns: int) -> datetime:
    """Convert nanoseconds since the Unix epoch to an aware UTC datetime."""
    return _EPOCH + timedelta(microseconds=ns // 1000)


class PendingResult:
    """Result of a data source, available once the handle has processed."""

    def __init__(self, source: str):
        self.source = source
        self._ready = False
        self._value = None

    @property
    def result(self):
        if not self._ready:
            raise RuntimeError(f"{self.source} result read before process() was called")
        return self._value

    def _resolve(self, value) -> None:
        self._value = value
        self._ready = True


class TraceHandle(ABC):
    """
    A trace file opened for one analysis call.

    Data sources are registered with the use_* methods, then decoded together
    by a single process() call. Subclasses supply the engine through _open,
    _load_source and _release.
    """

    def __init__(self, trace_path: str):
        self.trace_path = trace_path
        self._sources: dict[str, PendingResult] = {}
        self._processed = False
        self._closed = False

    def __enter__(self) -> "TraceHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def use_processes(self) -> PendingResult:
        """Register the process table; result is a list of ProcessRecord."""
        return self._register(SOURCE_PROCESSES)

    def use_cpu_samples(self) -> PendingResult:
        """Register the CPU sample stream; result is an iterable of CpuSample."""
        return self._register(SOURCE_CPU_SAMPLES)

    def use_metadata(self) -> PendingResult:
        """Register trace metadata; result is a TraceTimeline."""
        return self._register(SOURCE_METADATA)

    def _register(self, source: str) -> PendingResult:
        if self._processed:
            raise RuntimeError(f"Cannot register {source} after process() was called")
        if source not in self._sources:
            self._sources[source] = PendingResult(source)
        return self._sources[source]

    def process(self) -> None:
        if self._closed:
            raise RuntimeError("Trace handle is closed")
        if self._processed:
            raise RuntimeError("process() may only be called once per trace handle")
        self._processed = True
        self._open()
        for source, pending in self._sources.items():
            pending._resolve(self._load_source(source))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._release()

    def _open(self) -> None:
        pass

    @abstractmethod
    def _load_source(self, source: str):
        """Return the decoded result for one registered data source."""

    def _release(self) -> None:
        pass


class PerfettoTraceHandle(TraceHandle):
    """TraceHandle backed by a perfetto TraceProcessor instance."""

    def __init__(self, trace_path: str, config: LabConfig | None = None):
        super().__init__(trace_path)
        self.config = config or LabConfig()
        self.tp: TraceProcessor | None = None

    def _open(self) -> None:
        logger.debug("Loading trace %s", self.trace_path)
        self.tp = TraceProcessor(
            trace=self.trace_path,
            config=self.config.trace_processor_config()
        )

    def _release(self) -> None:
        if self.tp is not None:
            self.tp.close()
            self.tp = None

    def _load_source(self, source: str):
        if source == SOURCE_PROCESSES:
            return self._load_processes()
        if source == SOURCE_METADATA:
            return self._load_timeline()
        if source == SOURCE_CPU_SAMPLES:
            return _SampleStream(self)
        raise ValueError(f"Unknown data source: {source}")

    def _load_processes(self) -> list[ProcessRecord]:
        rows = _q(
            self.tp,
            """
            SELECT pid, name, cmdline
            FROM process
            WHERE pid IS NOT NULL
            ORDER BY upid
            """
        )
        return [
            ProcessRecord(
                pid=row["pid"],
                image_name=row.get("name") or "",
                command_line=row.get("cmdline")
            )
            for row in rows
        ]

    def _realtime_offset_ns(self) -> int:
        """
        Offset from trace timestamps to wall-clock time.

        Uses the first REALTIME clock snapshot; traces without one are assumed
        to already be timestamped relative to the Unix epoch.
        """
        try:
            rows = _q(
                self.tp,
                """
                SELECT clock_value - ts AS offset_ns
                FROM clock_snapshot
                WHERE clock_name = 'REALTIME'
                ORDER BY ts
                LIMIT 1
                """
            )
        except Exception as exc:
            logger.debug("No clock snapshot for %s: %s", self.trace_path, exc)
            return 0
        if rows and rows[0].get("offset_ns") is not None:
            return rows[0]["offset_ns"]
        return 0

    def _load_timeline(self) -> TraceTimeline:
        rows = _q(self.tp, "SELECT start_ts, end_ts FROM trace_bounds")
        start_ts = rows[0]["start_ts"] if rows else 0
        end_ts = rows[0]["end_ts"] if rows else 0
        offset = self._realtime_offset_ns()
        return TraceTimeline(
            start_time=ns_to_datetime((start_ts or 0) + offset),
            stop_time=ns_to_datetime((end_ts or 0) + offset)
        )


class _SampleStream:
    """Lazily streams CPU samples while the owning handle is open."""

    SQL = """
        SELECT p.pid AS pid
        FROM perf_sample s
        JOIN thread t USING (utid)
        JOIN process p USING (upid)
        WHERE p.pid IS NOT NULL
        UNION ALL
        SELECT p.pid AS pid
        FROM cpu_profile_stack_sample s
        JOIN thread t USING (utid)
        JOIN process p USING (upid)
        WHERE p.pid IS NOT NULL
    """

    def __init__(self, handle: PerfettoTraceHandle):
        self._handle = handle

    def __iter__(self) -> Iterator[CpuSample]:
        if self._handle.tp is None:
            raise RuntimeError("CPU samples read after the trace handle was closed")
        for row in _iter_q(self._handle.tp, self.SQL):
            yield CpuSample(owner_pid=row["pid"])


TraceOpener = Callable[[str], TraceHandle]


def perfetto_opener(config: LabConfig | None = None) -> TraceOpener:
    """Return an opener producing Perfetto-backed handles with the given config."""

    def open_trace(trace_path: str) -> TraceHandle:
        return PerfettoTraceHandle(trace_path, config)

    return open_trace
