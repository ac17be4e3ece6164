"""Records decoded from traces and the reports built from them."""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime, timedelta


def _jsonable(value):
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, ReportRecord):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


class ReportRecord:
    """Mixin giving report dataclasses a JSON-ready dict form."""

    def to_dict(self) -> dict:
        return {f.name: _jsonable(getattr(self, f.name)) for f in fields(self)}


@dataclass(frozen=True)
class ProcessRecord:
    pid: int
    image_name: str
    command_line: str | None = None


@dataclass(frozen=True)
class CpuSample:
    owner_pid: int


@dataclass(frozen=True)
class TraceTimeline:
    start_time: datetime
    stop_time: datetime

    @property
    def duration(self) -> timedelta:
        """Trace length, never negative."""
        delta = self.stop_time - self.start_time
        if delta < timedelta(0):
            return timedelta(0)
        return delta


@dataclass(frozen=True)
class TraceFileInfo(ReportRecord):
    path: str
    size_bytes: int
    last_modified: datetime


# Summary report shapes


@dataclass(frozen=True)
class Timeline(ReportRecord):
    start_time: datetime
    end_time: datetime
    duration_ms: float
    duration_formatted: str


@dataclass(frozen=True)
class TopProcess(ReportRecord):
    process_name: str
    instance_count: int
    process_ids: tuple[int, ...]


@dataclass(frozen=True)
class ProcessListing(ReportRecord):
    process_id: int
    process_name: str
    command_line: str


@dataclass(frozen=True)
class ProcessOverview(ReportRecord):
    total_count: int
    unique_process_names: int
    top_processes: tuple[TopProcess, ...]
    all_processes: tuple[ProcessListing, ...]


@dataclass(frozen=True)
class SummaryReport(ReportRecord):
    trace_file: TraceFileInfo
    timeline: Timeline
    processes: ProcessOverview


# CPU usage report shapes


@dataclass(frozen=True)
class CpuQuery(ReportRecord):
    requested_process_ids: tuple[int, ...]
    found_processes: int
    missing_process_ids: tuple[int, ...]
    analyzed_at: datetime


@dataclass(frozen=True)
class CpuTimeline(ReportRecord):
    trace_start_time: datetime
    trace_end_time: datetime
    trace_duration_ms: float
    trace_duration_formatted: str


@dataclass(frozen=True)
class CpuUsageSummary(ReportRecord):
    total_samples: int
    estimated_total_cpu_time_ms: float
    average_cpu_usage_percent: float


@dataclass(frozen=True)
class Lifetime(ReportRecord):
    total_ms: float
    formatted: str


@dataclass(frozen=True)
class CpuSampling(ReportRecord):
    sample_count: int
    estimated_cpu_time_ms: float
    cpu_usage_percent: float
    sampling_interval_ms: float
    samples_per_second: float


@dataclass(frozen=True)
class ProcessCpuDetail(ReportRecord):
    process_id: int
    process_name: str
    command_line: str
    start_time: datetime
    end_time: datetime
    lifetime: Lifetime
    cpu_sampling: CpuSampling


@dataclass(frozen=True)
class CpuUsageReport(ReportRecord):
    trace_file: TraceFileInfo
    query: CpuQuery
    timeline: CpuTimeline
    cpu_usage_summary: CpuUsageSummary
    process_details: tuple[ProcessCpuDetail, ...]
