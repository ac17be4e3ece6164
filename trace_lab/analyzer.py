"""Core analysis logic for trace files."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, Iterable

from trace_lab.config import LabConfig
from trace_lab.engine import TraceOpener, perfetto_opener
from trace_lab.errors import InvalidArgumentError, TraceDecodeError, TraceLabError
from trace_lab.extraction import (
    command_line_or_default,
    count_samples_by_pid,
    duration_ms,
    format_seconds,
    named_processes,
    normalize_process_ids,
    read_file_info,
    require_existing_file,
    require_trace_path
)
from trace_lab.models import (
    CpuQuery,
    CpuSampling,
    CpuTimeline,
    CpuUsageReport,
    CpuUsageSummary,
    Lifetime,
    ProcessCpuDetail,
    ProcessListing,
    ProcessOverview,
    ProcessRecord,
    SummaryReport,
    Timeline,
    TopProcess
)

module_logger = logging.getLogger(__name__)

TOP_PROCESS_LIMIT = 5
# One sample per millisecond is assumed, not measured from the trace.
SAMPLING_INTERVAL_MS = 1.0

SUMMARIZE_OPERATION = "analyze trace file"
CPU_OPERATION = "analyze CPU usage"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _resolve_opener(opener: TraceOpener | None, config: LabConfig | None) -> TraceOpener:
    if opener is not None:
        return opener
    return perfetto_opener(config)


def rank_top_processes(processes: Iterable[ProcessRecord], limit: int = TOP_PROCESS_LIMIT) -> list[TopProcess]:
    """
    Group named processes by image name and rank by instance count.

    Ties on instance count are broken by ascending image name.
    """
    groups: dict[str, list[int]] = defaultdict(list)
    for process in named_processes(processes):
        groups[process.image_name].append(process.pid)

    ranked = sorted(groups.items(), key=lambda item: (-len(item[1]), item[0]))
    return [
        TopProcess(
            process_name=name,
            instance_count=len(pids),
            process_ids=tuple(sorted(pids))
        )
        for name, pids in ranked[:limit]
    ]


def list_named_processes(processes: Iterable[ProcessRecord]) -> list[ProcessListing]:
    """All named processes ordered by image name, then pid."""
    ordered = sorted(named_processes(processes), key=lambda p: (p.image_name, p.pid))
    return [
        ProcessListing(
            process_id=process.pid,
            process_name=process.image_name,
            command_line=command_line_or_default(process)
        )
        for process in ordered
    ]


def summarize_trace(
    trace_path: str,
    *,
    opener: TraceOpener | None = None,
    config: LabConfig | None = None,
    logger: logging.Logger | None = None
) -> SummaryReport:
    """
    Discovery report for a trace: timeline, process counts and rankings.

    Args:
        trace_path: Path to the trace file
        opener: Factory returning a TraceHandle, defaults to the Perfetto engine
        config: Engine configuration used by the default opener
        logger: Logger for progress records

    Returns:
        SummaryReport for the trace

    Raises:
        InvalidArgumentError: trace_path is empty
        TraceNotFoundError: trace_path is not an existing file
        TraceDecodeError: the engine failed to open or process the trace
    """
    log = logger or module_logger
    trace_path = require_trace_path(trace_path)
    require_existing_file(trace_path)
    open_trace = _resolve_opener(opener, config)

    log.info("Summarizing trace %s", trace_path)
    try:
        with open_trace(trace_path) as trace:
            process_data = trace.use_processes()
            metadata = trace.use_metadata()
            trace.process()

            processes = list(process_data.result)
            timeline = metadata.result

        file_info = read_file_info(trace_path)
    except TraceLabError:
        raise
    except Exception as exc:
        raise TraceDecodeError(trace_path, SUMMARIZE_OPERATION, str(exc)) from exc

    duration = timeline.duration
    named = named_processes(processes)
    log.debug(
        "Decoded %d processes (%d named) from %s", len(processes), len(named), trace_path
    )

    return SummaryReport(
        trace_file=file_info,
        timeline=Timeline(
            start_time=timeline.start_time,
            end_time=timeline.stop_time,
            duration_ms=duration_ms(duration),
            duration_formatted=format_seconds(duration)
        ),
        processes=ProcessOverview(
            total_count=len(processes),
            unique_process_names=len({process.image_name for process in named}),
            top_processes=tuple(rank_top_processes(named)),
            all_processes=tuple(list_named_processes(named))
        )
    )


def _match_processes(processes: Iterable[ProcessRecord], requested: tuple[int, ...]) -> list[ProcessRecord]:
    """Requested processes in table order, first record per pid."""
    wanted = set(requested)
    matched: dict[int, ProcessRecord] = {}
    for process in processes:
        if process.pid in wanted and process.pid not in matched:
            matched[process.pid] = process
    return list(matched.values())


def _format_ids(process_ids: Iterable[int]) -> str:
    return ", ".join(str(pid) for pid in process_ids)


def estimate_cpu_usage(
    trace_path: str,
    process_ids: Iterable[int],
    *,
    opener: TraceOpener | None = None,
    config: LabConfig | None = None,
    logger: logging.Logger | None = None,
    clock: Callable[[], datetime] = _utc_now
) -> CpuUsageReport:
    """
    Estimate CPU usage of specific processes from the trace's CPU samples.

    Each sample counts as SAMPLING_INTERVAL_MS of CPU time. Every process is
    measured against the whole trace duration rather than its own lifetime.

    Raises:
        InvalidArgumentError: empty path, empty or invalid process_ids, or no
            requested id present in the trace
        TraceNotFoundError: trace_path is not an existing file
        TraceDecodeError: the engine failed to open or process the trace
    """
    log = logger or module_logger
    trace_path = require_trace_path(trace_path)
    requested = normalize_process_ids(process_ids)
    require_existing_file(trace_path)
    open_trace = _resolve_opener(opener, config)

    log.info("Estimating CPU usage for [%s] in %s", _format_ids(requested), trace_path)
    try:
        with open_trace(trace_path) as trace:
            process_data = trace.use_processes()
            sample_data = trace.use_cpu_samples()
            metadata = trace.use_metadata()
            trace.process()

            matched = _match_processes(process_data.result, requested)
            if not matched:
                raise InvalidArgumentError(
                    f"No processes found with IDs: [{_format_ids(requested)}]"
                )
            sample_counts = count_samples_by_pid(
                sample_data.result, {process.pid for process in matched}
            )
            timeline = metadata.result

        file_info = read_file_info(trace_path)
    except TraceLabError:
        raise
    except Exception as exc:
        raise TraceDecodeError(
            trace_path,
            f"{CPU_OPERATION} for process IDs [{_format_ids(requested)}]",
            str(exc)
        ) from exc

    found_pids = {process.pid for process in matched}
    missing = tuple(pid for pid in requested if pid not in found_pids)
    if missing:
        log.info("Process IDs not in trace: [%s]", _format_ids(missing))

    lifetime = timeline.duration
    lifetime_ms = duration_ms(lifetime)
    lifetime_seconds = lifetime.total_seconds()

    details = []
    total_samples = 0
    total_cpu_time_ms = 0.0
    for process in matched:
        sample_count = sample_counts.get(process.pid, 0)
        estimated_cpu_time_ms = sample_count * SAMPLING_INTERVAL_MS
        cpu_usage_percent = (
            (estimated_cpu_time_ms / lifetime_ms) * 100.0 if lifetime_ms > 0 else 0.0
        )
        samples_per_second = sample_count / lifetime_seconds if lifetime_seconds > 0 else 0.0

        details.append(
            ProcessCpuDetail(
                process_id=process.pid,
                process_name=process.image_name,
                command_line=command_line_or_default(process),
                start_time=timeline.start_time,
                end_time=timeline.stop_time,
                lifetime=Lifetime(total_ms=lifetime_ms, formatted=format_seconds(lifetime)),
                cpu_sampling=CpuSampling(
                    sample_count=sample_count,
                    estimated_cpu_time_ms=estimated_cpu_time_ms,
                    cpu_usage_percent=round(cpu_usage_percent, 2),
                    sampling_interval_ms=SAMPLING_INTERVAL_MS,
                    samples_per_second=samples_per_second
                )
            )
        )
        total_samples += sample_count
        total_cpu_time_ms += estimated_cpu_time_ms

    # Total estimated time over trace duration; exceeds 100 with concurrent samples.
    average_cpu_usage_percent = (
        (total_cpu_time_ms / lifetime_ms) * 100.0 if lifetime_ms > 0 else 0.0
    )

    return CpuUsageReport(
        trace_file=file_info,
        query=CpuQuery(
            requested_process_ids=requested,
            found_processes=len(matched),
            missing_process_ids=missing,
            analyzed_at=clock()
        ),
        timeline=CpuTimeline(
            trace_start_time=timeline.start_time,
            trace_end_time=timeline.stop_time,
            trace_duration_ms=lifetime_ms,
            trace_duration_formatted=format_seconds(lifetime)
        ),
        cpu_usage_summary=CpuUsageSummary(
            total_samples=total_samples,
            estimated_total_cpu_time_ms=total_cpu_time_ms,
            average_cpu_usage_percent=average_cpu_usage_percent
        ),
        process_details=tuple(details)
    )
