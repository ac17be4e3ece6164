"""Trace Lab: trace summaries and per-process CPU estimates over MCP."""

from trace_lab.analyzer import estimate_cpu_usage, summarize_trace
from trace_lab.errors import (
    InvalidArgumentError,
    TraceDecodeError,
    TraceLabError,
    TraceNotFoundError
)
from trace_lab.lab import get_system_info, greet

__all__ = [
    "InvalidArgumentError",
    "TraceDecodeError",
    "TraceLabError",
    "TraceNotFoundError",
    "estimate_cpu_usage",
    "get_system_info",
    "greet",
    "summarize_trace"
]
