"""Environment-driven configuration."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping

from perfetto.trace_processor import TraceProcessorConfig

from trace_lab.errors import ConfigError

ENV_TP_BIN = "TRACE_LAB_TP_BIN"
ENV_TP_LOAD_TIMEOUT = "TRACE_LAB_TP_LOAD_TIMEOUT"
ENV_TP_VERBOSE = "TRACE_LAB_TP_VERBOSE"
ENV_LOG_LEVEL = "TRACE_LAB_LOG_LEVEL"

DEFAULT_LOAD_TIMEOUT = 10
DEFAULT_LOG_LEVEL = "WARNING"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class LabConfig:
    trace_processor_bin: str | None = None
    load_timeout: int = DEFAULT_LOAD_TIMEOUT
    verbose: bool = False
    log_level: str = DEFAULT_LOG_LEVEL

    def trace_processor_config(self) -> TraceProcessorConfig:
        """Build the engine configuration for one TraceProcessor instance."""
        return TraceProcessorConfig(
            bin_path=self.trace_processor_bin,
            verbose=self.verbose,
            load_timeout=self.load_timeout
        )


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _parse_timeout(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{ENV_TP_LOAD_TIMEOUT} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{ENV_TP_LOAD_TIMEOUT} must be positive, got {value}")
    return value


def _parse_log_level(raw: str) -> str:
    level = raw.strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigError(f"{ENV_LOG_LEVEL} is not a logging level: {raw!r}")
    return level


def load_config(env: Mapping[str, str] | None = None) -> LabConfig:
    """
    Read configuration from environment variables.

    Args:
        env: Mapping to read from, defaults to os.environ

    Returns:
        LabConfig with defaults for every unset variable
    """
    if env is None:
        env = os.environ

    bin_path = env.get(ENV_TP_BIN) or None

    raw_timeout = env.get(ENV_TP_LOAD_TIMEOUT)
    load_timeout = _parse_timeout(raw_timeout) if raw_timeout else DEFAULT_LOAD_TIMEOUT

    raw_verbose = env.get(ENV_TP_VERBOSE)
    verbose = _parse_bool(ENV_TP_VERBOSE, raw_verbose) if raw_verbose is not None else False

    raw_level = env.get(ENV_LOG_LEVEL)
    log_level = _parse_log_level(raw_level) if raw_level else DEFAULT_LOG_LEVEL

    return LabConfig(
        trace_processor_bin=bin_path,
        load_timeout=load_timeout,
        verbose=verbose,
        log_level=log_level
    )
