"""Error taxonomy for trace-lab operations."""


class TraceLabError(Exception):
    """Base error."""


class ConfigError(TraceLabError):
    """Invalid configuration value."""


class InvalidArgumentError(TraceLabError, ValueError):
    """A required argument is missing, empty or out of range."""


class TraceNotFoundError(TraceLabError, FileNotFoundError):
    """The trace path does not reference an existing file."""


class TraceDecodeError(TraceLabError):
    """The trace engine failed to open or process a trace."""

    def __init__(self, trace_path: str, operation: str, message: str):
        super().__init__(f"Failed to {operation} for trace {trace_path}: {message}")
        self.trace_path = trace_path
        self.operation = operation
