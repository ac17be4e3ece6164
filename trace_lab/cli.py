"""CLI entry point for trace-lab."""

import json
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape

from trace_lab.analyzer import estimate_cpu_usage, summarize_trace
from trace_lab.config import load_config
from trace_lab.errors import ConfigError, TraceLabError
from trace_lab.lab import get_system_info, greet as greet_name
from trace_lab.logs import configure_logging

app = typer.Typer(
    help="Trace Lab - greet, inspect the host, and analyze trace files",
    no_args_is_help=True
)
console = Console()


@app.callback()
def main(
    ctx: typer.Context,
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override TRACE_LAB_LOG_LEVEL"),
):
    """Trace Lab - greet, inspect the host, and analyze trace files."""
    try:
        config = load_config()
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    try:
        configure_logging((log_level or config.log_level).upper())
    except ValueError as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)
    ctx.obj = config


def _emit(result: dict, out: Optional[Path]) -> None:
    if out is None:
        console.print_json(data=result)
        return
    with open(out, "w") as f:
        json.dump(result, f, indent=2)
    console.print(f"[green]✓[/green] Report written to: {escape(str(out))}")


@app.command()
def greet(name: str = typer.Argument(..., help="Name to greet")):
    """Print a personalized greeting."""
    try:
        console.print(greet_name(name), markup=False, highlight=False)
    except TraceLabError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)


@app.command()
def sysinfo():
    """Print host and runtime information as JSON."""
    console.print_json(data=get_system_info())


@app.command()
def summarize(
    ctx: typer.Context,
    trace: Path = typer.Option(..., "--trace", help="Path to trace file"),
    out: Optional[Path] = typer.Option(None, "--out", help="Output JSON file path (default: stdout)"),
):
    """Summarize a trace: timeline, process counts and top processes."""
    try:
        report = summarize_trace(str(trace), config=ctx.obj)
    except TraceLabError as e:
        console.print(f"[red]Error during analysis:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)
    _emit(report.to_dict(), out)


@app.command()
def cpu(
    ctx: typer.Context,
    trace: Path = typer.Option(..., "--trace", help="Path to trace file"),
    pids: List[int] = typer.Option(..., "--pid", help="Process ID to analyze (repeatable)"),
    out: Optional[Path] = typer.Option(None, "--out", help="Output JSON file path (default: stdout)"),
):
    """Estimate CPU usage for specific processes from CPU samples."""
    try:
        report = estimate_cpu_usage(str(trace), pids, config=ctx.obj)
    except TraceLabError as e:
        console.print(f"[red]Error during analysis:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)
    _emit(report.to_dict(), out)


@app.command()
def serve(ctx: typer.Context):
    """Run the MCP server on stdio."""
    from trace_lab.server import serve as run_server

    run_server(ctx.obj)


if __name__ == "__main__":
    app()
