"""MCP server exposing the lab tools over stdio."""

from __future__ import annotations

import logging
from typing import Callable

from mcp.server.fastmcp import FastMCP

from trace_lab.analyzer import estimate_cpu_usage, summarize_trace
from trace_lab.config import LabConfig, load_config
from trace_lab.lab import get_system_info, greet

logger = logging.getLogger(__name__)

SERVER_NAME = "trace-lab"
TRANSPORT = "stdio"


def build_tools(config: LabConfig) -> dict[str, tuple[Callable, str]]:
    """
    Registry of tool name -> (handler, description).

    Handlers take JSON-friendly arguments and return JSON-friendly values.
    """

    def hello_world(name: str) -> str:
        return greet(name)

    def system_info() -> dict:
        return get_system_info()

    def analyze_trace(trace_path: str) -> dict:
        return summarize_trace(trace_path, config=config).to_dict()

    def get_process_cpu_usage(trace_path: str, process_ids: list[int]) -> dict:
        return estimate_cpu_usage(trace_path, process_ids, config=config).to_dict()

    return {
        "hello_world": (
            hello_world,
            "Greet someone by name and return a personalized message"
        ),
        "get_system_info": (
            system_info,
            "Get comprehensive system information as a structured JSON object"
        ),
        "analyze_trace": (
            analyze_trace,
            "Analyze a trace file and return timeline and process summary information"
        ),
        "get_process_cpu_usage": (
            get_process_cpu_usage,
            "Get CPU usage sampling for specific processes by PIDs from a trace file"
        )
    }


def build_server(config: LabConfig | None = None) -> FastMCP:
    config = config or load_config()
    app = FastMCP(SERVER_NAME)
    for name, (handler, description) in build_tools(config).items():
        app.add_tool(handler, name=name, description=description)
        logger.debug("Registered tool %s", name)
    return app


def serve(config: LabConfig | None = None) -> None:
    app = build_server(config)
    logger.info("Starting %s MCP server on %s", SERVER_NAME, TRANSPORT)
    app.run(transport=TRANSPORT)
