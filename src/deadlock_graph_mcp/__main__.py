import argparse
import asyncio
import logging
import os
import sys
from typing import Optional, Sequence

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import CallToolResult, TextContent, Tool

from deadlock_graph_mcp.config import (
    DEFAULT_LOG_LEVEL,
    DEFAULT_RENDER_ENGINE,
    LOG_LEVEL_ENV,
    LOG_LEVELS,
    RENDER_ENGINES,
)
from deadlock_graph_mcp.report import Result
from deadlock_graph_mcp.tools_adapter import (
    deadlocks_tool_call,
    engines_tool_call,
    render_tool_call,
)

logger = logging.getLogger("deadlock_graph_mcp")


def to_call_result(result: Result) -> CallToolResult:
    if result.ok:
        return CallToolResult(content=[TextContent(type="text", text=result.text or "")])
    return CallToolResult(
        content=[TextContent(type="text", text=f"{result.error_code}: {result.error_message}")],
        isError=True,
    )


async def main_async() -> None:
    server = Server("deadlock-graph-mcp")

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return [
            Tool(
                name="render_lock_graph",
                description=(
                    "Parses `jstack [-l]` output and returns the Graphviz DOT graph of which thread "
                    "is blocked on which, with deadlocked threads highlighted."
                ),
                inputSchema={
                    "type": "object",
                    "required": ["path"],
                    "properties": {
                        "path": {"type": "string", "description": "Path to thread dump text file"},
                        "include_isolated": {
                            "type": "boolean",
                            "default": False,
                            "description": "Also draw threads that are not part of any blocked-on edge",
                        },
                        "engine": {
                            "type": "string",
                            "enum": list(RENDER_ENGINES),
                            "default": DEFAULT_RENDER_ENGINE,
                        },
                    },
                    "additionalProperties": False,
                },
            ),
            Tool(
                name="find_deadlocks",
                description=(
                    "Parses `jstack [-l]` output and returns thread state counts and every "
                    "blocked-on relation that is part of a deadlock cycle."
                ),
                inputSchema={
                    "type": "object",
                    "required": ["path"],
                    "properties": {
                        "path": {"type": "string", "description": "Path to thread dump text file"},
                    },
                    "additionalProperties": False,
                },
            ),
            Tool(
                name="list_render_engines",
                description="Lists the Graphviz layout engines the DOT output can be rendered with.",
                inputSchema={"type": "object", "properties": {}, "additionalProperties": False},
            ),
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict) -> CallToolResult:
        arguments = arguments or {}
        logger.debug("Tool call %s(%s)", name, arguments)
        try:
            if name == "render_lock_graph":
                result = render_tool_call(
                    arguments.get("path"),
                    include_isolated=arguments.get("include_isolated", False),
                    engine=arguments.get("engine", DEFAULT_RENDER_ENGINE),
                )
            elif name == "find_deadlocks":
                result = deadlocks_tool_call(arguments.get("path"))
            elif name == "list_render_engines":
                result = engines_tool_call()
            else:
                result = Result.err("INVALID_PARAMS", f"Unknown tool: {name}")
        except Exception as e:
            logger.exception("Tool %s failed", name)
            result = Result.err("INTERNAL_ERROR", f"Exception: {e}")
        return to_call_result(result)

    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def env_log_level() -> str:
    """Level named by the environment, or the default when unset or unknown."""
    level = os.environ.get(LOG_LEVEL_ENV, "").strip().upper()
    return level if level in LOG_LEVELS else DEFAULT_LOG_LEVEL


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        prog="deadlock-graph-mcp",
        description="MCP stdio server that draws lock graphs and finds deadlocks in jstack output.",
    )
    parser.add_argument(
        "--log-level",
        default=env_log_level(),
        choices=LOG_LEVELS,
        type=str.upper,
    )
    args = parser.parse_args(argv)

    # stdout carries the MCP protocol
    logging.basicConfig(
        stream=sys.stderr,
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(main_async())


if __name__ == "__main__":
    main()
