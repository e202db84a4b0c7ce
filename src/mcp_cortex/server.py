"""MCP Cortex Server - Main entry point."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

# MCP imports are optional - only needed when running the server
try:
    from mcp.server import Server  # pragma: no cover
    from mcp.server.stdio import stdio_server  # pragma: no cover
    from mcp.types import Tool, TextContent  # pragma: no cover
    HAS_MCP = True  # pragma: no cover
except ImportError:
    HAS_MCP = False
    Server = None  # type: ignore
    Tool = None  # type: ignore
    TextContent = None  # type: ignore

from .config import CortexConfig, load_config
from .engine import CortexEngine
from .store import CortexStore
from .tools import execute_tool, make_tools

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ToolFailure(Exception):
    """Carries a failed tool's error text so the server marks the result isError."""
    pass


def custom_tool_definitions(config: CortexConfig) -> dict[str, dict]:
    """Tool definitions for the ``custom_tool_*`` functions of a Python config."""
    tool_defs = {}
    for tool_name, tool_func in config.custom_tools.items():
        doc = tool_func.__doc__ or f"Custom tool: {tool_name}"
        tool_defs[tool_name] = {
            "name": tool_name,
            "description": doc.strip().split("\n")[0],
            "inputSchema": {
                "type": "object",
                "properties": {
                    "params": {
                        "type": "object",
                        "description": "Parameters for the custom tool",
                    }
                },
            },
        }
    return tool_defs


async def call_custom_tool(engine: CortexEngine, config: CortexConfig, name: str, arguments: dict[str, Any]) -> str:
    """Run a custom tool; strings pass through, anything else is JSON encoded."""
    result = config.custom_tools[name](engine, arguments.get("params", arguments))
    if asyncio.iscoroutine(result):
        result = await result
    if isinstance(result, str):
        return result
    return json.dumps(result, indent=2, default=str)


def create_server(config: CortexConfig) -> "Server":
    """Create and configure the MCP server.

    Args:
        config: Cortex configuration

    Returns:
        Configured MCP Server instance

    Raises:
        ImportError: If MCP package is not installed
    """
    if not HAS_MCP:
        raise ImportError(
            "MCP package not installed. Install with: pip install mcp-cortex[mcp]"
        )

    server = Server("mcp-cortex")
    engine = CortexEngine(config)
    tool_defs = make_tools(engine)
    tool_defs.update(custom_tool_definitions(config))

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """Return list of available tools."""
        return [
            Tool(
                name=t["name"],
                description=t["description"],
                inputSchema=t["inputSchema"],
            )
            for t in tool_defs.values()
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle tool invocation."""
        arguments = arguments or {}

        if name in config.custom_tools:
            try:
                text = await call_custom_tool(engine, config, name, arguments)
            except Exception as e:
                logger.exception("Custom tool %s failed", name)
                raise ToolFailure(f"Error: {e}") from e
            return [TextContent(type="text", text=text)]

        result = await execute_tool(engine, name, arguments)
        if not result["success"]:
            logger.info("Tool %s failed (%s): %s", name, result["error_type"], result["error"])
            # The SDK turns a raised exception into an isError result
            raise ToolFailure(result["text"])
        return [TextContent(type="text", text=result["text"])]

    return server


async def run_server(config: CortexConfig) -> None:
    """Run the MCP server with stdio transport."""
    if not HAS_MCP:
        raise ImportError(
            "MCP package not installed. Install with: pip install mcp-cortex[mcp]"
        )

    server = create_server(config)  # pragma: no cover

    async with stdio_server() as (read_stream, write_stream):  # pragma: no cover
        await server.run(  # pragma: no cover
            read_stream,
            write_stream,
            server.create_initialization_options(),
        )


def configure_logging(level: str) -> None:
    """Log to stderr; stdout carries the MCP stream."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="MCP Cortex Server - Knowledge capture and analysis over branch notes"
    )
    parser.add_argument(
        "--storage-root",
        "-s",
        type=Path,
        help="Storage root directory (default: $MCP_CORTEX_ROOT or ~/.mcp-cortex)",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        help="Path to config file (default: auto-detect in storage root)",
    )
    parser.add_argument(
        "--init",
        action="store_true",
        help="Create the storage directories and exit",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for stderr output (default: WARNING)",
    )

    args = parser.parse_args()
    configure_logging(args.log_level)

    storage_root = args.storage_root.expanduser().resolve() if args.storage_root else None

    try:
        config = load_config(storage_root, args.config)
    except Exception as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    if args.init:
        CortexStore(config).ensure_directories()
        print(f"Initialized cortex storage in {config.storage_root}")
        print(f"  - {config.branch_notes_dir}/")
        print(f"  - {config.context_dir}/")
        print(f"  - {config.knowledge_dir}/")
        print(f"  - {config.checklists_dir}/")
        return

    # Check for MCP before running in server mode
    if not HAS_MCP:
        print("Error: MCP package not installed.", file=sys.stderr)
        print("Install with: pip install mcp-cortex[mcp]", file=sys.stderr)
        print("Note: MCP requires Python 3.10+", file=sys.stderr)
        sys.exit(1)

    logger.info("Serving cortex storage at %s", config.storage_root)
    asyncio.run(run_server(config))


if __name__ == "__main__":  # pragma: no cover
    main()
