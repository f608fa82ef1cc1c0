"""
MCP Server implementation using FastMCP v2.

This module creates and runs the MCP server with:
- Eleven OpenFGA tools (stores, models, tuples, check, list-objects, expand)
- A call-logging middleware that records every tool call with its outcome
- Structured JSON logging on stderr
- A health endpoint when served over HTTP
- stdio transport by default, Streamable HTTP on request

Architecture:
    The flow for every tools/call request:

    1. FastMCP receives the JSON-RPC request from the transport
    2. ToolCallLoggingMiddleware assigns a request id and times the call
    3. The matching OpenFGATool hands the raw arguments to ToolDispatcher
    4. The dispatcher validates them, opens an OpenFGAClient for the call's
       environment and issues one request to the OpenFGA HTTP API
    5. A successful outcome becomes a text result; a failed outcome is raised
       as ToolError, which FastMCP turns into a result with isError=true and
       the "Error: ..." text

    Unknown tool names take the same error path: the middleware converts
    FastMCP's NotFoundError into "Error: Unknown tool: <name>".

Running the server:
    openfga-mcp                        # stdio, for MCP clients that spawn it
    OPENFGA_TRANSPORT=streamable-http openfga-mcp
    python -m openfga_mcp.server
"""

import json
import logging
import sys
import time
import uuid
from typing import Any

import httpx
from fastmcp import FastMCP
from fastmcp.exceptions import NotFoundError, ToolError
from fastmcp.server.middleware import CallNext, Middleware, MiddlewareContext
from fastmcp.tools.tool import Tool, ToolResult
from mcp.types import CallToolRequestParams, TextContent
from pydantic import PrivateAttr
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from openfga_mcp import __version__
from openfga_mcp.compiler import FgaCliCompiler, ModelCompiler
from openfga_mcp.config import Settings
from openfga_mcp.dispatcher import ToolDispatcher
from openfga_mcp.environments import EnvironmentRegistry
from openfga_mcp.errors import UnknownToolError
from openfga_mcp.tools import TOOLS, ToolSpec, input_schema

logger = logging.getLogger("openfga-mcp")


# ---------------------------------------------------------------------------
# Structured JSON Logging
# ---------------------------------------------------------------------------
# One JSON object per line on stderr. stdout carries the MCP protocol when
# the server runs on the stdio transport and must not receive log lines.


class JSONLogFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Example output:

        {"timestamp": "2026-10-18 10:30:00,123", "level": "INFO", "logger": "openfga-mcp",
         "message": "Tool call completed", "request_id": "1a2b3c4d", "tool": "openfga_check"}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Structured fields passed via logger.info("msg", extra={"tool_data": {...}})
        if hasattr(record, "tool_data"):
            log_entry.update(record.tool_data)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(log_level: str) -> None:
    """Install the JSON formatter on the root logger."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONLogFormatter())

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        handlers=[handler],
        force=True,
    )


# ---------------------------------------------------------------------------
# Call logging middleware
# ---------------------------------------------------------------------------


class ToolCallLoggingMiddleware(Middleware):
    """
    Logs every tools/call request and normalises unknown-tool failures.

    Each call gets a short request id so that the dispatcher's and the
    client's log lines can be correlated with the outcome logged here.
    """

    async def on_call_tool(
        self,
        context: MiddlewareContext[CallToolRequestParams],
        call_next: CallNext[CallToolRequestParams, ToolResult],
    ) -> ToolResult:
        tool_name = context.message.name
        arguments = context.message.arguments or {}
        tool_data: dict[str, Any] = {
            "request_id": str(uuid.uuid4())[:8],
            "tool": tool_name,
            "env": arguments.get("env"),
        }
        started = time.perf_counter()

        def elapsed_ms() -> float:
            return round((time.perf_counter() - started) * 1000, 1)

        try:
            result = await call_next(context)
        except NotFoundError as e:
            logger.warning(
                "Tool call rejected: unknown tool",
                extra={"tool_data": {**tool_data, "outcome": "unknown_tool"}},
            )
            raise ToolError(f"Error: {UnknownToolError(tool_name)}") from e
        except ToolError:
            logger.warning(
                "Tool call failed",
                extra={
                    "tool_data": {**tool_data, "outcome": "error", "duration_ms": elapsed_ms()}
                },
            )
            raise

        logger.info(
            "Tool call completed",
            extra={"tool_data": {**tool_data, "outcome": "success", "duration_ms": elapsed_ms()}},
        )
        return result


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class OpenFGATool(Tool):
    """
    A catalog tool whose execution is delegated to the ToolDispatcher.

    The advertised input schema comes from the tool's input model (see
    tools.input_schema); validation happens in the dispatcher so that
    argument errors produce the same "Error: ..." result as every other
    failure.
    """

    _dispatcher: ToolDispatcher = PrivateAttr()

    @classmethod
    def from_spec(
        cls, spec: ToolSpec, dispatcher: ToolDispatcher, env_names: list[str]
    ) -> "OpenFGATool":
        tool = cls(
            name=spec.name,
            description=spec.description,
            parameters=input_schema(spec, env_names),
        )
        tool._dispatcher = dispatcher
        return tool

    async def run(self, arguments: dict[str, Any]) -> ToolResult:
        outcome = await self._dispatcher.dispatch(self.name, arguments)
        if outcome.is_error:
            raise ToolError(outcome.text)
        return ToolResult(content=[TextContent(type="text", text=outcome.text)])


# ---------------------------------------------------------------------------
# Server factory
# ---------------------------------------------------------------------------


def create_server(
    settings: Settings | None = None,
    *,
    registry: EnvironmentRegistry | None = None,
    compiler: ModelCompiler | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastMCP:
    """
    Build the FastMCP server.

    Args:
        settings: Application settings (read from the environment if omitted)
        registry: Environment registry (built from settings if omitted)
        compiler: DSL compiler (the fga CLI from settings if omitted)
        transport: httpx transport for all OpenFGA requests, used by tests

    Returns:
        A FastMCP server with every catalog tool registered
    """
    settings = settings or Settings()
    registry = registry or EnvironmentRegistry.from_settings(settings)
    compiler = compiler or FgaCliCompiler.from_settings(settings)
    dispatcher = ToolDispatcher(registry, compiler=compiler, transport=transport)

    mcp = FastMCP(
        name="openfga-mcp",
        version=__version__,
        instructions=(
            "Manage and query OpenFGA authorization services. Every tool takes an "
            "`env` argument naming the target environment and, for store-scoped "
            "tools, an optional `storeId`; without one the environment's default "
            "store or else its first store is used."
        ),
        middleware=[ToolCallLoggingMiddleware()],
    )

    env_names = registry.names()
    for spec in TOOLS.values():
        mcp.add_tool(OpenFGATool.from_spec(spec, dispatcher, env_names))

    # Plain HTTP endpoint for the streamable-http transport; not an MCP tool.
    @mcp.custom_route("/health", methods=["GET"])
    async def health_check(request: Request) -> Response:
        return JSONResponse({"status": "healthy", "environments": env_names})

    return mcp


# ---------------------------------------------------------------------------
# Server entry point
# ---------------------------------------------------------------------------


def main() -> None:
    settings = Settings()
    configure_logging(settings.log_level)
    mcp = create_server(settings)

    if settings.transport == "stdio":
        logger.info("Starting OpenFGA MCP server (transport=stdio)")
        mcp.run(transport="stdio")
        return

    logger.info(
        "Starting OpenFGA MCP server on %s:%d (transport=%s)",
        settings.host,
        settings.port,
        settings.transport,
    )
    mcp.run(
        transport=settings.transport,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
