"""
Tool call dispatch.

The dispatcher turns one tool call into one OpenFGA client operation:

    1. Look up the tool in the catalog (tools.TOOLS)
    2. Validate the arguments against the tool's input model
    3. Resolve the `env` argument to an Environment
    4. Open an OpenFGAClient for this call (optionally with `storeId`)
    5. Run the tool's handler and format the result as text
    6. Close the client

Every failure along the way, including unknown tools and invalid arguments,
is returned as ToolOutcome(text="Error: <message>", is_error=True). dispatch()
never raises, so a failed call can never take the server down.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError

from openfga_mcp.client import OpenFGAClient
from openfga_mcp.compiler import FgaCliCompiler, ModelCompiler
from openfga_mcp.environments import EnvironmentRegistry
from openfga_mcp.errors import (
    ArgumentError,
    MissingModelSourceError,
    ModelSourceError,
    OpenFGAMCPError,
    UnknownToolError,
)
from openfga_mcp.tools import (
    TOOLS,
    CheckInput,
    EnvInput,
    ExpandInput,
    ListObjectsInput,
    ModelWriteInput,
    StoreInput,
    TupleBatchInput,
    TupleInput,
    TupleReadInput,
)

logger = logging.getLogger(__name__)

Handler = Callable[[OpenFGAClient, Any], Awaitable[str]]


@dataclass(frozen=True)
class ToolOutcome:
    """
    Result of one tool call.

    Attributes:
        text: Text returned to the caller (JSON for query results, a short
              confirmation for mutations, "Error: ..." on failure)
        is_error: True when the call failed
    """

    text: str
    is_error: bool = False


def to_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def describe_validation_error(tool_name: str, error: ValidationError) -> str:
    """Summarise a pydantic ValidationError on a single line."""
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "arguments"
        problems.append(f"{location}: {item['msg']}")
    return f"Invalid arguments for {tool_name}: " + "; ".join(problems)


class ToolDispatcher:
    """
    Routes tool calls to OpenFGA client operations.

    Args:
        registry: Configured environments
        compiler: DSL compiler handed to every client (defaults to the fga CLI)
        transport: httpx transport override for every client, used by tests
    """

    def __init__(
        self,
        registry: EnvironmentRegistry,
        compiler: ModelCompiler | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.registry = registry
        self.compiler = compiler or FgaCliCompiler()
        self.transport = transport
        self._handlers: dict[str, Handler] = {
            "openfga_store_list": self._store_list,
            "openfga_model_read": self._model_read,
            "openfga_model_write": self._model_write,
            "openfga_tuple_read": self._tuple_read,
            "openfga_tuple_write": self._tuple_write,
            "openfga_tuple_batch_write": self._tuple_batch_write,
            "openfga_tuple_delete": self._tuple_delete,
            "openfga_tuple_batch_delete": self._tuple_batch_delete,
            "openfga_check": self._check,
            "openfga_list_objects": self._list_objects,
            "openfga_expand": self._expand,
        }

    async def dispatch(self, name: str, arguments: dict[str, Any] | None) -> ToolOutcome:
        """
        Execute a tool call.

        Args:
            name: Tool name from the MCP tools/call request
            arguments: Raw argument object from the request

        Returns:
            ToolOutcome; failures are reported with is_error=True
        """
        try:
            text = await self._run(name, arguments or {})
        except OpenFGAMCPError as e:
            logger.warning("Tool %s failed: %s", name, e)
            return ToolOutcome(text=error_text(e), is_error=True)
        except Exception as e:
            # Transport errors, unreadable responses and other surprises.
            logger.exception("Tool %s failed unexpectedly", name)
            return ToolOutcome(text=error_text(e), is_error=True)
        return ToolOutcome(text=text)

    async def _run(self, name: str, arguments: dict[str, Any]) -> str:
        spec = TOOLS.get(name)
        handler = self._handlers.get(name)
        if spec is None or handler is None:
            raise UnknownToolError(name)

        try:
            params = spec.input_model.model_validate(arguments)
        except ValidationError as e:
            raise ArgumentError(describe_validation_error(name, e)) from e

        environment = self.registry.get(params.env)
        store_id = params.store_id if isinstance(params, StoreInput) else None

        async with OpenFGAClient(
            environment, store_id, compiler=self.compiler, transport=self.transport
        ) as client:
            return await handler(client, params)

    # -----------------------------------------------------------------------
    # Handlers
    # -----------------------------------------------------------------------

    async def _store_list(self, client: OpenFGAClient, params: EnvInput) -> str:
        return to_json(await client.list_stores())

    async def _model_read(self, client: OpenFGAClient, params: StoreInput) -> str:
        return to_json(await client.list_models())

    async def _model_write(self, client: OpenFGAClient, params: ModelWriteInput) -> str:
        dsl = await load_model_source(params)
        result = await client.write_model(dsl)
        return (
            "Model deployed!\n"
            f"Authorization Model ID: {result.get('authorization_model_id')}\n"
            f"Environment: {params.env}"
        )

    async def _tuple_read(self, client: OpenFGAClient, params: TupleReadInput) -> str:
        tuple_filter = {
            field: value
            for field, value in (
                ("user", params.user),
                ("relation", params.relation),
                ("object", params.object),
            )
            if value
        }
        return to_json(await client.read_tuples(tuple_filter or None))

    async def _tuple_write(self, client: OpenFGAClient, params: TupleInput) -> str:
        await client.write_tuples([params.tuple_key()])
        return f"Tuple written: {params.user} -> {params.relation} -> {params.object}"

    async def _tuple_batch_write(self, client: OpenFGAClient, params: TupleBatchInput) -> str:
        await client.write_tuples(params.tuples)
        return f"{len(params.tuples)} tuples written in one batch"

    async def _tuple_delete(self, client: OpenFGAClient, params: TupleInput) -> str:
        await client.delete_tuples([params.tuple_key()])
        return f"Tuple deleted: {params.user} -> {params.relation} -> {params.object}"

    async def _tuple_batch_delete(self, client: OpenFGAClient, params: TupleBatchInput) -> str:
        await client.delete_tuples(params.tuples)
        return f"{len(params.tuples)} tuples deleted in one batch"

    async def _check(self, client: OpenFGAClient, params: CheckInput) -> str:
        result = await client.check(params.user, params.relation, params.object)
        return to_json(
            {
                "user": params.user,
                "relation": params.relation,
                "object": params.object,
                "allowed": result.get("allowed"),
            }
        )

    async def _list_objects(self, client: OpenFGAClient, params: ListObjectsInput) -> str:
        objects = await client.list_objects(params.user, params.relation, params.object_type)
        return to_json(
            {
                "user": params.user,
                "relation": params.relation,
                "type": params.object_type,
                "objects": objects,
            }
        )

    async def _expand(self, client: OpenFGAClient, params: ExpandInput) -> str:
        return to_json(await client.expand(params.relation, params.object))


async def load_model_source(params: ModelWriteInput) -> str:
    """
    Return the model DSL for a model write.

    A file path takes precedence over inline DSL text.

    Raises:
        MissingModelSourceError: If neither filePath nor dsl is given
        ModelSourceError: If the file cannot be read
    """
    if params.file_path:
        path = Path(params.file_path).expanduser()
        try:
            return await asyncio.to_thread(path.read_text, encoding="utf-8")
        except OSError as e:
            raise ModelSourceError(path, e.strerror or str(e)) from e
    if params.dsl:
        return params.dsl
    raise MissingModelSourceError()


def error_text(error: Exception) -> str:
    """Render a failure for the caller; exceptions without a message fall back to their class name."""
    return f"Error: {str(error) or type(error).__name__}"
