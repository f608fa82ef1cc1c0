"""
Tool catalog: names, descriptions and typed input records.

This module is the central registry of the tools the server exposes:

    TOOLS = {
        "tool_name": ToolSpec(name, description, InputModel),
    }

Every tool has its own pydantic input model, so arguments are validated
against the exact shape the tool needs before any OpenFGA call is made. Field
aliases keep the camelCase names MCP clients send (`storeId`, `filePath`).

The `env` argument is typed as a plain string in the models. The advertised
JSON schema narrows it to an enum of the configured environments at server
start (see input_schema()).

server.py reads names, descriptions and schemas from here to register tools;
dispatcher.py reads the input models to validate calls. Adding a tool means
adding a model and a ToolSpec here, then a handler in the dispatcher.
"""

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from openfga_mcp.client import TupleKey

# ---------------------------------------------------------------------------
# Input records
# ---------------------------------------------------------------------------


class EnvInput(BaseModel):
    """Arguments shared by every tool."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    env: str = Field(min_length=1, description="Environment name (e.g. local, int, stage, prod)")


class StoreInput(EnvInput):
    """Arguments shared by every store-scoped tool."""

    store_id: str | None = Field(
        default=None,
        alias="storeId",
        description="Store ID (defaults to the environment's store, else the first store)",
    )


class StoreListInput(EnvInput):
    pass


class ModelReadInput(StoreInput):
    pass


class ModelWriteInput(StoreInput):
    file_path: str | None = Field(
        default=None,
        alias="filePath",
        description="Path to a DSL file (e.g. /path/to/model.fga)",
    )
    dsl: str | None = Field(default=None, description="Model DSL text (used when filePath is absent)")


class TupleReadInput(StoreInput):
    user: str | None = Field(default=None, description="Filter: user (e.g. user:john)")
    relation: str | None = Field(default=None, description="Filter: relation (e.g. viewer)")
    object: str | None = Field(default=None, description="Filter: object (e.g. vehicle:car1)")


class TupleInput(StoreInput):
    user: str = Field(min_length=1, description="User (e.g. user:john, company:acme#member)")
    relation: str = Field(min_length=1, description="Relation (e.g. viewer, admin, operator)")
    object: str = Field(min_length=1, description="Object (e.g. vehicle:car1, policy:policy1)")

    def tuple_key(self) -> TupleKey:
        return TupleKey(user=self.user, relation=self.relation, object=self.object)


class TupleBatchInput(StoreInput):
    tuples: list[TupleKey] = Field(description="Tuples to apply in a single write request")


class CheckInput(StoreInput):
    user: str = Field(min_length=1, description="User (e.g. user:john)")
    relation: str = Field(min_length=1, description="Permission or relation (e.g. can_view, can_edit)")
    object: str = Field(min_length=1, description="Object (e.g. vehicle:car1)")


class ListObjectsInput(StoreInput):
    user: str = Field(min_length=1, description="User (e.g. user:john)")
    relation: str = Field(min_length=1, description="Permission or relation (e.g. can_view)")
    object_type: str = Field(
        min_length=1, alias="type", description="Object type (e.g. vehicle, policy)"
    )


class ExpandInput(StoreInput):
    relation: str = Field(min_length=1, description="Permission or relation (e.g. can_view, admin)")
    object: str = Field(min_length=1, description="Object (e.g. vehicle:car1)")


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolSpec:
    """
    Static description of one tool.

    Attributes:
        name: Tool name as seen by MCP clients
        description: Human-readable description shown to the model/user
        input_model: Pydantic model validating the tool's arguments
    """

    name: str
    description: str
    input_model: type[EnvInput]


TOOLS: dict[str, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec(
            "openfga_store_list",
            "List the OpenFGA stores of an environment.",
            StoreListInput,
        ),
        ToolSpec(
            "openfga_model_read",
            "List the authorization models of an OpenFGA store.",
            ModelReadInput,
        ),
        ToolSpec(
            "openfga_model_write",
            "Deploy an OpenFGA authorization model from a DSL file path or DSL text.",
            ModelWriteInput,
        ),
        ToolSpec(
            "openfga_tuple_read",
            "Read OpenFGA relationship tuples, optionally filtered by user, relation or object.",
            TupleReadInput,
        ),
        ToolSpec(
            "openfga_tuple_write",
            "Create one OpenFGA relationship tuple.",
            TupleInput,
        ),
        ToolSpec(
            "openfga_tuple_batch_write",
            "Create several OpenFGA relationship tuples in one request.",
            TupleBatchInput,
        ),
        ToolSpec(
            "openfga_tuple_delete",
            "Delete one OpenFGA relationship tuple.",
            TupleInput,
        ),
        ToolSpec(
            "openfga_tuple_batch_delete",
            "Delete several OpenFGA relationship tuples in one request.",
            TupleBatchInput,
        ),
        ToolSpec(
            "openfga_check",
            "Check whether a user has a permission or relation on an object.",
            CheckInput,
        ),
        ToolSpec(
            "openfga_list_objects",
            "List the objects of a type on which a user has a permission or relation.",
            ListObjectsInput,
        ),
        ToolSpec(
            "openfga_expand",
            "Expand the relationship tree that grants a relation on an object.",
            ExpandInput,
        ),
    )
}


def input_schema(spec: ToolSpec, env_names: list[str]) -> dict[str, Any]:
    """
    Build the JSON schema advertised for a tool.

    Args:
        spec: Tool to describe
        env_names: Configured environment names, offered as the `env` enum

    Returns:
        A JSON schema object using the camelCase argument names
    """
    schema = spec.input_model.model_json_schema(by_alias=True)
    schema.pop("title", None)
    if env_names:
        schema["properties"]["env"]["enum"] = list(env_names)
    return schema
