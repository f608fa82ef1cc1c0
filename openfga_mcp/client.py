"""
Async client for the OpenFGA HTTP API.

A client is created for a single tool call and bound to one environment:

    async with OpenFGAClient(environment, store_id) as client:
        result = await client.check("user:john", "can_view", "vehicle:car1")

Store-scoped operations need a store id. It comes from, in order:

1. the explicit `store_id` argument (the tool's `storeId`)
2. the environment's default store id
3. the first store returned by GET /stores, looked up lazily on first use

The lookup result is remembered for the lifetime of the client instance only.
OpenFGA does not document an ordering for GET /stores, so the fallback is
"whichever store the service lists first for this call".

Every non-2xx response is raised as RemoteApiError. There are no retries.
"""

import json
import logging
from collections.abc import Sequence
from typing import Any, TypedDict

import httpx
from pydantic import BaseModel, Field

from openfga_mcp.compiler import FgaCliCompiler, ModelCompiler
from openfga_mcp.environments import Environment
from openfga_mcp.errors import ModelWriteError, NoStoresFoundError, RemoteApiError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# OpenFGA payloads
# ---------------------------------------------------------------------------


class TupleKey(BaseModel):
    """
    A relationship fact: `user` has `relation` on `object`.

    The identifiers are opaque to this server; OpenFGA interprets them.
    Examples: user="user:john" or "company:acme#member", relation="viewer",
    object="vehicle:car1".
    """

    user: str = Field(min_length=1, description="User (e.g. user:john, company:acme#member)")
    relation: str = Field(min_length=1, description="Relation (e.g. viewer, admin, operator)")
    object: str = Field(min_length=1, description="Object (e.g. vehicle:car1, policy:policy1)")


class Store(TypedDict):
    id: str
    name: str
    created_at: str
    updated_at: str


class AuthorizationModel(TypedDict):
    id: str
    schema_version: str
    type_definitions: list[dict[str, Any]]


class Tuple(TypedDict):
    key: dict[str, str]
    timestamp: str


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class OpenFGAClient:
    """
    OpenFGA API operations for one environment and one tool call.

    Args:
        environment: Target environment (base URL and default store)
        store_id: Explicit store id; empty means "use the default"
        compiler: DSL compiler used by write_model (defaults to the fga CLI)
        transport: httpx transport override, used by tests to stub the service
    """

    def __init__(
        self,
        environment: Environment,
        store_id: str | None = None,
        *,
        compiler: ModelCompiler | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.environment = environment
        self._store_id: str | None = store_id or environment.default_store_id or None
        self._compiler = compiler or FgaCliCompiler()
        self._http = httpx.AsyncClient(
            base_url=environment.url,
            headers={"Content-Type": "application/json"},
            timeout=None,
            transport=transport,
        )

    async def __aenter__(self) -> "OpenFGAClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, *, body: Any = None) -> Any:
        """
        Send one request and return the decoded JSON response.

        Args:
            method: HTTP method
            path: Path relative to the environment's base URL
            body: JSON-serialisable payload, or a str sent verbatim

        Raises:
            RemoteApiError: If the service answers with a non-2xx status
        """
        content = None
        if body is not None:
            content = body if isinstance(body, str) else json.dumps(body)

        logger.debug("%s %s%s", method, self.environment.url, path)
        response = await self._http.request(method, path, content=content)

        if not response.is_success:
            raise RemoteApiError(response.status_code, response.text)

        return response.json()

    # --- Stores ---

    async def resolve_store_id(self) -> str:
        """
        Return the store id for store-scoped operations.

        Falls back to the first store listed by the service when neither an
        explicit nor a default store id is set. The result is cached on this
        instance, so GET /stores is issued at most once per client.

        Raises:
            NoStoresFoundError: If the fallback lookup finds no stores
        """
        if self._store_id:
            return self._store_id

        stores = await self.list_stores()
        if not stores:
            raise NoStoresFoundError(self.environment.name)

        self._store_id = stores[0]["id"]
        logger.info(
            "No store id given for environment %s, using first store %s",
            self.environment.name,
            self._store_id,
        )
        return self._store_id

    async def list_stores(self) -> list[Store]:
        result = await self._request("GET", "/stores")
        return result.get("stores") or []

    # --- Authorization models ---

    async def list_models(self) -> list[AuthorizationModel]:
        store_id = await self.resolve_store_id()
        result = await self._request("GET", f"/stores/{store_id}/authorization-models")
        return result.get("authorization_models") or []

    async def write_model(self, dsl: str) -> dict[str, Any]:
        """
        Compile model DSL and deploy it as a new authorization model.

        Args:
            dsl: Authorization model in OpenFGA DSL notation

        Returns:
            The service response, including `authorization_model_id`

        Raises:
            DslCompilationError: If the DSL could not be compiled
            ModelWriteError: If OpenFGA rejects the compiled model
        """
        store_id = await self.resolve_store_id()
        model_json = await self._compiler.compile(dsl)

        try:
            return await self._request(
                "POST", f"/stores/{store_id}/authorization-models", body=model_json
            )
        except RemoteApiError as e:
            raise ModelWriteError(e.status, e.body) from e

    # --- Relationship tuples ---

    async def read_tuples(self, tuple_filter: dict[str, str] | None = None) -> list[Tuple]:
        """
        Read tuples, optionally filtered by any of user/relation/object.

        Only filter fields with a value are sent; with no fields at all the
        `tuple_key` member is omitted and every tuple in the store is read.
        """
        store_id = await self.resolve_store_id()
        body: dict[str, Any] = {}
        tuple_key = {k: v for k, v in (tuple_filter or {}).items() if v}
        if tuple_key:
            body["tuple_key"] = tuple_key

        result = await self._request("POST", f"/stores/{store_id}/read", body=body)
        return result.get("tuples") or []

    async def write_tuples(self, tuples: Sequence[TupleKey]) -> None:
        store_id = await self.resolve_store_id()
        body = {"writes": {"tuple_keys": [t.model_dump() for t in tuples]}}
        await self._request("POST", f"/stores/{store_id}/write", body=body)

    async def delete_tuples(self, tuples: Sequence[TupleKey]) -> None:
        store_id = await self.resolve_store_id()
        body = {"deletes": {"tuple_keys": [t.model_dump() for t in tuples]}}
        await self._request("POST", f"/stores/{store_id}/write", body=body)

    # --- Queries ---

    async def check(self, user: str, relation: str, object: str) -> dict[str, Any]:
        """Ask whether `user` has `relation` on `object`. Returns {"allowed": bool, ...}."""
        store_id = await self.resolve_store_id()
        body = {"tuple_key": {"user": user, "relation": relation, "object": object}}
        return await self._request("POST", f"/stores/{store_id}/check", body=body)

    async def list_objects(self, user: str, relation: str, type: str) -> list[str]:
        store_id = await self.resolve_store_id()
        body = {"user": user, "relation": relation, "type": type}
        result = await self._request("POST", f"/stores/{store_id}/list-objects", body=body)
        return result.get("objects") or []

    async def expand(self, relation: str, object: str) -> Any:
        store_id = await self.resolve_store_id()
        body = {"tuple_key": {"relation": relation, "object": object}}
        return await self._request("POST", f"/stores/{store_id}/expand", body=body)
