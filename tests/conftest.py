"""
Shared test fixtures for the OpenFGA MCP server test suite.

Key fixtures:
- make_settings: A factory building Settings isolated from the process
  environment and from any local .env file
- registry: An EnvironmentRegistry with a "local" and a "stage" environment
- fga: A recording stub of the OpenFGA HTTP API (httpx.MockTransport)
- compiler: A stub DSL compiler that never spawns a process
- dispatcher: A ToolDispatcher wired to the stubs above

Testing approach:
- test_environments.py: registry construction and lookup
- test_client.py: request shapes and store resolution of OpenFGAClient
- test_compiler.py: the fga CLI wrapper, driven by small shell scripts
- test_dispatcher.py: tool calls end to end against the stub service
- test_server.py: the FastMCP server through FastMCP's in-memory client
"""

import json
import os
from typing import Any

import httpx
import pytest

from openfga_mcp.config import Settings
from openfga_mcp.dispatcher import ToolDispatcher
from openfga_mcp.environments import Environment, EnvironmentRegistry

LOCAL_URL = "http://openfga.local.test"
STAGE_URL = "https://openfga.stage.test"

STORES = [
    {
        "id": "01HSTORE000000000000000001",
        "name": "vehicles",
        "created_at": "2026-01-01T00:00:00Z",
        "updated_at": "2026-01-01T00:00:00Z",
    },
    {
        "id": "01HSTORE000000000000000002",
        "name": "policies",
        "created_at": "2026-01-02T00:00:00Z",
        "updated_at": "2026-01-02T00:00:00Z",
    },
]


# ---------------------------------------------------------------------------
# Configuration fixtures
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def clean_openfga_env(monkeypatch):
    """Remove OPENFGA_* variables so the developer's shell can't leak into tests."""
    for name in list(os.environ):
        if name.upper().startswith("OPENFGA_"):
            monkeypatch.delenv(name)


@pytest.fixture
def make_settings():
    """
    Factory fixture returning Settings built only from the given values.

    Usage in tests:
        def test_something(make_settings):
            settings = make_settings(prod_url="https://prod.example.com")
    """

    def _make_settings(**values: Any) -> Settings:
        return Settings(_env_file=None, **values)

    return _make_settings


@pytest.fixture
def registry() -> EnvironmentRegistry:
    return EnvironmentRegistry(
        {
            "local": Environment(name="local", url=LOCAL_URL),
            "stage": Environment(name="stage", url=STAGE_URL, default_store_id="stage-store"),
        }
    )


# ---------------------------------------------------------------------------
# OpenFGA service stub
# ---------------------------------------------------------------------------
class StubOpenFGA:
    """
    In-memory stand-in for the OpenFGA HTTP API.

    Every request is recorded in `requests`. Responses come from `routes`,
    keyed by (method, path); unknown routes answer 404.

    Usage in tests:
        fga.respond("POST", "/stores/s1/check", {"allowed": True})
        fga.fail("POST", "/stores/s1/write", 400, '{"code":"validation_error"}')
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], httpx.Response] = {
            ("GET", "/stores"): httpx.Response(200, json={"stores": STORES}),
        }

    def respond(self, method: str, path: str, payload: Any) -> None:
        self.routes[(method, path)] = httpx.Response(200, json=payload)

    def fail(self, method: str, path: str, status: int, body: str) -> None:
        self.routes[(method, path)] = httpx.Response(status, text=body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.routes.get((request.method, request.url.path))
        if response is None:
            return httpx.Response(404, text="not found")
        return httpx.Response(
            response.status_code, content=response.content, headers=response.headers
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return json.loads(request.content)


@pytest.fixture
def fga() -> StubOpenFGA:
    return StubOpenFGA()


# ---------------------------------------------------------------------------
# Compiler stub
# ---------------------------------------------------------------------------
class StubCompiler:
    """ModelCompiler returning a fixed JSON document and recording its inputs."""

    output = '{"schema_version":"1.1","type_definitions":[{"type":"user"}]}'

    def __init__(self):
        self.calls: list[str] = []

    async def compile(self, dsl: str) -> str:
        self.calls.append(dsl)
        return self.output


@pytest.fixture
def compiler() -> StubCompiler:
    return StubCompiler()


@pytest.fixture
def dispatcher(registry, compiler, fga) -> ToolDispatcher:
    return ToolDispatcher(registry, compiler=compiler, transport=fga.transport)
