"""
Error taxonomy for the OpenFGA MCP server.

Every failure raised while handling a tool call derives from OpenFGAMCPError.
The dispatcher catches them at its boundary and turns the message into an
"Error: <message>" tool result, so messages here are written for the person
reading that result.
"""

from pathlib import Path


class OpenFGAMCPError(Exception):
    """Base class for all errors raised by this package."""


class UnknownEnvironmentError(OpenFGAMCPError):
    """
    Raised when a tool call names an environment that is not configured.

    The message lists the configured environment names so the caller can
    correct the `env` argument without looking at the server configuration.
    """

    def __init__(self, name: str, available: list[str]):
        self.name = name
        self.available = available
        listing = ", ".join(available) or (
            "none (configure via OPENFGA_ENVIRONMENTS or OPENFGA_<ENV>_URL)"
        )
        super().__init__(f"Unknown environment: {name}. Available: {listing}")


class NoStoresFoundError(OpenFGAMCPError):
    """Raised when no store id was given and the environment has no stores."""

    def __init__(self, environment: str):
        self.environment = environment
        super().__init__(f"No stores found in environment '{environment}'")


class RemoteApiError(OpenFGAMCPError):
    """
    Raised when the OpenFGA API answers with a non-2xx status.

    Attributes:
        status: HTTP status code returned by the service
        body: Response body as text (usually a JSON error document)
    """

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"OpenFGA API error: {status} - {body}")


class ModelWriteError(RemoteApiError):
    """Raised when OpenFGA rejects a compiled authorization model."""


class DslCompilationError(OpenFGAMCPError):
    """Raised when the model DSL could not be compiled to JSON."""


class MissingModelSourceError(OpenFGAMCPError):
    """Raised when a model write has neither a file path nor inline DSL."""

    def __init__(self):
        super().__init__("Either filePath or dsl is required to write a model")


class ModelSourceError(OpenFGAMCPError):
    """Raised when the model DSL file cannot be read."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        super().__init__(f"Cannot read model file {path}: {reason}")


class UnknownToolError(OpenFGAMCPError):
    """Raised when a tool call names a tool that is not in the catalog."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class ArgumentError(OpenFGAMCPError):
    """Raised when tool arguments fail validation."""
