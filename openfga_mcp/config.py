"""
Application configuration loaded from environment variables.

Uses pydantic-settings to define typed configuration that automatically reads
from environment variables (or a local .env file). Every variable carries the
OPENFGA_ prefix.

Three layers describe the OpenFGA deployment targets, from lowest to highest
precedence (see environments.py for how they are merged):

1. The built-in "local" environment: OPENFGA_LOCAL_URL, OPENFGA_LOCAL_STORE_ID
2. A JSON object of named environments: OPENFGA_ENVIRONMENTS, e.g.
       {"prod": {"url": "https://openfga.example.com", "defaultStoreId": "01H..."}}
3. Per-alias scalar pairs for int, stage, prod and real:
       OPENFGA_PROD_URL, OPENFGA_PROD_STORE_ID

Example MCP client configuration:

    {
      "mcpServers": {
        "openfga": {
          "command": "openfga-mcp",
          "env": {
            "OPENFGA_LOCAL_URL": "http://localhost:8080",
            "OPENFGA_STAGE_URL": "https://openfga.stage.example.com"
          }
        }
      }
    }
"""

from pydantic_settings import BaseSettings

# Aliases that can be configured through OPENFGA_<ALIAS>_URL / _STORE_ID.
ENVIRONMENT_ALIASES: tuple[str, ...] = ("int", "stage", "prod", "real")


class Settings(BaseSettings):
    """
    Server configuration with environment variable bindings.

    Each field maps to an environment variable with the OPENFGA_ prefix.
    For example, `local_url` reads from OPENFGA_LOCAL_URL and `prod_store_id`
    reads from OPENFGA_PROD_STORE_ID.
    """

    # --- Built-in "local" environment ---

    # OpenFGA's default HTTP port on a developer machine.
    local_url: str = "http://localhost:8080"
    local_store_id: str | None = None

    # --- Named environment overrides ---

    # Raw JSON text. Parsed by the environment registry so that a malformed
    # value is logged instead of failing settings validation.
    environments: str | None = None

    # --- Per-alias overrides (must match ENVIRONMENT_ALIASES) ---

    int_url: str | None = None
    int_store_id: str | None = None
    stage_url: str | None = None
    stage_store_id: str | None = None
    prod_url: str | None = None
    prod_store_id: str | None = None
    real_url: str | None = None
    real_store_id: str | None = None

    # --- Model compilation ---

    # The OpenFGA CLI used to turn model DSL into the JSON schema.
    fga_cli: str = "fga"

    # Upper bound in seconds for one `fga model transform` run.
    model_transform_timeout: float = 30.0

    # --- Server settings ---

    # Logging verbosity. Maps to Python's logging levels.
    log_level: str = "info"

    # "stdio" for MCP clients that spawn the server as a subprocess,
    # "streamable-http" to serve the MCP endpoint at http://host:port/mcp.
    transport: str = "stdio"
    host: str = "127.0.0.1"
    port: int = 8000

    model_config = {
        "env_prefix": "OPENFGA_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    def alias_override(self, alias: str) -> tuple[str | None, str | None]:
        """Return the (url, store_id) pair configured for an alias."""
        return getattr(self, f"{alias}_url"), getattr(self, f"{alias}_store_id")
