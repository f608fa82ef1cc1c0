"""
Named OpenFGA deployment targets.

An environment is a base URL plus an optional default store id. Tool calls
select one by name through their `env` argument.

The registry is built once at startup from Settings by layering three sources,
later sources replacing earlier entries with the same name:

    built-in "local"  <  OPENFGA_ENVIRONMENTS JSON  <  OPENFGA_<ALIAS>_URL pairs

After construction the registry is read-only and is passed explicitly to the
dispatcher.
"""

import json
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from openfga_mcp.config import ENVIRONMENT_ALIASES, Settings
from openfga_mcp.errors import UnknownEnvironmentError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Environment:
    """
    One OpenFGA deployment target.

    Attributes:
        name: Environment name used in the `env` tool argument (e.g. "stage")
        url: Base address of the OpenFGA HTTP API (e.g. "http://localhost:8080")
        default_store_id: Store used when a tool call does not pass `storeId`
    """

    name: str
    url: str
    default_store_id: str | None = None


class EnvironmentRegistry:
    """Immutable name -> Environment lookup."""

    def __init__(self, environments: Mapping[str, Environment]):
        self._environments = MappingProxyType(dict(environments))

    @classmethod
    def from_settings(cls, settings: Settings) -> "EnvironmentRegistry":
        """
        Build the registry from the three configuration layers.

        Args:
            settings: Loaded application settings

        Returns:
            A registry that always contains at least the "local" environment
        """
        environments: dict[str, Environment] = {
            "local": Environment(
                name="local",
                url=settings.local_url,
                default_store_id=settings.local_store_id or None,
            ),
        }

        if settings.environments:
            environments.update(_parse_environment_overrides(settings.environments))

        for alias in ENVIRONMENT_ALIASES:
            url, store_id = settings.alias_override(alias)
            if url:
                environments[alias] = Environment(
                    name=alias, url=url, default_store_id=store_id or None
                )

        logger.info("Configured OpenFGA environments: %s", ", ".join(environments))
        return cls(environments)

    def get(self, name: str) -> Environment:
        """
        Look up an environment by name.

        Raises:
            UnknownEnvironmentError: If no environment has this name. The
                message lists the names that are configured.
        """
        try:
            return self._environments[name]
        except KeyError:
            raise UnknownEnvironmentError(name, self.names()) from None

    def names(self) -> list[str]:
        return list(self._environments)

    def __contains__(self, name: object) -> bool:
        return name in self._environments

    def __iter__(self) -> Iterator[str]:
        return iter(self._environments)

    def __len__(self) -> int:
        return len(self._environments)


def _parse_environment_overrides(raw: str) -> dict[str, Environment]:
    """
    Parse the OPENFGA_ENVIRONMENTS JSON object.

    Problems are logged and the affected part is skipped: a malformed document
    yields no overrides, an invalid entry drops only that entry.
    """
    try:
        document = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error("Failed to parse OPENFGA_ENVIRONMENTS: %s", e)
        return {}

    if not isinstance(document, dict):
        logger.error(
            "Failed to parse OPENFGA_ENVIRONMENTS: expected a JSON object, got %s",
            type(document).__name__,
        )
        return {}

    environments: dict[str, Environment] = {}
    for name, entry in document.items():
        url = entry.get("url") if isinstance(entry, dict) else None
        if not isinstance(url, str) or not url:
            logger.warning("Skipping environment %r from OPENFGA_ENVIRONMENTS: missing url", name)
            continue
        store_id = entry.get("defaultStoreId")
        environments[name] = Environment(
            name=name,
            url=url,
            default_store_id=str(store_id) if store_id else None,
        )
    return environments
