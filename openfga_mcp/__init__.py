"""
OpenFGA MCP server.

Exposes OpenFGA store, authorization model, tuple and query operations as
Model Context Protocol tools. Each tool call is translated into one request
against the OpenFGA HTTP API of a named deployment environment.
"""

__version__ = "1.0.0"
