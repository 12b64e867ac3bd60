"""
Shared setup for the stdio tool servers.

Each tool server module builds its server with ``create_server``, declares
tools with ``@server.tool`` and calls ``server.run()`` under ``__main__``.
The MCP SDK answers ``initialize``, ``tools/list`` and ``tools/call``; an
exception raised by a tool comes back to the host as an ``isError`` result.
"""

from mcp.server.fastmcp import FastMCP

# stdout carries the protocol, so SDK logging stays quiet on stderr
SERVER_LOG_LEVEL = "WARNING"


def create_server(name: str) -> FastMCP:
    return FastMCP(name, log_level=SERVER_LOG_LEVEL)
