"""Tool registry - discovers capabilities per server and routes tool calls."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from mcpreview.errors import ToolServerError
from mcpreview.host.schema import ToolCallRequest, ToolCallResult, ToolCapability
from mcpreview.host.transport import StdioTransport

logger = logging.getLogger(__name__)

NO_CONTENT = "(no content)"

# Deterministic, read-only tools. Pattern search is left out on purpose:
# its usefulness depends on what the caller is looking for at the time.
DEFAULT_CACHEABLE_TOOLS: Dict[str, bool] = {
    "get_diff": True,
    "get_diff_stats": True,
    "get_commit_messages": True,
    "read_file": True,
    "read_lines": True,
    "list_directory": True,
    "scan_lint_config": True,
    "get_project_conventions": True,
    "find_importers": True,
    "find_test_files": True,
    "find_similar_patterns": False,
}


@dataclass
class ServerRecord:
    """One logical tool server and the capabilities it advertised."""

    name: str
    transport: Optional[StdioTransport] = None
    capabilities: List[ToolCapability] = field(default_factory=list)


def cache_key(name: str, arguments: Mapping[str, Any]) -> Tuple[str, str]:
    """Key a call by tool name plus canonical JSON of its arguments."""
    return name, json.dumps(arguments, sort_keys=True, separators=(",", ":"), default=str)


class ToolRegistry:
    """
    Maps tool names to the server that implements them.

    ``register_server`` runs ``tools/list`` discovery over a live transport.
    ``call_tool`` routes ``tools/call`` to the owning server and memoizes
    results of tools marked cacheable. A tool name advertised by two servers
    goes to whichever registered last.
    """

    def __init__(self, cacheable_tools: Optional[Union[Mapping[str, bool], Iterable[str]]] = None):
        if cacheable_tools is None:
            self._cacheable: Dict[str, bool] = dict(DEFAULT_CACHEABLE_TOOLS)
        elif isinstance(cacheable_tools, Mapping):
            self._cacheable = dict(cacheable_tools)
        else:
            self._cacheable = {name: True for name in cacheable_tools}

        self._servers: Dict[str, ServerRecord] = {}
        self._tool_to_server: Dict[str, str] = {}
        self._cache: Dict[Tuple[str, str], ToolCallResult] = {}
        self.cache_hits = 0

    # ── Registration ──────────────────────────────────────────────────────

    async def register_server(self, name: str, transport: StdioTransport) -> List[ToolCapability]:
        """Discover a server's tools via ``tools/list`` and index them."""
        result = await transport.request("tools/list", {}) or {}
        capabilities = [ToolCapability.from_descriptor(raw) for raw in result.get("tools", [])]

        self._servers[name] = ServerRecord(name=name, transport=transport)
        for capability in capabilities:
            self._index(name, capability)

        logger.debug("Registered %d tool(s) from %s", len(capabilities), name)
        return capabilities

    def register_tool_manually(self, server_name: str, capability: ToolCapability) -> None:
        """Register a tool with no live transport (standalone and test use)."""
        if server_name not in self._servers:
            self._servers[server_name] = ServerRecord(name=server_name)
        self._index(server_name, capability)

    def _index(self, server_name: str, capability: ToolCapability) -> None:
        previous = self._tool_to_server.get(capability.name)
        if previous is not None and previous != server_name:
            logger.warning(
                "Tool %s from %s replaces the one registered by %s",
                capability.name,
                server_name,
                previous,
            )
        self._tool_to_server[capability.name] = server_name
        self._servers[server_name].capabilities.append(capability)

    # ── Lookup ────────────────────────────────────────────────────────────

    def get_available_tools(self) -> List[ToolCapability]:
        """Every routable tool. A shadowed capability is left out so names stay unique."""
        tools: List[ToolCapability] = []
        for server in self._servers.values():
            tools.extend(c for c in server.capabilities if self._tool_to_server.get(c.name) == server.name)
        return tools

    def get_server_names(self) -> List[str]:
        return list(self._servers)

    def server_for(self, tool_name: str) -> Optional[str]:
        return self._tool_to_server.get(tool_name)

    def is_cacheable(self, tool_name: str) -> bool:
        return self._cacheable.get(tool_name, False)

    # ── Dispatch ──────────────────────────────────────────────────────────

    async def call_tool(self, request: ToolCallRequest) -> ToolCallResult:
        """
        Execute a tool call.

        Unknown tools come back as an error-flagged result so the model can
        adapt. Transport failures raise ``ToolServerError`` carrying the
        server name.
        """
        server_name = self._tool_to_server.get(request.name)
        if server_name is None:
            return ToolCallResult(content=f"Unknown tool: {request.name}", is_error=True)

        server = self._servers[server_name]
        if server.transport is None:
            return ToolCallResult(content=f"Tool {request.name} called with {json.dumps(request.arguments)}")

        cacheable = self.is_cacheable(request.name)
        key = cache_key(request.name, request.arguments)
        if cacheable and key in self._cache:
            self.cache_hits += 1
            logger.debug("Cache hit: %s", request.name)
            return self._cache[key]

        try:
            raw = await server.transport.request(
                "tools/call", {"name": request.name, "arguments": request.arguments}
            )
        except Exception as exc:
            raise ToolServerError(server_name, f"Tool call {request.name} failed: {exc}", cause=exc) from exc

        result = self._to_result(raw)
        if cacheable and not result.is_error:
            self._cache[key] = result
        return result

    @staticmethod
    def _to_result(raw: Any) -> ToolCallResult:
        if not isinstance(raw, dict):
            raw = {}
        content = raw.get("content")
        texts = [
            str(part.get("text", ""))
            for part in (content if isinstance(content, list) else [])
            if isinstance(part, dict) and part.get("type") == "text"
        ]
        text = "\n".join(texts)
        return ToolCallResult(content=text or NO_CONTENT, is_error=bool(raw.get("isError", False)))

    # ── Cleanup ───────────────────────────────────────────────────────────

    async def shutdown(self) -> None:
        """Stop every owned transport, then forget all servers, tools and cached results."""
        records = [s for s in self._servers.values() if s.transport is not None]
        outcomes = await asyncio.gather(*(s.transport.stop() for s in records), return_exceptions=True)
        for record, outcome in zip(records, outcomes):
            if isinstance(outcome, Exception):
                logger.warning("Failed to stop %s: %s", record.name, outcome)

        self._servers.clear()
        self._tool_to_server.clear()
        self._cache.clear()
        self.cache_hits = 0
