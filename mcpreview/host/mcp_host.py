"""
MCP host runtime.

Owns the tool-server child processes and the tool registry, and hands
reviews off to the conversation manager.
"""

from __future__ import annotations

import asyncio
import logging
import math
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from mcpreview import __version__
from mcpreview.errors import HostNotInitializedError
from mcpreview.git.resolver import ResolvedRange
from mcpreview.host.conversation import ConversationManager
from mcpreview.host.registry import ToolRegistry
from mcpreview.host.schema import PrefetchedDiff, ReviewResult
from mcpreview.host.transport import StdioTransport
from mcpreview.logger import timer
from mcpreview.providers.base import ProgressSink, Provider
from mcpreview.validation.config import ReviewConfig

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
CLIENT_NAME = "mcp-review-host"

DEFAULT_TOKEN_BUDGET = 100_000
LOW_BUDGET_FRACTION = 0.2


@dataclass(frozen=True)
class ServerSpec:
    """How to launch one tool server."""

    name: str
    command: str
    args: List[str] = field(default_factory=list)


def python_module_server(name: str, module: str) -> ServerSpec:
    return ServerSpec(name=name, command=sys.executable, args=["-m", module])


TOOL_SERVERS: List[ServerSpec] = [
    python_module_server("git-diff", "mcpreview.tools.git_diff"),
    python_module_server("file-context", "mcpreview.tools.file_context"),
    python_module_server("conventions", "mcpreview.tools.conventions"),
    python_module_server("related-files", "mcpreview.tools.related_files"),
]


class MCPHost:
    """
    Process lifecycle for one review session.

    ``initialize`` starts every configured server concurrently and keeps
    whichever come up; a server that fails to spawn, handshake or list its
    tools is logged and left out.
    """

    def __init__(
        self,
        config: ReviewConfig,
        provider: Optional[Provider] = None,
        servers: Optional[Sequence[ServerSpec]] = None,
        project_root: Optional[Path] = None,
        request_timeout: Optional[float] = None,
    ):
        self.config = config
        self.servers = list(servers) if servers is not None else list(TOOL_SERVERS)
        self.project_root = Path(project_root) if project_root else Path.cwd()
        self.request_timeout = request_timeout

        self.registry = ToolRegistry(config.cacheable_tools)
        self.conversation = ConversationManager(
            config,
            provider=provider,
            project_root=self.project_root,
            on_usage=self.add_exact_usage,
        )

        self._transports: List[StdioTransport] = []
        self._initialized = False
        self.token_budget = DEFAULT_TOKEN_BUDGET
        self.tokens_used = 0

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def transports(self) -> List[StdioTransport]:
        return list(self._transports)

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        if self._initialized:
            return

        with timer("mcp-host", "server initialization (all servers)"):
            outcomes = await asyncio.gather(
                *(self._start_server(spec) for spec in self.servers),
                return_exceptions=True,
            )

        for spec, outcome in zip(self.servers, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Failed to start %s: %s", spec.name, outcome)

        self._initialized = True

    async def _start_server(self, spec: ServerSpec) -> str:
        kwargs = {} if self.request_timeout is None else {"request_timeout": self.request_timeout}
        transport = StdioTransport(spec.command, spec.args, cwd=str(self.project_root), **kwargs)

        with timer("mcp-host", f"start server: {spec.name}"):
            await transport.start()
            try:
                await transport.request(
                    "initialize",
                    {
                        "protocolVersion": PROTOCOL_VERSION,
                        "capabilities": {},
                        "clientInfo": {"name": CLIENT_NAME, "version": __version__},
                    },
                )
                transport.notify("notifications/initialized", {})
                await self.registry.register_server(spec.name, transport)
            except BaseException:
                await transport.stop()
                raise

        self._transports.append(transport)
        logger.debug("Started server: %s", spec.name)
        return spec.name

    async def run_review(
        self,
        review_range: Optional[ResolvedRange],
        prefetched: PrefetchedDiff,
        progress: Optional[ProgressSink] = None,
    ) -> ReviewResult:
        if not self._initialized:
            raise HostNotInitializedError()
        return await self.conversation.run_review(review_range, self.registry, prefetched, progress)

    async def shutdown(self) -> None:
        """Stop every server and reset state. Safe to call more than once."""
        await self.registry.shutdown()
        self._transports = []
        self._initialized = False
        self.tokens_used = 0

    # ── Token budget ──────────────────────────────────────────────────────

    def add_token_usage(self, text: str) -> None:
        """Approximate usage at ~4 chars per token."""
        self.tokens_used += math.ceil(len(text) / 4)

    def add_exact_usage(self, input_tokens: int, output_tokens: int) -> None:
        self.tokens_used += input_tokens + output_tokens

    def get_token_budget_remaining(self) -> int:
        return max(0, self.token_budget - self.tokens_used)

    def is_token_budget_low(self) -> bool:
        return self.get_token_budget_remaining() < self.token_budget * LOW_BUDGET_FRACTION
