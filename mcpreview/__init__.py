"""
mcpreview - Project-aware code review over MCP tool servers.

The host spawns a fixed set of tool servers as child processes, talks to
them with newline-delimited JSON-RPC over stdio, and drives a bounded
LLM tool-call loop that ends in a structured review.

Architecture:
- host/       transport, tool registry, host lifecycle, conversation loop
- providers/  Anthropic and OpenAI-compatible chat adapters
- tools/      the stdio tool servers the host launches
- git/        diff, stats and commit-log plumbing
- core/       review result cache and usage bookkeeping
"""

__version__ = "0.1.0"
__author__ = "mcpreview Team"
__license__ = "Apache-2.0"

from mcpreview.host.mcp_host import MCPHost
from mcpreview.host.schema import ReviewFinding, ReviewResult
from mcpreview.reviewer import Reviewer

__all__ = [
    "MCPHost",
    "ReviewFinding",
    "ReviewResult",
    "Reviewer",
    "__version__",
]
