"""
mcpreview host module.

Stdio JSON-RPC transport, tool registry, host lifecycle and the
conversation loop that drives a review.
"""

from mcpreview.host.schema import (
    ContentBlock,
    DiffStats,
    Message,
    PrefetchedDiff,
    ReviewFinding,
    ReviewResult,
    TextBlock,
    ToolCallRequest,
    ToolCallResult,
    ToolCapability,
    ToolResultBlock,
    ToolUseBlock,
)
from mcpreview.host.transport import StdioTransport
from mcpreview.host.registry import ToolRegistry
from mcpreview.host.conversation import ConversationManager, parse_review_output, truncate_diff
from mcpreview.host.mcp_host import MCPHost, ServerSpec

__all__ = [
    "ContentBlock",
    "ConversationManager",
    "DiffStats",
    "MCPHost",
    "Message",
    "PrefetchedDiff",
    "ReviewFinding",
    "ReviewResult",
    "ServerSpec",
    "StdioTransport",
    "TextBlock",
    "ToolCallRequest",
    "ToolCallResult",
    "ToolCapability",
    "ToolRegistry",
    "ToolResultBlock",
    "ToolUseBlock",
    "parse_review_output",
    "truncate_diff",
]
