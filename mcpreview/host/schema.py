"""Data models for tool capabilities, conversation messages and review results."""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ── Tools ─────────────────────────────────────────────────────────────────


class ToolCapability(BaseModel):
    """One named, schema-typed operation exposed by a tool server."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=dict, alias="inputSchema")

    @classmethod
    def from_descriptor(cls, raw: Dict[str, Any]) -> "ToolCapability":
        """Build from a ``tools/list`` entry; missing fields become empty."""
        return cls(
            name=raw["name"],
            description=raw.get("description") or "",
            input_schema=raw.get("inputSchema") or {},
        )

    def to_definition(self) -> "ToolDefinition":
        return ToolDefinition(name=self.name, description=self.description, input_schema=self.input_schema)


class ToolDefinition(BaseModel):
    """Tool catalog entry as sent to a provider."""

    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=dict)


class ToolCallRequest(BaseModel):
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ToolCallResult(BaseModel):
    content: str
    is_error: bool = False


# ── Conversation ──────────────────────────────────────────────────────────


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    """A tool invocation requested by the model."""

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: Any = Field(default_factory=dict)


class ToolResultBlock(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = Annotated[Union[TextBlock, ToolUseBlock, ToolResultBlock], Field(discriminator="type")]


class Message(BaseModel):
    role: Literal["user", "assistant"]
    content: Union[str, List[ContentBlock]]


StopReason = Literal["end_turn", "tool_use", "max_tokens", "unknown"]


# ── Review output ─────────────────────────────────────────────────────────


class DiffStats(BaseModel):
    files_changed: int = 0
    insertions: int = 0
    deletions: int = 0
    files: List[str] = Field(default_factory=list)


class ReviewFinding(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file: str
    line: Optional[int] = None
    end_line: Optional[int] = Field(default=None, alias="endLine")
    message: str
    suggestion: Optional[str] = None


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    estimated_cost: float = 0.0


class TruncationInfo(BaseModel):
    omitted_files: int


Confidence = Literal["high", "medium", "low"]


class ReviewResult(BaseModel):
    """Outcome of one review session. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    critical: List[ReviewFinding] = Field(default_factory=list)
    suggestions: List[ReviewFinding] = Field(default_factory=list)
    positive: List[ReviewFinding] = Field(default_factory=list)
    confidence: Confidence = "medium"
    stats: DiffStats = Field(default_factory=DiffStats)
    token_usage: Optional[TokenUsage] = None
    truncated: Optional[TruncationInfo] = None


class PrefetchedDiff(BaseModel):
    """Diff text and stats fetched by the caller before the review starts."""

    diff: str
    stats: DiffStats = Field(default_factory=DiffStats)
