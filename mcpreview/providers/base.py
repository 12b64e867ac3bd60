"""
mcpreview Provider Base - the shared call contract for LLM providers.

Every provider takes one internal ``LLMRequest`` and returns one
normalized ``LLMResponse``. How each vendor represents roles, tool calls
and tool results is left entirely to the concrete adapter.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional, Protocol, TypeVar, Union

from pydantic import BaseModel, Field

from mcpreview.errors import RateLimitExhaustedError
from mcpreview.host.schema import Message, StopReason, TextBlock, ToolDefinition, ToolUseBlock

logger = logging.getLogger(__name__)

# Max retries for rate-limit (429) responses.
MAX_RETRIES = 3

# Base delay in seconds for exponential backoff: 30s, 60s, 120s.
RETRY_BASE_DELAY = 30.0

T = TypeVar("T")


class ProgressSink(Protocol):
    """Anything with a mutable ``text`` attribute (a spinner, a status line)."""

    text: str


class Usage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0


class LLMRequest(BaseModel):
    model: str
    max_tokens: int
    system: str
    messages: List[Message]
    tools: Optional[List[ToolDefinition]] = None


class LLMResponse(BaseModel):
    content: List[Union[TextBlock, ToolUseBlock]] = Field(default_factory=list)
    stop_reason: StopReason = "unknown"
    usage: Usage = Field(default_factory=Usage)

    def tool_uses(self) -> List[ToolUseBlock]:
        return [block for block in self.content if isinstance(block, ToolUseBlock)]

    def first_text(self) -> Optional[str]:
        for block in self.content:
            if isinstance(block, TextBlock):
                return block.text
        return None


class RateLimited(Exception):
    """Raised by an adapter's send step on a 429 so the retry loop can back off."""

    def __init__(self, retry_after: Optional[float] = None, cause: Optional[BaseException] = None):
        super().__init__("rate limited")
        self.retry_after = retry_after
        self.cause = cause


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Seconds from a Retry-After header; HTTP-date and junk values are ignored."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds > 0 else None


class Provider(ABC):
    """
    Abstract base class for LLM providers.

    Subclasses implement ``call``. Rate-limit handling is shared through
    ``_call_with_retry``: the subclass raises ``RateLimited`` from its send
    step and this class waits and tries again.
    """

    def __init__(
        self,
        model: str,
        progress: Optional[ProgressSink] = None,
        max_retries: int = MAX_RETRIES,
        retry_base_delay: float = RETRY_BASE_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.model = model
        self.progress = progress
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""

    @abstractmethod
    async def call(self, request: LLMRequest) -> LLMResponse:
        """Send one chat request and return the normalized response."""

    def retry_delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        if retry_after:
            return retry_after
        return self.retry_base_delay * (2**attempt)

    async def _call_with_retry(self, send: Callable[[], Awaitable[T]]) -> T:
        for attempt in range(self.max_retries + 1):
            try:
                return await send()
            except RateLimited as exc:
                if attempt >= self.max_retries:
                    raise RateLimitExhaustedError(self.max_retries, cause=exc.cause) from exc

                delay = self.retry_delay(attempt, exc.retry_after)
                logger.debug(
                    "Rate limited (429). Retry %d/%d in %ds",
                    attempt + 1,
                    self.max_retries,
                    round(delay),
                )
                if self.progress is not None:
                    self.progress.text = f"Rate limited - retrying in {round(delay)}s..."
                await self._sleep(delay)

        raise RateLimitExhaustedError(self.max_retries)
