"""Shared fixtures: a scripted provider and a tiny tool server for subprocess tests."""

import sys
from pathlib import Path
from typing import List, Optional

import pytest

from mcpreview.host.schema import TextBlock, ToolUseBlock
from mcpreview.providers.base import LLMRequest, LLMResponse, Provider, Usage
from mcpreview.validation.config import ReviewConfig

FIXTURES = Path(__file__).parent / "fixtures"


class ScriptedProvider(Provider):
    """Returns canned responses in order and records every request."""

    def __init__(self, responses: List[LLMResponse], model: str = "claude-sonnet-4-20250514"):
        super().__init__(model)
        self.responses = list(responses)
        self.requests: List[LLMRequest] = []

    @property
    def provider_name(self) -> str:
        return "scripted"

    async def call(self, request: LLMRequest) -> LLMResponse:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError("ScriptedProvider ran out of responses")
        return self.responses.pop(0)


def text_response(text: str, input_tokens: int = 100, output_tokens: int = 50) -> LLMResponse:
    return LLMResponse(
        content=[TextBlock(text=text)],
        stop_reason="end_turn",
        usage=Usage(input_tokens=input_tokens, output_tokens=output_tokens),
    )


def tool_response(*calls: ToolUseBlock, input_tokens: int = 100, output_tokens: int = 20) -> LLMResponse:
    return LLMResponse(
        content=list(calls),
        stop_reason="tool_use",
        usage=Usage(input_tokens=input_tokens, output_tokens=output_tokens),
    )


REVIEW_JSON = """Here is my review.

```json
{
  "critical": [{"file": "src/app.py", "line": 10, "message": "SQL injection", "suggestion": "Use parameters"}],
  "suggestions": [{"file": "src/app.py", "line": 3, "endLine": 5, "message": "Rename variable"}],
  "positive": [{"file": "src/util.py", "message": "Nice helper"}],
  "confidence": "high"
}
```
"""


class Progress:
    """Progress sink that remembers every text it was given."""

    def __init__(self) -> None:
        self.history: List[str] = []

    @property
    def text(self) -> str:
        return self.history[-1] if self.history else ""

    @text.setter
    def text(self, value: str) -> None:
        self.history.append(value)


@pytest.fixture
def config() -> ReviewConfig:
    return ReviewConfig()


@pytest.fixture
def progress() -> Progress:
    return Progress()


@pytest.fixture
def echo_server_cmd() -> List[str]:
    """Command line for the fixture JSON-RPC server."""
    return [sys.executable, str(FIXTURES / "echo_server.py")]


def scripted(*responses: LLMResponse, model: Optional[str] = None) -> ScriptedProvider:
    if model:
        return ScriptedProvider(list(responses), model=model)
    return ScriptedProvider(list(responses))
