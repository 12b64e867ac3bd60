"""
OpenAI-compatible provider (function-calling dialect).

Works with OpenRouter, DeepSeek, Kimi, Groq and any endpoint that
implements the chat completions API. Uses httpx directly so no vendor SDK
is needed.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Union

import httpx

from mcpreview.errors import ApiError, ConfigError
from mcpreview.host.schema import TextBlock, ToolResultBlock, ToolUseBlock
from mcpreview.providers.base import (
    LLMRequest,
    LLMResponse,
    ProgressSink,
    Provider,
    RateLimited,
    Usage,
    parse_retry_after,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120.0

_FINISH_REASONS = {"tool_calls": "tool_use", "stop": "end_turn", "length": "max_tokens"}


def normalize_endpoint(base_url: str) -> str:
    """Make sure the URL ends with ``/chat/completions``."""
    trimmed = base_url.rstrip("/")
    if trimmed.endswith("/chat/completions"):
        return trimmed
    return f"{trimmed}/chat/completions"


def safe_arguments(value: Any) -> Dict[str, Any]:
    """Only plain JSON objects are serialized as tool arguments; anything else becomes ``{}``."""
    return value if isinstance(value, dict) else {}


class OpenAICompatibleProvider(Provider):
    """
    Chat completions provider for any OpenAI-compatible endpoint.

    The system prompt becomes a leading ``system`` message, tool results
    become ``tool`` role messages, and assistant tool calls carry their
    arguments as a JSON string.
    """

    def __init__(
        self,
        model: str,
        base_url: str,
        api_key: str,
        progress: Optional[ProgressSink] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **retry_options: Any,
    ):
        super().__init__(model, progress=progress, **retry_options)
        if not base_url:
            raise ConfigError("OpenAI-compatible provider requires a base_url")
        if not api_key or not api_key.strip():
            raise ConfigError("OpenAI-compatible provider requires a non-empty API key")

        self.endpoint = normalize_endpoint(base_url)
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    @property
    def provider_name(self) -> str:
        return "openai"

    async def call(self, request: LLMRequest) -> LLMResponse:
        body: Dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "messages": self.build_messages(request),
        }
        tools = self.build_tools(request)
        if tools:
            body["tools"] = tools
            body["tool_choice"] = "auto"

        data = await self._call_with_retry(lambda: self._post(body))
        return self._normalize(data)

    async def _post(self, body: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "X-Title": "mcp-review",
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self.endpoint, headers=headers, json=body)
        except httpx.TransportError as exc:
            raise ApiError(f"Request to {self.endpoint} failed: {exc}", retryable=True, cause=exc) from exc

        if response.status_code == 429:
            raise RateLimited(parse_retry_after(response.headers.get("retry-after")))
        if response.is_error:
            raise ApiError(
                f"OpenAI API error (HTTP {response.status_code}): {response.text}",
                status_code=response.status_code,
            )
        return response.json()

    # ── Request building ──────────────────────────────────────────────────

    @staticmethod
    def build_messages(request: LLMRequest) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = [{"role": "system", "content": request.system}]

        for message in request.messages:
            if isinstance(message.content, str):
                messages.append({"role": message.role, "content": message.content})
                continue

            blocks = message.content
            if blocks and isinstance(blocks[0], ToolResultBlock):
                for block in blocks:
                    if not isinstance(block, ToolResultBlock):
                        continue
                    messages.append({"role": "tool", "tool_call_id": block.tool_use_id, "content": block.content})
                continue

            if message.role == "assistant":
                messages.append(OpenAICompatibleProvider._assistant_message(blocks))
                continue

            text = "\n".join(b.text for b in blocks if isinstance(b, TextBlock))
            messages.append({"role": "user", "content": text})

        return messages

    @staticmethod
    def _assistant_message(blocks: List[Union[TextBlock, ToolUseBlock, ToolResultBlock]]) -> Dict[str, Any]:
        text = ""
        tool_calls: List[Dict[str, Any]] = []
        for block in blocks:
            if isinstance(block, TextBlock):
                text += block.text
            elif isinstance(block, ToolUseBlock):
                tool_calls.append(
                    {
                        "id": block.id,
                        "type": "function",
                        "function": {"name": block.name, "arguments": json.dumps(safe_arguments(block.input))},
                    }
                )

        assistant: Dict[str, Any] = {"role": "assistant", "content": text or None}
        if tool_calls:
            assistant["tool_calls"] = tool_calls
        return assistant

    @staticmethod
    def build_tools(request: LLMRequest) -> Optional[List[Dict[str, Any]]]:
        if not request.tools:
            return None
        return [
            {
                "type": "function",
                "function": {"name": t.name, "description": t.description, "parameters": t.input_schema},
            }
            for t in request.tools
        ]

    # ── Response parsing ──────────────────────────────────────────────────

    @staticmethod
    def _normalize(data: Dict[str, Any]) -> LLMResponse:
        choices = data.get("choices") or []
        if not choices:
            raise ApiError("OpenAI API returned no choices")

        choice = choices[0]
        message = choice.get("message") or {}
        content: List[Union[TextBlock, ToolUseBlock]] = []

        if message.get("content"):
            content.append(TextBlock(text=message["content"]))

        for call in message.get("tool_calls") or []:
            function = call.get("function") or {}
            try:
                arguments = json.loads(function.get("arguments") or "{}")
            except json.JSONDecodeError:
                logger.debug("Unparseable tool arguments for %s", function.get("name"))
                arguments = {}
            content.append(
                ToolUseBlock(id=call.get("id", ""), name=function.get("name", ""), input=safe_arguments(arguments))
            )

        usage = data.get("usage") or {}
        return LLMResponse(
            content=content,
            stop_reason=_FINISH_REASONS.get(choice.get("finish_reason"), "unknown"),
            usage=Usage(
                input_tokens=usage.get("prompt_tokens") or 0,
                output_tokens=usage.get("completion_tokens") or 0,
            ),
        )
