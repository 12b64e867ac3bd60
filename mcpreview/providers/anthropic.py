"""Anthropic provider - native tool-use content blocks."""

from typing import Any, Dict, List, Optional, Union

import anthropic

from mcpreview.errors import ApiError
from mcpreview.host.schema import Message, TextBlock, ToolResultBlock, ToolUseBlock
from mcpreview.providers.base import (
    LLMRequest,
    LLMResponse,
    ProgressSink,
    Provider,
    RateLimited,
    Usage,
    parse_retry_after,
)

_STOP_REASONS = {"tool_use": "tool_use", "end_turn": "end_turn", "max_tokens": "max_tokens"}


class AnthropicProvider(Provider):
    """
    Anthropic Messages API provider.

    Tool invocations and tool results travel as typed content blocks, so
    the internal message list maps onto the wire almost one-to-one.
    """

    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        client: Optional[Any] = None,
        progress: Optional[ProgressSink] = None,
        **retry_options: Any,
    ):
        super().__init__(model, progress=progress, **retry_options)
        # SDK retries are off: backoff is handled by _call_with_retry.
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key, max_retries=0)

    @property
    def provider_name(self) -> str:
        return "anthropic"

    async def call(self, request: LLMRequest) -> LLMResponse:
        params: Dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "system": request.system,
            "messages": [self._to_wire(m) for m in request.messages],
        }
        if request.tools:
            params["tools"] = [
                {"name": t.name, "description": t.description, "input_schema": t.input_schema}
                for t in request.tools
            ]

        async def send() -> Any:
            try:
                return await self._client.messages.create(**params)
            except anthropic.RateLimitError as exc:
                raise RateLimited(self._retry_after(exc), cause=exc) from exc
            except anthropic.APIStatusError as exc:
                if exc.status_code == 429:
                    raise RateLimited(self._retry_after(exc), cause=exc) from exc
                raise ApiError(str(exc), status_code=exc.status_code, cause=exc) from exc
            except anthropic.APIConnectionError as exc:
                raise ApiError(f"Connection to Anthropic failed: {exc}", retryable=True, cause=exc) from exc

        message = await self._call_with_retry(send)
        return self._normalize(message)

    @staticmethod
    def _retry_after(exc: anthropic.APIStatusError) -> Optional[float]:
        response = getattr(exc, "response", None)
        headers = getattr(response, "headers", None) or {}
        return parse_retry_after(headers.get("retry-after"))

    @staticmethod
    def _to_wire(message: Message) -> Dict[str, Any]:
        if isinstance(message.content, str):
            return {"role": message.role, "content": message.content}

        blocks: List[Dict[str, Any]] = []
        for block in message.content:
            if isinstance(block, ToolResultBlock):
                blocks.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": block.tool_use_id,
                        "content": block.content,
                        "is_error": block.is_error,
                    }
                )
            elif isinstance(block, ToolUseBlock):
                blocks.append({"type": "tool_use", "id": block.id, "name": block.name, "input": block.input})
            else:
                blocks.append({"type": "text", "text": block.text})
        return {"role": message.role, "content": blocks}

    @staticmethod
    def _normalize(message: Any) -> LLMResponse:
        content: List[Union[TextBlock, ToolUseBlock]] = []
        for block in message.content:
            if block.type == "tool_use":
                content.append(ToolUseBlock(id=block.id, name=block.name, input=block.input))
            elif block.type == "text":
                content.append(TextBlock(text=block.text))

        usage = getattr(message, "usage", None)
        return LLMResponse(
            content=content,
            stop_reason=_STOP_REASONS.get(message.stop_reason, "unknown"),
            usage=Usage(
                input_tokens=getattr(usage, "input_tokens", 0) or 0,
                output_tokens=getattr(usage, "output_tokens", 0) or 0,
            ),
        )
