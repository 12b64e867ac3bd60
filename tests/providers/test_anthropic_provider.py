"""Tests for the Anthropic provider against a fake SDK client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from mcpreview.errors import ApiError, RateLimitExhaustedError
from mcpreview.host.schema import Message, TextBlock, ToolDefinition, ToolResultBlock, ToolUseBlock
from mcpreview.providers.anthropic import AnthropicProvider
from mcpreview.providers.base import LLMRequest

API_URL = "https://api.anthropic.com/v1/messages"


def sdk_message(blocks, stop_reason="end_turn", input_tokens=40, output_tokens=60):
    return SimpleNamespace(
        content=blocks,
        stop_reason=stop_reason,
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
    )


def sdk_text(text):
    return SimpleNamespace(type="text", text=text)


def sdk_tool_use(id, name, input):
    return SimpleNamespace(type="tool_use", id=id, name=name, input=input)


def status_error(cls, status, headers=None):
    response = httpx.Response(status, headers=headers or {}, request=httpx.Request("POST", API_URL))
    return cls("error", response=response, body=None)


def make_provider(*outcomes, **kwargs):
    client = MagicMock()
    client.messages.create = AsyncMock(side_effect=list(outcomes))
    sleeps = []

    async def fake_sleep(delay):
        sleeps.append(delay)

    provider = AnthropicProvider("claude-sonnet-4-20250514", client=client, sleep=fake_sleep, **kwargs)
    return provider, client, sleeps


def request(messages=None, tools=None):
    return LLMRequest(
        model="claude-sonnet-4-20250514",
        max_tokens=2048,
        system="review carefully",
        messages=messages or [Message(role="user", content="the diff")],
        tools=tools,
    )


class TestWireFormat:
    async def test_request_parameters(self):
        provider, client, _ = make_provider(sdk_message([sdk_text("ok")]))
        tool = ToolDefinition(name="read_file", description="Read", input_schema={"type": "object"})

        await provider.call(request(tools=[tool]))

        kwargs = client.messages.create.await_args.kwargs
        assert kwargs["model"] == "claude-sonnet-4-20250514"
        assert kwargs["max_tokens"] == 2048
        assert kwargs["system"] == "review carefully"
        assert kwargs["messages"] == [{"role": "user", "content": "the diff"}]
        assert kwargs["tools"] == [{"name": "read_file", "description": "Read", "input_schema": {"type": "object"}}]

    async def test_no_tools_key_without_tools(self):
        provider, client, _ = make_provider(sdk_message([sdk_text("ok")]))

        await provider.call(request())

        assert "tools" not in client.messages.create.await_args.kwargs

    def test_block_conversion(self):
        assistant = Message(
            role="assistant",
            content=[TextBlock(text="Checking"), ToolUseBlock(id="t1", name="read_file", input={"path": "a.py"})],
        )
        results = Message(role="user", content=[ToolResultBlock(tool_use_id="t1", content="nope", is_error=True)])

        assert AnthropicProvider._to_wire(assistant) == {
            "role": "assistant",
            "content": [
                {"type": "text", "text": "Checking"},
                {"type": "tool_use", "id": "t1", "name": "read_file", "input": {"path": "a.py"}},
            ],
        }
        assert AnthropicProvider._to_wire(results) == {
            "role": "user",
            "content": [{"type": "tool_result", "tool_use_id": "t1", "content": "nope", "is_error": True}],
        }


class TestResponses:
    async def test_normalizes_text_and_tool_use(self):
        message = sdk_message(
            [
                sdk_text("Let me look"),
                sdk_tool_use("t1", "read_file", {"path": "a.py"}),
                SimpleNamespace(type="thinking", thinking="..."),
            ],
            stop_reason="tool_use",
        )
        provider, _, _ = make_provider(message)

        response = await provider.call(request())

        assert response.stop_reason == "tool_use"
        assert response.first_text() == "Let me look"
        [call] = response.tool_uses()
        assert (call.id, call.name, call.input) == ("t1", "read_file", {"path": "a.py"})
        assert response.usage.input_tokens == 40
        assert response.usage.output_tokens == 60

    @pytest.mark.parametrize(
        "raw,expected",
        [("end_turn", "end_turn"), ("max_tokens", "max_tokens"), ("stop_sequence", "unknown"), (None, "unknown")],
    )
    async def test_stop_reason_mapping(self, raw, expected):
        provider, _, _ = make_provider(sdk_message([sdk_text("x")], stop_reason=raw))

        assert (await provider.call(request())).stop_reason == expected


class TestRetries:
    async def test_rate_limit_retries_with_retry_after(self):
        provider, client, sleeps = make_provider(
            status_error(anthropic.RateLimitError, 429, {"retry-after": "3"}),
            sdk_message([sdk_text("ok")]),
            retry_base_delay=10,
        )

        response = await provider.call(request())

        assert response.first_text() == "ok"
        assert sleeps == [3]
        assert client.messages.create.await_count == 2

    async def test_backoff_doubles(self):
        provider, _, sleeps = make_provider(
            status_error(anthropic.RateLimitError, 429),
            status_error(anthropic.RateLimitError, 429),
            sdk_message([sdk_text("ok")]),
            retry_base_delay=30,
        )

        await provider.call(request())

        assert sleeps == [30, 60]

    async def test_gives_up_after_max_retries(self):
        provider, client, sleeps = make_provider(
            *[status_error(anthropic.RateLimitError, 429) for _ in range(4)],
            retry_base_delay=1,
        )

        with pytest.raises(RateLimitExhaustedError) as excinfo:
            await provider.call(request())

        assert excinfo.value.attempts == 3
        assert isinstance(excinfo.value.cause, anthropic.RateLimitError)
        assert client.messages.create.await_count == 4
        assert sleeps == [1, 2, 4]

    async def test_other_status_errors_fail_fast(self):
        provider, client, sleeps = make_provider(status_error(anthropic.InternalServerError, 500))

        with pytest.raises(ApiError) as excinfo:
            await provider.call(request())

        assert excinfo.value.status_code == 500
        assert client.messages.create.await_count == 1
        assert sleeps == []

    async def test_connection_error(self):
        error = anthropic.APIConnectionError(request=httpx.Request("POST", API_URL))
        provider, _, _ = make_provider(error)

        with pytest.raises(ApiError) as excinfo:
            await provider.call(request())

        assert excinfo.value.retryable is True


def test_sdk_client_has_retries_disabled():
    provider = AnthropicProvider("claude-sonnet-4-20250514", api_key="sk-ant-test")

    assert provider.provider_name == "anthropic"
    assert provider._client.max_retries == 0
