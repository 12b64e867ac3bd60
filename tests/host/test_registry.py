"""Tests for the tool registry."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from mcpreview.errors import ToolServerError, TransportTimeoutError
from mcpreview.host.registry import NO_CONTENT, ToolRegistry, cache_key
from mcpreview.host.schema import ToolCallRequest, ToolCapability


def fake_transport(tools, call_result=None):
    """A transport double answering tools/list and tools/call."""
    transport = MagicMock()
    transport.stop = AsyncMock()

    async def request(method, params=None, timeout=None):
        if method == "tools/list":
            return {"tools": tools}
        if isinstance(call_result, Exception):
            raise call_result
        if callable(call_result):
            return call_result(params)
        return call_result

    transport.request = AsyncMock(side_effect=request)
    return transport


def text_content(text, is_error=False):
    result = {"content": [{"type": "text", "text": text}]}
    if is_error:
        result["isError"] = True
    return result


class TestRegistration:
    async def test_register_server_discovers_tools(self):
        registry = ToolRegistry()
        transport = fake_transport(
            [
                {"name": "read_file", "description": "Read a file", "inputSchema": {"type": "object"}},
                {"name": "bare"},
            ]
        )

        capabilities = await registry.register_server("file-context", transport)

        transport.request.assert_awaited_once_with("tools/list", {})
        assert [c.name for c in capabilities] == ["read_file", "bare"]
        bare = capabilities[1]
        assert bare.description == ""
        assert bare.input_schema == {}
        assert registry.server_for("read_file") == "file-context"
        assert registry.get_server_names() == ["file-context"]

    async def test_name_collision_last_registration_wins(self, caplog):
        registry = ToolRegistry()
        await registry.register_server("one", fake_transport([{"name": "shared"}]))
        await registry.register_server("two", fake_transport([{"name": "shared"}, {"name": "only_two"}]))

        assert registry.server_for("shared") == "two"
        names = [t.name for t in registry.get_available_tools()]
        assert sorted(names) == ["only_two", "shared"]
        assert "replaces the one registered by one" in caplog.text

    def test_manual_registration(self):
        registry = ToolRegistry()
        registry.register_tool_manually("test", ToolCapability(name="t", description="d"))

        assert [t.name for t in registry.get_available_tools()] == ["t"]
        assert registry.server_for("t") == "test"


class TestCallTool:
    async def test_unknown_tool_is_error_result(self):
        registry = ToolRegistry()
        result = await registry.call_tool(ToolCallRequest(name="missing", arguments={}))

        assert result.is_error is True
        assert result.content == "Unknown tool: missing"

    async def test_manual_tool_returns_placeholder(self):
        registry = ToolRegistry()
        registry.register_tool_manually("test", ToolCapability(name="t"))

        result = await registry.call_tool(ToolCallRequest(name="t", arguments={"a": 1}))

        assert result.is_error is False
        assert result.content == 'Tool t called with {"a": 1}'

    async def test_dispatch_joins_text_parts(self):
        registry = ToolRegistry()
        transport = fake_transport(
            [{"name": "read_file"}],
            {"content": [{"type": "text", "text": "a"}, {"type": "image", "data": "x"}, {"type": "text", "text": "b"}]},
        )
        await registry.register_server("fc", transport)

        result = await registry.call_tool(ToolCallRequest(name="read_file", arguments={"path": "x"}))

        assert result.content == "a\nb"
        transport.request.assert_awaited_with("tools/call", {"name": "read_file", "arguments": {"path": "x"}})

    async def test_empty_content_marker(self):
        registry = ToolRegistry()
        await registry.register_server("fc", fake_transport([{"name": "read_file"}], {"content": []}))

        result = await registry.call_tool(ToolCallRequest(name="read_file"))

        assert result.content == NO_CONTENT

    @pytest.mark.parametrize("raw", [{"content": None}, {"content": "text"}, ["not", "a", "dict"], None])
    async def test_malformed_result_becomes_no_content(self, raw):
        registry = ToolRegistry()
        await registry.register_server("fc", fake_transport([{"name": "read_file"}], raw))

        result = await registry.call_tool(ToolCallRequest(name="read_file", arguments={"path": "x"}))

        assert result.content == NO_CONTENT
        assert result.is_error is False

    async def test_error_flag_propagates(self):
        registry = ToolRegistry()
        await registry.register_server("fc", fake_transport([{"name": "read_file"}], text_content("nope", True)))

        result = await registry.call_tool(ToolCallRequest(name="read_file", arguments={"path": "x"}))

        assert result.is_error is True
        assert result.content == "nope"

    async def test_transport_failure_raises_tool_server_error(self):
        registry = ToolRegistry()
        await registry.register_server(
            "git-diff", fake_transport([{"name": "get_diff"}], TransportTimeoutError("tools/call", 30))
        )

        with pytest.raises(ToolServerError) as excinfo:
            await registry.call_tool(ToolCallRequest(name="get_diff", arguments={"range": "HEAD~1..HEAD"}))

        assert excinfo.value.server_name == "git-diff"
        assert isinstance(excinfo.value.cause, TransportTimeoutError)


class TestCaching:
    async def test_cacheable_tool_hits_server_once(self):
        registry = ToolRegistry()
        transport = fake_transport([{"name": "read_file"}], lambda p: text_content(p["arguments"]["path"]))
        await registry.register_server("fc", transport)

        first = await registry.call_tool(ToolCallRequest(name="read_file", arguments={"path": "a.py"}))
        second = await registry.call_tool(ToolCallRequest(name="read_file", arguments={"path": "a.py"}))

        assert first == second
        assert registry.cache_hits == 1
        # one tools/list + one tools/call
        assert transport.request.await_count == 2

    async def test_cache_key_ignores_argument_order(self):
        assert cache_key("t", {"a": 1, "b": 2}) == cache_key("t", {"b": 2, "a": 1})

        registry = ToolRegistry()
        transport = fake_transport([{"name": "read_lines"}], text_content("lines"))
        await registry.register_server("fc", transport)

        await registry.call_tool(ToolCallRequest(name="read_lines", arguments={"path": "a", "start_line": 1}))
        await registry.call_tool(ToolCallRequest(name="read_lines", arguments={"start_line": 1, "path": "a"}))

        assert registry.cache_hits == 1

    async def test_different_arguments_are_not_shared(self):
        registry = ToolRegistry()
        transport = fake_transport([{"name": "read_file"}], lambda p: text_content(p["arguments"]["path"]))
        await registry.register_server("fc", transport)

        a = await registry.call_tool(ToolCallRequest(name="read_file", arguments={"path": "a.py"}))
        b = await registry.call_tool(ToolCallRequest(name="read_file", arguments={"path": "b.py"}))

        assert (a.content, b.content) == ("a.py", "b.py")
        assert registry.cache_hits == 0

    async def test_error_results_are_not_cached(self):
        registry = ToolRegistry()
        transport = fake_transport([{"name": "read_file"}], text_content("missing", True))
        await registry.register_server("fc", transport)

        await registry.call_tool(ToolCallRequest(name="read_file", arguments={"path": "x"}))
        await registry.call_tool(ToolCallRequest(name="read_file", arguments={"path": "x"}))

        assert registry.cache_hits == 0
        assert transport.request.await_count == 3

    async def test_non_cacheable_tool_always_dispatches(self):
        registry = ToolRegistry()
        transport = fake_transport([{"name": "find_similar_patterns"}], text_content("matches"))
        await registry.register_server("conventions", transport)

        for _ in range(2):
            await registry.call_tool(ToolCallRequest(name="find_similar_patterns", arguments={"pattern": "x"}))

        assert not registry.is_cacheable("find_similar_patterns")
        assert registry.cache_hits == 0
        assert transport.request.await_count == 3

    async def test_custom_allow_list(self):
        registry = ToolRegistry(cacheable_tools=["find_similar_patterns"])

        assert registry.is_cacheable("find_similar_patterns")
        assert not registry.is_cacheable("read_file")


class TestShutdown:
    async def test_shutdown_stops_transports_and_clears_state(self):
        registry = ToolRegistry()
        good = fake_transport([{"name": "read_file"}], text_content("x"))
        bad = fake_transport([{"name": "get_diff"}])
        bad.stop = AsyncMock(side_effect=RuntimeError("already dead"))
        await registry.register_server("fc", good)
        await registry.register_server("git", bad)
        await registry.call_tool(ToolCallRequest(name="read_file", arguments={"path": "x"}))

        await registry.shutdown()

        good.stop.assert_awaited_once()
        bad.stop.assert_awaited_once()
        assert registry.get_available_tools() == []
        assert registry.get_server_names() == []

        # cache is gone with the servers
        result = await registry.call_tool(ToolCallRequest(name="read_file", arguments={"path": "x"}))
        assert result.is_error is True

    async def test_shutdown_twice_is_harmless(self):
        registry = ToolRegistry()
        await registry.shutdown()
        await registry.shutdown()
