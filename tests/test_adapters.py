"""Tests for upstream message sources and the source registry."""

import sys
import types
from dataclasses import dataclass
from typing import Any, Optional

import pytest

from cade.adapters import claude
from cade.adapters.base import MessageSource, QueryOptions
from cade.adapters.claude import AVAILABLE_MODELS, DEFAULT_MODEL, ClaudeAgentSource, to_wire
from cade.adapters.mock import (
    MOCK_MODEL,
    ScriptedSource,
    assistant_message,
    result_message,
    tool_use_block,
)
from cade.adapters.registry import get_source, list_sources, register_source
from cade.core.decoder import MessageDecoder, SessionInit, TextChunk, ToolUse, TurnResultEvent
from cade.core.exceptions import SourceUnavailable
from conftest import collect

pytestmark = pytest.mark.unit


# Stand-ins shaped like the SDK's message dataclasses; to_wire keys on class names.

@dataclass
class SystemMessage:
    subtype: str
    data: dict


@dataclass
class TextBlock:
    text: str


@dataclass
class ToolUseBlock:
    id: str
    name: str
    input: dict


@dataclass
class AssistantMessage:
    content: list
    model: str


@dataclass
class ResultMessage:
    subtype: str
    is_error: bool
    session_id: str
    total_cost_usd: Optional[float] = None
    result: Optional[str] = None
    num_turns: int = 1


class FakeOptions:
    def __init__(self, **kwargs: Any):
        self.__dict__.update(kwargs)


def fake_sdk(messages, seen):
    """Build a module that imports like claude_agent_sdk."""
    module = types.ModuleType("claude_agent_sdk")

    async def query(prompt, options):
        seen.append((prompt, options))
        for message in messages:
            yield message

    module.query = query
    module.ClaudeAgentOptions = FakeOptions
    return module


@pytest.fixture
def reset_sdk(monkeypatch):
    monkeypatch.setattr(claude, "_sdk_query", None)
    monkeypatch.setattr(claude, "ClaudeAgentOptions", None)


class TestScriptedSource:

    @pytest.mark.asyncio
    async def test_replays_scripts_in_order(self):
        source = ScriptedSource([[assistant_message("one")], [assistant_message("two")]])

        first = await collect(source.stream("a", QueryOptions()))
        second = await collect(source.stream("b", QueryOptions()))

        assert first == [assistant_message("one")]
        assert second == [assistant_message("two")]
        assert [prompt for prompt, _ in source.calls] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_echo_when_scripts_exhausted(self):
        source = ScriptedSource()
        messages = await collect(source.stream("ping", QueryOptions(resume="s1")))

        assert messages[0]["session_id"] == "s1"
        assert messages[1]["message"]["content"] == "Mock response to: ping"
        assert messages[-1]["type"] == "result"

    @pytest.mark.asyncio
    async def test_scripted_exception_raised(self):
        source = ScriptedSource([[assistant_message("x"), ConnectionResetError("gone")]])

        received = []
        with pytest.raises(ConnectionResetError):
            async for message in source.stream("a", QueryOptions()):
                received.append(message)

        assert len(received) == 1
        assert source.streams_closed == 1

    def test_info(self):
        assert ScriptedSource().get_info() == {"name": "mock", "models": [MOCK_MODEL]}


class TestMockBuilders:

    def test_tool_use_block_generates_id(self):
        block = tool_use_block("Read")
        assert block["id"].startswith("toolu_")
        assert block["input"] == {}

    def test_assistant_mixed_content(self):
        message = assistant_message("text", tool_use_block("X", tool_use_id="t1"))
        content = message["message"]["content"]
        assert content[0] == {"type": "text", "text": "text"}
        assert content[1]["name"] == "X"

    def test_error_result_subtype(self):
        assert result_message(is_error=True)["subtype"] == "error_during_execution"


class TestRegistry:

    def test_builtin_sources_listed(self):
        sources = list_sources()
        assert "mock" in sources
        assert "claude" in sources

    def test_get_mock_source(self):
        assert isinstance(get_source("mock"), ScriptedSource)

    def test_kwargs_forwarded(self):
        source = get_source("mock", delay=0.5)
        assert source.delay == 0.5

    def test_unknown_source(self):
        with pytest.raises(ValueError, match="Unknown source: nope"):
            get_source("nope")

    def test_register_custom_source(self):
        class EmptySource(MessageSource):
            name = "empty"

            async def stream(self, prompt, options):
                return
                yield

        register_source("empty", EmptySource)
        assert isinstance(get_source("empty"), EmptySource)


class TestToWire:

    def test_dict_unchanged(self):
        raw = {"type": "assistant", "content": "x"}
        assert to_wire(raw) is raw

    def test_system_message(self):
        wire = to_wire(SystemMessage(subtype="init", data={"session_id": "s1", "model": "m"}))
        assert wire == {"session_id": "s1", "model": "m", "type": "system", "subtype": "init"}

    def test_assistant_blocks(self):
        message = AssistantMessage(
            content=[TextBlock(text="hi"), ToolUseBlock(id="t1", name="Read", input={"path": "x"})],
            model="m",
        )
        wire = to_wire(message)
        assert wire["type"] == "assistant"
        assert wire["message"]["model"] == "m"
        assert wire["message"]["content"] == [
            {"type": "text", "text": "hi"},
            {"type": "tool_use", "id": "t1", "name": "Read", "input": {"path": "x"}},
        ]

    def test_result_message(self):
        wire = to_wire(ResultMessage(subtype="success", is_error=False, session_id="s1",
                                     total_cost_usd=0.01, result="done"))
        assert wire["type"] == "result"
        assert wire["total_cost_usd"] == 0.01

    def test_decodes_after_translation(self):
        decoder = MessageDecoder()
        messages = [
            SystemMessage(subtype="init", data={"session_id": "s1", "model": "m"}),
            AssistantMessage(content=[TextBlock(text="hi"), ToolUseBlock(id="t1", name="Read", input={})],
                             model="m"),
            ResultMessage(subtype="success", is_error=False, session_id="s1",
                          total_cost_usd=0.01, result="hi"),
        ]

        events = [event for message in messages for event in decoder.decode(to_wire(message))]

        assert events == [
            SessionInit(session_id="s1", model="m"),
            TextChunk(text="hi"),
            ToolUse(name="Read", input={}, tool_use_id="t1"),
            TurnResultEvent(text="hi", cost_usd=0.01, session_id="s1", num_turns=1, subtype="success"),
        ]


class TestClaudeAgentSource:

    def test_info(self):
        info = ClaudeAgentSource().get_info()
        assert info["name"] == "claude"
        assert info["default_model"] == DEFAULT_MODEL
        assert info["models"] == AVAILABLE_MODELS

    @pytest.mark.asyncio
    async def test_missing_sdk(self, monkeypatch, reset_sdk):
        monkeypatch.setitem(sys.modules, "claude_agent_sdk", None)

        with pytest.raises(SourceUnavailable, match="pip install claude-agent-sdk"):
            await collect(ClaudeAgentSource().stream("hi", QueryOptions()))

    def test_missing_sdk_exit_code(self):
        assert SourceUnavailable("x").exit_code == 4

    def test_build_options(self, monkeypatch, reset_sdk):
        monkeypatch.setitem(sys.modules, "claude_agent_sdk", fake_sdk([], []))
        source = ClaudeAgentSource(mcp_servers={"fs": {}})

        options = source.build_options(QueryOptions(
            resume="s1", permission_mode="acceptEdits", max_turns=2, allowed_tools=["Read"],
        ))

        assert options.model == DEFAULT_MODEL
        assert options.resume == "s1"
        assert options.permission_mode == "acceptEdits"
        assert options.max_turns == 2
        assert options.allowed_tools == ["Read"]
        assert options.mcp_servers == {"fs": {}}
        assert not hasattr(options, "system_prompt")

    @pytest.mark.asyncio
    async def test_stream_translates_messages(self, monkeypatch, reset_sdk):
        seen = []
        sdk = fake_sdk([SystemMessage(subtype="init", data={"session_id": "s1"})], seen)
        monkeypatch.setitem(sys.modules, "claude_agent_sdk", sdk)

        messages = await collect(ClaudeAgentSource().stream("hello", QueryOptions(model="m")))

        assert messages == [{"session_id": "s1", "type": "system", "subtype": "init"}]
        assert seen[0][0] == "hello"
        assert seen[0][1].model == "m"
