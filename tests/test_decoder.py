"""Tests for MessageDecoder - raw upstream message classification."""

from types import SimpleNamespace

import pytest

from cade.adapters.mock import (
    assistant_message,
    init_message,
    legacy_tool_use_message,
    result_message,
    text_block,
    tool_result_message,
    tool_use_block,
)
from cade.core.decoder import (
    MessageDecoder,
    RawPassthrough,
    SessionInit,
    TextChunk,
    ToolResult,
    ToolUse,
    TurnResultEvent,
    _get_field,
    _get_tool_name,
    message_type,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def decoder():
    return MessageDecoder()


class TestGetField:
    """Tests for _get_field helper function."""

    def test_get_field_from_object(self):
        """Test extracting field from object attribute."""
        assert _get_field(SimpleNamespace(foo="bar"), "foo") == "bar"

    def test_get_field_from_dict(self):
        """Test extracting field from dict."""
        assert _get_field({"foo": "bar"}, "foo") == "bar"

    def test_get_field_multiple_keys(self):
        """Test fallback to second key."""
        assert _get_field({"sessionId": "s1"}, "session_id", "sessionId") == "s1"

    def test_get_field_default(self):
        assert _get_field({}, "missing", default="default") == "default"

    def test_get_field_none_data(self):
        assert _get_field(None, "foo", default="safe") == "safe"

    def test_get_tool_name_fallbacks(self):
        assert _get_tool_name({"name": "Read"}) == "Read"
        assert _get_tool_name({"tool_name": "Bash"}) == "Bash"
        assert _get_tool_name({}) == "unknown"


class TestMessageType:
    """Tests for the audit message_type discriminator."""

    def test_system_subtype_included(self):
        assert message_type(init_message("s1")) == "system/init"

    def test_plain_type(self):
        assert message_type(assistant_message("hi")) == "assistant"

    def test_missing_type(self):
        assert message_type({"foo": 1}) == "unknown"


class TestSystemInit:

    def test_init_becomes_session_init(self, decoder):
        events = decoder.decode(init_message("s1", model="claude-x"))
        assert events == [SessionInit(session_id="s1", model="claude-x")]

    def test_other_system_subtypes_pass_through(self, decoder):
        raw = {"type": "system", "subtype": "compact_boundary"}
        events = decoder.decode(raw)
        assert events == [RawPassthrough(payload=raw)]


class TestAssistantMessages:

    def test_string_content(self, decoder):
        events = decoder.decode(assistant_message("hi there"))
        assert events == [TextChunk(text="hi there")]

    def test_top_level_content(self, decoder):
        """Older transports put content directly on the message."""
        events = decoder.decode({"type": "assistant", "content": "flat"})
        assert events == [TextChunk(text="flat")]

    def test_block_order_preserved(self, decoder):
        """[text A, tool_use X, text B, tool_use Y] decodes in the same order."""
        raw = assistant_message(
            text_block("A"),
            tool_use_block("X", {"n": 1}, tool_use_id="tx"),
            text_block("B"),
            tool_use_block("Y", {"n": 2}, tool_use_id="ty"),
        )
        events = decoder.decode(raw)
        assert events == [
            TextChunk(text="A"),
            ToolUse(name="X", input={"n": 1}, tool_use_id="tx"),
            TextChunk(text="B"),
            ToolUse(name="Y", input={"n": 2}, tool_use_id="ty"),
        ]

    def test_unknown_blocks_skipped(self, decoder):
        raw = assistant_message({"type": "thinking", "thinking": "hmm"}, text_block("answer"))
        assert decoder.decode(raw) == [TextChunk(text="answer")]

    def test_thinking_only_passes_through(self, decoder):
        raw = assistant_message({"type": "thinking", "thinking": "hmm"})
        assert decoder.decode(raw) == [RawPassthrough(payload=raw)]

    def test_attribute_style_message(self, decoder):
        """SDK objects are read through attributes."""
        block = SimpleNamespace(type="tool_use", id="t1", name="Read", input={"path": "x"})
        raw = SimpleNamespace(type="assistant", message=SimpleNamespace(content=[block]))
        assert decoder.decode(raw) == [ToolUse(name="Read", input={"path": "x"}, tool_use_id="t1")]

    def test_malformed_content_passes_through(self, decoder):
        raw = {"type": "assistant", "message": {"content": 42}}
        assert decoder.decode(raw) == [RawPassthrough(payload=raw)]


class TestToolMessages:

    def test_legacy_tool_use(self, decoder):
        events = decoder.decode(legacy_tool_use_message("write_file", {"path": "a.txt"}))
        assert events == [ToolUse(name="write_file", input={"path": "a.txt"})]

    def test_legacy_tool_use_with_output(self, decoder):
        events = decoder.decode(legacy_tool_use_message("ls", {}, output="a b"))
        assert events == [
            ToolUse(name="ls", input={}),
            ToolResult(output="a b", name="ls"),
        ]

    def test_tool_result_blocks(self, decoder):
        raw = {
            "type": "user",
            "message": {"content": [
                {"type": "tool_result", "tool_use_id": "t1", "content": "ok"},
                {"type": "text", "text": "ignored"},
                {"type": "tool_result", "tool_use_id": "t2", "content": "boom", "is_error": True},
            ]},
        }
        events = decoder.decode(raw)
        assert events == [
            ToolResult(output="ok", tool_use_id="t1"),
            ToolResult(output="boom", is_error=True, tool_use_id="t2"),
        ]

    def test_tool_result_name_kept_when_present(self, decoder):
        events = decoder.decode(tool_result_message("t1", "ok", name="write_file"))
        assert events[0].name == "write_file"

    def test_user_text_passes_through(self, decoder):
        raw = {"type": "user", "message": {"content": "plain prompt echo"}}
        assert decoder.decode(raw) == [RawPassthrough(payload=raw)]


class TestResultMessages:

    def test_success_result(self, decoder):
        raw = result_message("hi there", session_id="s1", cost_usd=0.002, num_turns=2)
        event = decoder.decode(raw)[0]
        assert event == TurnResultEvent(
            text="hi there", cost_usd=0.002, session_id="s1", num_turns=2,
            is_error=False, subtype="success",
        )

    def test_error_subtype_sets_flag(self, decoder):
        """error_max_turns carries is_error=False on some backends."""
        raw = {"type": "result", "subtype": "error_max_turns", "is_error": False}
        event = decoder.decode(raw)[0]
        assert event.is_error is True
        assert event.text == ""

    def test_missing_cost_defaults_to_zero(self, decoder):
        event = decoder.decode({"type": "result", "result": "x"})[0]
        assert event.cost_usd == 0.0


class TestForwardCompatibility:

    def test_unknown_type_passes_through(self, decoder):
        raw = {"type": "stream_event", "event": {"delta": "x"}}
        assert decoder.decode(raw) == [RawPassthrough(payload=raw)]

    def test_non_message_value_passes_through(self, decoder):
        assert decoder.decode("garbage") == [RawPassthrough(payload="garbage")]

    def test_decode_is_idempotent(self, decoder):
        raw = assistant_message(text_block("A"), tool_use_block("X", tool_use_id="t1"))
        assert decoder.decode(raw) == decoder.decode(raw)
