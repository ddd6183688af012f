"""
Upstream message decoding.

Turns one raw upstream message into zero or more domain events. Raw
messages may be plain dicts (wire JSON) or SDK objects, and their field
names drift between backend versions, so every lookup goes through
_get_field. Decoding is stateless: the same raw message always yields
structurally identical events.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from .logging import TRACE

logger = logging.getLogger("cade.core.decoder")


def _get_field(data: Any, *keys: str, default: Any = None) -> Any:
    """Extract a field from data, trying multiple attribute/key names.

    Handles both object attributes and dict-like access patterns, which is
    important because upstream messages may come as either depending on
    SDK version.

    Args:
        data: Raw message or block (object or dict)
        *keys: Attribute/key names to try in order
        default: Value to return if no key is found

    Returns:
        The first found value, or default if none found
    """
    if data is None:
        return default

    for key in keys:
        if isinstance(data, dict):
            val = data.get(key)
        else:
            val = getattr(data, key, None)
        if val is not None:
            return val

    return default


def _get_tool_name(data: Any) -> str:
    """Extract tool name from a tool_use message or block.

    Tool name can appear in:
    - data.name (Anthropic wire format)
    - data.tool_name (hook payloads)
    - data.tool (short name)

    Returns:
        Tool name string, or "unknown" if not found
    """
    return _get_field(data, "name", "tool_name", "tool", default="unknown")


def message_type(raw: Any) -> str:
    """Discriminator used for audit records, e.g. "assistant" or "system/init"."""
    kind = _get_field(raw, "type", default="unknown")
    subtype = _get_field(raw, "subtype")
    if kind == "system" and subtype:
        return f"system/{subtype}"
    return str(kind)


# Domain events

@dataclass(frozen=True)
class SessionInit:
    session_id: Optional[str]
    model: Optional[str] = None

    kind = "session_init"


@dataclass(frozen=True)
class TextChunk:
    text: str

    kind = "text"


@dataclass(frozen=True)
class ToolUse:
    name: str
    input: Any = None
    tool_use_id: Optional[str] = None

    kind = "tool_use"


@dataclass(frozen=True)
class ToolResult:
    """Output of a tool call.

    name is None when the upstream block carries only a tool_use_id; the
    aggregator resolves it against the pending tool uses of the turn.
    """
    output: Any
    name: Optional[str] = None
    is_error: bool = False
    tool_use_id: Optional[str] = None

    kind = "tool_result"


@dataclass(frozen=True)
class TurnResultEvent:
    """Terminal upstream result. Absorbed by the aggregator, never forwarded."""
    text: str = ""
    cost_usd: float = 0.0
    session_id: Optional[str] = None
    num_turns: int = 0
    is_error: bool = False
    subtype: Optional[str] = None

    kind = "turn_result"


@dataclass(frozen=True)
class RawPassthrough:
    payload: Any

    kind = "passthrough"


DomainEvent = Union[SessionInit, TextChunk, ToolUse, ToolResult, TurnResultEvent, RawPassthrough]


class MessageDecoder:
    """Classifies raw upstream messages into domain events.

    Unknown message kinds are forwarded as RawPassthrough so newer backends
    never break a conversation.
    """

    def decode(self, raw: Any) -> list[DomainEvent]:
        try:
            return self._decode(raw)
        except (TypeError, AttributeError, KeyError, ValueError) as e:
            logger.warning(f"Malformed {message_type(raw)} message treated as passthrough: {e}")
            return [RawPassthrough(payload=raw)]

    def _decode(self, raw: Any) -> list[DomainEvent]:
        kind = _get_field(raw, "type")
        subtype = _get_field(raw, "subtype")

        if kind == "system" and subtype == "init":
            return [SessionInit(
                session_id=_get_field(raw, "session_id", "sessionId"),
                model=_get_field(raw, "model"),
            )]

        if kind == "assistant":
            return self._decode_assistant(raw)

        if kind == "tool_use":
            return self._decode_legacy_tool_use(raw)

        if kind == "user":
            events = self._decode_tool_results(raw)
            if events:
                return events

        elif kind == "result":
            return [self._decode_result(raw)]

        if logger.isEnabledFor(TRACE):
            logger.log(TRACE, f"Passthrough message: {message_type(raw)}")
        return [RawPassthrough(payload=raw)]

    def _content(self, raw: Any) -> Any:
        # Wire format nests the API message under "message"; older shapes
        # put content at the top level.
        message = _get_field(raw, "message")
        content = _get_field(message, "content")
        if content is None:
            content = _get_field(raw, "content")
        return content

    def _decode_assistant(self, raw: Any) -> list[DomainEvent]:
        content = self._content(raw)

        if isinstance(content, str):
            return [TextChunk(text=content)]

        events: list[DomainEvent] = []
        if isinstance(content, (list, tuple)):
            for block in content:
                block_type = _get_field(block, "type")
                if block_type == "text":
                    events.append(TextChunk(text=_get_field(block, "text", default="")))
                elif block_type == "tool_use":
                    events.append(ToolUse(
                        name=_get_tool_name(block),
                        input=_get_field(block, "input", "arguments", default={}),
                        tool_use_id=_get_field(block, "id", "tool_use_id"),
                    ))
                elif logger.isEnabledFor(TRACE):
                    logger.log(TRACE, f"Skipped assistant block: {block_type}")
        elif content is not None:
            raise TypeError(f"assistant content must be str or list, got {type(content).__name__}")

        if not events:
            return [RawPassthrough(payload=raw)]
        return events

    def _decode_legacy_tool_use(self, raw: Any) -> list[DomainEvent]:
        tool_use = ToolUse(
            name=_get_tool_name(raw),
            input=_get_field(raw, "input", "args", "arguments", default={}),
            tool_use_id=_get_field(raw, "id", "tool_use_id"),
        )
        output = _get_field(raw, "output", "result")
        if output is None:
            return [tool_use]
        return [tool_use, ToolResult(
            output=output,
            name=tool_use.name,
            is_error=bool(_get_field(raw, "is_error", default=False)),
            tool_use_id=tool_use.tool_use_id,
        )]

    def _decode_tool_results(self, raw: Any) -> list[DomainEvent]:
        content = self._content(raw)
        if not isinstance(content, (list, tuple)):
            return []

        events: list[DomainEvent] = []
        for block in content:
            if _get_field(block, "type") != "tool_result":
                continue
            events.append(ToolResult(
                output=_get_field(block, "content", "output"),
                name=_get_field(block, "name", "tool_name"),
                is_error=bool(_get_field(block, "is_error", default=False)),
                tool_use_id=_get_field(block, "tool_use_id", "id"),
            ))
        return events

    def _decode_result(self, raw: Any) -> TurnResultEvent:
        subtype = _get_field(raw, "subtype")
        is_error = bool(_get_field(raw, "is_error", default=False))
        if isinstance(subtype, str) and subtype.startswith("error"):
            is_error = True
        return TurnResultEvent(
            text=_get_field(raw, "result", default="") or "",
            cost_usd=float(_get_field(raw, "total_cost_usd", "cost_usd", default=0.0) or 0.0),
            session_id=_get_field(raw, "session_id", "sessionId"),
            num_turns=int(_get_field(raw, "num_turns", default=0) or 0),
            is_error=is_error,
            subtype=subtype,
        )
