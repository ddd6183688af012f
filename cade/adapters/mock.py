"""
Mock source for testing and development.

Replays scripted upstream messages. A script is a list of raw messages for
one turn; an exception instance placed in a script is raised at that point
to simulate a transport failure mid-stream.
"""

import asyncio
import uuid
from typing import Any, AsyncIterator, Optional

from .base import MessageSource, QueryOptions

MOCK_MODEL = "mock-model"


def init_message(session_id: str, model: str = MOCK_MODEL, **extra: Any) -> dict:
    return {"type": "system", "subtype": "init", "session_id": session_id, "model": model, **extra}


def text_block(text: str) -> dict:
    return {"type": "text", "text": text}


def tool_use_block(name: str, tool_input: Any = None, tool_use_id: Optional[str] = None) -> dict:
    return {
        "type": "tool_use",
        "id": tool_use_id or f"toolu_{uuid.uuid4().hex[:12]}",
        "name": name,
        "input": tool_input if tool_input is not None else {},
    }


def assistant_message(*content: Any) -> dict:
    """Assistant message; a single str argument becomes plain string content."""
    if len(content) == 1 and isinstance(content[0], str):
        body: Any = content[0]
    else:
        body = [text_block(c) if isinstance(c, str) else c for c in content]
    return {"type": "assistant", "message": {"role": "assistant", "content": body}}


def tool_result_message(
    tool_use_id: str,
    output: Any,
    is_error: bool = False,
    name: Optional[str] = None,
) -> dict:
    block = {"type": "tool_result", "tool_use_id": tool_use_id, "content": output, "is_error": is_error}
    if name is not None:
        block["name"] = name
    return {"type": "user", "message": {"role": "user", "content": [block]}}


def legacy_tool_use_message(name: str, tool_input: Any = None, output: Any = None) -> dict:
    """Top-level tool_use message used by older transports."""
    message = {"type": "tool_use", "name": name, "input": tool_input if tool_input is not None else {}}
    if output is not None:
        message["output"] = output
    return message


def result_message(
    text: str = "",
    session_id: Optional[str] = None,
    cost_usd: float = 0.0,
    num_turns: int = 1,
    is_error: bool = False,
    subtype: Optional[str] = None,
) -> dict:
    return {
        "type": "result",
        "subtype": subtype or ("error_during_execution" if is_error else "success"),
        "is_error": is_error,
        "result": text,
        "session_id": session_id,
        "total_cost_usd": cost_usd,
        "num_turns": num_turns,
        "duration_ms": 0,
    }


class ScriptedSource(MessageSource):
    """Mock source that replays scripted turns.

    Each stream() call consumes the next script. When the scripts run out
    (or none were given) an echo turn is generated from the prompt.
    """

    name = "mock"

    def __init__(self, scripts: Optional[list[list[Any]]] = None, delay: float = 0.0):
        """
        Initialize mock source.

        Args:
            scripts: One list of raw messages (or exceptions) per turn
            delay: Simulated delay before each message, in seconds
        """
        self.scripts = list(scripts or [])
        self.delay = delay
        self.calls: list[tuple[str, QueryOptions]] = []
        self.streams_closed = 0
        self.messages_sent = 0

    def stream(self, prompt: str, options: QueryOptions) -> AsyncIterator[Any]:
        self.calls.append((prompt, options))
        turn = len(self.calls) - 1
        if turn < len(self.scripts):
            script = self.scripts[turn]
        else:
            script = self._echo_script(prompt, options)
        return self._replay(script)

    async def _replay(self, script: list[Any]) -> AsyncIterator[Any]:
        try:
            for item in script:
                if self.delay:
                    await asyncio.sleep(self.delay)
                if isinstance(item, BaseException):
                    raise item
                self.messages_sent += 1
                yield item
        finally:
            self.streams_closed += 1

    def _echo_script(self, prompt: str, options: QueryOptions) -> list[Any]:
        session_id = options.resume or str(uuid.uuid4())[:8]
        reply = f"Mock response to: {prompt}"
        return [
            init_message(session_id, options.model or MOCK_MODEL),
            assistant_message(reply),
            result_message(reply, session_id=session_id),
        ]

    def get_available_models(self) -> list[str]:
        return [MOCK_MODEL]
