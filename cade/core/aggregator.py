"""
Turn aggregation.

Folds the decoded events of one turn into a TurnResult. The aggregator is
the only component that carries state across raw messages: intermediate
assistant text, tool invocations awaiting their results, and the terminal
result once it arrives.
"""

import logging
import time
from enum import Enum
from typing import Callable, Optional

from .decoder import (
    DomainEvent,
    RawPassthrough,
    SessionInit,
    TextChunk,
    ToolResult,
    ToolUse,
    TurnResultEvent,
)
from .exceptions import TransportError
from .models import ERROR_PREFIX, NO_RESPONSE_PLACEHOLDER, ToolInvocation, TurnResult

logger = logging.getLogger("cade.core.aggregator")

PARAGRAPH_SEPARATOR = "\n\n"


class AggregatorState(Enum):
    AWAITING_INIT = "awaiting_init"
    STREAMING = "streaming"
    TERMINATED = "terminated"
    ERROR = "error"


TERMINAL_STATES = (AggregatorState.TERMINATED, AggregatorState.ERROR)


class ResponseAggregator:
    """Builds the result of a single turn from its domain events.

    Tool results are matched to invocations first-in-first-out per tool
    name: the first invocation of that name still lacking a result wins.
    A result that only carries a tool_use_id uses the id to learn the
    name. Two interleaved calls to the same tool can therefore be paired
    with each other's outputs.
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        model: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.state = AggregatorState.AWAITING_INIT
        self.continuation_id = session_id
        self.init_session_id: Optional[str] = None
        self.model = model
        self.current_text = ""
        self.intermediate_messages: list[str] = []
        self.tools: list[ToolInvocation] = []
        self.terminal: Optional[TurnResultEvent] = None
        self.error: Optional[str] = None
        self._clock = clock
        self._names_by_id: dict[str, str] = {}

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def session_id(self) -> Optional[str]:
        """Best known session id: terminal result, then init, then continuation."""
        if self.terminal is not None and self.terminal.session_id:
            return self.terminal.session_id
        return self.init_session_id or self.continuation_id

    def apply(self, event: DomainEvent) -> Optional[ToolInvocation]:
        """Fold one event into the turn state.

        Returns the created or updated ToolInvocation for ToolUse and
        ToolResult events, None otherwise.
        """
        if self.done:
            logger.debug(f"Ignoring {event.kind} after turn {self.state.value}")
            return None

        if isinstance(event, SessionInit):
            self.init_session_id = event.session_id
            if event.model:
                self.model = event.model
            self._start()

        elif isinstance(event, TextChunk):
            self._start()
            if event.text:
                self.current_text = event.text
                self.intermediate_messages.append(event.text)

        elif isinstance(event, ToolUse):
            self._start()
            return self._record_tool_use(event)

        elif isinstance(event, ToolResult):
            return self._record_tool_result(event)

        elif isinstance(event, TurnResultEvent):
            self.terminal = event
            self.state = AggregatorState.TERMINATED
            logger.debug(f"Turn terminated: {event.subtype or 'result'}, cost ${event.cost_usd:.4f}")

        elif isinstance(event, RawPassthrough):
            pass

        return None

    def fail(self, exc: BaseException, messages_received: int = 0) -> None:
        """Upstream raised before a terminal result was observed."""
        if self.state is AggregatorState.TERMINATED:
            logger.warning(f"Upstream error after terminal result ignored: {exc}")
            return
        self.error = str(TransportError(cause=exc, messages_received=messages_received))
        self.state = AggregatorState.ERROR

    def finish(self) -> None:
        """Upstream ended. A stream without a terminal result is accepted as truncated."""
        if not self.done:
            logger.warning("Upstream ended without a result message; using partial text")
            self.state = AggregatorState.TERMINATED

    def result(self) -> TurnResult:
        """Build the caller-facing result from everything collected so far."""
        joined = PARAGRAPH_SEPARATOR.join(self.intermediate_messages)
        terminal = self.terminal
        error: Optional[str] = None

        if self.state is AggregatorState.ERROR:
            error = self.error
            response = joined or f"{ERROR_PREFIX}{error}"
        elif terminal is not None and terminal.is_error:
            error = terminal.text or terminal.subtype or "Query failed"
            response = joined or f"{ERROR_PREFIX}{error}"
        elif terminal is not None:
            response = self._merge_final_text(joined, terminal.text)
        else:
            response = joined

        return TurnResult(
            response=response or NO_RESPONSE_PLACEHOLDER,
            session_id=self.session_id,
            cost_usd=terminal.cost_usd if terminal is not None else 0.0,
            tools_used=list(self.tools),
            num_turns=terminal.num_turns if terminal is not None else 0,
            model=self.model,
            error=error,
        )

    def _merge_final_text(self, joined: str, final_text: str) -> str:
        if not self.intermediate_messages:
            return final_text
        # The terminal result usually echoes the last assistant message
        if final_text and final_text != self.intermediate_messages[-1]:
            return f"{joined}{PARAGRAPH_SEPARATOR}{final_text}"
        return joined

    def _start(self) -> None:
        if self.state is AggregatorState.AWAITING_INIT:
            self.state = AggregatorState.STREAMING

    def _record_tool_use(self, event: ToolUse) -> ToolInvocation:
        invocation = ToolInvocation(
            name=event.name,
            input=event.input,
            tool_use_id=event.tool_use_id,
            requested_at=self._clock(),
        )
        self.tools.append(invocation)
        if event.tool_use_id:
            self._names_by_id[event.tool_use_id] = event.name
        return invocation

    def _record_tool_result(self, event: ToolResult) -> Optional[ToolInvocation]:
        name = event.name
        if name is None and event.tool_use_id:
            name = self._names_by_id.get(event.tool_use_id)

        pending = [tool for tool in self.tools if not tool.completed]
        if name is not None:
            pending = [tool for tool in pending if tool.name == name]

        if not pending:
            logger.warning(
                f"Tool result without pending invocation: {name or event.tool_use_id or 'unknown'}"
            )
            return None

        invocation = pending[0]
        invocation.output = event.output
        invocation.is_error = event.is_error
        invocation.completed_at = self._clock()
        return invocation
