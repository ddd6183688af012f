"""
Conversation session management.

SessionManager owns the conversation history and current session id and
exposes converse(), an async generator that drives one turn against an
upstream MessageSource:

    raw message -> audit -> decode -> hooks -> aggregate -> yield

Every raw message and state transition is written to the audit log before
the corresponding event is yielded. Upstream failures never escape
converse(); the caller always receives a final TurnResult.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Optional, Union

from ..adapters.base import QueryOptions
from .aggregator import ResponseAggregator
from .audit import AuditLog
from .config import PERMISSION_MODES, Config, SessionConfig, get_audit_directory, load_config
from .decoder import (
    DomainEvent,
    MessageDecoder,
    RawPassthrough,
    SessionInit,
    TextChunk,
    ToolResult,
    ToolUse,
    TurnResultEvent,
    message_type,
)
from .exceptions import EmptyMessageError
from .hooks import HookPipeline, PartialHook, ToolHook
from .logging import get_session_logger
from .models import ConversationTurn, Role, Session, TurnResult

if TYPE_CHECKING:
    from ..adapters.base import MessageSource

INTERNAL = "internal"


@dataclass
class ConverseOptions:
    """Per-call options for converse().

    Attributes:
        session_id: Session to continue; defaults to the manager's current one
        on_tool_use: Called as (tool_name, input) before each tool use is tracked
        on_partial_message: Called with each intermediate assistant message
        permission_mode: Overrides SessionConfig.permission_mode for this call
        max_turns: Overrides SessionConfig.max_turns for this call
        allowed_tools: Overrides SessionConfig.allowed_tools for this call
    """
    session_id: Optional[str] = None
    on_tool_use: Optional[ToolHook] = None
    on_partial_message: Optional[PartialHook] = None
    permission_mode: Optional[str] = None
    max_turns: Optional[int] = None
    allowed_tools: Optional[list[str]] = None


@asynccontextmanager
async def _scoped(stream: Any, on_close_error: Optional[Callable[[Exception], None]] = None):
    """Close an async iterator on every exit path, if it supports aclose().

    Errors raised while closing are passed to on_close_error when given,
    and re-raised otherwise.
    """
    try:
        yield stream
    finally:
        aclose = getattr(stream, "aclose", None)
        if aclose is not None:
            try:
                await aclose()
            except Exception as e:
                if on_close_error is None:
                    raise
                on_close_error(e)


class SessionManager:
    """Drives multi-turn conversations against one upstream source.

    Turns must be serialized: starting a second converse() before the
    first finishes interleaves history appends.
    """

    def __init__(
        self,
        source: "MessageSource",
        config: Optional[SessionConfig] = None,
        audit: Optional[AuditLog] = None,
        audit_dir: Optional[Union[str, Path]] = None,
        hooks: Optional[HookPipeline] = None,
        decoder: Optional[MessageDecoder] = None,
    ):
        self.source = source
        self.config = config or SessionConfig()
        if audit is None:
            audit = AuditLog(audit_dir or get_audit_directory())
        self.audit = audit.open()
        self.hooks = hooks or HookPipeline()
        self.decoder = decoder or MessageDecoder()
        self.session = Session()
        self.logger = get_session_logger("cade.core.session")

    @classmethod
    def from_config(
        cls,
        config: Optional[Config] = None,
        source: Optional["MessageSource"] = None,
        **kwargs: Any,
    ) -> "SessionManager":
        """Build a manager from .cade.yaml settings."""
        from ..adapters.registry import get_source

        config = config or load_config()
        if source is None:
            source = get_source(config.defaults.source)
        kwargs.setdefault("audit", AuditLog(config.audit.directory))
        return cls(source, config=config.session, **kwargs)

    @property
    def session_id(self) -> Optional[str]:
        return self.session.id

    def register_pre_hook(self, hook: ToolHook) -> None:
        self.hooks.register_pre(hook)

    def register_post_hook(self, hook: ToolHook) -> None:
        self.hooks.register_post(hook)

    def get_history(self) -> tuple[ConversationTurn, ...]:
        """Read-only snapshot of the conversation so far."""
        return tuple(self.session.history)

    def clear_history(self) -> None:
        """Forget history and session id. The audit log is left intact."""
        previous = self.session.id
        self.session = Session()
        self.audit.record("history_cleared", INTERNAL, {"previous_session_id": previous})
        self.logger.update_context(session_id=None, turn=None)
        self.logger.info("History cleared")

    async def converse(
        self,
        user_message: str,
        options: Optional[ConverseOptions] = None,
    ) -> AsyncIterator[Union[DomainEvent, TurnResult]]:
        """Run one turn, yielding decoded events and then the final TurnResult.

        Yields SessionInit, TextChunk, ToolUse, ToolResult and RawPassthrough
        events in upstream order, followed by exactly one TurnResult.
        Messages arriving after the upstream result are audited but not
        forwarded and fire no hooks; only RawPassthrough still reaches the
        caller. Errors from closing the upstream are logged and audited,
        never raised.

        Raises:
            EmptyMessageError: user_message is empty or whitespace
            ValueError: unknown permission mode
        """
        if not user_message or not user_message.strip():
            raise EmptyMessageError(user_message or "")
        options = options or ConverseOptions()
        resume = options.session_id or self.session.id
        query_options = self._query_options(options, resume)

        turn_number = self.session.turn_count + 1
        self.logger.update_context(session_id=resume, turn=turn_number)
        self._append_turn(ConversationTurn(role=Role.USER, text=user_message), resume)
        self.audit.record(
            "turn_start", INTERNAL,
            {
                "turn": turn_number,
                "resume": resume,
                "model": query_options.model,
                "permission_mode": query_options.permission_mode,
                "max_turns": query_options.max_turns,
                "allowed_tools": query_options.allowed_tools,
            },
            session_id=resume,
        )

        aggregator = ResponseAggregator(session_id=resume, model=query_options.model)
        hooks = self.hooks.with_callbacks(options.on_tool_use, options.on_partial_message)
        received = 0
        completed = False

        try:
            try:
                stream = self.source.stream(user_message, query_options)
            except Exception as e:
                self._record_transport_error(aggregator, e, received)
                stream = None

            if stream is not None:
                def close_failed(exc: Exception) -> None:
                    self._record_close_error(aggregator, exc, received)

                async with _scoped(stream, close_failed):
                    while True:
                        try:
                            raw = await stream.__anext__()
                        except StopAsyncIteration:
                            aggregator.finish()
                            break
                        except Exception as e:
                            self._record_transport_error(aggregator, e, received)
                            break

                        received += 1
                        self.audit.record(
                            "raw_message", message_type(raw), raw,
                            metadata={"sequence": received},
                            session_id=aggregator.session_id,
                        )
                        for event in self.decoder.decode(raw):
                            forwarded = await self._dispatch(event, aggregator, hooks)
                            if forwarded is not None:
                                yield forwarded

            result = aggregator.result()
            self._complete_turn(result, aggregator, received)
            completed = True
            yield result
        finally:
            if not completed:
                self.audit.record(
                    "turn_abandoned", INTERNAL,
                    {"turn": turn_number, "raw_messages": received, "state": aggregator.state.value},
                    session_id=aggregator.session_id,
                )
                self.logger.info(f"Turn abandoned after {received} messages")
            self.audit.flush()

    async def ask(self, user_message: str, options: Optional[ConverseOptions] = None) -> TurnResult:
        """Run one turn to completion and return only its TurnResult."""
        result: Optional[TurnResult] = None
        async with _scoped(self.converse(user_message, options)) as events:
            async for event in events:
                if isinstance(event, TurnResult):
                    result = event
        if result is None:
            raise RuntimeError("converse() ended without a TurnResult")
        return result

    def close(self) -> None:
        self.audit.close()

    async def __aenter__(self) -> "SessionManager":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _query_options(self, options: ConverseOptions, resume: Optional[str]) -> QueryOptions:
        config = self.config
        permission_mode = options.permission_mode or config.permission_mode
        if permission_mode not in PERMISSION_MODES:
            raise ValueError(
                f"Invalid permission_mode: {permission_mode}. "
                f"Expected one of {', '.join(PERMISSION_MODES)}"
            )
        allowed_tools = options.allowed_tools if options.allowed_tools is not None else config.allowed_tools
        return QueryOptions(
            model=config.model,
            resume=resume,
            permission_mode=permission_mode,
            max_turns=options.max_turns if options.max_turns is not None else config.max_turns,
            allowed_tools=list(allowed_tools),
            system_prompt=config.system_prompt,
            cwd=config.cwd,
        )

    async def _dispatch(
        self,
        event: DomainEvent,
        aggregator: ResponseAggregator,
        hooks: HookPipeline,
    ) -> Optional[DomainEvent]:
        """Audit, hook and aggregate one event. Returns what the caller should see."""
        audit = self.audit

        if aggregator.done and not isinstance(event, RawPassthrough):
            self.logger.debug(f"Dropping {event.kind} received after the turn ended")
            audit.record("late_event", INTERNAL, {"kind": event.kind}, session_id=aggregator.session_id)
            return None

        if isinstance(event, SessionInit):
            aggregator.apply(event)
            audit.record(
                "session_init", "system/init",
                {"session_id": event.session_id, "model": event.model},
                session_id=event.session_id,
            )
            self.logger.update_context(session_id=event.session_id)
            self.logger.info(f"Session initialized: {event.session_id} ({event.model or 'default model'})")
            return event

        session_id = aggregator.session_id

        if isinstance(event, TextChunk):
            aggregator.apply(event)
            if not event.text:
                return None
            audit.record(
                "text", "assistant",
                {"text": event.text, "index": len(aggregator.intermediate_messages) - 1},
                session_id=session_id,
            )
            await hooks.run_partial(event.text, audit, session_id)
            return event

        if isinstance(event, ToolUse):
            audit.record(
                "tool_use", "assistant",
                {"name": event.name, "input": event.input, "tool_use_id": event.tool_use_id},
                session_id=session_id,
            )
            self.logger.info(f"🔧 Tool: {event.name}")
            await hooks.run_pre(event.name, event.input, audit, session_id)
            aggregator.apply(event)
            return event

        if isinstance(event, ToolResult):
            invocation = aggregator.apply(event)
            resolved = replace(event, name=invocation.name) if invocation is not None else event
            audit.record(
                "tool_result", "user",
                {
                    "name": resolved.name,
                    "tool_use_id": resolved.tool_use_id,
                    "output": resolved.output,
                    "is_error": resolved.is_error,
                    "matched": invocation is not None,
                    "duration": invocation.duration if invocation is not None else None,
                },
                session_id=session_id,
            )
            if invocation is not None:
                status_icon = "✗" if invocation.is_error else "✓"
                self.logger.info(f"  {status_icon} {invocation.name} ({invocation.duration:.1f}s)")
                await hooks.run_post(invocation.name, invocation.output, audit, session_id)
            return resolved

        if isinstance(event, TurnResultEvent):
            aggregator.apply(event)
            return None

        if isinstance(event, RawPassthrough):
            audit.record(
                "passthrough", message_type(event.payload),
                {"message_type": message_type(event.payload)},
                session_id=session_id,
            )
            return event

        return None

    def _record_transport_error(self, aggregator: ResponseAggregator, exc: Exception, received: int) -> None:
        self.logger.warning(f"Upstream failed after {received} messages: {exc}")
        aggregator.fail(exc, received)
        self.audit.record(
            "transport_error", INTERNAL,
            {"error": str(exc), "error_type": type(exc).__name__, "raw_messages": received},
            session_id=aggregator.session_id,
        )

    def _record_close_error(self, aggregator: ResponseAggregator, exc: Exception, received: int) -> None:
        self.logger.warning(f"Closing upstream failed: {exc}")
        self.audit.record(
            "upstream_close_error", INTERNAL,
            {"error": str(exc), "error_type": type(exc).__name__, "raw_messages": received},
            session_id=aggregator.session_id,
        )

    def _complete_turn(self, result: TurnResult, aggregator: ResponseAggregator, received: int) -> None:
        if result.session_id:
            self.session.id = result.session_id
        self.session.accumulated_cost_usd += result.cost_usd

        if not result.is_placeholder:
            self._append_turn(
                ConversationTurn(
                    role=Role.ASSISTANT,
                    text=result.response,
                    tool_calls=tuple(tool.snapshot() for tool in result.tools_used),
                ),
                result.session_id,
            )

        self.audit.record(
            "turn_result", "result", result.to_dict(),
            metadata={"state": aggregator.state.value, "raw_messages": received},
            session_id=result.session_id,
        )
        if result.is_error:
            self.logger.warning(f"Turn ended with error: {result.error}")
        self.logger.info(
            f"Turn complete: {len(result.response)} chars, {len(result.tools_used)} tools, "
            f"${result.cost_usd:.4f}"
        )

    def _append_turn(self, turn: ConversationTurn, session_id: Optional[str]) -> None:
        self.session.history.append(turn)
        self.audit.record(
            "history_append", INTERNAL,
            {"index": len(self.session.history) - 1, **turn.to_dict()},
            session_id=session_id,
        )
