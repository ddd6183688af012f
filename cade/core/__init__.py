"""Core components for cade."""

from .aggregator import AggregatorState, ResponseAggregator
from .audit import AuditLog
from .decoder import (
    DomainEvent,
    MessageDecoder,
    RawPassthrough,
    SessionInit,
    TextChunk,
    ToolResult,
    ToolUse,
    TurnResultEvent,
)
from .hooks import HookPipeline
from .logging import get_logger, setup_logging
from .models import AuditRecord, ConversationTurn, Role, Session, ToolInvocation, TurnResult
from .session import ConverseOptions, SessionManager

__all__ = [
    "AggregatorState",
    "AuditLog",
    "AuditRecord",
    "ConversationTurn",
    "ConverseOptions",
    "DomainEvent",
    "HookPipeline",
    "MessageDecoder",
    "RawPassthrough",
    "ResponseAggregator",
    "Role",
    "Session",
    "SessionInit",
    "SessionManager",
    "TextChunk",
    "ToolInvocation",
    "ToolResult",
    "ToolUse",
    "TurnResult",
    "TurnResultEvent",
    "get_logger",
    "setup_logging",
]
