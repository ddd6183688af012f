"""
Conversation data model.

Session state owned by the SessionManager, the tool invocation records the
aggregator builds during a turn, the audit record shape written to the
JSONL log, and the TurnResult handed back to callers.
"""

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Optional

NO_RESPONSE_PLACEHOLDER = "No response generated"
ERROR_PREFIX = "Error: "

# Bumped whenever AuditRecord field names or meaning change
AUDIT_FORMAT_VERSION = 1


class Role(str, Enum):
    """Speaker of a conversation turn."""
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class ToolInvocation:
    """One tool call observed during a turn.

    Created when a tool_use block is decoded; output is filled in when the
    matching tool_result arrives. Timestamps are time.monotonic() readings.
    """
    name: str
    input: Any = None
    output: Any = None
    tool_use_id: Optional[str] = None
    is_error: bool = False
    requested_at: float = 0.0
    completed_at: Optional[float] = None

    @property
    def completed(self) -> bool:
        return self.completed_at is not None

    @property
    def duration(self) -> Optional[float]:
        """Seconds between request and result, if completed."""
        if self.completed_at is None:
            return None
        return self.completed_at - self.requested_at

    def snapshot(self) -> "ToolInvocation":
        """Copy for storing in history, detached from the live turn."""
        return replace(self)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ConversationTurn:
    """A single entry in the session history. Never mutated after append."""
    role: Role
    text: str
    tool_calls: tuple[ToolInvocation, ...] = ()

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"role": self.role.value, "text": self.text}
        if self.tool_calls:
            data["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        return data


@dataclass
class Session:
    """Conversation state held by a SessionManager."""
    id: Optional[str] = None
    history: list[ConversationTurn] = field(default_factory=list)
    accumulated_cost_usd: float = 0.0

    @property
    def turn_count(self) -> int:
        """Number of user turns submitted so far."""
        return sum(1 for turn in self.history if turn.role is Role.USER)


@dataclass
class TurnResult:
    """Final outcome of one converse() call.

    response is never empty: it carries recovered partial text, an error
    message, or NO_RESPONSE_PLACEHOLDER.
    """
    response: str
    session_id: Optional[str] = None
    cost_usd: float = 0.0
    tools_used: list[ToolInvocation] = field(default_factory=list)
    num_turns: int = 0
    model: Optional[str] = None
    error: Optional[str] = None

    kind = "turn_result"

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def is_placeholder(self) -> bool:
        """True when the upstream produced no text at all."""
        return self.response == NO_RESPONSE_PLACEHOLDER

    def to_dict(self) -> dict:
        return {
            "response": self.response,
            "session_id": self.session_id,
            "cost_usd": self.cost_usd,
            "tools_used": [tool.to_dict() for tool in self.tools_used],
            "num_turns": self.num_turns,
            "model": self.model,
            "error": self.error,
        }


@dataclass(frozen=True)
class AuditRecord:
    """One line of the audit log.

    Field names are part of the on-disk format (see AUDIT_FORMAT_VERSION).
    """
    timestamp: str  # ISO format, UTC
    session_id: Optional[str]
    event_type: str
    message_type: str
    data: Any
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "session_id": self.session_id,
            "event_type": self.event_type,
            "message_type": self.message_type,
            "data": self.data,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AuditRecord":
        return cls(
            timestamp=data["timestamp"],
            session_id=data.get("session_id"),
            event_type=data["event_type"],
            message_type=data.get("message_type", ""),
            data=data.get("data"),
            metadata=data.get("metadata") or {},
        )
