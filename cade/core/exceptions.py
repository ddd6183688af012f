"""
Custom exceptions for cade.

Provides specific exception types with associated exit codes for the
failure modes that can reach a caller or the CLI. Errors that occur
inside a conversation turn (transport, decode, hook, audit write) are
recovered by the session pipeline and surface only as a flagged
TurnResult; the types here cover the rest. All exceptions support JSON
serialization for the --json-errors flag.
"""

import json
from dataclasses import dataclass
from typing import Any, Optional


class ExitCode:
    """Standard exit codes for cade."""
    SUCCESS = 0
    GENERAL_ERROR = 1
    INVALID_INPUT = 2
    TRANSPORT_FAILED = 3
    SOURCE_UNAVAILABLE = 4
    AUDIT_UNREADABLE = 5


@dataclass
class EmptyMessageError(ValueError):
    """Raised when converse() is called with an empty user message."""
    message: str = ""

    def __str__(self) -> str:
        return "User message must not be empty"

    @property
    def exit_code(self) -> int:
        return ExitCode.INVALID_INPUT


@dataclass
class TransportError(Exception):
    """Upstream message source failed mid-stream.

    Attributes:
        cause: The exception raised by the upstream iterator
        messages_received: Raw messages consumed before the failure
    """
    cause: BaseException
    messages_received: int = 0

    def __str__(self) -> str:
        name = type(self.cause).__name__
        detail = str(self.cause)
        return f"{name}: {detail}" if detail else name

    @property
    def exit_code(self) -> int:
        return ExitCode.TRANSPORT_FAILED


@dataclass
class AuditLogError(Exception):
    """Raised when an audit log cannot be read back.

    Attributes:
        path: Log file path
        line_number: 1-based line that failed to parse, if any
        reason: Human-readable explanation
    """
    path: str
    reason: str
    line_number: Optional[int] = None

    def __str__(self) -> str:
        where = f":{self.line_number}" if self.line_number else ""
        return f"Unreadable audit log {self.path}{where}: {self.reason}"

    @property
    def exit_code(self) -> int:
        return ExitCode.AUDIT_UNREADABLE


class SourceUnavailable(ImportError):
    """Raised when an upstream source's optional SDK is not installed."""

    exit_code = ExitCode.SOURCE_UNAVAILABLE


def exception_to_json(exc: Exception, context: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    """Convert an exception to a JSON-serializable dictionary.

    Args:
        exc: The exception to convert
        context: Optional additional context (session, log path, etc.)

    Returns:
        JSON-serializable dict with error details
    """
    error_dict: dict[str, Any] = {
        "type": type(exc).__name__,
        "message": str(exc),
    }

    if hasattr(exc, "exit_code"):
        error_dict["exit_code"] = exc.exit_code
    else:
        error_dict["exit_code"] = ExitCode.GENERAL_ERROR

    if isinstance(exc, TransportError):
        error_dict["cause"] = type(exc.cause).__name__
        error_dict["messages_received"] = exc.messages_received

    elif isinstance(exc, AuditLogError):
        error_dict["path"] = exc.path
        error_dict["reason"] = exc.reason
        if exc.line_number is not None:
            error_dict["line_number"] = exc.line_number

    if context:
        error_dict["context"] = context

    return {"error": error_dict}


def format_json_error(exc: Exception, context: Optional[dict[str, Any]] = None) -> str:
    """Format an exception as a JSON string."""
    return json.dumps(exception_to_json(exc, context), indent=2, default=str)
