"""
Base interface for upstream message sources.

A source turns one prompt into an asynchronous, finite stream of raw
protocol messages (system/init, assistant, user tool results, result).
How it authenticates, retries, or multiplexes connections is its own
business; the session pipeline only consumes the stream.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional


@dataclass
class QueryOptions:
    """Per-turn options passed to a source.

    Attributes:
        model: Backend model identifier
        resume: Session id to continue, if any
        permission_mode: Tool permission policy forwarded to the backend
            (e.g. "default", "acceptEdits", "bypassPermissions")
        max_turns: Upper bound on agentic turns within one request
        allowed_tools: Tool allow-list; empty means backend default
        system_prompt: Extra system prompt text
        cwd: Working directory for file tools
        extra: Source-specific options
    """
    model: Optional[str] = None
    resume: Optional[str] = None
    permission_mode: str = "default"
    max_turns: Optional[int] = None
    allowed_tools: list[str] = field(default_factory=list)
    system_prompt: Optional[str] = None
    cwd: Optional[str] = None
    extra: dict = field(default_factory=dict)


class MessageSource(ABC):
    """
    Base class for upstream message sources.

    Sources provide a consistent streaming interface over different
    transports (agent SDKs, recorded scripts, etc.).
    """

    name: str = "base"

    @abstractmethod
    def stream(self, prompt: str, options: QueryOptions) -> AsyncIterator[Any]:
        """Open a stream of raw messages for one prompt.

        Implementations are usually async generators. The stream is
        consumed once and closed by the caller (aclose) on every exit path.
        """

    def get_available_models(self) -> list[str]:
        """Model identifiers this source can serve. Empty if unknown."""
        return []

    def get_info(self) -> dict:
        """Get source information."""
        return {
            "name": self.name,
            "models": self.get_available_models(),
        }
