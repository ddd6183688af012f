"""
Claude Agent SDK source.

Uses the claude-agent-sdk Python package.
Install with: pip install claude-agent-sdk

The SDK yields typed message objects; they are translated here into the
wire-format dicts the decoder understands, so the rest of the pipeline is
independent of SDK version.
"""

import dataclasses
import logging
from typing import Any, AsyncIterator

from ..core.exceptions import SourceUnavailable
from .base import MessageSource, QueryOptions

# Lazy import to avoid hard dependency
_sdk_query = None
ClaudeAgentOptions = None

logger = logging.getLogger("cade.adapters.claude")

DEFAULT_MODEL = "claude-opus-4-1-20250805"

AVAILABLE_MODELS = [
    "claude-opus-4-1-20250805",
    "claude-opus-4-20250514",
    "claude-sonnet-4-20250514",
    "claude-3-7-sonnet-20250219",
    "claude-3-5-haiku-20241022",
]

_MESSAGE_TYPES = {
    "SystemMessage": "system",
    "AssistantMessage": "assistant",
    "UserMessage": "user",
    "ResultMessage": "result",
    "StreamEvent": "stream_event",
}

_BLOCK_TYPES = {
    "TextBlock": "text",
    "ThinkingBlock": "thinking",
    "ToolUseBlock": "tool_use",
    "ToolResultBlock": "tool_result",
}


def _ensure_claude_sdk():
    """Ensure the Claude Agent SDK is available."""
    global _sdk_query, ClaudeAgentOptions
    if _sdk_query is None:
        try:
            from claude_agent_sdk import ClaudeAgentOptions as _ClaudeAgentOptions
            from claude_agent_sdk import query as _query

            _sdk_query = _query
            ClaudeAgentOptions = _ClaudeAgentOptions
        except ImportError:
            raise SourceUnavailable(
                "Claude Agent SDK not installed. "
                "Install with: pip install claude-agent-sdk"
            )


def _public_fields(obj: Any) -> dict:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
    return {k: v for k, v in vars(obj).items() if not k.startswith("_")}


def _block_to_wire(block: Any) -> Any:
    if isinstance(block, dict):
        return block
    name = type(block).__name__
    wire = {"type": _BLOCK_TYPES.get(name, name)}
    wire.update(_public_fields(block))
    return wire


def to_wire(message: Any) -> dict:
    """Translate an SDK message object into a wire-format dict."""
    if isinstance(message, dict):
        return message

    name = type(message).__name__
    fields = _public_fields(message)

    if name == "SystemMessage":
        data = fields.pop("data", None) or {}
        return {**data, "type": "system", "subtype": fields.get("subtype")}

    if name in ("AssistantMessage", "UserMessage"):
        role = _MESSAGE_TYPES[name]
        content = fields.pop("content", None)
        if isinstance(content, list):
            content = [_block_to_wire(block) for block in content]
        return {
            "type": role,
            "message": {"role": role, "content": content, "model": fields.pop("model", None)},
            **fields,
        }

    return {"type": _MESSAGE_TYPES.get(name, name.lower()), **fields}


class ClaudeAgentSource(MessageSource):
    """
    Source backed by the Claude Agent SDK query() stream.

    Session continuity is delegated to the SDK: QueryOptions.resume is
    passed through as the SDK's resume option.
    """

    name = "claude"

    def __init__(self, default_model: str = DEFAULT_MODEL, **sdk_options: Any):
        """
        Args:
            default_model: Model used when QueryOptions.model is unset
            **sdk_options: Extra ClaudeAgentOptions fields (mcp_servers, hooks, ...)
        """
        self.default_model = default_model
        self.sdk_options = sdk_options

    def build_options(self, options: QueryOptions) -> Any:
        _ensure_claude_sdk()
        kwargs: dict[str, Any] = {
            "model": options.model or self.default_model,
            "permission_mode": options.permission_mode,
        }
        if options.resume:
            kwargs["resume"] = options.resume
        if options.max_turns is not None:
            kwargs["max_turns"] = options.max_turns
        if options.allowed_tools:
            kwargs["allowed_tools"] = list(options.allowed_tools)
        if options.system_prompt:
            kwargs["system_prompt"] = options.system_prompt
        if options.cwd:
            kwargs["cwd"] = options.cwd
        kwargs.update(self.sdk_options)
        kwargs.update(options.extra)
        return ClaudeAgentOptions(**kwargs)

    async def stream(self, prompt: str, options: QueryOptions) -> AsyncIterator[Any]:
        sdk_options = self.build_options(options)
        logger.debug(
            f"Opening query: model={sdk_options.model}, resume={options.resume or '-'}, "
            f"permission_mode={options.permission_mode}"
        )
        messages = _sdk_query(prompt=prompt, options=sdk_options)
        try:
            async for message in messages:
                yield to_wire(message)
        finally:
            aclose = getattr(messages, "aclose", None)
            if aclose is not None:
                await aclose()

    def get_available_models(self) -> list[str]:
        return list(AVAILABLE_MODELS)

    def get_info(self) -> dict:
        return {
            "name": self.name,
            "models": self.get_available_models(),
            "default_model": self.default_model,
            "documentation": "https://docs.anthropic.com/en/docs/claude-code/sdk",
        }
