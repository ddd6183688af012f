"""
Source registry for managing available upstream message sources.
"""

from typing import Type

from .base import MessageSource

# Global registry
_sources: dict[str, Type[MessageSource]] = {}


def register_source(name: str, source_class: Type[MessageSource]) -> None:
    """Register a source class."""
    _sources[name] = source_class


def get_source(name: str, **kwargs) -> MessageSource:
    """Get a source instance by name."""
    if name not in _sources:
        _try_load_source(name)

    if name not in _sources:
        available = ", ".join(_sources.keys()) or "none"
        raise ValueError(f"Unknown source: {name}. Available: {available}")

    return _sources[name](**kwargs)


def list_sources() -> list[str]:
    """List available source names."""
    _try_load_source("mock")
    _try_load_source("claude")
    return list(_sources.keys())


def _try_load_source(name: str) -> None:
    """Try to load a built-in source module."""
    if name == "mock":
        from .mock import ScriptedSource

        register_source("mock", ScriptedSource)
    elif name == "claude":
        from .claude import ClaudeAgentSource

        register_source("claude", ClaudeAgentSource)
