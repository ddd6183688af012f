"""Upstream message sources."""

from .base import MessageSource, QueryOptions
from .registry import get_source, list_sources, register_source

__all__ = [
    "MessageSource",
    "QueryOptions",
    "get_source",
    "list_sources",
    "register_source",
]
