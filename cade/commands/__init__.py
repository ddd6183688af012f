"""CLI commands for cade."""

from .audit import audit
from .sources import sources

__all__ = ["audit", "sources"]
