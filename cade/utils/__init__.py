"""Utility functions for cade."""

from .output import console, handle_error, print_json

__all__ = [
    "console",
    "handle_error",
    "print_json",
]
