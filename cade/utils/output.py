"""Output formatting utilities.

TTY-aware console output for the cade CLI (git-style):
- When stdout is a TTY: Rich formatting and colors
- When stdout redirected: Plain text, no colors
"""

import json
import sys
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape

from ..core.exceptions import ExitCode, format_json_error

_stdout_is_tty = sys.stdout.isatty()

console = Console(
    force_terminal=_stdout_is_tty,
    no_color=not _stdout_is_tty,
)


def print_error(message: str) -> None:
    """Print error message."""
    console.print(f"[red]Error: {escape(message)}[/red]")


def handle_error(
    exc: Exception,
    json_errors: bool = False,
    context: Optional[dict[str, Any]] = None,
) -> int:
    """Handle an exception with appropriate output format.

    Args:
        exc: The exception to handle
        json_errors: If True, output JSON format; otherwise Rich format
        context: Optional additional context (log path, etc.)

    Returns:
        Exit code to use for sys.exit()
    """
    if json_errors:
        print(format_json_error(exc, context))
    else:
        print_error(str(exc))

    if hasattr(exc, "exit_code"):
        return exc.exit_code
    return ExitCode.GENERAL_ERROR


def print_json(data: Any, file: Optional[Any] = None) -> None:
    """Print data as formatted JSON to stdout or specified file."""
    json_str = json.dumps(data, indent=2, default=str)
    if file:
        print(json_str, file=file)
    else:
        console.print_json(json_str)
