"""
Logging configuration for cade.

Provides centralized logging setup with verbosity levels:
- 0 (default): WARNING - errors and warnings only
- 1 (-v):      INFO - turns, tools, session ids, costs
- 2 (-vv):     DEBUG - tool arguments, hook dispatch, aggregation steps
- 3+ (-vvv):   TRACE - everything (raw upstream messages, skipped blocks)

SessionLoggerAdapter prefixes messages with the active session and turn so
interleaved output from several managers stays readable.
"""

import logging
import sys
from dataclasses import dataclass
from typing import Optional

# Custom TRACE level (more verbose than DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")


def trace(self, message, *args, **kwargs):
    """Log at TRACE level."""
    if self.isEnabledFor(TRACE):
        self._log(TRACE, message, args, **kwargs)


# Add trace method to Logger class
logging.Logger.trace = trace


@dataclass
class SessionContext:
    """Session position used to prefix log messages."""
    session_id: Optional[str] = None
    turn: Optional[int] = None

    def format_prefix(self) -> str:
        """Format the context as a log prefix.

        Examples:
            [pending:1]
            [5f1c2a9e:3]
        """
        if self.turn is None and not self.session_id:
            return ""
        session = self.session_id[:8] if self.session_id else "pending"
        if self.turn is None:
            return f"[{session}]"
        return f"[{session}:{self.turn}]"


class SessionLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that includes session context in messages.

    Usage:
        ctx = SessionContext(session_id="5f1c2a9e", turn=2)
        logger = SessionLoggerAdapter(get_logger("cade.core.session"), ctx)
        logger.info("Turn started")  # Logs: [5f1c2a9e:2] Turn started
    """

    def __init__(self, logger: logging.Logger, context: SessionContext):
        super().__init__(logger, {})
        self.context = context

    def process(self, msg, kwargs):
        prefix = self.context.format_prefix()
        if prefix:
            return f"{prefix} {msg}", kwargs
        return msg, kwargs

    def update_context(self, **kwargs):
        """Update context fields.

        Example:
            logger.update_context(session_id="5f1c2a9e", turn=3)
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key):
                setattr(self.context, key, value)

    def trace(self, msg, *args, **kwargs):
        if self.isEnabledFor(TRACE):
            self.log(TRACE, msg, *args, **kwargs)


def setup_logging(verbosity: int = 0, quiet: bool = False) -> logging.Logger:
    """Configure logging based on verbosity level.

    Args:
        verbosity: Number of -v flags (0=WARNING, 1=INFO, 2=DEBUG, 3+=TRACE)
        quiet: If True, suppress all output except errors

    Returns:
        The configured root logger for cade
    """
    if quiet:
        level = logging.ERROR
    elif verbosity == 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    elif verbosity == 2:
        level = logging.DEBUG
    else:  # verbosity >= 3
        level = TRACE

    logger = logging.getLogger("cade")
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if verbosity >= 2:
        fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
        datefmt = "%H:%M:%S"
    elif verbosity == 1:
        fmt = "[%(levelname)s] %(message)s"
        datefmt = None
    else:
        fmt = "%(message)s"
        datefmt = None

    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    logger.addHandler(handler)

    # At TRACE level, also enable debug for external libs (SDK transport)
    if verbosity >= 3:
        logging.getLogger().setLevel(logging.DEBUG)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger for a module.

    Args:
        name: Module name (e.g., "cade.core.session").
              If None, returns the root cade logger.
    """
    if name is None:
        return logging.getLogger("cade")
    return logging.getLogger(name)


def get_session_logger(
    name: str,
    session_id: Optional[str] = None,
    turn: Optional[int] = None,
) -> SessionLoggerAdapter:
    """Get a logger that prefixes messages with session context."""
    return SessionLoggerAdapter(get_logger(name), SessionContext(session_id=session_id, turn=turn))
