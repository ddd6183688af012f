"""
cade - Conversational Agent aDapter

Drives multi-turn conversations against streaming, tool-using LLM
backends, with hook dispatch around tool calls and an append-only
audit trail of everything the backend sent.
"""

__version__ = "0.1.0"

from .core.models import TurnResult
from .core.session import ConverseOptions, SessionManager

__all__ = ["ConverseOptions", "SessionManager", "TurnResult", "__version__"]
