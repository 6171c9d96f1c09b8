"""
Hearken - wake-word voice assistant

Listens for a wake phrase, captures the spoken query, resolves it against a
tool-calling chat-completion service and speaks the reply.
"""

__version__ = "1.0.0"

from .cli import main

__all__ = ["main"]
