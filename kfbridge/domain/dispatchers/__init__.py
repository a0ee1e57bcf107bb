"""Built-in message dispatchers."""

from .http_forward_dispatcher import HttpForwardDispatcher
from .logging_dispatcher import LoggingDispatcher

__all__ = ["HttpForwardDispatcher", "LoggingDispatcher"]
