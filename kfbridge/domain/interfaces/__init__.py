"""Domain interfaces."""

from .dispatch_interface import IMessageDispatcher, InboundEnvelope

__all__ = ["IMessageDispatcher", "InboundEnvelope"]
