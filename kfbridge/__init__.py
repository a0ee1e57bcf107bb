"""
kfbridge - WeChat KF (WeCom customer service) bridge.

Receives platform callbacks, pulls messages per account with crash-safe
cursors and forwards admitted customer messages to a dispatcher.
"""

from .core.config.settings import settings
from .core.factory import KfBridgeBuilder, KfPlugin
from .core.kf_app import KfBridge
from .domain.interfaces import IMessageDispatcher, InboundEnvelope

__version__ = settings.version

__all__ = [
    "IMessageDispatcher",
    "InboundEnvelope",
    "KfBridge",
    "KfBridgeBuilder",
    "KfPlugin",
]
