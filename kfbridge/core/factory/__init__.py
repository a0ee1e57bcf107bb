"""Application factory and plugin protocol."""

from .kf_builder import KfBridgeBuilder
from .plugin import KfPlugin

__all__ = ["KfBridgeBuilder", "KfPlugin"]
