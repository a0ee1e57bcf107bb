"""Bridge plugins."""

from .kf_core_plugin import KfCorePlugin
from .polling_plugin import PollingPlugin

__all__ = ["KfCorePlugin", "PollingPlugin"]
