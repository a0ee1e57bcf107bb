"""Per-account message sync: engine, locking, dedup, triggers and polling."""

from .dedup_window import DedupWindow
from .keyed_mutex import KeyedMutex
from .poller import PollingService
from .scheduler import SyncScheduler
from .sync_engine import SyncEngine, SyncReport
from .text_extractor import extract_text

__all__ = [
    "DedupWindow",
    "KeyedMutex",
    "PollingService",
    "SyncEngine",
    "SyncReport",
    "SyncScheduler",
    "extract_text",
]
