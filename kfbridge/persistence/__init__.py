"""File-backed sync state: cursors and the account registry."""

from .account_registry import AccountRegistry
from .cursor_store import CursorStore
from .file_manager import FileManager

__all__ = ["AccountRegistry", "CursorStore", "FileManager"]
