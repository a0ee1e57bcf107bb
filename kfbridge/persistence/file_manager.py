"""
File system operations for sync state.

Handles state directory creation, text I/O and atomic replacement so a crash
mid-write never leaves a truncated cursor or registry file behind.
"""

import asyncio
import logging
from pathlib import Path

from kfbridge.core.exceptions import PersistenceError

logger = logging.getLogger("KfStateFileManager")


class FileManager:
    """Manages file operations for the state directory."""

    def __init__(self):
        self._file_locks: dict[str, asyncio.Lock] = {}

    def _get_file_lock(self, file_path: str) -> asyncio.Lock:
        """Get or create a lock for a specific file path."""
        if file_path not in self._file_locks:
            self._file_locks[file_path] = asyncio.Lock()
        return self._file_locks[file_path]

    async def read_text(self, file_path: Path) -> str | None:
        """Read a text file; None when it is missing or unreadable."""
        async with self._get_file_lock(str(file_path)):
            try:
                return await asyncio.to_thread(file_path.read_text, encoding="utf-8")
            except FileNotFoundError:
                return None
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Failed to read file {file_path}: {e}")
                return None

    async def write_text_atomic(self, file_path: Path, content: str) -> None:
        """
        Write content to file_path atomically.

        The content goes to a sibling ``.tmp`` file that then replaces the
        target in one rename, so readers see either the old or the new file.

        Raises:
            PersistenceError: On any OS-level failure
        """
        async with self._get_file_lock(str(file_path)):
            temp_file = file_path.with_name(file_path.name + ".tmp")
            try:
                await asyncio.to_thread(
                    file_path.parent.mkdir, parents=True, exist_ok=True
                )
                await asyncio.to_thread(temp_file.write_text, content, encoding="utf-8")
                await asyncio.to_thread(temp_file.replace, file_path)
            except OSError as e:
                logger.error(f"Failed to write file {file_path}: {e}")
                raise PersistenceError(
                    f"Failed to write {file_path}: {e}", path=str(file_path)
                ) from e

    async def delete_file(self, file_path: Path) -> bool:
        """Delete file with file locking."""
        async with self._get_file_lock(str(file_path)):
            try:
                await asyncio.to_thread(file_path.unlink, missing_ok=True)
                return True
            except OSError as e:
                logger.error(f"Failed to delete file {file_path}: {e}")
                return False
