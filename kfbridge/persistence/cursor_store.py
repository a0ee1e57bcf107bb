"""
Per-account sync cursor persistence.

One plain-text file per account under the state directory:
``wechat-kf-cursor-{account_id}.txt``.
"""

from pathlib import Path
from urllib.parse import quote

from .file_manager import FileManager

CURSOR_FILE_PREFIX = "wechat-kf-cursor-"


class CursorStore:
    """Loads and saves the opaque sync cursor of each account."""

    def __init__(self, state_dir: str | Path, file_manager: FileManager | None = None):
        self.state_dir = Path(state_dir).expanduser()
        self.file_manager = file_manager or FileManager()

    def cursor_path(self, account_id: str) -> Path:
        # open_kfid values are URL-safe in practice; quote anything that is not
        safe_id = quote(account_id, safe="-_.")
        return self.state_dir / f"{CURSOR_FILE_PREFIX}{safe_id}.txt"

    async def load(self, account_id: str) -> str:
        """Return the stored cursor, or "" when there is none (cold start)."""
        content = await self.file_manager.read_text(self.cursor_path(account_id))
        return content.strip() if content else ""

    async def save(self, account_id: str, cursor: str) -> None:
        """
        Persist a cursor atomically.

        Raises:
            PersistenceError: If the write fails
        """
        await self.file_manager.write_text_atomic(self.cursor_path(account_id), cursor)

    async def clear(self, account_id: str) -> bool:
        """Forget the cursor so the next sync cold-starts."""
        return await self.file_manager.delete_file(self.cursor_path(account_id))
