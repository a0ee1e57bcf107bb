"""
Registry of discovered customer-service accounts.

Accounts (open_kfid values) are discovered from webhook callbacks and kept
for the life of the deployment. The id list is persisted as a JSON array in
``wechat-kf-kfids.json``; status changes (disable/delete) are persisted as an
overlay in ``wechat-kf-account-status.json`` so the id list never shrinks.

Registry writes are best effort: failures are logged and never reach the
caller, a lost write only means rediscovery on the next callback.
"""

import json
import logging
from pathlib import Path

from kfbridge.core.exceptions import PersistenceError
from kfbridge.domain.models.account import Account, AccountStatus

from .file_manager import FileManager

logger = logging.getLogger("KfAccountRegistry")

KFIDS_FILE = "wechat-kf-kfids.json"
STATUS_FILE = "wechat-kf-account-status.json"


class AccountRegistry:
    """In-memory account registry backed by the state directory."""

    def __init__(self, file_manager: FileManager | None = None):
        self.file_manager = file_manager or FileManager()
        self._accounts: dict[str, Account] = {}
        self._state_dir: Path | None = None

    @property
    def state_dir(self) -> Path | None:
        return self._state_dir

    def set_state_dir(self, state_dir: str | Path | None) -> None:
        self._state_dir = Path(state_dir).expanduser() if state_dir else None

    async def load(self, state_dir: str | Path) -> None:
        """
        Merge persisted ids and statuses from state_dir.

        A missing or corrupt file counts as empty. Sets the directory used
        for later writes.
        """
        self.set_state_dir(state_dir)

        ids = await self._read_json(self._state_dir / KFIDS_FILE)
        if isinstance(ids, list):
            for account_id in ids:
                if isinstance(account_id, str) and account_id:
                    self._accounts.setdefault(account_id, Account(account_id=account_id))

        statuses = await self._read_json(self._state_dir / STATUS_FILE)
        if isinstance(statuses, dict):
            for account_id, raw_status in statuses.items():
                try:
                    status = AccountStatus(raw_status)
                except ValueError:
                    logger.warning(f"Ignoring unknown status {raw_status!r} for {account_id}")
                    continue
                if account_id:
                    self._accounts[account_id] = Account(
                        account_id=account_id, status=status
                    )

        logger.info(f"Loaded {len(self._accounts)} account(s) from {self._state_dir}")

    async def register(self, account_id: str) -> bool:
        """
        Record a discovered account id.

        Returns:
            True if the id was new. Empty ids and known ids are no-ops.
        """
        if not account_id or account_id in self._accounts:
            return False
        self._accounts[account_id] = Account(account_id=account_id)
        logger.info(f"Discovered account {account_id}")
        await self._persist_ids()
        return True

    async def set_status(self, account_id: str, status: AccountStatus) -> Account:
        """Change an account's status, registering it first if unknown."""
        if not account_id:
            raise ValueError("account_id must not be empty")
        is_new = account_id not in self._accounts
        account = Account(account_id=account_id, status=status)
        self._accounts[account_id] = account
        if is_new:
            await self._persist_ids()
        await self._persist_statuses()
        logger.info(f"Account {account_id} is now {status.value}")
        return account

    def get(self, account_id: str) -> Account | None:
        return self._accounts.get(account_id)

    def known_ids(self) -> list[str]:
        """Every id ever registered, in discovery order (deleted ones included)."""
        return list(self._accounts)

    def list_active(self) -> list[Account]:
        """Accounts that are not deleted, each carrying its enabled flag."""
        return [account for account in self._accounts.values() if not account.deleted]

    def reset(self) -> None:
        self._accounts.clear()
        self._state_dir = None

    def __len__(self) -> int:
        return len(self._accounts)

    def __contains__(self, account_id: object) -> bool:
        return account_id in self._accounts

    async def _read_json(self, path: Path):
        content = await self.file_manager.read_text(path)
        if not content:
            return None
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring corrupt state file {path}: {e}")
            return None

    async def _persist_ids(self) -> None:
        if self._state_dir is None:
            return
        try:
            await self.file_manager.write_text_atomic(
                self._state_dir / KFIDS_FILE, json.dumps(self.known_ids())
            )
        except PersistenceError as e:
            logger.error(f"Failed to persist account ids: {e}")

    async def _persist_statuses(self) -> None:
        if self._state_dir is None:
            return
        overlay = {
            account.account_id: account.status.value
            for account in self._accounts.values()
            if account.status != AccountStatus.ACTIVE
        }
        try:
            await self.file_manager.write_text_atomic(
                self._state_dir / STATUS_FILE, json.dumps(overlay)
            )
        except PersistenceError as e:
            logger.error(f"Failed to persist account statuses: {e}")
