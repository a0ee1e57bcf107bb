"""
Per-account cursor sync engine.

One invocation pulls every pending page for one account (open_kfid) while
holding that account's FIFO lock:

- No stored cursor: cold start. Pages are drained without dispatching and
  each returned cursor is persisted at once, so a lost cursor never replays
  history downstream.
- Stored cursor: incremental. Each page is filtered (events, non-customer
  origin, stale, duplicate, empty) and admitted messages are dispatched; the
  page's cursor is persisted only after the whole page was processed, which
  gives at-least-once delivery with dedup absorbing replays.

A failed page pull ends the invocation without touching the cursor. The next
webhook or poll tick is the only retry.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass

from kfbridge.core.exceptions import PersistenceError, PlatformError, TransportError
from kfbridge.core.logging.context import (
    clear_sender_context,
    reset_sync_context,
    set_sync_context,
)
from kfbridge.core.logging.logger import get_logger
from kfbridge.domain.interfaces.dispatch_interface import (
    IMessageDispatcher,
    InboundEnvelope,
)
from kfbridge.messaging.kf.client.kf_client import KfClient
from kfbridge.messaging.kf.constants import (
    MSGTYPE_EVENT,
    ORIGIN_CUSTOMER,
    SYNC_PAGE_LIMIT,
)
from kfbridge.messaging.kf.models import KfMessage, SyncMsgRequest, SyncMsgResponse
from kfbridge.persistence.account_registry import AccountRegistry
from kfbridge.persistence.cursor_store import CursorStore

from .dedup_window import DedupWindow
from .keyed_mutex import KeyedMutex
from .text_extractor import extract_text

MAX_MESSAGE_AGE = 48 * 3600

MODE_COLD_START = "cold_start"
MODE_INCREMENTAL = "incremental"
MODE_SKIPPED = "skipped"

DM_POLICY_OPEN = "open"
DM_POLICY_ALLOWLIST = "allowlist"
DM_POLICY_DISABLED = "disabled"
DM_POLICIES = (DM_POLICY_OPEN, DM_POLICY_ALLOWLIST, DM_POLICY_DISABLED)


@dataclass
class SyncReport:
    """Outcome of one sync invocation."""

    account_id: str
    mode: str = MODE_INCREMENTAL
    pages: int = 0
    fetched: int = 0
    dispatched: int = 0
    skipped: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SyncEngine:
    """
    Pulls, filters and dispatches messages for one account at a time.

    The mutex and dedup window are shared by all accounts the engine serves;
    build one engine per process.
    """

    def __init__(
        self,
        client: KfClient,
        cursor_store: CursorStore,
        registry: AccountRegistry,
        dispatcher: IMessageDispatcher,
        dedup: DedupWindow | None = None,
        mutex: KeyedMutex | None = None,
        page_limit: int = SYNC_PAGE_LIMIT,
        max_message_age: int = MAX_MESSAGE_AGE,
        cold_start_max_pages: int = 0,
        dm_policy: str = DM_POLICY_OPEN,
        allow_from: frozenset[str] | set[str] = frozenset(),
        clock: Callable[[], float] = time.time,
    ):
        if dm_policy not in DM_POLICIES:
            raise ValueError(f"dm_policy must be one of {DM_POLICIES}")
        self.client = client
        self.cursor_store = cursor_store
        self.registry = registry
        self.dispatcher = dispatcher
        self.dedup = dedup or DedupWindow()
        self.mutex = mutex or KeyedMutex()
        self.page_limit = page_limit
        self.max_message_age = max_message_age
        self.cold_start_max_pages = cold_start_max_pages
        self.dm_policy = dm_policy
        self.allow_from = frozenset(allow_from)
        self._clock = clock
        # accounts whose cold-start drain stopped at the page cap
        self._draining: set[str] = set()
        self.logger = get_logger(__name__)

    async def sync(self, account_id: str, sync_token: str = "") -> SyncReport:
        """
        Run one sync for account_id, queued behind any sync already running
        for the same account.

        Args:
            account_id: open_kfid to sync
            sync_token: One-shot token from a webhook callback, used only to
                seed the first pull of a cold start

        Returns:
            SyncReport describing what happened; pull failures are reported
            in ``error`` rather than raised
        """
        async with self.mutex.acquire(account_id):
            context_token = set_sync_context(account_id)
            try:
                return await self._sync_locked(account_id, sync_token)
            finally:
                reset_sync_context(context_token)

    async def _sync_locked(self, account_id: str, sync_token: str) -> SyncReport:
        account = self.registry.get(account_id)
        if account is not None and not account.enabled:
            self.logger.info(f"Skipping sync: account is {account.status.value}")
            return SyncReport(account_id=account_id, mode=MODE_SKIPPED)

        await self.registry.register(account_id)

        cursor = await self.cursor_store.load(account_id)
        if not cursor or account_id in self._draining:
            self.logger.info("No cursor, draining to current position")
            return await self._cold_start(account_id, cursor, sync_token)
        return await self._incremental(account_id, cursor)

    async def _pull(self, report: SyncReport, request: SyncMsgRequest) -> SyncMsgResponse | None:
        try:
            page = await self.client.sync_messages(request)
        except (TransportError, PlatformError) as e:
            self.logger.error(f"sync_msg failed: {e}")
            report.error = str(e)
            return None
        report.pages += 1
        report.fetched += len(page.msg_list)
        return page

    async def _save_cursor(self, account_id: str, cursor: str) -> None:
        try:
            await self.cursor_store.save(account_id, cursor)
        except PersistenceError as e:
            # keep going with the in-memory cursor; a restart re-fetches from disk
            self.logger.error(f"Failed to persist cursor: {e}")

    async def _cold_start(
        self, account_id: str, cursor: str, sync_token: str
    ) -> SyncReport:
        report = SyncReport(account_id=account_id, mode=MODE_COLD_START)
        has_more = True

        while has_more:
            if self.cold_start_max_pages and report.pages >= self.cold_start_max_pages:
                self._draining.add(account_id)
                self.logger.warning(
                    f"Cold start paused after {report.pages} page(s), resuming on next trigger"
                )
                return report

            request = SyncMsgRequest(limit=self.page_limit, open_kfid=account_id)
            if cursor:
                request.cursor = cursor
            elif sync_token:
                request.token = sync_token

            page = await self._pull(report, request)
            if page is None:
                return report

            report.skipped += len(page.msg_list)
            if page.next_cursor:
                cursor = page.next_cursor
                await self._save_cursor(account_id, cursor)
            has_more = page.more

        self._draining.discard(account_id)
        if report.skipped:
            self.logger.info(
                f"Cold start catch-up: skipped {report.skipped} message(s), cursor saved"
            )
        return report

    async def _incremental(self, account_id: str, cursor: str) -> SyncReport:
        report = SyncReport(account_id=account_id, mode=MODE_INCREMENTAL)
        has_more = True

        while has_more:
            request = SyncMsgRequest(
                cursor=cursor, limit=self.page_limit, open_kfid=account_id
            )
            page = await self._pull(report, request)
            if page is None:
                return report

            for message in page.msg_list:
                if await self._process_message(account_id, message):
                    report.dispatched += 1
                else:
                    report.skipped += 1

            if page.next_cursor:
                cursor = page.next_cursor
                await self._save_cursor(account_id, cursor)
            has_more = page.more

        if report.dispatched:
            self.logger.info(
                f"Synced {report.pages} page(s): {report.dispatched} dispatched, "
                f"{report.skipped} skipped"
            )
        return report

    async def _process_message(self, account_id: str, message: KfMessage) -> bool:
        """Filter and dispatch one message. Returns True if it was dispatched."""
        if message.msgtype == MSGTYPE_EVENT:
            self._handle_event(message)
            return False

        if message.origin != ORIGIN_CUSTOMER:
            return False

        age = int(self._clock()) - message.send_time
        if self.max_message_age and age > self.max_message_age:
            self.logger.debug(f"Skipping stale msg {message.msgid} (age={age}s)")
            return False

        if self.dedup.check_and_add(message.msgid):
            self.logger.debug(f"Skipping duplicate msg {message.msgid}")
            return False

        text = extract_text(message)
        if not text:
            return False

        if not self._sender_allowed(message.external_userid):
            return False

        envelope = InboundEnvelope(
            account_id=account_id,
            sender_id=message.external_userid,
            message_id=message.msgid,
            send_time=message.send_time,
            msgtype=message.msgtype,
            display_text=text,
            media_refs=message.media_refs,
        )
        set_sync_context(sender_id=message.external_userid)
        try:
            await self.dispatcher.dispatch(envelope)
        except Exception as e:
            self.logger.exception(f"Dispatch error for msg {message.msgid}: {e}")
            return False
        finally:
            clear_sender_context()
        return True

    def _sender_allowed(self, sender_id: str) -> bool:
        if self.dm_policy == DM_POLICY_DISABLED:
            self.logger.info("Drop message (dm_policy: disabled)")
            return False
        if self.dm_policy == DM_POLICY_ALLOWLIST and sender_id not in self.allow_from:
            self.logger.info(f"Blocked sender {sender_id} (dm_policy: allowlist)")
            return False
        return True

    def _handle_event(self, message: KfMessage) -> None:
        event = message.event
        event_type = event.event_type if event else None

        if event_type == "enter_session":
            details = ""
            if event.welcome_code:
                details += f", welcome_code={event.welcome_code}"
            if event.scene:
                details += f", scene={event.scene}"
            self.logger.info(f"User {message.external_userid} entered session{details}")
        elif event_type == "msg_send_fail":
            self.logger.error(
                f"Message send failed: msgid={event.fail_msgid}, type={event.fail_type}"
            )
        elif event_type == "servicer_status_change":
            self.logger.info(
                f"Servicer status changed: {event.servicer_userid} -> {event.status}"
            )
        else:
            self.logger.info(f"Unhandled event: {event_type}")
