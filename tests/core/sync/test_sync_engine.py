"""
Tests for SyncEngine: cold start, incremental filtering, cursor commits,
dedup, failure handling and per-account serialization.
"""

import asyncio

import pytest
from conftest import NOW, FakeSyncClient, RecordingDispatcher, make_message, make_page

from kfbridge.core.exceptions import PersistenceError, PlatformError, TransportError
from kfbridge.core.sync.sync_engine import (
    MAX_MESSAGE_AGE,
    MODE_COLD_START,
    MODE_INCREMENTAL,
    MODE_SKIPPED,
    SyncEngine,
)
from kfbridge.domain.models.account import AccountStatus
from kfbridge.persistence.account_registry import AccountRegistry
from kfbridge.persistence.cursor_store import CursorStore

ACCOUNT = "wkTEST"


class FailingCursorStore(CursorStore):
    async def save(self, account_id: str, cursor: str) -> None:
        raise PersistenceError("disk full", path=str(self.cursor_path(account_id)))


@pytest.fixture
def client() -> FakeSyncClient:
    return FakeSyncClient()


@pytest.fixture
def cursor_store(state_dir) -> CursorStore:
    return CursorStore(state_dir)


@pytest.fixture
def registry(state_dir) -> AccountRegistry:
    registry = AccountRegistry()
    registry.set_state_dir(state_dir)
    return registry


@pytest.fixture
def make_engine(client, cursor_store, registry, dispatcher):
    def _make(**overrides) -> SyncEngine:
        kwargs = {
            "client": client,
            "cursor_store": cursor_store,
            "registry": registry,
            "dispatcher": dispatcher,
            "clock": lambda: NOW,
        }
        kwargs.update(overrides)
        return SyncEngine(**kwargs)

    return _make


def cursor_on_disk(state_dir, account_id: str = ACCOUNT) -> str:
    path = state_dir / f"wechat-kf-cursor-{account_id}.txt"
    return path.read_text() if path.exists() else ""


@pytest.mark.asyncio
class TestColdStart:
    async def test_drains_without_dispatching(self, make_engine, client, dispatcher, state_dir):
        client.add(
            make_page([make_message("old-1"), make_message("old-2")], "c1", has_more=True),
            make_page([make_message("old-3")], "c2"),
        )

        report = await make_engine().sync(ACCOUNT, sync_token="tok-abc")

        assert report.mode == MODE_COLD_START
        assert report.ok
        assert report.pages == 2
        assert report.skipped == 3
        assert dispatcher.envelopes == []
        assert cursor_on_disk(state_dir) == "c2"

    async def test_token_seeds_first_request_only(self, make_engine, client):
        client.add(make_page([], "c1", has_more=True), make_page([], "c2"))

        await make_engine().sync(ACCOUNT, sync_token="tok-abc")

        first, second = client.requests
        assert first.token == "tok-abc"
        assert first.cursor is None
        assert first.open_kfid == ACCOUNT
        assert second.cursor == "c1"
        assert second.token is None

    async def test_next_sync_is_incremental(self, make_engine, client, dispatcher):
        client.add(make_page([make_message("old")], "c1"))
        client.add(make_page([make_message("new")], "c2"))
        engine = make_engine()

        await engine.sync(ACCOUNT)
        report = await engine.sync(ACCOUNT)

        assert report.mode == MODE_INCREMENTAL
        assert client.requests[1].cursor == "c1"
        assert dispatcher.message_ids == ["new"]

    async def test_page_cap_resumes_on_next_trigger(self, make_engine, client, dispatcher, state_dir):
        client.add(
            make_page([make_message("old-1")], "c1", has_more=True),
            make_page([make_message("old-2")], "c2"),
            make_page([make_message("new")], "c3"),
        )
        engine = make_engine(cold_start_max_pages=1)

        first = await engine.sync(ACCOUNT)
        assert first.mode == MODE_COLD_START
        assert first.pages == 1
        assert cursor_on_disk(state_dir) == "c1"

        second = await engine.sync(ACCOUNT)
        assert second.mode == MODE_COLD_START
        assert client.requests[1].cursor == "c1"
        assert dispatcher.envelopes == []

        third = await engine.sync(ACCOUNT)
        assert third.mode == MODE_INCREMENTAL
        assert dispatcher.message_ids == ["new"]

    async def test_failure_keeps_cursor_unset(self, make_engine, client, state_dir):
        client.add(TransportError("sync_msg HTTP 502", status=502))

        report = await make_engine().sync(ACCOUNT, sync_token="tok")

        assert not report.ok
        assert cursor_on_disk(state_dir) == ""


@pytest.mark.asyncio
class TestIncremental:
    async def test_filters_and_dispatches(self, make_engine, client, dispatcher, cursor_store):
        await cursor_store.save(ACCOUNT, "c0")
        client.add(
            make_page(
                [
                    make_message("evt", msgtype="event", event={"event_type": "enter_session"}),
                    make_message("from-servicer", origin=5),
                    make_message("from-system", origin=4),
                    make_message("stale", send_time=NOW - MAX_MESSAGE_AGE - 1),
                    make_message("empty", text={"content": ""}),
                    make_message("ok"),
                    make_message("pic", msgtype="image", image={"media_id": "MEDIA-1"}),
                    make_message("edge", send_time=NOW - MAX_MESSAGE_AGE),
                ],
                "c1",
            )
        )

        report = await make_engine().sync(ACCOUNT)

        assert dispatcher.message_ids == ["ok", "pic", "edge"]
        assert report.dispatched == 3
        assert report.skipped == 5
        assert report.fetched == 8

        text, image, _ = dispatcher.envelopes
        assert text.account_id == ACCOUNT
        assert text.sender_id == "wmCustomer"
        assert text.display_text == "hello ok"
        assert text.media_refs == []
        assert image.display_text == "[User sent an image]"
        assert image.media_refs == ["MEDIA-1"]

    async def test_cursor_committed_only_after_whole_page(
        self, make_engine, client, cursor_store, state_dir
    ):
        await cursor_store.save(ACCOUNT, "c0")
        client.add(make_page([make_message("m1"), make_message("m2")], "c1"))
        seen_on_disk: list[str] = []

        class CursorReadingDispatcher(RecordingDispatcher):
            async def dispatch(self, envelope):
                seen_on_disk.append(cursor_on_disk(state_dir))
                await super().dispatch(envelope)

        await make_engine(dispatcher=CursorReadingDispatcher()).sync(ACCOUNT)

        assert seen_on_disk == ["c0", "c0"]
        assert cursor_on_disk(state_dir) == "c1"

    async def test_cursor_chain_across_pages(self, make_engine, client, cursor_store):
        await cursor_store.save(ACCOUNT, "c0")
        client.add(
            make_page([make_message("m1")], "c1", has_more=True),
            make_page([make_message("m2")], "c2"),
        )

        await make_engine().sync(ACCOUNT)

        assert [r.cursor for r in client.requests] == ["c0", "c1"]
        assert all(r.token is None for r in client.requests)
        assert await cursor_store.load(ACCOUNT) == "c2"

    async def test_empty_next_cursor_keeps_previous(self, make_engine, client, cursor_store):
        await cursor_store.save(ACCOUNT, "c0")
        client.add(make_page([], ""))

        await make_engine().sync(ACCOUNT)

        assert await cursor_store.load(ACCOUNT) == "c0"

    async def test_duplicates_across_syncs_dispatch_once(self, make_engine, client, dispatcher, cursor_store):
        await cursor_store.save(ACCOUNT, "c0")
        client.add(
            make_page([make_message("m1")], "c1"),
            make_page([make_message("m1"), make_message("m2")], "c2"),
        )
        engine = make_engine()

        await engine.sync(ACCOUNT)
        await engine.sync(ACCOUNT)

        assert dispatcher.message_ids == ["m1", "m2"]

    async def test_fetch_failure_leaves_cursor(self, make_engine, client, cursor_store):
        await cursor_store.save(ACCOUNT, "c0")
        client.add(PlatformError("sync_msg", 95013, "invalid cursor"))

        report = await make_engine().sync(ACCOUNT)

        assert "95013" in report.error
        assert await cursor_store.load(ACCOUNT) == "c0"

    async def test_second_page_failure_keeps_first_page_commit(
        self, make_engine, client, dispatcher, cursor_store
    ):
        await cursor_store.save(ACCOUNT, "c0")
        client.add(
            make_page([make_message("m1")], "c1", has_more=True),
            TransportError("sync_msg timed out"),
        )

        report = await make_engine().sync(ACCOUNT)

        assert not report.ok
        assert report.pages == 1
        assert dispatcher.message_ids == ["m1"]
        assert await cursor_store.load(ACCOUNT) == "c1"

    async def test_dispatch_error_does_not_stop_page(self, make_engine, client, cursor_store):
        await cursor_store.save(ACCOUNT, "c0")
        failing = RecordingDispatcher(fail_ids={"m1"})
        client.add(make_page([make_message("m1"), make_message("m2")], "c1"))

        report = await make_engine(dispatcher=failing).sync(ACCOUNT)

        assert failing.message_ids == ["m2"]
        assert report.ok
        assert await cursor_store.load(ACCOUNT) == "c1"

    async def test_persist_failure_continues_with_memory_cursor(
        self, make_engine, client, dispatcher, state_dir
    ):
        state_dir.mkdir(parents=True)
        (state_dir / f"wechat-kf-cursor-{ACCOUNT}.txt").write_text("c0")
        client.add(
            make_page([make_message("m1")], "c1", has_more=True),
            make_page([make_message("m2")], "c2"),
        )

        report = await make_engine(cursor_store=FailingCursorStore(state_dir)).sync(ACCOUNT)

        assert report.ok
        assert [r.cursor for r in client.requests] == ["c0", "c1"]
        assert dispatcher.message_ids == ["m1", "m2"]
        assert cursor_on_disk(state_dir) == "c0"

    async def test_page_limit_is_sent(self, make_engine, client, cursor_store):
        await cursor_store.save(ACCOUNT, "c0")
        client.add(make_page([], "c1"))

        await make_engine(page_limit=200).sync(ACCOUNT)

        assert client.requests[0].limit == 200


@pytest.mark.asyncio
class TestSenderPolicy:
    async def test_allowlist(self, make_engine, client, dispatcher, cursor_store):
        await cursor_store.save(ACCOUNT, "c0")
        client.add(
            make_page([make_message("m1", sender="wmVIP"), make_message("m2", sender="wmOther")], "c1")
        )

        await make_engine(dm_policy="allowlist", allow_from={"wmVIP"}).sync(ACCOUNT)

        assert dispatcher.message_ids == ["m1"]

    async def test_disabled_drops_everything(self, make_engine, client, dispatcher, cursor_store):
        await cursor_store.save(ACCOUNT, "c0")
        client.add(make_page([make_message("m1")], "c1"))

        await make_engine(dm_policy="disabled").sync(ACCOUNT)

        assert dispatcher.envelopes == []
        assert await cursor_store.load(ACCOUNT) == "c1"

    async def test_unknown_policy_rejected(self, make_engine):
        with pytest.raises(ValueError):
            make_engine(dm_policy="pairing")


@pytest.mark.asyncio
class TestAccounts:
    async def test_sync_registers_account(self, make_engine, client, registry):
        client.add(make_page([], "c1"))

        await make_engine().sync("wkNEW")

        assert "wkNEW" in registry

    async def test_disabled_account_is_skipped(self, make_engine, client, registry):
        await registry.set_status(ACCOUNT, AccountStatus.DISABLED)

        report = await make_engine().sync(ACCOUNT)

        assert report.mode == MODE_SKIPPED
        assert client.requests == []

    async def test_deleted_account_is_skipped(self, make_engine, client, registry):
        await registry.set_status(ACCOUNT, AccountStatus.DELETED)

        report = await make_engine().sync(ACCOUNT)

        assert report.mode == MODE_SKIPPED
        assert client.requests == []

    async def test_same_account_syncs_serialize(self, make_engine, client, dispatcher, cursor_store):
        await cursor_store.save(ACCOUNT, "c0")
        client.add(
            make_page([make_message("m1")], "c1"),
            make_page([make_message("m2")], "c2"),
        )
        engine = make_engine()

        await asyncio.gather(engine.sync(ACCOUNT), engine.sync(ACCOUNT))

        assert [r.cursor for r in client.requests] == ["c0", "c1"]
        assert dispatcher.message_ids == ["m1", "m2"]
        assert len(engine.mutex) == 0
