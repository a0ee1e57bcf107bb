"""
Service container for one running bridge.

Everything that holds per-process state (token cache, account registry,
dedup window, per-account locks, background tasks) hangs off one
BridgeRuntime, stored on ``app.state.kf_runtime``. Tests build their own
runtime and drop it with reset() instead of patching module globals.
"""

from dataclasses import dataclass

import aiohttp

from kfbridge.crypto.codec import CryptoCodec
from kfbridge.domain.dispatchers.http_forward_dispatcher import HttpForwardDispatcher
from kfbridge.domain.dispatchers.logging_dispatcher import LoggingDispatcher
from kfbridge.domain.interfaces.dispatch_interface import IMessageDispatcher
from kfbridge.messaging.kf.client.kf_client import KfClient
from kfbridge.messaging.kf.token_cache import TokenCache
from kfbridge.persistence.account_registry import AccountRegistry
from kfbridge.persistence.cursor_store import CursorStore

from .config.settings import Settings
from .sync.dedup_window import DedupWindow
from .sync.keyed_mutex import KeyedMutex
from .sync.scheduler import SyncScheduler
from .sync.sync_engine import SyncEngine


@dataclass
class BridgeRuntime:
    """Wired services of a running bridge."""

    codec: CryptoCodec
    client: KfClient
    token_cache: TokenCache
    registry: AccountRegistry
    cursor_store: CursorStore
    dispatcher: IMessageDispatcher
    engine: SyncEngine
    scheduler: SyncScheduler
    webhook_path: str = "/wechat-kf"
    max_body_bytes: int = 64 * 1024

    @classmethod
    def create(
        cls,
        config: Settings,
        session: aiohttp.ClientSession,
        dispatcher: IMessageDispatcher | None = None,
    ) -> "BridgeRuntime":
        """
        Wire every service from configuration.

        Raises:
            ConfigError: Missing credentials or a malformed AES key
        """
        codec = CryptoCodec(config.callback_credential)
        client = KfClient(
            session, config.enterprise_credential, base_url=config.api_base_url
        )
        registry = AccountRegistry()
        registry.set_state_dir(config.state_dir)
        cursor_store = CursorStore(config.state_dir, registry.file_manager)

        if dispatcher is None:
            if config.forward_url:
                dispatcher = HttpForwardDispatcher(session, config.forward_url)
            else:
                dispatcher = LoggingDispatcher()

        engine = SyncEngine(
            client=client,
            cursor_store=cursor_store,
            registry=registry,
            dispatcher=dispatcher,
            dedup=DedupWindow(),
            mutex=KeyedMutex(),
            page_limit=config.sync_page_limit,
            max_message_age=config.max_message_age,
            cold_start_max_pages=config.cold_start_max_pages,
            dm_policy=config.dm_policy,
            allow_from=frozenset(config.allow_from),
        )
        return cls(
            codec=codec,
            client=client,
            token_cache=client.token_cache,
            registry=registry,
            cursor_store=cursor_store,
            dispatcher=dispatcher,
            engine=engine,
            scheduler=SyncScheduler(engine),
            webhook_path=config.webhook_path,
            max_body_bytes=config.max_body_bytes,
        )

    async def close(self) -> None:
        """Drain background syncs, then release the dispatcher."""
        await self.scheduler.close()
        await self.dispatcher.close()

    def reset(self) -> None:
        """Drop all in-memory state (tokens, accounts, dedup ids)."""
        self.token_cache.reset()
        self.registry.reset()
        self.engine.dedup.reset()
