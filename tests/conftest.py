"""
Pytest configuration and common fixtures for kfbridge tests.

Provides credentials, a fake aiohttp session, a scripted sync client and a
recording dispatcher shared by all test modules.
"""

import json
import os
import tempfile

# Settings are read at import time; keep tests independent of any local .env
os.environ.setdefault("ENVIRONMENT", "DEV")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "kfbridge-test-logs"))

import pytest  # noqa: E402

from kfbridge.crypto.codec import CryptoCodec  # noqa: E402
from kfbridge.domain.interfaces.dispatch_interface import (  # noqa: E402
    IMessageDispatcher,
    InboundEnvelope,
)
from kfbridge.domain.models.credentials import (  # noqa: E402
    CallbackCredential,
    EnterpriseCredential,
)
from kfbridge.messaging.kf.models import KfMessage, SyncMsgResponse  # noqa: E402

TEST_AES_KEY = "abcdefghijklmnopqrstuvwxyz0123456789ABCDEFG"
TEST_CALLBACK_TOKEN = "callback-token"
NOW = 1_700_000_000


class FakeResponse:
    """Stand-in for aiohttp.ClientResponse used as an async context manager."""

    def __init__(self, status: int = 200, payload=None, text: str | None = None):
        self.status = status
        self._payload = payload if payload is not None else {}
        self._text = text

    async def json(self, content_type=None):
        if self._text is not None and self._payload == {}:
            return json.loads(self._text)
        return self._payload

    async def text(self):
        return self._text if self._text is not None else json.dumps(self._payload)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Stand-in for aiohttp.ClientSession with scripted responses per method."""

    def __init__(self):
        self.responses: dict[str, list] = {"GET": [], "POST": []}
        self.calls: list[tuple[str, str, dict]] = []

    def queue(self, method: str, item) -> "FakeSession":
        self.responses[method].append(item)
        return self

    def _next(self, method: str, url: str, kwargs: dict):
        self.calls.append((method, url, kwargs))
        item = self.responses[method].pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def get(self, url, **kwargs):
        return self._next("GET", url, kwargs)

    def post(self, url, **kwargs):
        return self._next("POST", url, kwargs)

    def calls_for(self, method: str) -> list[tuple[str, str, dict]]:
        return [call for call in self.calls if call[0] == method]


class FakeSyncClient:
    """Replays scripted sync_msg pages (or raises scripted errors) in order."""

    def __init__(self, pages=None):
        self.pages = list(pages or [])
        self.requests = []

    def add(self, *pages) -> "FakeSyncClient":
        self.pages.extend(pages)
        return self

    async def sync_messages(self, request):
        self.requests.append(request.model_copy())
        item = self.pages.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class RecordingDispatcher(IMessageDispatcher):
    """Collects envelopes; optionally fails for selected message ids."""

    def __init__(self, fail_ids: set[str] | None = None):
        self.envelopes: list[InboundEnvelope] = []
        self.fail_ids = fail_ids or set()

    async def dispatch(self, envelope: InboundEnvelope) -> None:
        if envelope.message_id in self.fail_ids:
            raise RuntimeError(f"downstream rejected {envelope.message_id}")
        self.envelopes.append(envelope)

    @property
    def message_ids(self) -> list[str]:
        return [envelope.message_id for envelope in self.envelopes]


def make_message(
    msgid: str,
    *,
    account_id: str = "wkTEST",
    sender: str = "wmCustomer",
    origin: int = 3,
    msgtype: str = "text",
    send_time: int = NOW - 10,
    **sections,
) -> KfMessage:
    data = {
        "msgid": msgid,
        "open_kfid": account_id,
        "external_userid": sender,
        "send_time": send_time,
        "origin": origin,
        "msgtype": msgtype,
    }
    if msgtype == "text" and "text" not in sections:
        sections["text"] = {"content": f"hello {msgid}"}
    data.update(sections)
    return KfMessage.model_validate(data)


def make_page(messages=(), next_cursor: str = "", has_more: bool = False) -> SyncMsgResponse:
    return SyncMsgResponse(
        errcode=0,
        errmsg="ok",
        next_cursor=next_cursor,
        has_more=1 if has_more else 0,
        msg_list=list(messages),
    )


@pytest.fixture
def enterprise_credential() -> EnterpriseCredential:
    return EnterpriseCredential(corp_id="wwcorp123", app_secret="app-secret-value")


@pytest.fixture
def callback_credential() -> CallbackCredential:
    return CallbackCredential(token=TEST_CALLBACK_TOKEN, encoding_aes_key=TEST_AES_KEY)


@pytest.fixture
def codec(callback_credential) -> CryptoCodec:
    return CryptoCodec(callback_credential)


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def state_dir(tmp_path):
    return tmp_path / "state"
