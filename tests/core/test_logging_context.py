"""Tests for account/sender log prefixes."""

import asyncio
import logging

import pytest

from kfbridge.core.logging.context import (
    clear_sender_context,
    clear_sync_context,
    get_context_info,
    reset_sync_context,
    set_sync_context,
)
from kfbridge.core.logging.logger import ContextLogger, get_account_logger, get_logger


@pytest.fixture(autouse=True)
def clean_context():
    clear_sync_context()
    yield
    clear_sync_context()


def test_no_context_leaves_message_alone():
    assert get_logger("test")._format_message("hello") == "hello"


def test_account_and_sender_prefix():
    token = set_sync_context("wkA", sender_id="wmU")
    logger = get_logger("test")

    assert logger._format_message("hello") == "[A:wkA][U:wmU] hello"

    clear_sender_context()
    assert logger._format_message("hello") == "[A:wkA] hello"

    reset_sync_context(token)
    assert get_context_info() == {"account_id": None, "sender_id": None}


def test_pinned_account_logger():
    logger = get_account_logger("test", "wkPinned")
    assert logger._format_message("x") == "[A:wkPinned] x"


def test_bind_overrides_context():
    logger = ContextLogger(logging.getLogger("test")).bind(sender_id="wmU")
    assert logger._format_message("x") == "[U:wmU] x"


@pytest.mark.asyncio
async def test_context_is_isolated_per_task():
    seen: dict[str, str | None] = {}

    async def run(account_id: str):
        set_sync_context(account_id)
        await asyncio.sleep(0)
        seen[account_id] = get_context_info()["account_id"]

    await asyncio.gather(run("wkA"), run("wkB"))

    assert seen == {"wkA": "wkA", "wkB": "wkB"}
    assert get_context_info()["account_id"] is None


def test_logger_built_inside_a_sync_does_not_keep_its_context():
    token = set_sync_context("wkA", sender_id="wmU")
    logger = get_logger("test")
    reset_sync_context(token)

    assert logger._format_message("later") == "later"
