"""Tests for the bounded dedup window."""

import pytest

from kfbridge.core.sync.dedup_window import DEDUP_MAX_SIZE, DedupWindow


def test_first_sighting_is_not_duplicate():
    window = DedupWindow()
    assert window.check_and_add("m1") is False
    assert window.check_and_add("m1") is True
    assert "m1" in window


def test_default_capacity():
    assert DedupWindow().capacity == DEDUP_MAX_SIZE == 10_000


def test_full_window_evicts_oldest_half():
    window = DedupWindow(capacity=4)
    for msgid in ("m1", "m2", "m3", "m4"):
        window.check_and_add(msgid)

    assert window.check_and_add("m5") is False

    assert len(window) == 3
    assert "m1" not in window
    assert "m2" not in window
    assert all(msgid in window for msgid in ("m3", "m4", "m5"))


def test_evicted_id_is_accepted_again():
    window = DedupWindow(capacity=2)
    window.check_and_add("m1")
    window.check_and_add("m2")
    window.check_and_add("m3")

    assert window.check_and_add("m1") is False


def test_size_never_exceeds_capacity():
    window = DedupWindow(capacity=100)
    for i in range(1000):
        window.check_and_add(f"m{i}")
        assert len(window) <= 100


def test_reset():
    window = DedupWindow()
    window.check_and_add("m1")
    window.reset()
    assert len(window) == 0
    assert window.check_and_add("m1") is False


def test_capacity_must_allow_eviction():
    with pytest.raises(ValueError):
        DedupWindow(capacity=1)
