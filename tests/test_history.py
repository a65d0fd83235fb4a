"""Tests for bounded FIFO history."""

from datetime import datetime, timedelta, timezone

import pytest

from depthscope.data.history import BoundedHistory


def test_never_exceeds_cap():
    history = BoundedHistory[int](3)
    for i in range(10):
        history.append(i)

    assert len(history) == 3
    assert history.snapshot() == (7, 8, 9)


def test_append_past_cap_evicts_oldest():
    history = BoundedHistory[str](2)
    assert history.append("a") is None
    assert history.append("b") is None

    evicted = history.append("c")

    assert evicted == "a"
    assert list(history) == ["b", "c"]


def test_snapshot_is_immutable_copy():
    history = BoundedHistory[int](5)
    history.extend([1, 2])
    view = history.snapshot()
    history.append(3)

    assert view == (1, 2)
    assert history.latest() == 3


def test_tail():
    history = BoundedHistory[int](10)
    history.extend(list(range(6)))

    assert history.tail(3) == (3, 4, 5)
    assert history.tail(0) == ()
    assert history.tail(50) == (0, 1, 2, 3, 4, 5)


def test_since_and_retain():
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    history = BoundedHistory[datetime](10)
    history.extend([base + timedelta(seconds=s) for s in range(5)])

    recent = history.since(base + timedelta(seconds=3), lambda ts: ts)
    removed = history.retain(lambda ts: ts >= base + timedelta(seconds=2))

    assert recent == [base + timedelta(seconds=3), base + timedelta(seconds=4)]
    assert removed == 2
    assert len(history) == 3


def test_empty_history():
    history = BoundedHistory[int](1)
    assert history.latest() is None
    assert len(history) == 0


def test_rejects_non_positive_cap():
    with pytest.raises(ValueError, match="positive"):
        BoundedHistory(0)
