"""Tests for OfflineQueue retry bookkeeping."""
from datetime import datetime, timedelta, timezone

import pytest

from safenest.services.safety_signal.config import SignalConfig
from safenest.services.safety_signal.offline_queue import OfflineQueue
from safenest.shared.models import (
    OfflineQueueEntry,
    Platform,
    SafetySignal,
    SignalStatus,
    TriggerMethod,
)


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def make_signal(signal_id="sig_1"):
    return SafetySignal(
        id=signal_id,
        child_id="child_1",
        family_id="family_1",
        trigger_method=TriggerMethod.SWIPE_PATTERN,
        platform=Platform.ANDROID,
        status=SignalStatus.QUEUED,
        triggered_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        offline_queued=True,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def queue(clock):
    return OfflineQueue(config=SignalConfig(), clock=clock)


class TestEnqueue:
    def test_enqueue_creates_entry(self, queue, clock):
        entry = queue.enqueue(make_signal())

        assert entry.retry_count == 0
        assert entry.queued_at == clock.now
        assert len(queue) == 1

    def test_enqueue_is_idempotent(self, queue, clock):
        first = queue.enqueue(make_signal())
        clock.advance(seconds=5)
        second = queue.enqueue(make_signal())

        assert second == first
        assert len(queue) == 1

    def test_entries_ordered_oldest_first(self, queue, clock):
        queue.enqueue(make_signal("sig_b"))
        clock.advance(seconds=1)
        queue.enqueue(make_signal("sig_a"))

        assert [e.signal_id for e in queue.entries()] == ["sig_b", "sig_a"]


class TestRecordFailure:
    def test_backoff_doubles_and_caps(self, queue, clock):
        queue.enqueue(make_signal())
        delays = []
        for _ in range(7):
            entry = queue.record_failure("sig_1")
            delays.append((entry.next_retry_at - entry.last_retry_at).total_seconds())

        assert delays == [1, 2, 4, 8, 16, 30, 30]

    def test_failure_on_missing_entry(self, queue):
        assert queue.record_failure("sig_missing") is None

    def test_entry_not_due_until_backoff_elapses(self, queue, clock):
        queue.enqueue(make_signal())
        queue.record_failure("sig_1")

        assert queue.due_entries() == []
        clock.advance(seconds=1)
        assert len(queue.due_entries()) == 1


class TestExhaustion:
    def test_exhausted_after_max_attempts(self, queue):
        entry = queue.enqueue(make_signal())
        for _ in range(4):
            entry = queue.record_failure("sig_1")
        assert queue.is_exhausted(entry) is False

        entry = queue.record_failure("sig_1")
        assert queue.is_exhausted(entry) is True

    def test_exhausted_after_retention(self, queue, clock):
        entry = queue.enqueue(make_signal())

        clock.advance(hours=167)
        assert queue.is_exhausted(entry) is False
        clock.advance(hours=1)
        assert queue.is_exhausted(entry) is True


def test_negative_retry_count_rejected():
    with pytest.raises(ValueError):
        OfflineQueueEntry(
            signal=make_signal(),
            queued_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            retry_count=-1,
        )


def test_retry_delay_config():
    config = SignalConfig(base_retry_delay_ms=500, max_retry_delay_ms=2000)

    assert config.retry_delay(1) == timedelta(milliseconds=500)
    assert config.retry_delay(4) == timedelta(milliseconds=2000)
