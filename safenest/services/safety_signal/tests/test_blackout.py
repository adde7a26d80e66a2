"""Tests for the family blackout after a safety signal."""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from safenest.services.safety_signal.blackout import (
    DEFAULT_BLACKOUT_HOURS,
    MAX_EXTENSION_HOURS,
    BlackoutError,
    InMemoryBlackoutStore,
    PostgresBlackoutStore,
    SignalBlackoutService,
)
from safenest.shared.models import SignalBlackout

T = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self):
        self.now = T

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(clock):
    return SignalBlackoutService(clock=clock)


def test_defaults():
    assert DEFAULT_BLACKOUT_HOURS == 48
    assert MAX_EXTENSION_HOURS == 72


class TestStart:
    def test_default_duration(self, service):
        blackout = service.start("sig_1")

        assert blackout.signal_id == "sig_1"
        assert blackout.active is True
        assert blackout.expires_at - blackout.started_at == timedelta(hours=48)

    def test_custom_duration(self, service):
        blackout = service.start("sig_1", duration_hours=24)

        assert blackout.expires_at == T + timedelta(hours=24)

    @pytest.mark.parametrize("hours", [0, -1])
    def test_rejects_non_positive_duration(self, service, hours):
        with pytest.raises(BlackoutError, match="Duration must be positive"):
            service.start("sig_1", duration_hours=hours)

    def test_rejects_second_active_blackout(self, service):
        service.start("sig_1")

        with pytest.raises(BlackoutError, match="Active blackout already exists"):
            service.start("sig_1")

    def test_allows_new_blackout_after_expiry(self, service, clock):
        first = service.start("sig_1")
        clock.advance(hours=49)

        second = service.start("sig_1")

        assert second.id != first.id
        assert service.is_in_blackout("sig_1") is True


class TestIsInBlackout:
    def test_active(self, service):
        service.start("sig_1")

        assert service.is_in_blackout("sig_1") is True

    def test_expired_even_while_marked_active(self, service, clock):
        service.start("sig_1")
        clock.advance(hours=48)

        assert service.is_in_blackout("sig_1") is False

    def test_cancelled(self, service):
        service.start("sig_1")
        service.cancel("sig_1", "partner_1")

        assert service.is_in_blackout("sig_1") is False

    def test_unknown_signal(self, service):
        assert service.is_in_blackout("sig_missing") is False


class TestExtend:
    def test_extends_expiry(self, service):
        original = service.start("sig_1")

        extended = service.extend("sig_1", 24, "partner_1")

        assert extended.extended_by == "partner_1"
        assert extended.expires_at == original.expires_at + timedelta(hours=24)

    def test_requires_partner(self, service):
        service.start("sig_1")

        with pytest.raises(BlackoutError, match="Partner authorization required"):
            service.extend("sig_1", 24, "")

    def test_unknown_signal(self, service):
        with pytest.raises(BlackoutError, match="No active blackout found"):
            service.extend("sig_1", 24, "partner_1")

    def test_expired_blackout(self, service, clock):
        service.start("sig_1")
        clock.advance(hours=50)

        with pytest.raises(BlackoutError, match="Blackout has expired"):
            service.extend("sig_1", 24, "partner_1")

    def test_over_maximum(self, service):
        service.start("sig_1")

        with pytest.raises(BlackoutError, match="Extension exceeds maximum"):
            service.extend("sig_1", MAX_EXTENSION_HOURS + 1, "partner_1")

    def test_successive_extensions_record_latest_partner(self, service):
        service.start("sig_1")

        service.extend("sig_1", 24, "partner_a")
        second = service.extend("sig_1", 24, "partner_b")

        assert second.extended_by == "partner_b"
        assert second.expires_at == T + timedelta(hours=96)


class TestStatus:
    def test_ongoing(self, service, clock):
        service.start("sig_1")
        clock.advance(hours=23, minutes=30)

        status = service.get_status("sig_1")

        assert status.in_blackout is True
        assert status.expires_at == T + timedelta(hours=48)
        assert status.remaining_hours == 25

    def test_expired(self, service, clock):
        service.start("sig_1")
        clock.advance(hours=48, seconds=1)

        status = service.get_status("sig_1")

        assert status.in_blackout is False
        assert status.remaining_hours == 0

    def test_none(self, service):
        status = service.get_status("sig_1")

        assert status.in_blackout is False
        assert status.blackout_id is None

    def test_includes_extension(self, service):
        service.start("sig_1")
        service.extend("sig_1", 24, "partner_1")

        assert service.get_status("sig_1").to_dict()["extended_by"] == "partner_1"


class TestCancel:
    def test_cancel(self, service):
        service.start("sig_1")

        cancelled = service.cancel("sig_1", "partner_1")

        assert cancelled.active is False

    def test_requires_partner(self, service):
        with pytest.raises(BlackoutError, match="Partner authorization required"):
            service.cancel("sig_1", "")

    def test_unknown_signal(self, service):
        with pytest.raises(BlackoutError, match="No blackout found"):
            service.cancel("sig_1", "partner_1")


class TestHousekeeping:
    def test_active_blackouts_skip_expired(self, service, clock):
        service.start("sig_old", duration_hours=1)
        service.start("sig_1")
        service.start("sig_2", duration_hours=24)
        clock.advance(hours=2)

        active = service.active_blackouts()

        assert sorted(b.signal_id for b in active) == ["sig_1", "sig_2"]

    def test_cleanup_marks_expired_inactive(self, service, clock):
        service.start("sig_old", duration_hours=1)
        service.start("sig_1")
        clock.advance(hours=2)

        assert service.cleanup_expired() == 1
        assert service.cleanup_expired() == 0
        assert service.store.get_for_signal("sig_old").active is False


class TestPostgresBlackoutStore:
    @pytest.fixture
    def cursor(self):
        return MagicMock()

    @pytest.fixture
    def store(self, cursor):
        conn = MagicMock()
        conn.cursor.return_value.__enter__.return_value = cursor
        manager = MagicMock()
        manager.get_connection.return_value.__enter__.return_value = conn
        return PostgresBlackoutStore(manager)

    def test_get_for_signal_reads_latest(self, store, cursor):
        cursor.fetchall.return_value = [
            ("blk_1", "sig_1", T, T + timedelta(hours=48), None, True)
        ]

        blackout = store.get_for_signal("sig_1")

        assert blackout == SignalBlackout(
            id="blk_1",
            signal_id="sig_1",
            started_at=T,
            expires_at=T + timedelta(hours=48),
        )
        query, params = cursor.execute.call_args[0]
        assert "ORDER BY started_at DESC LIMIT 1" in query
        assert params == ("sig_1",)

    def test_put_upserts(self, store, cursor):
        store.put(SignalBlackout(
            id="blk_1",
            signal_id="sig_1",
            started_at=T,
            expires_at=T + timedelta(hours=48),
        ))

        query = cursor.execute.call_args[0][0]
        assert query.startswith("INSERT INTO signal_blackouts")
        assert "ON CONFLICT (id) DO UPDATE" in query


def test_in_memory_store_returns_latest_for_signal():
    store = InMemoryBlackoutStore()
    older = SignalBlackout("blk_1", "sig_1", T, T + timedelta(hours=1), active=False)
    newer = SignalBlackout("blk_2", "sig_1", T + timedelta(hours=2), T + timedelta(hours=50))
    store.put(older)
    store.put(newer)

    assert store.get_for_signal("sig_1") == newer
