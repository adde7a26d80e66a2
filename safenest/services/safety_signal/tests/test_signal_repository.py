"""Tests for signal and offline queue stores."""
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from safenest.services.safety_signal.repository import (
    InMemoryOfflineQueueStore,
    InMemorySignalStore,
    PostgresOfflineQueueStore,
    PostgresSignalStore,
)
from safenest.shared.models import (
    OfflineQueueEntry,
    Platform,
    SafetySignal,
    SignalStatus,
    TriggerEvent,
    TriggerMethod,
)

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_signal(signal_id="sig_1", status=SignalStatus.PENDING, version=0):
    return SafetySignal(
        id=signal_id,
        child_id="child_1",
        family_id="family_1",
        trigger_method=TriggerMethod.KEYBOARD_SHORTCUT,
        platform=Platform.WEB,
        status=status,
        triggered_at=NOW,
        version=version,
    )


def make_event(signal_id="sig_1"):
    return TriggerEvent(
        id=f"trg_{signal_id}",
        signal_id=signal_id,
        child_id="child_1",
        trigger_method=TriggerMethod.KEYBOARD_SHORTCUT,
        platform=Platform.WEB,
        timestamp=NOW,
    )


class TestInMemorySignalStore:
    def test_create_and_get(self):
        store = InMemorySignalStore()
        signal = make_signal()

        store.create(signal, make_event())

        assert store.get("sig_1") == signal
        assert len(store.trigger_events_for("sig_1")) == 1

    def test_create_is_idempotent(self):
        store = InMemorySignalStore()
        first = make_signal()
        store.create(first, make_event())

        result = store.create(make_signal(status=SignalStatus.QUEUED), make_event())

        assert result == first
        assert len(store.trigger_events_for("sig_1")) == 1

    def test_compare_and_set(self):
        store = InMemorySignalStore()
        signal = make_signal()
        store.create(signal, make_event())

        sent = signal.with_status(SignalStatus.SENT)

        assert store.compare_and_set(signal, sent) is True
        assert store.get("sig_1").status == SignalStatus.SENT

    def test_stale_compare_and_set_rejected(self):
        store = InMemorySignalStore()
        signal = make_signal()
        store.create(signal, make_event())
        store.compare_and_set(signal, signal.with_status(SignalStatus.SENT))

        assert store.compare_and_set(signal, signal.with_status(SignalStatus.SENT)) is False
        assert store.get("sig_1").version == 1

    def test_compare_and_set_unknown(self):
        signal = make_signal()

        assert InMemorySignalStore().compare_and_set(signal, signal) is False


class TestInMemoryOfflineQueueStore:
    def test_put_get_remove(self):
        store = InMemoryOfflineQueueStore()
        entry = OfflineQueueEntry(signal=make_signal(), queued_at=NOW)

        store.put(entry)

        assert store.get("sig_1") == entry
        assert store.remove("sig_1") is True
        assert store.remove("sig_1") is False
        assert store.list_entries() == []


@pytest.fixture
def cursor():
    return MagicMock()


@pytest.fixture
def manager(cursor):
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    manager = MagicMock()
    manager.get_connection.return_value.__enter__.return_value = conn
    return manager


class TestPostgresSignalStore:
    def test_row_round_trip(self, manager):
        store = PostgresSignalStore(manager)
        signal = make_signal(version=3)

        params = store._entity_to_params(signal)
        row = tuple(params[column] for column in store.columns)

        assert store._row_to_entity(row) == signal

    def test_create_writes_signal_and_event(self, manager, cursor):
        cursor.rowcount = 1
        store = PostgresSignalStore(manager)

        store.create(make_signal(), make_event())

        statements = [call.args[0] for call in cursor.execute.call_args_list]
        assert statements[0].startswith("INSERT INTO safety_signals")
        assert statements[1].startswith("INSERT INTO signal_trigger_events")

    def test_duplicate_create_returns_stored(self, manager, cursor):
        cursor.rowcount = 0
        stored = make_signal(status=SignalStatus.SENT, version=1)
        store = PostgresSignalStore(manager)
        cursor.fetchone.return_value = tuple(
            store._entity_to_params(stored)[column] for column in store.columns
        )

        result = store.create(make_signal(), make_event())

        assert result == stored

    def test_compare_and_set_checks_status_and_version(self, manager, cursor):
        cursor.rowcount = 1
        store = PostgresSignalStore(manager)
        signal = make_signal(version=1)

        assert store.compare_and_set(signal, signal.with_status(SignalStatus.SENT)) is True

        query, params = cursor.execute.call_args.args
        assert query == (
            "UPDATE safety_signals SET status = %s, version = %s, delivered_at = %s, "
            "acknowledged_at = %s WHERE id = %s AND status = %s AND version = %s"
        )
        assert params == ["sent", 2, None, None, "sig_1", "pending", 1]

    def test_lost_race_returns_false(self, manager, cursor):
        cursor.rowcount = 0
        store = PostgresSignalStore(manager)
        signal = make_signal()

        assert store.compare_and_set(signal, signal.with_status(SignalStatus.SENT)) is False


class TestPostgresOfflineQueueStore:
    def test_entry_rows_resolve_signal(self, manager, cursor):
        signals = MagicMock()
        signals.get.return_value = make_signal()
        store = PostgresOfflineQueueStore(manager, signals)
        cursor.fetchall.return_value = [("sig_1", NOW, 2, NOW, None)]

        entries = store.list_entries()

        assert len(entries) == 1
        assert entries[0].signal_id == "sig_1"
        assert entries[0].retry_count == 2
        assert "ORDER BY queued_at" in cursor.execute.call_args.args[0]

    def test_put_upserts(self, manager, cursor):
        store = PostgresOfflineQueueStore(manager, MagicMock())

        store.put(OfflineQueueEntry(signal=make_signal(), queued_at=NOW))

        assert "ON CONFLICT (id) DO UPDATE" in cursor.execute.call_args.args[0]
