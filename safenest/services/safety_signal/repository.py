"""Storage for safety signals, trigger events and the offline queue.

Signals live outside any family-readable store. In-memory stores serve
local development and tests; the Postgres stores are used in production
so queued signals survive restarts.

Status changes are compare-and-set on ``(status, version)``: a writer
that lost a race gets False back instead of overwriting a newer state.
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from safenest.shared.database import BaseRepository, ConnectionManager, DuplicateError
from safenest.shared.models import (
    OfflineQueueEntry,
    Platform,
    SafetySignal,
    SignalStatus,
    TriggerEvent,
    TriggerMethod,
)

logger = logging.getLogger(__name__)


class SignalStore(ABC):
    """Persistence for SafetySignal and TriggerEvent records."""

    @abstractmethod
    def create(self, signal: SafetySignal, trigger_event: TriggerEvent) -> SafetySignal:
        """Store a new signal with its trigger event.

        Idempotent on ``signal.id``: if the id exists, the stored signal is
        returned and nothing is written.
        """

    @abstractmethod
    def get(self, signal_id: str) -> Optional[SafetySignal]:
        pass

    @abstractmethod
    def compare_and_set(self, current: SafetySignal, updated: SafetySignal) -> bool:
        """Replace ``current`` with ``updated`` if the stored row is unchanged."""

    @abstractmethod
    def trigger_events_for(self, signal_id: str) -> List[TriggerEvent]:
        pass


class OfflineQueueStore(ABC):
    """Persistence for OfflineQueueEntry records, keyed by signal id."""

    @abstractmethod
    def put(self, entry: OfflineQueueEntry) -> None:
        pass

    @abstractmethod
    def get(self, signal_id: str) -> Optional[OfflineQueueEntry]:
        pass

    @abstractmethod
    def remove(self, signal_id: str) -> bool:
        pass

    @abstractmethod
    def list_entries(self) -> List[OfflineQueueEntry]:
        """All entries, oldest ``queued_at`` first."""


class InMemorySignalStore(SignalStore):
    """Thread-safe in-memory signal store."""

    def __init__(self):
        self._lock = threading.Lock()
        self._signals: Dict[str, SafetySignal] = {}
        self._trigger_events: Dict[str, List[TriggerEvent]] = {}

    def create(self, signal: SafetySignal, trigger_event: TriggerEvent) -> SafetySignal:
        with self._lock:
            existing = self._signals.get(signal.id)
            if existing is not None:
                return existing
            self._signals[signal.id] = signal
            self._trigger_events.setdefault(signal.id, []).append(trigger_event)
            return signal

    def get(self, signal_id: str) -> Optional[SafetySignal]:
        with self._lock:
            return self._signals.get(signal_id)

    def compare_and_set(self, current: SafetySignal, updated: SafetySignal) -> bool:
        with self._lock:
            stored = self._signals.get(current.id)
            if stored is None:
                return False
            if stored.status != current.status or stored.version != current.version:
                return False
            self._signals[current.id] = updated
            return True

    def trigger_events_for(self, signal_id: str) -> List[TriggerEvent]:
        with self._lock:
            return list(self._trigger_events.get(signal_id, []))

    def all(self) -> List[SafetySignal]:
        with self._lock:
            return list(self._signals.values())


class InMemoryOfflineQueueStore(OfflineQueueStore):
    """Thread-safe in-memory offline queue."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[str, OfflineQueueEntry] = {}

    def put(self, entry: OfflineQueueEntry) -> None:
        with self._lock:
            self._entries[entry.signal_id] = entry

    def get(self, signal_id: str) -> Optional[OfflineQueueEntry]:
        with self._lock:
            return self._entries.get(signal_id)

    def remove(self, signal_id: str) -> bool:
        with self._lock:
            return self._entries.pop(signal_id, None) is not None

    def list_entries(self) -> List[OfflineQueueEntry]:
        with self._lock:
            return sorted(self._entries.values(), key=lambda entry: entry.queued_at)


class PostgresSignalStore(BaseRepository[SafetySignal], SignalStore):
    """Signals in ``safety_signals``, trigger events in ``signal_trigger_events``."""

    columns = (
        "id", "child_id", "family_id", "device_id", "trigger_method", "platform",
        "status", "triggered_at", "offline_queued", "delivered_at",
        "acknowledged_at", "version",
    )
    trigger_table = "signal_trigger_events"

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "safety_signals")

    def _row_to_entity(self, row: tuple) -> SafetySignal:
        return SafetySignal(
            id=row[0],
            child_id=row[1],
            family_id=row[2],
            device_id=row[3],
            trigger_method=TriggerMethod(row[4]),
            platform=Platform(row[5]),
            status=SignalStatus(row[6]),
            triggered_at=row[7],
            offline_queued=row[8],
            delivered_at=row[9],
            acknowledged_at=row[10],
            version=row[11],
        )

    def _entity_to_params(self, entity: SafetySignal) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "child_id": entity.child_id,
            "family_id": entity.family_id,
            "device_id": entity.device_id,
            "trigger_method": entity.trigger_method.value,
            "platform": entity.platform.value,
            "status": entity.status.value,
            "triggered_at": entity.triggered_at,
            "offline_queued": entity.offline_queued,
            "delivered_at": entity.delivered_at,
            "acknowledged_at": entity.acknowledged_at,
            "version": entity.version,
        }

    def create(self, signal: SafetySignal, trigger_event: TriggerEvent) -> SafetySignal:
        try:
            self.insert(signal)
        except DuplicateError:
            logger.debug("SIGNAL_CREATE_DUPLICATE_IGNORED", extra={"signal_id": signal.id})
            return self.find_by_id(signal.id)

        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"INSERT INTO {self.trigger_table} "
                    "(id, signal_id, child_id, trigger_method, platform, timestamp) "
                    "VALUES (%s, %s, %s, %s, %s, %s)",
                    (
                        trigger_event.id,
                        trigger_event.signal_id,
                        trigger_event.child_id,
                        trigger_event.trigger_method.value,
                        trigger_event.platform.value,
                        trigger_event.timestamp,
                    ),
                )
            conn.commit()
        return signal

    def get(self, signal_id: str) -> Optional[SafetySignal]:
        return self.find_by_id(signal_id)

    def compare_and_set(self, current: SafetySignal, updated: SafetySignal) -> bool:
        return super().compare_and_set(
            current.id,
            expected={"status": current.status.value, "version": current.version},
            changes={
                "status": updated.status.value,
                "version": updated.version,
                "delivered_at": updated.delivered_at,
                "acknowledged_at": updated.acknowledged_at,
            },
        )

    def trigger_events_for(self, signal_id: str) -> List[TriggerEvent]:
        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT id, signal_id, child_id, trigger_method, platform, timestamp "
                    f"FROM {self.trigger_table} WHERE signal_id = %s ORDER BY timestamp",
                    (signal_id,),
                )
                rows = cur.fetchall()

        return [
            TriggerEvent(
                id=row[0],
                signal_id=row[1],
                child_id=row[2],
                trigger_method=TriggerMethod(row[3]),
                platform=Platform(row[4]),
                timestamp=row[5],
            )
            for row in rows
        ]


class PostgresOfflineQueueStore(BaseRepository[OfflineQueueEntry], OfflineQueueStore):
    """Queue rows in ``signal_offline_queue``; ``id`` is the signal id."""

    columns = ("id", "queued_at", "retry_count", "last_retry_at", "next_retry_at")

    def __init__(self, connection_manager: ConnectionManager, signal_store: SignalStore):
        super().__init__(connection_manager, "signal_offline_queue")
        self.signal_store = signal_store

    def _row_to_entity(self, row: tuple) -> OfflineQueueEntry:
        signal = self.signal_store.get(row[0])
        if signal is None:
            raise LookupError(f"queue entry {row[0]} has no signal")
        return OfflineQueueEntry(
            signal=signal,
            queued_at=row[1],
            retry_count=row[2],
            last_retry_at=row[3],
            next_retry_at=row[4],
        )

    def _entity_to_params(self, entity: OfflineQueueEntry) -> Dict[str, Any]:
        return {
            "id": entity.signal_id,
            "queued_at": entity.queued_at,
            "retry_count": entity.retry_count,
            "last_retry_at": entity.last_retry_at,
            "next_retry_at": entity.next_retry_at,
        }

    def put(self, entry: OfflineQueueEntry) -> None:
        self.save(entry)

    def get(self, signal_id: str) -> Optional[OfflineQueueEntry]:
        return self.find_by_id(signal_id)

    def remove(self, signal_id: str) -> bool:
        return self.delete(signal_id)

    def list_entries(self) -> List[OfflineQueueEntry]:
        return self.find_where("TRUE ORDER BY queued_at")
