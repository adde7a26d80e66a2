"""Offline queue with bounded retry.

Every new signal gets an entry. The entry is removed when delivery
succeeds, or when retries are exhausted (``max_retry_attempts`` failures
or older than ``queue_retention``). Failed attempts back off
exponentially before the entry is due again.
"""
import logging
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

from safenest.shared.models import OfflineQueueEntry, SafetySignal
from safenest.shared.utils import Clock, utc_now

from .config import SignalConfig
from .repository import InMemoryOfflineQueueStore, OfflineQueueStore

logger = logging.getLogger(__name__)


class OfflineQueue:
    """Retry bookkeeping over an OfflineQueueStore."""

    def __init__(
        self,
        store: Optional[OfflineQueueStore] = None,
        config: Optional[SignalConfig] = None,
        clock: Clock = utc_now,
    ):
        self.store = store or InMemoryOfflineQueueStore()
        self.config = config or SignalConfig()
        self._clock = clock

    def __len__(self) -> int:
        return len(self.store.list_entries())

    def enqueue(self, signal: SafetySignal) -> OfflineQueueEntry:
        """Add an entry for ``signal`` unless one exists already."""
        existing = self.store.get(signal.id)
        if existing is not None:
            return existing

        entry = OfflineQueueEntry(signal=signal, queued_at=self._clock())
        self.store.put(entry)
        logger.debug("SIGNAL_ENQUEUED", extra={"signal_id": signal.id})
        return entry

    def get(self, signal_id: str) -> Optional[OfflineQueueEntry]:
        return self.store.get(signal_id)

    def remove(self, signal_id: str) -> bool:
        return self.store.remove(signal_id)

    def entries(self) -> List[OfflineQueueEntry]:
        return self.store.list_entries()

    def refresh(self, signal: SafetySignal) -> None:
        """Store the latest snapshot of ``signal`` on its entry, if queued."""
        entry = self.store.get(signal.id)
        if entry is not None:
            self.store.put(replace(entry, signal=signal))

    def record_failure(self, signal_id: str) -> Optional[OfflineQueueEntry]:
        """Count a failed attempt and schedule the next one.

        Returns:
            The updated entry, or None if the signal is no longer queued
        """
        entry = self.store.get(signal_id)
        if entry is None:
            return None

        now = self._clock()
        retry_count = entry.retry_count + 1
        updated = replace(
            entry,
            retry_count=retry_count,
            last_retry_at=now,
            next_retry_at=now + self.config.retry_delay(retry_count),
        )
        self.store.put(updated)
        return updated

    def is_exhausted(self, entry: OfflineQueueEntry, now: Optional[datetime] = None) -> bool:
        now = now or self._clock()
        if entry.retry_count >= self.config.max_retry_attempts:
            return True
        return now - entry.queued_at >= self.config.queue_retention

    def due_entries(self, now: Optional[datetime] = None) -> List[OfflineQueueEntry]:
        """Entries whose backoff has elapsed, oldest first."""
        now = now or self._clock()
        return [entry for entry in self.store.list_entries() if entry.is_due(now)]
