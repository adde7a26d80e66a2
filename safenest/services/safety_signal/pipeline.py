"""Safety Signal pipeline.

Turns an accepted gesture into a persisted SafetySignal and drives it
through delivery:

    queued -> pending -> sent -> delivered -> acknowledged

The child must never learn whether delivery worked. Channel failures are
caught at one boundary (``send_silently``), logged at DEBUG only and
turned into retry bookkeeping on the offline queue. When retries run out
the failure goes to operators (CRITICAL log, audit entry, escalation
sink), never to the device.
"""
import logging
import threading
import uuid
from typing import Any, Callable, Dict, Optional, Set

from safenest.services.audit_service import AuditAction, AuditLogger
from safenest.shared.database import ConcurrentModificationError, NotFoundError
from safenest.shared.models import (
    OfflineQueueEntry,
    Platform,
    SafetySignal,
    SignalEnvelope,
    SignalStatus,
    TriggerEvent,
    TriggerMethod,
)
from safenest.shared.utils import Clock, hash_pii, utc_now

from .blackout import SignalBlackoutService
from .config import SignalConfig
from .delivery import (
    DeliveryReceipt,
    InMemorySignalChannel,
    InMemorySignalEventSink,
    NetworkMonitor,
    SignalDeliveryChannel,
    SignalEventSink,
    StaticNetworkMonitor,
)
from .offline_queue import OfflineQueue
from .repository import InMemorySignalStore, SignalStore
from .state_machine import InvalidStatusTransitionError, is_valid_status_transition, path_to

logger = logging.getLogger(__name__)

EVENT_DELIVERED = "safety.signal.delivered"
EVENT_ACKNOWLEDGED = "safety.signal.acknowledged"
EVENT_DELIVERY_ABANDONED = "safety.signal.delivery_abandoned"

_STATUS_EVENTS = {
    SignalStatus.DELIVERED: EVENT_DELIVERED,
    SignalStatus.ACKNOWLEDGED: EVENT_ACKNOWLEDGED,
}


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


class SafetySignalPipeline:
    """Creates, persists and delivers safety signals.

    Delivery for one signal id never runs twice at once: ids in flight are
    tracked and repeat attempts are skipped. Queue processing is serialized
    so only one run walks the queue at a time. Both guards are thread locks
    because the HTTP handler runs each request on its own event loop.

    ``event_sink`` receives lifecycle events for the routing service.
    ``family_sink`` receives the family-visible copies, which are held
    back while the signal is in its blackout.
    """

    def __init__(
        self,
        channel: Optional[SignalDeliveryChannel] = None,
        network: Optional[NetworkMonitor] = None,
        store: Optional[SignalStore] = None,
        queue: Optional[OfflineQueue] = None,
        event_sink: Optional[SignalEventSink] = None,
        escalation_sink: Optional[SignalEventSink] = None,
        audit_logger: Optional[AuditLogger] = None,
        config: Optional[SignalConfig] = None,
        clock: Clock = utc_now,
        id_factory: Callable[[str], str] = _new_id,
        blackout: Optional[SignalBlackoutService] = None,
        family_sink: Optional[SignalEventSink] = None,
    ):
        self.config = config or SignalConfig()
        self.channel = channel or InMemorySignalChannel()
        self.network = network or StaticNetworkMonitor()
        self.store = store or InMemorySignalStore()
        self.queue = queue or OfflineQueue(config=self.config, clock=clock)
        self.event_sink = event_sink or InMemorySignalEventSink()
        self.escalation_sink = escalation_sink or self.event_sink
        self.family_sink = family_sink
        self.audit_logger = audit_logger or AuditLogger(clock=clock)
        self.blackout = blackout or SignalBlackoutService(
            default_hours=self.config.blackout_hours, clock=clock
        )
        self._clock = clock
        self._id_factory = id_factory

        self._in_flight: Set[str] = set()
        self._in_flight_lock = threading.Lock()
        self._process_lock = threading.Lock()
        # Page URLs ride along with retries but are never persisted
        self._urls: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Trigger
    # ------------------------------------------------------------------

    async def handle_trigger(
        self,
        child_id: str,
        family_id: str,
        trigger_method: TriggerMethod,
        platform: Platform,
        url: Optional[str] = None,
        device_id: Optional[str] = None,
    ) -> SafetySignal:
        """Create and (when online) deliver a signal for an accepted gesture.

        Returns the stored signal for internal callers. Nothing about it may
        be surfaced to the child.
        """
        now = self._clock()
        online = self.network.is_online()

        signal = SafetySignal(
            id=self._id_factory("sig"),
            child_id=child_id,
            family_id=family_id,
            device_id=device_id,
            trigger_method=trigger_method,
            platform=platform,
            status=SignalStatus.PENDING if online else SignalStatus.QUEUED,
            triggered_at=now,
            offline_queued=not online,
        )
        trigger_event = TriggerEvent(
            id=self._id_factory("trg"),
            signal_id=signal.id,
            child_id=child_id,
            trigger_method=trigger_method,
            platform=platform,
            timestamp=now,
        )

        signal = self.store.create(signal, trigger_event)
        self.queue.enqueue(signal)
        if not self.blackout.is_in_blackout(signal.id):
            self.blackout.start(signal.id)
        if url:
            self._urls[signal.id] = url

        self.audit_logger.log_signal_event(
            AuditAction.SIGNAL_TRIGGERED,
            signal_id=signal.id,
            child_id_hash=hash_pii(child_id),
            family_id=family_id,
            details={
                "trigger_method": trigger_method.value,
                "platform": platform.value,
                "offline_queued": signal.offline_queued,
            },
        )
        logger.debug(
            "SAFETY_SIGNAL_CREATED",
            extra={"signal_id": signal.id, "offline_queued": signal.offline_queued}
        )

        if online:
            await self.deliver(signal.id)

        return self.store.get(signal.id) or signal

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def deliver(self, signal_id: str) -> bool:
        """Attempt delivery of one signal.

        Returns:
            True if the signal has been handed off (now or earlier),
            False if this attempt failed or was skipped
        """
        with self._in_flight_lock:
            claimed = signal_id not in self._in_flight
            if claimed:
                self._in_flight.add(signal_id)
        if not claimed:
            logger.debug("SIGNAL_DELIVERY_IN_FLIGHT", extra={"signal_id": signal_id})
            return False

        try:
            return await self._deliver(signal_id)
        finally:
            with self._in_flight_lock:
                self._in_flight.discard(signal_id)

    async def _deliver(self, signal_id: str) -> bool:
        signal = self.store.get(signal_id)
        if signal is None:
            self.queue.remove(signal_id)
            return False

        if signal.status not in (SignalStatus.QUEUED, SignalStatus.PENDING):
            # Already handed off by an earlier attempt
            self._forget(signal_id)
            return True

        if signal.status == SignalStatus.QUEUED:
            signal = self._advance(signal, SignalStatus.PENDING)

        envelope = SignalEnvelope(
            signal_id=signal.id,
            trigger_method=signal.trigger_method,
            platform=signal.platform,
            timestamp=signal.triggered_at,
            url=self._urls.get(signal.id),
        )

        receipt = await self.send_silently(envelope, signal)
        if receipt is None:
            return self._after_failed_attempt(signal)

        # Keep the queue entry until SENT is stored
        try:
            signal = self._advance(signal, SignalStatus.SENT)
        except Exception as e:
            logger.error(
                "SIGNAL_STATUS_WRITE_FAILED",
                extra={"signal_id": signal_id, "target": "sent", "error_type": type(e).__name__}
            )
            self.queue.record_failure(signal_id)
            return self._after_failed_attempt(signal)

        self._forget(signal_id)
        if receipt.delivered:
            self.mark_delivered(signal_id)
        return True

    def _after_failed_attempt(self, signal: SafetySignal) -> bool:
        entry = self.queue.get(signal.id)
        if entry is not None and self.queue.is_exhausted(entry):
            self._abandon(entry, reason="max_retries_exceeded")
        else:
            self.queue.refresh(signal)
        return False

    async def send_silently(
        self,
        envelope: SignalEnvelope,
        signal: SafetySignal,
    ) -> Optional[DeliveryReceipt]:
        """Hand the envelope to the channel; never raises.

        Any channel failure is logged at DEBUG and recorded on the queue
        entry (``retry_count`` and ``last_retry_at``).

        Returns:
            The receipt, or None if the attempt failed
        """
        try:
            return await self.channel.send(envelope, signal)
        except Exception as e:
            entry = self.queue.record_failure(signal.id)
            logger.debug(
                "SIGNAL_SEND_FAILED",
                extra={
                    "signal_id": signal.id,
                    "error_type": type(e).__name__,
                    "retry_count": entry.retry_count if entry else None,
                }
            )
            return None

    def _forget(self, signal_id: str) -> None:
        self.queue.remove(signal_id)
        self._urls.pop(signal_id, None)

    def _abandon(self, entry: OfflineQueueEntry, reason: str) -> None:
        signal = self.store.get(entry.signal_id) or entry.signal
        self._forget(entry.signal_id)

        child_id_hash = hash_pii(signal.child_id)
        details: Dict[str, Any] = {
            "retry_count": entry.retry_count,
            "reason": reason,
            "status": signal.status.value,
        }

        logger.critical(
            "SAFETY_SIGNAL_DELIVERY_ABANDONED",
            extra={
                "signal_id": signal.id,
                "child_id_hash": child_id_hash,
                "action": "MANUAL_ESCALATION_REQUIRED",
                **details,
            }
        )
        self.audit_logger.log_signal_event(
            AuditAction.SIGNAL_DELIVERY_ABANDONED,
            signal_id=signal.id,
            child_id_hash=child_id_hash,
            family_id=signal.family_id,
            details=details,
        )
        self.escalation_sink.publish(EVENT_DELIVERY_ABANDONED, signal, details)

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    @property
    def is_processing(self) -> bool:
        return self._process_lock.locked()

    async def process_queue(self) -> int:
        """Retry every due queue entry.

        Skipped entirely when offline or when another run is in progress.
        Entries past retention are abandoned without another attempt.

        Returns:
            Number of signals handed off during this run
        """
        # Never wait: the holder may be awaiting on another thread's loop
        if not self._process_lock.acquire(blocking=False):
            return 0

        try:
            if not self.network.is_online():
                return 0

            now = self._clock()
            for entry in self.queue.entries():
                if now - entry.queued_at >= self.config.queue_retention:
                    self._abandon(entry, reason="retention_expired")

            handed_off = 0
            for entry in self.queue.due_entries(now):
                if await self.deliver(entry.signal_id):
                    handed_off += 1

            logger.debug(
                "SIGNAL_QUEUE_PROCESSED",
                extra={"handed_off": handed_off, "remaining": len(self.queue)}
            )
            return handed_off
        finally:
            self._process_lock.release()

    async def on_connectivity_restored(self) -> int:
        return await self.process_queue()

    def get_queue_status(self) -> Dict[str, Any]:
        entries = self.queue.entries()
        failed = sum(1 for entry in entries if entry.retry_count > 0)
        return {
            "queue_size": len(entries),
            "pending_count": len(entries) - failed,
            "failed_count": failed,
            "is_processing": self.is_processing,
        }

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def transition(self, signal_id: str, target: SignalStatus) -> SafetySignal:
        """Move a signal exactly one hop forward.

        Raises:
            NotFoundError: Unknown signal id
            InvalidStatusTransitionError: ``target`` is not the next status
            ConcurrentModificationError: The signal changed underneath us
        """
        signal = self.store.get(signal_id)
        if signal is None:
            raise NotFoundError(f"safety signal {signal_id} not found")
        return self._transition(signal, target)

    def _transition(self, signal: SafetySignal, target: SignalStatus) -> SafetySignal:
        if not is_valid_status_transition(signal.status, target):
            raise InvalidStatusTransitionError(signal.status, target)

        updated = signal.with_status(target, at=self._clock())
        if not self.store.compare_and_set(signal, updated):
            raise ConcurrentModificationError(
                f"safety signal {signal.id} changed during {signal.status.value} -> {target.value}"
            )

        self.queue.refresh(updated)
        self.audit_logger.log_signal_event(
            AuditAction.SIGNAL_STATUS_CHANGED,
            signal_id=updated.id,
            child_id_hash=hash_pii(updated.child_id),
            family_id=updated.family_id,
            details={"from": signal.status.value, "to": target.value},
        )
        logger.debug(
            "SIGNAL_STATUS_CHANGED",
            extra={"signal_id": updated.id, "from": signal.status.value, "to": target.value}
        )

        event_type = _STATUS_EVENTS.get(target)
        if event_type is not None:
            self.event_sink.publish(event_type, updated)
            self._publish_to_family(event_type, updated)
        return updated

    def _publish_to_family(self, event_type: str, signal: SafetySignal) -> None:
        if self.family_sink is None:
            return
        if self.blackout.is_in_blackout(signal.id):
            logger.debug(
                "SIGNAL_FAMILY_EVENT_WITHHELD",
                extra={"signal_id": signal.id, "event_type": event_type}
            )
            return
        self.family_sink.publish(event_type, signal)

    def _advance(self, signal: SafetySignal, target: SignalStatus) -> SafetySignal:
        """One-hop transition that tolerates losing a race to a later status."""
        try:
            return self._transition(signal, target)
        except ConcurrentModificationError:
            current = self.store.get(signal.id)
            if current is not None and not path_to(current.status, target):
                # Already at or past ``target``
                return current
            raise

    def mark_delivered(self, signal_id: str) -> SafetySignal:
        """Record that recipients received the signal (sent -> delivered).

        Repeat receipts for an already delivered signal are no-ops.
        """
        signal = self.store.get(signal_id)
        if signal is None:
            raise NotFoundError(f"safety signal {signal_id} not found")
        if signal.status in (SignalStatus.DELIVERED, SignalStatus.ACKNOWLEDGED):
            return signal
        return self._transition(signal, SignalStatus.DELIVERED)

    def acknowledge(self, signal_id: str) -> SafetySignal:
        """Record that a human acknowledged the signal (delivered -> acknowledged)."""
        signal = self.store.get(signal_id)
        if signal is None:
            raise NotFoundError(f"safety signal {signal_id} not found")
        if signal.status == SignalStatus.ACKNOWLEDGED:
            return signal
        return self._transition(signal, SignalStatus.ACKNOWLEDGED)
