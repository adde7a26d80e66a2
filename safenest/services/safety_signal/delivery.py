"""Delivery collaborators for the Safety Signal pipeline.

- SignalDeliveryChannel: carries the envelope to guardians/support staff.
- NetworkMonitor: reports whether the device is online.
- SignalEventSink: receives lifecycle events (delivered, acknowledged,
  abandoned) for downstream consumers and operator escalation.

Kinesis implementations follow the same pattern as the crisis publisher:
lazy boto3 client, partition key is the hashed child id, and nothing that
identifies the child or the page they were on is written to logs.
"""
import asyncio
import json
import logging
import os
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from safenest.shared.models import SafetySignal, SignalEnvelope
from safenest.shared.utils import hash_pii, utc_now

logger = logging.getLogger(__name__)


class DeliveryError(Exception):
    """Raised by a channel when the envelope was not accepted."""
    pass


@dataclass(frozen=True)
class DeliveryReceipt:
    """Outcome of a successful hand-off.

    ``delivered`` is True only when the channel itself confirms the
    recipients received the signal; otherwise confirmation arrives later
    through ``SafetySignalPipeline.mark_delivered``.
    """
    reference: Optional[str] = None
    delivered: bool = False


class SignalDeliveryChannel(ABC):
    """Carries a safety signal envelope to its recipients."""

    @abstractmethod
    async def send(self, envelope: SignalEnvelope, signal: SafetySignal) -> DeliveryReceipt:
        """Hand off the envelope.

        Raises:
            Exception: Any failure; the pipeline treats every exception
                as a retryable delivery failure.
        """


class KinesisSignalChannel(SignalDeliveryChannel):
    """Delivers envelopes to a Kinesis stream consumed by the routing service."""

    def __init__(
        self,
        stream_name: str = "safenest-safety-signals",
        region: Optional[str] = None,
        kinesis_client=None,
    ):
        self.stream_name = stream_name
        self.region = region or os.getenv("AWS_REGION", "us-east-1")
        self._kinesis_client = kinesis_client

        logger.info(
            "SIGNAL_CHANNEL_INITIALIZED",
            extra={"stream_name": stream_name, "region": self.region}
        )

    @property
    def kinesis_client(self):
        """Lazy initialization of Kinesis client."""
        if self._kinesis_client is None:
            import boto3
            self._kinesis_client = boto3.client("kinesis", region_name=self.region)
        return self._kinesis_client

    async def send(self, envelope: SignalEnvelope, signal: SafetySignal) -> DeliveryReceipt:
        payload = envelope.to_message()
        payload["signalId"] = signal.id
        payload["familyId"] = signal.family_id

        response = await asyncio.to_thread(
            self.kinesis_client.put_record,
            StreamName=self.stream_name,
            Data=json.dumps(payload),
            PartitionKey=hash_pii(signal.child_id),  # Same child -> same shard
        )
        return DeliveryReceipt(reference=response.get("SequenceNumber"))


class InMemorySignalChannel(SignalDeliveryChannel):
    """Channel for local development and tests.

    ``fail_next(n)`` makes the next n sends raise; ``confirm_delivery``
    makes receipts report delivery immediately.
    """

    def __init__(self, confirm_delivery: bool = False):
        self.confirm_delivery = confirm_delivery
        self.sent: List[Tuple[SignalEnvelope, SafetySignal]] = []
        self.attempts = 0
        self._failures_remaining = 0
        self._lock = threading.Lock()

    def fail_next(self, count: int = 1) -> None:
        with self._lock:
            self._failures_remaining = count

    async def send(self, envelope: SignalEnvelope, signal: SafetySignal) -> DeliveryReceipt:
        with self._lock:
            self.attempts += 1
            if self._failures_remaining > 0:
                self._failures_remaining -= 1
                raise DeliveryError("simulated delivery failure")
            self.sent.append((envelope, signal))
        return DeliveryReceipt(
            reference=f"mem_{uuid.uuid4().hex[:8]}",
            delivered=self.confirm_delivery,
        )


class NetworkMonitor(ABC):
    """Reports device connectivity."""

    @abstractmethod
    def is_online(self) -> bool:
        pass


class StaticNetworkMonitor(NetworkMonitor):
    """Connectivity flag set by the host app (or tests)."""

    def __init__(self, online: bool = True):
        self._online = online

    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        self._online = online


class SignalEventSink(ABC):
    """Receives signal lifecycle events."""

    @abstractmethod
    def publish(
        self,
        event_type: str,
        signal: SafetySignal,
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Publish an event. Returns False on failure; never raises."""


class InMemorySignalEventSink(SignalEventSink):
    """Collects events in a list for local development and tests."""

    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    def publish(
        self,
        event_type: str,
        signal: SafetySignal,
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        self.events.append({
            "event_type": event_type,
            "signal_id": signal.id,
            "status": signal.status.value,
            "details": dict(details or {}),
        })
        return True

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e["event_type"] == event_type]


class KinesisSignalEventPublisher(SignalEventSink):
    """Publishes signal lifecycle events to Kinesis.

    Failure Handling:
        - Publishing failure never blocks a status transition
        - Failures are logged at CRITICAL level for alerting
    """

    def __init__(
        self,
        stream_name: str = "safenest-signal-events",
        enabled: bool = True,
        region: Optional[str] = None,
    ):
        self.stream_name = stream_name
        self.enabled = enabled
        self.region = region or os.getenv("AWS_REGION", "us-east-1")
        self._kinesis_client = None

        logger.info(
            "SIGNAL_EVENT_PUBLISHER_INITIALIZED",
            extra={
                "stream_name": stream_name,
                "enabled": enabled,
                "region": self.region,
            }
        )

    @property
    def kinesis_client(self):
        """Lazy initialization of Kinesis client."""
        if self._kinesis_client is None and self.enabled:
            try:
                import boto3
                self._kinesis_client = boto3.client(
                    "kinesis",
                    region_name=self.region,
                )
            except Exception as e:
                logger.error(
                    "KINESIS_CLIENT_INIT_FAILED",
                    extra={"error": str(e)}
                )
        return self._kinesis_client

    def publish(
        self,
        event_type: str,
        signal: SafetySignal,
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        if not self.enabled:
            logger.info(
                "SIGNAL_EVENT_PUBLISH_SKIPPED",
                extra={"signal_id": signal.id, "reason": "publishing_disabled"}
            )
            return False

        child_id_hash = hash_pii(signal.child_id)
        event_id = f"evt_{uuid.uuid4().hex[:12]}"
        payload = {
            "event_id": event_id,
            "event_type": event_type,
            "timestamp": utc_now().isoformat(),
            "source": "safety-signal-service",
            "data": {
                "signal_id": signal.id,
                "family_id": signal.family_id,
                "child_id_hash": child_id_hash,
                "status": signal.status.value,
                "trigger_method": signal.trigger_method.value,
                "platform": signal.platform.value,
                **(details or {}),
            },
        }

        try:
            if self.kinesis_client is None:
                logger.critical(
                    "SIGNAL_EVENT_FALLBACK_LOG",
                    extra={
                        "event_id": event_id,
                        "payload": json.dumps(payload),
                        "reason": "kinesis_client_unavailable",
                        "action": "MANUAL_PROCESSING_REQUIRED",
                    }
                )
                return False

            response = self.kinesis_client.put_record(
                StreamName=self.stream_name,
                Data=json.dumps(payload),
                PartitionKey=child_id_hash,
            )

            logger.info(
                "SIGNAL_EVENT_PUBLISHED",
                extra={
                    "event_id": event_id,
                    "event_type": event_type,
                    "signal_id": signal.id,
                    "shard_id": response.get("ShardId"),
                    "sequence_number": response.get("SequenceNumber"),
                }
            )
            return True

        except Exception as e:
            logger.critical(
                "SIGNAL_EVENT_PUBLISH_FAILED",
                extra={
                    "event_id": event_id,
                    "event_type": event_type,
                    "signal_id": signal.id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "action": "MANUAL_REVIEW_REQUIRED",
                }
            )
            return False
