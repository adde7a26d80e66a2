"""Family notification publisher for Safe Escape.

When the silent window ends, other family members get one neutral
notice. The payload names the family and the activation only: not the
activator, not the reason, nothing that reads as an emergency.
"""
import json
import logging
import os
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from safenest.shared.models import SafeEscapeActivation
from safenest.shared.utils import hash_pii, utc_now

logger = logging.getLogger(__name__)

EVENT_NOTIFICATION_DUE = "safe_escape.notification_due"


class EscapeNotifier(ABC):
    @abstractmethod
    def notify_due(self, activation: SafeEscapeActivation, message: str) -> bool:
        """Publish the notification-due event. Returns False on failure; never raises."""


class InMemoryEscapeNotifier(EscapeNotifier):
    """Collects notifications for local development and tests."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.notifications: List[Dict[str, Any]] = []

    def notify_due(self, activation: SafeEscapeActivation, message: str) -> bool:
        if self.fail:
            return False
        self.notifications.append({
            "activation_id": activation.id,
            "family_id": activation.family_id,
            "message": message,
        })
        return True


class KinesisEscapeNotifier(EscapeNotifier):
    """Publishes notification-due events to the family notification stream."""

    def __init__(
        self,
        stream_name: str = "safenest-family-notifications",
        enabled: bool = True,
        region: Optional[str] = None,
    ):
        self.stream_name = stream_name
        self.enabled = enabled
        self.region = region or os.getenv("AWS_REGION", "us-east-1")
        self._kinesis_client = None

        logger.info(
            "ESCAPE_NOTIFIER_INITIALIZED",
            extra={"stream_name": stream_name, "enabled": enabled, "region": self.region}
        )

    @property
    def kinesis_client(self):
        """Lazy initialization of Kinesis client."""
        if self._kinesis_client is None and self.enabled:
            try:
                import boto3
                self._kinesis_client = boto3.client("kinesis", region_name=self.region)
            except Exception as e:
                logger.error("KINESIS_CLIENT_INIT_FAILED", extra={"error": str(e)})
        return self._kinesis_client

    def notify_due(self, activation: SafeEscapeActivation, message: str) -> bool:
        if not self.enabled:
            logger.info(
                "ESCAPE_NOTIFICATION_SKIPPED",
                extra={"activation_id": activation.id, "reason": "publishing_disabled"}
            )
            return False

        payload = {
            "event_id": f"evt_{uuid.uuid4().hex[:12]}",
            "event_type": EVENT_NOTIFICATION_DUE,
            "timestamp": utc_now().isoformat(),
            "source": "safe-escape-service",
            "data": {
                "activation_id": activation.id,
                "family_id": activation.family_id,
                "message": message,
            },
        }

        client = self.kinesis_client
        if client is None:
            logger.error(
                "ESCAPE_NOTIFICATION_FAILED",
                extra={"activation_id": activation.id, "reason": "kinesis_client_unavailable"}
            )
            return False

        try:
            client.put_record(
                StreamName=self.stream_name,
                Data=json.dumps(payload),
                PartitionKey=hash_pii(activation.family_id),
            )
        except Exception as e:
            logger.error(
                "ESCAPE_NOTIFICATION_FAILED",
                extra={
                    "activation_id": activation.id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return False

        logger.info("ESCAPE_NOTIFICATION_PUBLISHED", extra={"activation_id": activation.id})
        return True
