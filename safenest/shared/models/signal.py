"""Safety signal domain models.

A safety signal is a silently triggered request for help sent from a
monitored device toward guardians or support staff. Nothing in this module
is ever rendered to the child who triggered it.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from safenest.shared.utils import utc_now


class SignalStatus(Enum):
    """Delivery lifecycle of a safety signal.

    Legal moves live in ``safety_signal.state_machine``; nothing else
    should branch on raw status strings.
    """
    QUEUED = "queued"               # Created offline, waiting for connectivity
    PENDING = "pending"             # Ready to hand to the delivery channel
    SENT = "sent"                   # Accepted by the delivery channel
    DELIVERED = "delivered"         # Confirmed received by guardians/support
    ACKNOWLEDGED = "acknowledged"   # A human acknowledged it (terminal)


class TriggerMethod(Enum):
    """Physical gesture used to raise the signal."""
    LOGO_TAP = "logo_tap"
    KEYBOARD_SHORTCUT = "keyboard_shortcut"
    SWIPE_PATTERN = "swipe_pattern"


class Platform(Enum):
    """Surface the signal originated from."""
    WEB = "web"
    CHROME_EXTENSION = "chrome_extension"
    ANDROID = "android"


@dataclass(frozen=True)
class SafetySignal:
    """A single request for help.

    Frozen: status changes produce a new instance through
    ``with_status`` so repositories can compare-and-set on ``version``.
    """
    id: str
    child_id: str
    family_id: str
    trigger_method: TriggerMethod
    platform: Platform
    status: SignalStatus
    triggered_at: datetime
    device_id: Optional[str] = None
    offline_queued: bool = False
    delivered_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    version: int = 0

    def with_status(self, status: SignalStatus, at: Optional[datetime] = None) -> "SafetySignal":
        """Return a copy moved to ``status`` with the version bumped.

        Does not validate the move; callers go through the state machine.
        """
        at = at or utc_now()
        changes: Dict[str, Any] = {"status": status, "version": self.version + 1}
        if status == SignalStatus.DELIVERED:
            changes["delivered_at"] = at
        elif status == SignalStatus.ACKNOWLEDGED:
            changes["acknowledged_at"] = at
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "child_id": self.child_id,
            "family_id": self.family_id,
            "device_id": self.device_id,
            "trigger_method": self.trigger_method.value,
            "platform": self.platform.value,
            "status": self.status.value,
            "triggered_at": self.triggered_at.isoformat(),
            "offline_queued": self.offline_queued,
            "delivered_at": self.delivered_at.isoformat() if self.delivered_at else None,
            "acknowledged_at": (
                self.acknowledged_at.isoformat() if self.acknowledged_at else None
            ),
            "version": self.version,
        }


@dataclass(frozen=True)
class TriggerEvent:
    """One accepted (non-debounced) gesture. Immutable once created."""
    id: str
    signal_id: str
    child_id: str
    trigger_method: TriggerMethod
    platform: Platform
    timestamp: datetime


@dataclass(frozen=True)
class OfflineQueueEntry:
    """Retry bookkeeping for an undelivered signal.

    Exists only while the signal is undelivered; removed on success or
    when retries are exhausted.
    """
    signal: SafetySignal
    queued_at: datetime
    retry_count: int = 0
    last_retry_at: Optional[datetime] = None
    next_retry_at: Optional[datetime] = None

    def __post_init__(self):
        if self.retry_count < 0:
            raise ValueError(f"retry_count must be >= 0, got {self.retry_count}")

    @property
    def signal_id(self) -> str:
        return self.signal.id

    def is_due(self, now: datetime) -> bool:
        return self.next_retry_at is None or self.next_retry_at <= now


@dataclass(frozen=True)
class SignalEnvelope:
    """Message handed to the delivery collaborator.

    ``url`` is the page the child was on; it is carried to support staff
    but never written to logs or monitoring channels.
    """
    signal_id: str
    trigger_method: TriggerMethod
    platform: Platform
    timestamp: datetime
    url: Optional[str] = None
    type: str = field(default="SAFETY_SIGNAL_TRIGGERED")

    def to_message(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "triggerMethod": self.trigger_method.value,
            "platform": self.platform.value,
            "timestamp": self.timestamp.isoformat(),
            "url": self.url,
        }


@dataclass(frozen=True)
class SignalBlackout:
    """Window after a signal fires during which the family sees no activity.

    Crisis partners may extend or cancel it. A record past ``expires_at``
    is over even while ``active`` is still set.
    """
    id: str
    signal_id: str
    started_at: datetime
    expires_at: datetime
    extended_by: Optional[str] = None
    active: bool = True

    def in_effect(self, now: datetime) -> bool:
        return self.active and now < self.expires_at
