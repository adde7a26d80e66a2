"""Safe Escape activation model.

Safe Escape instantly disables location sharing for a family. Other
family members are told only after a 72-hour silent window, so a
potential abuser is not tipped off while the activator gets to safety.
"""
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

SILENT_WINDOW = timedelta(hours=72)


@dataclass(frozen=True)
class SafeEscapeActivation:
    """One Safe Escape activation.

    Only ``activated_by`` may reverse it; ``reenabled_by`` must equal
    ``activated_by`` whenever it is set.
    """
    id: str
    family_id: str
    activated_by: str
    activated_at: datetime
    notification_sent_at: Optional[datetime] = None
    cleared_location_history: bool = True
    reenabled_at: Optional[datetime] = None
    reenabled_by: Optional[str] = None

    def __post_init__(self):
        if self.reenabled_by is not None and self.reenabled_by != self.activated_by:
            raise ValueError("reenabled_by must match activated_by")
        if (self.reenabled_at is None) != (self.reenabled_by is None):
            raise ValueError("reenabled_at and reenabled_by must be set together")

    def notification_scheduled_at(self, silent_window: timedelta = SILENT_WINDOW) -> datetime:
        return self.activated_at + silent_window

    @property
    def is_active(self) -> bool:
        return self.reenabled_at is None

    def reenabled(self, by: str, at: datetime) -> "SafeEscapeActivation":
        return replace(self, reenabled_at=at, reenabled_by=by)

    def notified(self, at: datetime) -> "SafeEscapeActivation":
        return replace(self, notification_sent_at=at)

    def to_dict(self, silent_window: timedelta = SILENT_WINDOW) -> Dict[str, Any]:
        def _iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "family_id": self.family_id,
            "activated_by": self.activated_by,
            "activated_at": self.activated_at.isoformat(),
            "notification_scheduled_at": self.notification_scheduled_at(silent_window).isoformat(),
            "notification_sent_at": _iso(self.notification_sent_at),
            "cleared_location_history": self.cleared_location_history,
            "reenabled_at": _iso(self.reenabled_at),
            "reenabled_by": self.reenabled_by,
        }
