"""Safe Escape controller.

``activate`` takes effect immediately, with no confirmation step: the
activation is stored and the family's location history is wiped. Other
members hear nothing until the silent window (72 hours) has passed, and
then only a neutral "Location features paused" notice.

Only the activator may undo it. Anyone else asking gets the same generic
failure an unknown id gets, so the answer reveals nothing.

The 72-hour deadline is enforced by ``sweep``, run periodically by
EscapeNotificationSweeper. State lives in the store, so a restart or a
missed tick only delays the notice to the next sweep.
"""
import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from safenest.services.audit_service import AuditAction, AuditLogger
from safenest.shared.models import SILENT_WINDOW, SafeEscapeActivation
from safenest.shared.utils import Clock, hash_pii, utc_now

from .config import SafeEscapeConfig
from .location import InMemoryLocationHistoryStore, LocationHistoryStore
from .notifier import EscapeNotifier, InMemoryEscapeNotifier
from .repository import ActivationStore, InMemoryActivationStore

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Unable to complete this request"


def calculate_hours_until_notification(
    activated_at: datetime,
    now: datetime,
    silent_window: timedelta = SILENT_WINDOW,
) -> int:
    """Whole hours left in the silent window, rounded up, never negative."""
    remaining = silent_window - (now - activated_at)
    return max(0, math.ceil(remaining / timedelta(hours=1)))


def should_send_notification(
    activated_at: datetime,
    now: datetime,
    silent_window: timedelta = SILENT_WINDOW,
) -> bool:
    return now - activated_at >= silent_window


class ReenableNotAuthorizedError(Exception):
    """Requester may not re-enable this activation. Never reaches the UI."""
    pass


@dataclass(frozen=True)
class ReenableResult:
    success: bool
    activation: Optional[SafeEscapeActivation] = None
    error: Optional[str] = None


def _new_id() -> str:
    return f"esc_{uuid.uuid4().hex}"


class SafeEscapeController:
    """Activates, reverses and times out Safe Escape for a family."""

    def __init__(
        self,
        store: Optional[ActivationStore] = None,
        location_history: Optional[LocationHistoryStore] = None,
        notifier: Optional[EscapeNotifier] = None,
        audit_logger: Optional[AuditLogger] = None,
        config: Optional[SafeEscapeConfig] = None,
        clock: Clock = utc_now,
        id_factory: Callable[[], str] = _new_id,
    ):
        self.config = config or SafeEscapeConfig()
        self.store = store or InMemoryActivationStore()
        self.location_history = location_history or InMemoryLocationHistoryStore()
        self.notifier = notifier or InMemoryEscapeNotifier()
        self.audit_logger = audit_logger or AuditLogger(clock=clock)
        self._clock = clock
        self._id_factory = id_factory

    def activate(self, family_id: str, activated_by: str) -> Optional[SafeEscapeActivation]:
        """Activate Safe Escape for ``family_id``.

        If the family already has an active Safe Escape the countdown is not
        restarted and location history is cleared again. The existing
        record goes back only to its own activator; any other member gets
        None, which reveals nothing beyond ``is_active``.
        """
        candidate = SafeEscapeActivation(
            id=self._id_factory(),
            family_id=family_id,
            activated_by=activated_by,
            activated_at=self._clock(),
        )
        activation = self.store.create(candidate)
        cleared = self.location_history.clear(family_id)

        if activation.id != candidate.id:
            logger.info(
                "SAFE_ESCAPE_ALREADY_ACTIVE",
                extra={"activation_id": activation.id, "cleared_points": cleared}
            )
            if activation.activated_by != activated_by:
                return None
            return activation

        self.audit_logger.log_escape_event(
            AuditAction.SAFE_ESCAPE_ACTIVATED,
            activation_id=activation.id,
            actor_id=hash_pii(activated_by),
            family_id=family_id,
            details={"cleared_points": cleared},
        )
        logger.info(
            "SAFE_ESCAPE_ACTIVATED",
            extra={
                "activation_id": activation.id,
                "family_id_hash": hash_pii(family_id),
                "notification_scheduled_at": self.notification_scheduled_at(activation).isoformat(),
                "cleared_points": cleared,
            }
        )
        return activation

    def hours_until_notification(self, activation: SafeEscapeActivation) -> int:
        return calculate_hours_until_notification(
            activation.activated_at, self._clock(), self.config.silent_window
        )

    def notification_scheduled_at(self, activation: SafeEscapeActivation) -> datetime:
        return activation.notification_scheduled_at(self.config.silent_window)

    def describe(self, activation: SafeEscapeActivation) -> Dict[str, Any]:
        """Full record for the activator, timed by the configured window."""
        return activation.to_dict(self.config.silent_window)

    def _authorize_reenable(self, activation_id: str, requested_by: str) -> SafeEscapeActivation:
        activation = self.store.get(activation_id)
        if activation is None or activation.activated_by != requested_by:
            raise ReenableNotAuthorizedError(activation_id)
        return activation

    def reenable(self, activation_id: str, requested_by: str) -> ReenableResult:
        """Reverse an activation. Only the activator succeeds."""
        try:
            activation = self._authorize_reenable(activation_id, requested_by)
        except ReenableNotAuthorizedError:
            logger.warning("SAFE_ESCAPE_REENABLE_DENIED", extra={"activation_id": activation_id})
            return ReenableResult(success=False, error=GENERIC_FAILURE)

        if not activation.is_active:
            return ReenableResult(success=True, activation=activation)

        updated = activation.reenabled(by=requested_by, at=self._clock())
        if not self.store.compare_and_set(activation, updated):
            current = self.store.get(activation_id)
            if current is not None and not current.is_active:
                return ReenableResult(success=True, activation=current)
            return ReenableResult(success=False, error=GENERIC_FAILURE)

        self.audit_logger.log_escape_event(
            AuditAction.SAFE_ESCAPE_REENABLED,
            activation_id=activation_id,
            actor_id=hash_pii(requested_by),
            family_id=activation.family_id,
        )
        logger.info("SAFE_ESCAPE_REENABLED", extra={"activation_id": activation_id})
        return ReenableResult(success=True, activation=updated)

    def get_status(self, family_id: str, viewer_id: str) -> Dict[str, Any]:
        """Status view for one family member.

        The activator sees the full record and countdown. Everyone else sees
        only ``is_active``; the other keys are absent, not masked.
        """
        activation = self.store.find_active_for_family(family_id)
        if activation is None:
            return {"is_active": False}
        if viewer_id != activation.activated_by:
            return {"is_active": True}

        return {
            "is_active": True,
            "activation": self.describe(activation),
            "hours_until_notification": self.hours_until_notification(activation),
            "notification_scheduled_at": self.notification_scheduled_at(activation).isoformat(),
            "activated_at": activation.activated_at.isoformat(),
        }

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Send every notification whose silent window has passed.

        Each record is claimed (``notification_sent_at`` set by
        compare-and-set) before publishing, so a record re-enabled or
        claimed by another sweep in the meantime is never announced. A
        publish failure releases the claim and leaves the record for the
        next sweep.

        Returns:
            Number of notifications sent
        """
        now = now or self._clock()
        sent = 0

        for activation in self.store.list_awaiting_notification():
            if not should_send_notification(activation.activated_at, now, self.config.silent_window):
                continue

            claimed = activation.notified(now)
            if not self.store.compare_and_set(activation, claimed):
                # Re-enabled or claimed by a concurrent sweep
                continue

            if not self.notifier.notify_due(activation, self.config.notification_message):
                self.store.compare_and_set(claimed, activation)
                logger.warning(
                    "SAFE_ESCAPE_NOTIFICATION_DEFERRED",
                    extra={"activation_id": activation.id}
                )
                continue

            self.audit_logger.log_escape_event(
                AuditAction.SAFE_ESCAPE_NOTIFIED,
                activation_id=activation.id,
                actor_id="safe_escape_sweeper",
                family_id=activation.family_id,
            )
            sent += 1

        if sent:
            logger.info("SAFE_ESCAPE_SWEEP_COMPLETED", extra={"notifications_sent": sent})
        return sent
