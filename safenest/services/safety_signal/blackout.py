"""Family blackout after a safety signal.

When a signal fires, family members see no signal-related activity for
48 hours while crisis partners respond. A partner may extend the blackout
(at most 72 hours per extension) or end it early. Expiry is checked
against the clock on every read, so an expired record is over even
before ``cleanup_expired`` marks it inactive.
"""
import logging
import math
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from safenest.shared.database import BaseRepository, ConnectionManager
from safenest.shared.models import SignalBlackout
from safenest.shared.utils import Clock, utc_now

logger = logging.getLogger(__name__)

DEFAULT_BLACKOUT_HOURS = 48
MAX_EXTENSION_HOURS = 72


class BlackoutError(ValueError):
    """A blackout request was rejected."""
    pass


@dataclass(frozen=True)
class BlackoutStatus:
    in_blackout: bool
    blackout_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    remaining_hours: int = 0
    extended_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "in_blackout": self.in_blackout,
            "blackout_id": self.blackout_id,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "remaining_hours": self.remaining_hours,
            "extended_by": self.extended_by,
        }


class BlackoutStore(ABC):
    """Persistence for SignalBlackout records."""

    @abstractmethod
    def get_for_signal(self, signal_id: str) -> Optional[SignalBlackout]:
        """Most recently started blackout for ``signal_id``."""

    @abstractmethod
    def put(self, blackout: SignalBlackout) -> None:
        pass

    @abstractmethod
    def list_all(self) -> List[SignalBlackout]:
        pass


class InMemoryBlackoutStore(BlackoutStore):
    """Thread-safe in-memory blackout store."""

    def __init__(self):
        self._lock = threading.Lock()
        self._blackouts: Dict[str, SignalBlackout] = {}

    def get_for_signal(self, signal_id: str) -> Optional[SignalBlackout]:
        with self._lock:
            matches = [b for b in self._blackouts.values() if b.signal_id == signal_id]
        return max(matches, key=lambda b: b.started_at) if matches else None

    def put(self, blackout: SignalBlackout) -> None:
        with self._lock:
            self._blackouts[blackout.id] = blackout

    def list_all(self) -> List[SignalBlackout]:
        with self._lock:
            return list(self._blackouts.values())


class PostgresBlackoutStore(BaseRepository[SignalBlackout], BlackoutStore):
    """Blackouts in ``signal_blackouts``."""

    columns = ("id", "signal_id", "started_at", "expires_at", "extended_by", "active")

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "signal_blackouts")

    def _row_to_entity(self, row: tuple) -> SignalBlackout:
        return SignalBlackout(
            id=row[0],
            signal_id=row[1],
            started_at=row[2],
            expires_at=row[3],
            extended_by=row[4],
            active=row[5],
        )

    def _entity_to_params(self, entity: SignalBlackout) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "signal_id": entity.signal_id,
            "started_at": entity.started_at,
            "expires_at": entity.expires_at,
            "extended_by": entity.extended_by,
            "active": entity.active,
        }

    def get_for_signal(self, signal_id: str) -> Optional[SignalBlackout]:
        rows = self.find_where(
            "signal_id = %s ORDER BY started_at DESC LIMIT 1", (signal_id,)
        )
        return rows[0] if rows else None

    def put(self, blackout: SignalBlackout) -> None:
        self.save(blackout)

    def list_all(self) -> List[SignalBlackout]:
        return self.find_where("TRUE ORDER BY started_at")


def _new_id() -> str:
    return f"blk_{uuid.uuid4().hex}"


class SignalBlackoutService:
    """Starts, extends, ends and reports family blackouts."""

    def __init__(
        self,
        store: Optional[BlackoutStore] = None,
        default_hours: int = DEFAULT_BLACKOUT_HOURS,
        clock: Clock = utc_now,
        id_factory: Callable[[], str] = _new_id,
    ):
        self.store = store or InMemoryBlackoutStore()
        self.default_hours = default_hours
        self._clock = clock
        self._id_factory = id_factory

    def start(self, signal_id: str, duration_hours: Optional[float] = None) -> SignalBlackout:
        """Begin a blackout for ``signal_id``.

        Raises:
            BlackoutError: Duration is not positive, or a blackout is
                already in effect for the signal
        """
        hours = self.default_hours if duration_hours is None else duration_hours
        if hours <= 0:
            raise BlackoutError("Duration must be positive")

        now = self._clock()
        existing = self.store.get_for_signal(signal_id)
        if existing is not None and existing.in_effect(now):
            raise BlackoutError("Active blackout already exists")

        blackout = SignalBlackout(
            id=self._id_factory(),
            signal_id=signal_id,
            started_at=now,
            expires_at=now + timedelta(hours=hours),
        )
        self.store.put(blackout)
        logger.info(
            "SIGNAL_BLACKOUT_STARTED",
            extra={"signal_id": signal_id, "blackout_id": blackout.id, "hours": hours}
        )
        return blackout

    def is_in_blackout(self, signal_id: str) -> bool:
        blackout = self.store.get_for_signal(signal_id)
        return blackout is not None and blackout.in_effect(self._clock())

    def extend(self, signal_id: str, additional_hours: float, partner_id: str) -> SignalBlackout:
        """Push the expiry of a running blackout back by ``additional_hours``.

        Raises:
            BlackoutError: Missing partner, no blackout, blackout over, or
                an extension outside (0, MAX_EXTENSION_HOURS]
        """
        if not partner_id:
            raise BlackoutError("Partner authorization required")
        if additional_hours <= 0:
            raise BlackoutError("Extension must be positive")
        if additional_hours > MAX_EXTENSION_HOURS:
            raise BlackoutError("Extension exceeds maximum")

        blackout = self.store.get_for_signal(signal_id)
        if blackout is None or not blackout.active:
            raise BlackoutError("No active blackout found")
        if not blackout.in_effect(self._clock()):
            raise BlackoutError("Blackout has expired")

        extended = replace(
            blackout,
            expires_at=blackout.expires_at + timedelta(hours=additional_hours),
            extended_by=partner_id,
        )
        self.store.put(extended)
        logger.info(
            "SIGNAL_BLACKOUT_EXTENDED",
            extra={"signal_id": signal_id, "blackout_id": blackout.id, "hours": additional_hours}
        )
        return extended

    def cancel(self, signal_id: str, partner_id: str) -> SignalBlackout:
        """End a blackout early.

        Raises:
            BlackoutError: Missing partner or no blackout for the signal
        """
        if not partner_id:
            raise BlackoutError("Partner authorization required")

        blackout = self.store.get_for_signal(signal_id)
        if blackout is None:
            raise BlackoutError("No blackout found")

        cancelled = replace(blackout, active=False)
        self.store.put(cancelled)
        logger.info(
            "SIGNAL_BLACKOUT_CANCELLED",
            extra={"signal_id": signal_id, "blackout_id": blackout.id}
        )
        return cancelled

    def get_status(self, signal_id: str) -> BlackoutStatus:
        blackout = self.store.get_for_signal(signal_id)
        if blackout is None:
            return BlackoutStatus(in_blackout=False)

        now = self._clock()
        in_effect = blackout.in_effect(now)
        remaining = 0
        if in_effect:
            remaining = math.ceil((blackout.expires_at - now) / timedelta(hours=1))

        return BlackoutStatus(
            in_blackout=in_effect,
            blackout_id=blackout.id,
            expires_at=blackout.expires_at,
            remaining_hours=remaining,
            extended_by=blackout.extended_by,
        )

    def active_blackouts(self) -> List[SignalBlackout]:
        now = self._clock()
        return [b for b in self.store.list_all() if b.in_effect(now)]

    def cleanup_expired(self) -> int:
        """Mark blackouts past their expiry inactive.

        Returns:
            Number of records updated
        """
        now = self._clock()
        cleaned = 0
        for blackout in self.store.list_all():
            if blackout.active and not blackout.in_effect(now):
                self.store.put(replace(blackout, active=False))
                cleaned += 1

        if cleaned:
            logger.info("SIGNAL_BLACKOUTS_EXPIRED", extra={"count": cleaned})
        return cleaned
