"""Storage for Safe Escape activations.

At most one active (not re-enabled) activation exists per family. The
Postgres table enforces this with a partial unique index on
``family_id WHERE reenabled_at IS NULL``; the in-memory store checks it
under its lock.
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from safenest.shared.database import BaseRepository, ConnectionManager
from safenest.shared.models import SafeEscapeActivation

logger = logging.getLogger(__name__)


class ActivationStore(ABC):
    """Persistence for SafeEscapeActivation records."""

    @abstractmethod
    def create(self, activation: SafeEscapeActivation) -> SafeEscapeActivation:
        """Store ``activation`` unless the family already has an active one.

        Returns:
            The stored activation: the new one, or the existing active one
        """

    @abstractmethod
    def get(self, activation_id: str) -> Optional[SafeEscapeActivation]:
        pass

    @abstractmethod
    def find_active_for_family(self, family_id: str) -> Optional[SafeEscapeActivation]:
        pass

    @abstractmethod
    def list_awaiting_notification(self) -> List[SafeEscapeActivation]:
        """Active activations whose notification has not been sent."""

    @abstractmethod
    def compare_and_set(
        self,
        current: SafeEscapeActivation,
        updated: SafeEscapeActivation,
    ) -> bool:
        """Write ``updated`` only if re-enable and notification state are unchanged."""


class InMemoryActivationStore(ActivationStore):
    """Thread-safe in-memory activation store."""

    def __init__(self):
        self._lock = threading.Lock()
        self._activations: Dict[str, SafeEscapeActivation] = {}

    def _active_for(self, family_id: str) -> Optional[SafeEscapeActivation]:
        for activation in self._activations.values():
            if activation.family_id == family_id and activation.is_active:
                return activation
        return None

    def create(self, activation: SafeEscapeActivation) -> SafeEscapeActivation:
        with self._lock:
            existing = self._active_for(activation.family_id)
            if existing is not None:
                return existing
            self._activations[activation.id] = activation
            return activation

    def get(self, activation_id: str) -> Optional[SafeEscapeActivation]:
        with self._lock:
            return self._activations.get(activation_id)

    def find_active_for_family(self, family_id: str) -> Optional[SafeEscapeActivation]:
        with self._lock:
            return self._active_for(family_id)

    def list_awaiting_notification(self) -> List[SafeEscapeActivation]:
        with self._lock:
            return sorted(
                (
                    a for a in self._activations.values()
                    if a.is_active and a.notification_sent_at is None
                ),
                key=lambda a: a.activated_at,
            )

    def compare_and_set(
        self,
        current: SafeEscapeActivation,
        updated: SafeEscapeActivation,
    ) -> bool:
        with self._lock:
            stored = self._activations.get(current.id)
            if stored is None:
                return False
            if (
                stored.reenabled_at != current.reenabled_at
                or stored.notification_sent_at != current.notification_sent_at
            ):
                return False
            self._activations[current.id] = updated
            return True


class PostgresActivationStore(BaseRepository[SafeEscapeActivation], ActivationStore):
    """Activations in ``safe_escape_activations``."""

    columns = (
        "id", "family_id", "activated_by", "activated_at", "notification_sent_at",
        "cleared_location_history", "reenabled_at", "reenabled_by",
    )

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "safe_escape_activations")

    def _row_to_entity(self, row: tuple) -> SafeEscapeActivation:
        return SafeEscapeActivation(
            id=row[0],
            family_id=row[1],
            activated_by=row[2],
            activated_at=row[3],
            notification_sent_at=row[4],
            cleared_location_history=row[5],
            reenabled_at=row[6],
            reenabled_by=row[7],
        )

    def _entity_to_params(self, entity: SafeEscapeActivation) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "family_id": entity.family_id,
            "activated_by": entity.activated_by,
            "activated_at": entity.activated_at,
            "notification_sent_at": entity.notification_sent_at,
            "cleared_location_history": entity.cleared_location_history,
            "reenabled_at": entity.reenabled_at,
            "reenabled_by": entity.reenabled_by,
        }

    def create(self, activation: SafeEscapeActivation) -> SafeEscapeActivation:
        params = self._entity_to_params(activation)
        columns = list(params.keys())
        placeholders = ", ".join(["%s"] * len(columns))

        # No conflict target: also yields to the one-active-per-family index
        query = (
            f"INSERT INTO {self.table_name} ({', '.join(columns)}) "
            f"VALUES ({placeholders}) ON CONFLICT DO NOTHING"
        )

        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, list(params.values()))
                inserted = cur.rowcount
            conn.commit()

        if inserted == 0:
            existing = self.find_active_for_family(activation.family_id)
            if existing is not None:
                return existing
        return activation

    def get(self, activation_id: str) -> Optional[SafeEscapeActivation]:
        return self.find_by_id(activation_id)

    def find_active_for_family(self, family_id: str) -> Optional[SafeEscapeActivation]:
        rows = self.find_where("family_id = %s AND reenabled_at IS NULL", (family_id,))
        return rows[0] if rows else None

    def list_awaiting_notification(self) -> List[SafeEscapeActivation]:
        return self.find_where(
            "reenabled_at IS NULL AND notification_sent_at IS NULL ORDER BY activated_at"
        )

    def compare_and_set(
        self,
        current: SafeEscapeActivation,
        updated: SafeEscapeActivation,
    ) -> bool:
        return super().compare_and_set(
            current.id,
            expected={
                "reenabled_at": current.reenabled_at,
                "notification_sent_at": current.notification_sent_at,
            },
            changes={
                "reenabled_at": updated.reenabled_at,
                "reenabled_by": updated.reenabled_by,
                "notification_sent_at": updated.notification_sent_at,
            },
        )
