"""Audit logger - hash-chained audit trail for safety actions.

Safety signal and Safe Escape actions emit audit entries. Entries about
a Safe Escape are sealed: they stay in the chain for verification but
are hidden from ordinary queries so a family member browsing the audit
view cannot discover the activation.

URLs are never audited.
"""
import hashlib
import json
import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from safenest.shared.utils import Clock, utc_now

logger = logging.getLogger(__name__)

GENESIS_HASH = "genesis"


class AuditAction(Enum):
    """Actions that require audit logging."""
    # Safety signals
    SIGNAL_TRIGGERED = "signal_triggered"
    SIGNAL_STATUS_CHANGED = "signal_status_changed"
    SIGNAL_DELIVERY_ABANDONED = "signal_delivery_abandoned"

    # Safe Escape
    SAFE_ESCAPE_ACTIVATED = "safe_escape_activated"
    SAFE_ESCAPE_REENABLED = "safe_escape_reenabled"
    SAFE_ESCAPE_NOTIFIED = "safe_escape_notified"


class AuditEntity(Enum):
    """Entity types for audit logging."""
    SAFETY_SIGNAL = "safety_signal"
    SAFE_ESCAPE = "safe_escape"
    SYSTEM = "system"


@dataclass(frozen=True)
class AuditEntry:
    """Immutable audit log entry."""
    entry_id: str
    timestamp: datetime
    action: AuditAction
    entity_type: AuditEntity
    entity_id: str
    actor_id: str   # Hashed when it identifies a child
    actor_role: str
    family_id: Optional[str]
    details: Dict[str, Any] = field(default_factory=dict)
    sealed: bool = False
    previous_hash: str = ""  # Chain to previous entry for verification
    entry_hash: str = ""

    def compute_hash(self) -> str:
        """Compute SHA-256 hash of entry for verification.

        Returns:
            Hex-encoded hash string
        """
        content = {
            "entry_id": self.entry_id,
            "timestamp": self.timestamp.isoformat(),
            "action": self.action.value,
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "family_id": self.family_id,
            "details": self.details,
            "sealed": self.sealed,
            "previous_hash": self.previous_hash,
        }
        content_str = json.dumps(content, sort_keys=True, default=str)
        return hashlib.sha256(content_str.encode()).hexdigest()


class AuditLogger:
    """Appends audit entries to an in-memory hash chain.

    In production the chain is mirrored to WORM storage; the chain and
    verification logic are the same.
    """

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: List[AuditEntry] = []
        self._last_hash: str = GENESIS_HASH

        logger.info("AUDIT_LOGGER_INITIALIZED")

    def __len__(self) -> int:
        return len(self._entries)

    def log(
        self,
        action: AuditAction,
        entity_type: AuditEntity,
        entity_id: str,
        actor_id: str,
        actor_role: str,
        family_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        sealed: bool = False,
    ) -> AuditEntry:
        """Log an audit entry.

        Args:
            action: Action being audited
            entity_type: Type of entity being acted upon
            entity_id: Identifier of entity
            actor_id: User or system component performing the action
            actor_role: Role of actor (child, guardian, system)
            family_id: Family context
            details: Additional context, never a URL
            sealed: Hide from ordinary queries

        Returns:
            Created AuditEntry

        Logs:
            - AUDIT_ENTRY_CREATED: After entry is stored
        """
        with self._lock:
            entry = AuditEntry(
                entry_id=f"audit_{uuid.uuid4().hex[:16]}",
                timestamp=self._clock(),
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                actor_id=actor_id,
                actor_role=actor_role,
                family_id=family_id,
                details=dict(details or {}),
                sealed=sealed,
                previous_hash=self._last_hash,
            )
            entry = replace(entry, entry_hash=entry.compute_hash())

            self._entries.append(entry)
            self._last_hash = entry.entry_hash

        logger.info(
            "AUDIT_ENTRY_CREATED",
            extra={
                "entry_id": entry.entry_id,
                "action": action.value,
                "entity_type": entity_type.value,
                "sealed": sealed,
                "entry_hash": entry.entry_hash[:16],  # Truncated for logs
            }
        )

        return entry

    def log_signal_event(
        self,
        action: AuditAction,
        signal_id: str,
        child_id_hash: str,
        family_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        """Log a safety signal action performed by the system on a child's behalf."""
        entry_details = dict(details or {})
        entry_details["child_id_hash"] = child_id_hash

        return self.log(
            action=action,
            entity_type=AuditEntity.SAFETY_SIGNAL,
            entity_id=signal_id,
            actor_id="safety_signal_pipeline",
            actor_role="system",
            family_id=family_id,
            details=entry_details,
        )

    def log_escape_event(
        self,
        action: AuditAction,
        activation_id: str,
        actor_id: str,
        family_id: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        """Log a Safe Escape action. Always sealed."""
        return self.log(
            action=action,
            entity_type=AuditEntity.SAFE_ESCAPE,
            entity_id=activation_id,
            actor_id=actor_id,
            actor_role="guardian",
            family_id=family_id,
            details=details,
            sealed=True,
        )

    def verify_chain(self) -> bool:
        """Verify integrity of audit chain.

        Returns:
            True if chain is valid, False if tampered
        """
        with self._lock:
            entries = list(self._entries)

        expected_prev = GENESIS_HASH
        for entry in entries:
            if entry.previous_hash != expected_prev:
                logger.critical(
                    "AUDIT_CHAIN_VERIFICATION_FAILED",
                    extra={
                        "entry_id": entry.entry_id,
                        "expected_prev": expected_prev[:16],
                        "actual_prev": entry.previous_hash[:16],
                    }
                )
                return False

            computed = entry.compute_hash()
            if computed != entry.entry_hash:
                logger.critical(
                    "AUDIT_ENTRY_HASH_MISMATCH",
                    extra={
                        "entry_id": entry.entry_id,
                        "computed": computed[:16],
                        "stored": entry.entry_hash[:16],
                    }
                )
                return False

            expected_prev = entry.entry_hash

        logger.info(
            "AUDIT_CHAIN_VERIFIED",
            extra={"entry_count": len(entries)}
        )
        return True

    def query(
        self,
        entity_type: Optional[AuditEntity] = None,
        entity_id: Optional[str] = None,
        action: Optional[AuditAction] = None,
        family_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        include_sealed: bool = False,
    ) -> List[AuditEntry]:
        """Query audit entries.

        Sealed entries are left out unless ``include_sealed`` is set.
        """
        with self._lock:
            results = list(self._entries)

        if not include_sealed:
            results = [e for e in results if not e.sealed]
        if entity_type:
            results = [e for e in results if e.entity_type == entity_type]
        if entity_id:
            results = [e for e in results if e.entity_id == entity_id]
        if action:
            results = [e for e in results if e.action == action]
        if family_id:
            results = [e for e in results if e.family_id == family_id]
        if start_date:
            results = [e for e in results if e.timestamp >= start_date]
        if end_date:
            results = [e for e in results if e.timestamp <= end_date]

        return results
