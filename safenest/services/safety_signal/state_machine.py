"""Signal delivery state machine.

The one source of truth for legal status moves:

    queued -> pending -> sent -> delivered -> acknowledged

One hop at a time, never backward, never skipping. ``acknowledged`` is
terminal.
"""
from typing import Dict, List, Optional

from safenest.shared.models import SignalStatus

TRANSITIONS: Dict[SignalStatus, Optional[SignalStatus]] = {
    SignalStatus.QUEUED: SignalStatus.PENDING,
    SignalStatus.PENDING: SignalStatus.SENT,
    SignalStatus.SENT: SignalStatus.DELIVERED,
    SignalStatus.DELIVERED: SignalStatus.ACKNOWLEDGED,
    SignalStatus.ACKNOWLEDGED: None,
}


class InvalidStatusTransitionError(ValueError):
    """Attempted a status move the state machine does not allow."""

    def __init__(self, current: SignalStatus, target: SignalStatus):
        self.current = current
        self.target = target
        super().__init__(
            f"Invalid signal status transition: {current.value} -> {target.value}"
        )


def get_next_status(current: SignalStatus) -> Optional[SignalStatus]:
    """Return the single legal successor of ``current``, or None if terminal."""
    return TRANSITIONS[current]


def is_valid_status_transition(current: SignalStatus, target: SignalStatus) -> bool:
    next_status = TRANSITIONS.get(current)
    return next_status is not None and next_status == target


def is_terminal(status: SignalStatus) -> bool:
    return TRANSITIONS[status] is None


def path_to(current: SignalStatus, target: SignalStatus) -> List[SignalStatus]:
    """Hops needed to walk from ``current`` forward to ``target``.

    Returns an empty list when ``target`` is ``current`` or lies behind it.
    """
    hops: List[SignalStatus] = []
    status = current
    while status != target:
        status = TRANSITIONS[status]
        if status is None:
            return []
        hops.append(status)
    return hops
