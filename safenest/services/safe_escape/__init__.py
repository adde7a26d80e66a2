"""Safe Escape - instant location disable with a silent 72-hour window.

Only the activator can re-enable. Other family members get a neutral
notice once the window has passed, delivered by the periodic sweep.
"""

from .config import SafeEscapeConfig
from .controller import (
    GENERIC_FAILURE,
    ReenableNotAuthorizedError,
    ReenableResult,
    SafeEscapeController,
    calculate_hours_until_notification,
    should_send_notification,
)
from .location import InMemoryLocationHistoryStore, LocationHistoryStore
from .notifier import EscapeNotifier, InMemoryEscapeNotifier, KinesisEscapeNotifier
from .repository import ActivationStore, InMemoryActivationStore, PostgresActivationStore
from .sweeper import EscapeNotificationSweeper

__all__ = [
    "SafeEscapeConfig",
    "GENERIC_FAILURE",
    "ReenableNotAuthorizedError",
    "ReenableResult",
    "SafeEscapeController",
    "calculate_hours_until_notification",
    "should_send_notification",
    "InMemoryLocationHistoryStore",
    "LocationHistoryStore",
    "EscapeNotifier",
    "InMemoryEscapeNotifier",
    "KinesisEscapeNotifier",
    "ActivationStore",
    "InMemoryActivationStore",
    "PostgresActivationStore",
    "EscapeNotificationSweeper",
]
