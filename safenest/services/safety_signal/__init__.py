"""Safety Signal - silent, debounced request for help.

Gesture detectors feed the SafetySignalPipeline, which persists each
signal, delivers it through a SignalDeliveryChannel and retries from the
offline queue until it is handed off or escalated to operators. While a
signal is in its blackout, the family sees none of its activity.
"""

from .blackout import (
    DEFAULT_BLACKOUT_HOURS,
    MAX_EXTENSION_HOURS,
    BlackoutError,
    BlackoutStatus,
    BlackoutStore,
    InMemoryBlackoutStore,
    PostgresBlackoutStore,
    SignalBlackoutService,
)
from .config import SignalConfig
from .debounce import DebounceGate
from .delivery import (
    DeliveryError,
    DeliveryReceipt,
    InMemorySignalChannel,
    InMemorySignalEventSink,
    KinesisSignalChannel,
    KinesisSignalEventPublisher,
    NetworkMonitor,
    SignalDeliveryChannel,
    SignalEventSink,
    StaticNetworkMonitor,
)
from .detectors import KeyboardShortcutDetector, SwipeDetector, TapDetector
from .offline_queue import OfflineQueue
from .pipeline import SafetySignalPipeline
from .repository import (
    InMemoryOfflineQueueStore,
    InMemorySignalStore,
    OfflineQueueStore,
    PostgresOfflineQueueStore,
    PostgresSignalStore,
    SignalStore,
)
from .state_machine import (
    InvalidStatusTransitionError,
    get_next_status,
    is_valid_status_transition,
)

__all__ = [
    "DEFAULT_BLACKOUT_HOURS",
    "MAX_EXTENSION_HOURS",
    "BlackoutError",
    "BlackoutStatus",
    "BlackoutStore",
    "InMemoryBlackoutStore",
    "PostgresBlackoutStore",
    "SignalBlackoutService",
    "SignalConfig",
    "DebounceGate",
    "DeliveryError",
    "DeliveryReceipt",
    "InMemorySignalChannel",
    "InMemorySignalEventSink",
    "KinesisSignalChannel",
    "KinesisSignalEventPublisher",
    "NetworkMonitor",
    "SignalDeliveryChannel",
    "SignalEventSink",
    "StaticNetworkMonitor",
    "KeyboardShortcutDetector",
    "SwipeDetector",
    "TapDetector",
    "OfflineQueue",
    "SafetySignalPipeline",
    "InMemoryOfflineQueueStore",
    "InMemorySignalStore",
    "OfflineQueueStore",
    "PostgresOfflineQueueStore",
    "PostgresSignalStore",
    "SignalStore",
    "InvalidStatusTransitionError",
    "get_next_status",
    "is_valid_status_transition",
]
