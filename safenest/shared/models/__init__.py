"""Shared domain models for SafeNest services."""
from .escape import SILENT_WINDOW, SafeEscapeActivation
from .signal import (
    OfflineQueueEntry,
    Platform,
    SafetySignal,
    SignalBlackout,
    SignalEnvelope,
    SignalStatus,
    TriggerEvent,
    TriggerMethod,
)

__all__ = [
    "SILENT_WINDOW",
    "SafeEscapeActivation",
    "OfflineQueueEntry",
    "Platform",
    "SafetySignal",
    "SignalBlackout",
    "SignalEnvelope",
    "SignalStatus",
    "TriggerEvent",
    "TriggerMethod",
]
