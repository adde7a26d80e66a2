"""Safety Signal configuration.

Gesture thresholds and the delivery retry policy. Retries are bounded:
after ``max_retry_attempts`` failures, or once an entry is older than
``queue_retention``, delivery is abandoned and escalated to operators.
"""
import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Tuple


@dataclass(frozen=True)
class SignalConfig:
    """Configuration for gesture detection and signal delivery."""

    # One physical gesture can fire several events; coalesce them
    debounce_window_ms: int = 5000

    # Logo tap gesture
    tap_count_required: int = 5
    tap_window_ms: int = 3000

    # Keyboard chord, modifiers first (default Ctrl+Shift+H)
    keyboard_chord: Tuple[str, ...] = ("ctrl", "shift", "h")

    # Swipe gesture
    swipe_pattern: Tuple[str, ...] = ("up", "down", "up", "down")
    swipe_window_ms: int = 4000

    # Delivery retry policy
    max_retry_attempts: int = 5
    base_retry_delay_ms: int = 1000
    max_retry_delay_ms: int = 30000
    queue_retention_hours: int = 7 * 24

    # Family sees no signal activity for this long after a signal fires
    blackout_hours: int = 48

    @property
    def queue_retention(self) -> timedelta:
        return timedelta(hours=self.queue_retention_hours)

    def retry_delay(self, attempt: int) -> timedelta:
        """Exponential backoff for the given 1-based attempt number, capped."""
        exponent = max(attempt - 1, 0)
        delay_ms = min(self.base_retry_delay_ms * (2 ** exponent), self.max_retry_delay_ms)
        return timedelta(milliseconds=delay_ms)

    @classmethod
    def from_env(cls) -> "SignalConfig":
        """Create config from environment variables.

        Environment variables:
            SIGNAL_DEBOUNCE_MS, SIGNAL_TAP_COUNT, SIGNAL_TAP_WINDOW_MS,
            SIGNAL_MAX_RETRIES, SIGNAL_BASE_RETRY_MS, SIGNAL_MAX_RETRY_MS,
            SIGNAL_QUEUE_RETENTION_HOURS, SIGNAL_BLACKOUT_HOURS
        """
        return cls(
            debounce_window_ms=int(os.getenv("SIGNAL_DEBOUNCE_MS", "5000")),
            tap_count_required=int(os.getenv("SIGNAL_TAP_COUNT", "5")),
            tap_window_ms=int(os.getenv("SIGNAL_TAP_WINDOW_MS", "3000")),
            max_retry_attempts=int(os.getenv("SIGNAL_MAX_RETRIES", "5")),
            base_retry_delay_ms=int(os.getenv("SIGNAL_BASE_RETRY_MS", "1000")),
            max_retry_delay_ms=int(os.getenv("SIGNAL_MAX_RETRY_MS", "30000")),
            queue_retention_hours=int(os.getenv("SIGNAL_QUEUE_RETENTION_HOURS", "168")),
            blackout_hours=int(os.getenv("SIGNAL_BLACKOUT_HOURS", "48")),
        )
