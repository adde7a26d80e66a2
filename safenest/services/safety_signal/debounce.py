"""Per-detector debounce gate.

One physical gesture can fire the same detector several times (key
repeat, a double-registered tap). The gate lets the first through and
swallows the rest for ``window_ms``. Each detector owns its own gate so
a keyboard chord never suppresses a logo tap.
"""
import threading
from datetime import datetime
from typing import Optional

from safenest.shared.utils import Clock, utc_now


class DebounceGate:
    """Accepts at most one trigger per window.

    ``record_if_not_debouncing`` reads and writes ``last_trigger_time``
    under a lock so concurrent triggers on one detector are serialized.
    """

    def __init__(self, window_ms: int = 5000, clock: Clock = utc_now):
        if window_ms < 0:
            raise ValueError(f"window_ms must be >= 0, got {window_ms}")
        self.window_ms = window_ms
        self._clock = clock
        self._lock = threading.Lock()
        self._last_trigger_time: Optional[datetime] = None

    @property
    def last_trigger_time(self) -> Optional[datetime]:
        return self._last_trigger_time

    def record_if_not_debouncing(self) -> bool:
        """Record a trigger unless one was accepted within the window.

        Returns:
            True if the trigger was accepted, False if it was swallowed
        """
        with self._lock:
            now = self._clock()
            if self._last_trigger_time is not None:
                elapsed_ms = (now - self._last_trigger_time).total_seconds() * 1000
                if elapsed_ms < self.window_ms:
                    return False
            self._last_trigger_time = now
            return True

    def reset(self) -> None:
        with self._lock:
            self._last_trigger_time = None
