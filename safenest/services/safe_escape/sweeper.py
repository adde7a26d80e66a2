"""Periodic runner for SafeEscapeController.sweep."""
import logging
import threading
from typing import Optional, Tuple

from .controller import SafeEscapeController

logger = logging.getLogger(__name__)


class EscapeNotificationSweeper:
    """Runs the notification sweep on a fixed interval until stopped.

    Each sweep reads pending activations from the store, so the sweeper
    itself holds no state that a restart could lose.
    """

    def __init__(self, controller: SafeEscapeController, interval_seconds: Optional[float] = None):
        self.controller = controller
        self.interval_seconds = (
            interval_seconds
            if interval_seconds is not None
            else controller.config.sweep_interval_seconds
        )

    def run_once(self) -> int:
        try:
            return self.controller.sweep()
        except Exception as e:
            # Keep the loop alive; the next tick retries
            logger.error(
                "SAFE_ESCAPE_SWEEP_FAILED",
                extra={"error": str(e), "error_type": type(e).__name__}
            )
            return 0

    def run_forever(self, stop_event: threading.Event) -> None:
        logger.info("SAFE_ESCAPE_SWEEPER_STARTED", extra={"interval_seconds": self.interval_seconds})
        while not stop_event.is_set():
            self.run_once()
            stop_event.wait(self.interval_seconds)
        logger.info("SAFE_ESCAPE_SWEEPER_STOPPED")

    def start(self) -> Tuple[threading.Thread, threading.Event]:
        """Run in a daemon thread. Returns the thread and its stop event."""
        stop_event = threading.Event()
        thread = threading.Thread(
            target=self.run_forever,
            args=(stop_event,),
            name="safe-escape-sweeper",
            daemon=True,
        )
        thread.start()
        return thread, stop_event
