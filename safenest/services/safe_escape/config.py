"""Safe Escape configuration."""
import os
from dataclasses import dataclass
from datetime import timedelta

from safenest.shared.models import SILENT_WINDOW


@dataclass(frozen=True)
class SafeEscapeConfig:
    """Timing and notification settings for Safe Escape."""

    # Family members hear nothing for this long after activation
    silent_window_hours: int = int(SILENT_WINDOW.total_seconds() // 3600)

    # How often the sweeper re-checks pending notifications
    sweep_interval_seconds: int = 300

    # Neutral wording only; never suggests danger or an emergency
    notification_message: str = "Location features paused"

    notification_stream: str = "safenest-family-notifications"
    notifications_enabled: bool = True

    @property
    def silent_window(self) -> timedelta:
        return timedelta(hours=self.silent_window_hours)

    @classmethod
    def from_env(cls) -> "SafeEscapeConfig":
        """Create config from environment variables.

        Environment variables:
            SAFE_ESCAPE_SWEEP_INTERVAL_SECONDS, SAFE_ESCAPE_NOTIFICATION_STREAM,
            SAFE_ESCAPE_NOTIFICATIONS_ENABLED
        """
        return cls(
            sweep_interval_seconds=int(os.getenv("SAFE_ESCAPE_SWEEP_INTERVAL_SECONDS", "300")),
            notification_stream=os.getenv(
                "SAFE_ESCAPE_NOTIFICATION_STREAM", "safenest-family-notifications"
            ),
            notifications_enabled=(
                os.getenv("SAFE_ESCAPE_NOTIFICATIONS_ENABLED", "true").lower() == "true"
            ),
        )
