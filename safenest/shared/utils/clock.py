"""Clock helpers.

Services take a ``Clock`` (a zero-argument callable returning an aware
datetime) so tests can pin time without patching modules.
"""
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)
