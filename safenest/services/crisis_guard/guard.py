"""Crisis guard - zero-data-path enforcement for monitoring channels.

A visit to a crisis resource produces no persisted artifact in
any monitoring channel. Every monitoring action (screenshot, URL log,
time tracking, notification, analytics) calls the matching predicate and
inspects its boolean result before acting, in the same synchronous call,
so nothing can slip in between "checked" and "captured".

Predicates never log, store or forward the URL they are given.
"""
from enum import Enum
from typing import Callable, Optional, TypeVar

from .matcher import AllowlistMatcher, get_default_matcher

R = TypeVar("R")


class MonitoringChannel(Enum):
    """Monitoring actions gated by the guard."""
    SCREENSHOT = "screenshot"
    URL_LOGGING = "url_logging"
    TIME_TRACKING = "time_tracking"
    NOTIFICATION = "notification"
    ANALYTICS = "analytics"


class CrisisGuard:
    """Synchronous blocking predicates over the crisis allowlist.

    Each predicate answers identically for a given URL; they exist
    separately so call sites read as the channel they protect.
    """

    def __init__(self, matcher: Optional[AllowlistMatcher] = None):
        self._matcher = matcher or get_default_matcher()
        self._channel_predicates = {
            MonitoringChannel.SCREENSHOT: self.should_block_screenshot,
            MonitoringChannel.URL_LOGGING: self.should_block_url_logging,
            MonitoringChannel.TIME_TRACKING: self.should_block_time_tracking,
            MonitoringChannel.NOTIFICATION: self.should_block_notification,
            MonitoringChannel.ANALYTICS: self.should_block_analytics,
        }

    def should_block(self, url) -> bool:
        """Master predicate: True if any monitoring of ``url`` is forbidden."""
        return self._matcher.is_crisis_url(url)

    def should_block_screenshot(self, url) -> bool:
        return self._matcher.is_crisis_url(url)

    def should_block_url_logging(self, url) -> bool:
        return self._matcher.is_crisis_url(url)

    def should_block_time_tracking(self, url) -> bool:
        return self._matcher.is_crisis_url(url)

    def should_block_notification(self, url) -> bool:
        return self._matcher.is_crisis_url(url)

    def should_block_analytics(self, url) -> bool:
        return self._matcher.is_crisis_url(url)

    def should_block_channel(self, url, channel: MonitoringChannel) -> bool:
        return self._channel_predicates[channel](url)

    def guard_monitoring_action(
        self,
        url,
        channel: MonitoringChannel,
        action: Callable[[], R],
    ) -> Optional[R]:
        """Run ``action`` only if ``channel`` may record ``url``.

        The check and the call happen in one synchronous step. Returns the
        action's result, or None when blocked.
        """
        if self.should_block_channel(url, channel):
            return None
        return action()


_default_guard: Optional[CrisisGuard] = None


def get_default_guard() -> CrisisGuard:
    global _default_guard
    if _default_guard is None:
        _default_guard = CrisisGuard()
    return _default_guard


def should_block(url) -> bool:
    return get_default_guard().should_block(url)


def should_block_screenshot(url) -> bool:
    return get_default_guard().should_block_screenshot(url)


def should_block_url_logging(url) -> bool:
    return get_default_guard().should_block_url_logging(url)


def should_block_time_tracking(url) -> bool:
    return get_default_guard().should_block_time_tracking(url)


def should_block_notification(url) -> bool:
    return get_default_guard().should_block_notification(url)


def should_block_analytics(url) -> bool:
    return get_default_guard().should_block_analytics(url)
