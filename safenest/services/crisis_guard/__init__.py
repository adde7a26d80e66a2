"""Crisis Guard: zero-data-path protection for crisis resources.

A visit to a crisis-support resource (suicide, abuse, LGBTQ+
support hotlines, ...) is never recorded by any monitoring channel.

Components:
- allowlist.py: static crisis resource table and provider interface
- matcher.py: AllowlistMatcher, hostname/alias/subdomain matching
- guard.py: CrisisGuard, one synchronous predicate per monitoring channel
- handler.py: Flask endpoint for out-of-process monitoring agents

Usage:
    from safenest.services.crisis_guard import should_block_screenshot

    if not should_block_screenshot(url):
        capture_screenshot()
"""

from .allowlist import (
    CRISIS_ALLOWLIST,
    AllowlistEntry,
    AllowlistProvider,
    ContactMethod,
    CrisisAllowlist,
    CrisisCategory,
    Region,
    StaticAllowlistProvider,
)
from .matcher import (
    AllowlistMatcher,
    extract_domain,
    get_default_matcher,
    get_crisis_allowlist,
    get_crisis_resource,
    is_crisis_url,
)
from .guard import (
    CrisisGuard,
    MonitoringChannel,
    should_block,
    should_block_analytics,
    should_block_notification,
    should_block_screenshot,
    should_block_time_tracking,
    should_block_url_logging,
)

__all__ = [
    "CRISIS_ALLOWLIST",
    "AllowlistEntry",
    "AllowlistProvider",
    "ContactMethod",
    "CrisisAllowlist",
    "CrisisCategory",
    "Region",
    "StaticAllowlistProvider",
    "AllowlistMatcher",
    "extract_domain",
    "get_default_matcher",
    "get_crisis_allowlist",
    "get_crisis_resource",
    "is_crisis_url",
    "CrisisGuard",
    "MonitoringChannel",
    "should_block",
    "should_block_analytics",
    "should_block_notification",
    "should_block_screenshot",
    "should_block_time_tracking",
    "should_block_url_logging",
]
