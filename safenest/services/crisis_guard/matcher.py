"""Crisis URL matching.

Classifies a URL as a crisis resource or not. This sits on the hot path
of every navigation and capture event, so each check is one dict lookup per
hostname suffix over an index built once at construction.

Malformed input is classified as non-crisis and never raises. Callers
must not log the URLs they pass in.
"""
import re
from typing import Dict, List, Optional
from urllib.parse import urlsplit

from .allowlist import (
    AllowlistEntry,
    AllowlistProvider,
    CrisisCategory,
    Region,
    StaticAllowlistProvider,
)

_HOSTNAME_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?(?:\.[a-z0-9](?:[a-z0-9-]*[a-z0-9])?)*$")


def _normalize_host(host: str) -> str:
    host = host.strip().rstrip(".").lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def extract_domain(url) -> Optional[str]:
    """Return the normalized hostname of ``url`` without a leading ``www.``.

    Accepts full URLs, protocol-relative URLs and bare hosts with or
    without a path. Returns None for anything that is not a usable host.
    """
    if not isinstance(url, str):
        return None

    candidate = url.strip()
    if not candidate:
        return None
    if "://" not in candidate and not candidate.startswith("//"):
        candidate = "//" + candidate

    try:
        host = urlsplit(candidate).hostname
    except ValueError:
        return None
    if not host:
        return None

    host = _normalize_host(host)
    if not _HOSTNAME_RE.match(host):
        return None
    return host


class AllowlistMatcher:
    """Matches URLs against the crisis allowlist.

    Stateless after construction and safe to share across threads.
    """

    def __init__(self, provider: Optional[AllowlistProvider] = None):
        self._provider = provider or StaticAllowlistProvider()
        allowlist = self._provider.get_allowlist()
        self.version = allowlist.version
        self._entries = allowlist.entries
        self._index: Dict[str, AllowlistEntry] = {}
        for entry in self._entries:
            for domain in entry.all_domains:
                self._index[_normalize_host(domain)] = entry

    def get_crisis_resource(self, url) -> Optional[AllowlistEntry]:
        """Return the allowlist entry ``url`` belongs to, if any."""
        host = extract_domain(url)
        if host is None:
            return None

        labels = host.split(".")
        for start in range(len(labels)):
            entry = self._index.get(".".join(labels[start:]))
            if entry is not None:
                return entry
        return None

    def is_crisis_url(self, url) -> bool:
        """True if ``url`` is on a crisis domain, alias or their subdomains."""
        try:
            return self.get_crisis_resource(url) is not None
        except Exception:
            # Unclassifiable input is non-crisis by contract
            return False

    def get_crisis_allowlist(self) -> List[AllowlistEntry]:
        return list(self._entries)

    def get_resources_by_category(self, category: CrisisCategory) -> List[AllowlistEntry]:
        return [entry for entry in self._entries if entry.category == category]

    def get_resources_by_region(self, region: Region) -> List[AllowlistEntry]:
        return [entry for entry in self._entries if entry.region == region]


_default_matcher: Optional[AllowlistMatcher] = None


def get_default_matcher() -> AllowlistMatcher:
    global _default_matcher
    if _default_matcher is None:
        _default_matcher = AllowlistMatcher()
    return _default_matcher


def is_crisis_url(url) -> bool:
    return get_default_matcher().is_crisis_url(url)


def get_crisis_resource(url) -> Optional[AllowlistEntry]:
    return get_default_matcher().get_crisis_resource(url)


def get_crisis_allowlist() -> List[AllowlistEntry]:
    return get_default_matcher().get_crisis_allowlist()
