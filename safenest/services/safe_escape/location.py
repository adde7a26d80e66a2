"""Location history collaborator.

Safe Escape wipes a family's stored location history the moment it is
activated. The location service owns the data; this module only defines
the seam plus an in-memory implementation for development.
"""
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Tuple


class LocationHistoryStore(ABC):
    @abstractmethod
    def clear(self, family_id: str) -> int:
        """Delete all location history for the family. Returns rows removed."""


class InMemoryLocationHistoryStore(LocationHistoryStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._points: Dict[str, List[Tuple[str, datetime, float, float]]] = defaultdict(list)

    def record(self, family_id: str, member_id: str, at: datetime, lat: float, lng: float) -> None:
        with self._lock:
            self._points[family_id].append((member_id, at, lat, lng))

    def points(self, family_id: str) -> List[Tuple[str, datetime, float, float]]:
        with self._lock:
            return list(self._points.get(family_id, []))

    def clear(self, family_id: str) -> int:
        with self._lock:
            return len(self._points.pop(family_id, []))
