"""
Event History
Bounded, newest-first log of fleet activity.
"""

from typing import Optional, List, Dict, Any
from dataclasses import dataclass, field
from datetime import datetime
from collections import deque

from fleet.config import HISTORY_CAPACITY, HistoryKind


@dataclass
class HistoryEntry:
    """A single history entry"""
    kind: HistoryKind
    message: str
    fleet_size: int = 0
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "timestamp": self.timestamp.isoformat(),
            "kind": self.kind.value,
            "message": self.message,
            "fleet_size": self.fleet_size,
        }


class EventHistory:
    """
    Ring buffer of history entries.

    Entries are inserted at the head; once full, each insert evicts the
    oldest entry at the tail. Timestamps never increase from head to tail,
    even if the wall clock steps backwards.
    """

    def __init__(self, capacity: int = HISTORY_CAPACITY):
        self.capacity = capacity
        self._entries: deque = deque(maxlen=capacity)

    def record(self, kind: HistoryKind, message: str, fleet_size: int = 0) -> HistoryEntry:
        """Insert a new entry at the head and return it."""
        entry = HistoryEntry(kind=kind, message=message, fleet_size=fleet_size)
        if self._entries and entry.timestamp < self._entries[0].timestamp:
            entry.timestamp = self._entries[0].timestamp
        self._entries.appendleft(entry)
        return entry

    def recent(self, limit: Optional[int] = None, kind: Optional[HistoryKind] = None) -> List[HistoryEntry]:
        """Most recent entries first"""
        entries = list(self._entries)
        if kind:
            entries = [e for e in entries if e.kind == kind]
        if limit is not None:
            entries = entries[:max(limit, 0)]
        return entries

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
