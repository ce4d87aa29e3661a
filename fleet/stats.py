"""
Fleet Statistics
Process-wide counters consumed by the presentation layer.
"""

from typing import Dict, Any, Callable
from datetime import datetime


class FleetStats:
    """
    Monotonic fleet counters.

    `active` is not stored: it is read from the registry through
    `active_counter` so it always equals the number of connected records.
    """

    def __init__(self, active_counter: Callable[[], int]):
        self.start_time = datetime.utcnow()
        self.total_created = 0
        self.messages_sent = 0
        self.movements = 0
        self.errors = 0
        self.commands_executed = 0
        self._active_counter = active_counter

    @property
    def active(self) -> int:
        return self._active_counter()

    @property
    def uptime_seconds(self) -> float:
        return (datetime.utcnow() - self.start_time).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "start_time": self.start_time.isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "total_created": self.total_created,
            "active": self.active,
            "messages_sent": self.messages_sent,
            "movements": self.movements,
            "errors": self.errors,
            "commands_executed": self.commands_executed,
        }
