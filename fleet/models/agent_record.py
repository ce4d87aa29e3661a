"""
Agent Record
Per-agent metadata mirroring session state for fast reads.
"""

from typing import Optional, Dict, Any
from dataclasses import dataclass, field
from datetime import datetime

from fleet.config import AgentState, Activity


@dataclass
class Position:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {"x": round(self.x, 2), "y": round(self.y, 2), "z": round(self.z, 2)}


@dataclass
class AgentRecord:
    """
    Fleet-owned view of one agent.

    Only lifecycle and command handlers write to a record; sessions never
    touch it directly.
    """
    id: int
    name: str
    server: str
    state: AgentState = AgentState.CONNECTING
    position: Position = field(default_factory=Position)
    health: float = 0.0
    food: float = 0.0
    activity: str = Activity.IDLE.value
    connected_at: Optional[datetime] = None
    last_command: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_connected(self) -> bool:
        return self.state == AgentState.CONNECTED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "id": self.id,
            "name": self.name,
            "state": self.state.value,
            "position": self.position.to_dict(),
            "health": self.health,
            "food": self.food,
            "activity": self.activity,
            "connected_at": self.connected_at.isoformat() if self.connected_at else None,
            "server": self.server,
            "last_command": self.last_command,
        }
