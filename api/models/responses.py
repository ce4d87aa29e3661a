"""
API Response Models
Pydantic models for API response serialization.
"""

from pydantic import BaseModel
from typing import Optional, Dict, Any, List
from datetime import datetime


# =============================================================================
# Agent Responses
# =============================================================================

class PositionData(BaseModel):
    x: float
    y: float
    z: float


class AgentResponse(BaseModel):
    """One agent record."""
    id: int
    name: str
    state: str
    position: PositionData
    health: float = 0.0
    food: float = 0.0
    activity: str = "idle"
    connected_at: Optional[datetime] = None
    server: str
    last_command: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "id": 3,
                "name": "Bot_3",
                "state": "connected",
                "position": {"x": 12.5, "y": 64.0, "z": -3.0},
                "health": 20.0,
                "food": 18.0,
                "activity": "idle",
                "connected_at": "2024-01-01T00:00:00",
                "server": "localhost:25565",
                "last_command": "move"
            }
        }


class AgentListResponse(BaseModel):
    agents: List[AgentResponse]
    total: int


class CommandResponse(BaseModel):
    """Structured command outcome."""
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    data: Dict[str, Any] = {}


class StopAllResponse(BaseModel):
    success: bool = True
    stopped: int
    message: str


# =============================================================================
# Server Responses
# =============================================================================

class ServerConfigResponse(BaseModel):
    host: str
    port: int
    version: str
    agent_name_prefix: str
    max_agents: int
    auto_reconnect: bool


class HistoryEntryResponse(BaseModel):
    timestamp: datetime
    kind: str
    message: str
    fleet_size: int


class HistoryResponse(BaseModel):
    entries: List[HistoryEntryResponse]
    total: int


class StatsResponse(BaseModel):
    start_time: datetime
    uptime_seconds: float
    total_created: int
    active: int
    messages_sent: int
    movements: int
    errors: int
    commands_executed: int
