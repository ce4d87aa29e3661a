"""
API Request Models
Pydantic models for API request validation.
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from enum import Enum


class Direction(str, Enum):
    FORWARD = "forward"
    BACK = "back"
    LEFT = "left"
    RIGHT = "right"


# =============================================================================
# Agent Requests
# =============================================================================

class CreateAgentRequest(BaseModel):
    """Request to create an agent. Id and name are assigned when omitted."""
    id: Optional[int] = Field(None, ge=1, description="Caller-assigned agent id")
    name: Optional[str] = Field(None, min_length=1, max_length=16)

    class Config:
        json_schema_extra = {
            "example": {
                "id": 3,
                "name": "Bot_3"
            }
        }


class CommandRequest(BaseModel):
    """Request to run a command on an agent."""
    command: str = Field(..., description="chat, move, follow, stop, jump, look, inventory, attack")
    params: Optional[Dict[str, Any]] = None

    class Config:
        json_schema_extra = {
            "example": {
                "command": "move",
                "params": {"x": 100, "y": 64, "z": -20}
            }
        }


class ChatRequest(BaseModel):
    message: str


class MoveRequest(BaseModel):
    """Absolute target or relative direction."""
    x: Optional[float] = None
    y: Optional[float] = None
    z: Optional[float] = None
    direction: Optional[Direction] = None


# =============================================================================
# Server Requests
# =============================================================================

class ServerConfigRequest(BaseModel):
    """
    New target server.

    Host, port and version are checked by the config manager so a missing
    field is reported as ConfigInvalid rather than a schema error.
    """
    host: Optional[str] = None
    port: Optional[int] = None
    version: Optional[str] = None
    agent_name_prefix: Optional[str] = None
    max_agents: Optional[int] = None
    auto_reconnect: Optional[bool] = None
