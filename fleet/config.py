"""
Fleet Configuration and Constants
Timing constants, enumerations and the target server snapshot.
"""

from enum import Enum
from dataclasses import dataclass
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from fleet.errors import ConfigInvalid

# =============================================================================
# FLEET CONSTANTS
# =============================================================================

# History ring buffer capacity (newest first)
HISTORY_CAPACITY = 50

# Motion goal proximity radii (world units)
MOVE_GOAL_RADIUS = 2
FOLLOW_GOAL_RADIUS = 3

# Relative movement step for move{direction}
DIRECTION_STEP = 5

# Control states released by stop
MOVEMENT_CONTROLS = ("forward", "back", "left", "right", "jump", "sprint")

# =============================================================================
# TIMING (seconds)
# =============================================================================

RECONNECT_DELAY = 10.0
WELCOME_DELAY = 2.0
MIGRATION_DELAY = 3.0
REFRESH_INTERVAL = 1.0
JUMP_RELEASE_DELAY = 0.3
JUMP_ACTIVITY_WINDOW = 1.0
LOOK_ACTIVITY_WINDOW = 1.0
ATTACK_ACTIVITY_WINDOW = 3.0

# =============================================================================
# SERVER DEFAULTS
# =============================================================================

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 25565
DEFAULT_VERSION = "1.20.1"
DEFAULT_NAME_PREFIX = "Bot_"
DEFAULT_MAX_AGENTS = 10

# =============================================================================
# ENUMERATIONS
# =============================================================================

class AgentState(str, Enum):
    """Lifecycle state of an agent record"""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    KICKED = "kicked"
    ERROR = "error"
    DEAD = "dead"
    DISCONNECTED = "disconnected"


class HistoryKind(str, Enum):
    """Kinds of history entries"""
    COMMAND = "command"
    CHAT = "chat"
    SYSTEM = "system"
    ERROR = "error"


class CommandKind(str, Enum):
    """Commands accepted by the dispatcher"""
    CHAT = "chat"
    MOVE = "move"
    FOLLOW = "follow"
    STOP = "stop"
    JUMP = "jump"
    LOOK = "look"
    INVENTORY = "inventory"
    ATTACK = "attack"


class Activity(str, Enum):
    """Fixed activity tags (follow/attack add the target name)"""
    IDLE = "idle"
    MOVING = "moving"
    JUMPING = "jumping"
    LOOKING = "looking"


@dataclass
class FleetTimings:
    """Delays used by the fleet manager. Tests shrink these."""
    reconnect_delay: float = RECONNECT_DELAY
    welcome_delay: float = WELCOME_DELAY
    migration_delay: float = MIGRATION_DELAY
    refresh_interval: float = REFRESH_INTERVAL
    jump_release: float = JUMP_RELEASE_DELAY
    jump_window: float = JUMP_ACTIVITY_WINDOW
    look_window: float = LOOK_ACTIVITY_WINDOW
    attack_window: float = ATTACK_ACTIVITY_WINDOW


class ServerConfig(BaseModel):
    """
    Target game server snapshot.

    Frozen: an update always produces a new instance, so a migration in
    flight keeps acting on the snapshot it started with.
    """
    model_config = ConfigDict(frozen=True)

    host: str = Field(DEFAULT_HOST, min_length=1)
    port: int = Field(DEFAULT_PORT, ge=1, le=65535)
    version: str = Field(DEFAULT_VERSION, min_length=1,
                         description="Game protocol version")
    agent_name_prefix: str = DEFAULT_NAME_PREFIX
    max_agents: int = Field(DEFAULT_MAX_AGENTS, ge=1)
    auto_reconnect: bool = True

    @field_validator("host", "version", mode="before")
    @classmethod
    def _strip(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @classmethod
    def parse(cls, data: dict) -> "ServerConfig":
        """Validate raw data, raising ConfigInvalid instead of ValidationError."""
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            fields = ", ".join(
                ".".join(str(p) for p in err["loc"]) or "config"
                for err in e.errors()
            )
            raise ConfigInvalid(f"Invalid server config: {fields}") from e

    def merged(self, changes: Optional[dict]) -> "ServerConfig":
        """Build a new snapshot from this one plus the given field changes."""
        data = self.model_dump()
        data.update({k: v for k, v in (changes or {}).items() if v is not None})
        return ServerConfig.parse(data)
