"""
Agent Session Interface
Boundary between the fleet manager and the game-protocol client.

A session is created by a SessionFactory, reports lifecycle events through
an async event stream, and accepts action requests. The fleet manager never
reaches past this interface.
"""

from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any, Callable, Awaitable, AsyncIterator, TYPE_CHECKING
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import asyncio

if TYPE_CHECKING:
    from fleet.config import ServerConfig


class SessionEventKind(str, Enum):
    """Lifecycle events a session can emit"""
    SPAWNED = "spawned"
    CHAT = "chat"
    KICKED = "kicked"
    ERROR = "error"
    DIED = "died"
    ENDED = "ended"


@dataclass
class SessionEvent:
    """
    Tagged session event.

    Only the fields relevant to `kind` are set: `sender`/`text` for chat,
    `reason` for kicked/ended, `detail` for error.
    """
    kind: SessionEventKind
    sender: Optional[str] = None
    text: Optional[str] = None
    reason: Optional[str] = None
    detail: Optional[str] = None
    received_at: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def spawned(cls) -> "SessionEvent":
        return cls(SessionEventKind.SPAWNED)

    @classmethod
    def chat(cls, sender: str, text: str) -> "SessionEvent":
        return cls(SessionEventKind.CHAT, sender=sender, text=text)

    @classmethod
    def kicked(cls, reason: str = "") -> "SessionEvent":
        return cls(SessionEventKind.KICKED, reason=reason)

    @classmethod
    def error(cls, detail: str) -> "SessionEvent":
        return cls(SessionEventKind.ERROR, detail=detail)

    @classmethod
    def died(cls) -> "SessionEvent":
        return cls(SessionEventKind.DIED)

    @classmethod
    def ended(cls, reason: str = "") -> "SessionEvent":
        return cls(SessionEventKind.ENDED, reason=reason)


@dataclass
class Vec3:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z}


@dataclass
class EntityRef:
    """Handle to an entity visible to a session"""
    entity_id: int
    name: str
    kind: str = "player"  # player, mob, object
    position: Vec3 = field(default_factory=Vec3)


@dataclass
class InventoryItem:
    name: str
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "count": self.count}


class AgentSession(ABC):
    """
    One live connection backing an agent.

    Implementations push lifecycle events with `emit()`; the fleet manager
    consumes them through `events()` in arrival order. The stream finishes
    after an ENDED event.

    Action methods may suspend on network I/O and raise any exception on
    failure; the dispatcher wraps those as SessionError.
    """

    def __init__(self, username: str):
        self.username = username
        self._events: asyncio.Queue = asyncio.Queue()
        self._closed = False

    # ------------------------------------------------------------------
    # Event stream
    # ------------------------------------------------------------------

    def emit(self, event: SessionEvent) -> None:
        """Queue an event for the consumer (no-op once the stream ended)."""
        if self._closed:
            return
        if event.kind == SessionEventKind.ENDED:
            self._closed = True
        self._events.put_nowait(event)

    async def events(self) -> AsyncIterator[SessionEvent]:
        """Yield events until (and including) ENDED."""
        while True:
            event = await self._events.get()
            yield event
            if event.kind == SessionEventKind.ENDED:
                return

    @property
    def ended(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Live readers (non-blocking)
    # ------------------------------------------------------------------

    @property
    @abstractmethod
    def position(self) -> Optional[Vec3]:
        """Current position, None before spawn"""

    @property
    @abstractmethod
    def health(self) -> float:
        pass

    @property
    @abstractmethod
    def food(self) -> float:
        pass

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    @abstractmethod
    async def chat(self, text: str) -> None:
        pass

    @abstractmethod
    async def set_motion_goal(self, x: float, y: float, z: float, radius: float) -> None:
        """Walk to within `radius` of the point. Returns once reached, raises if the goal fails or is cancelled."""

    @abstractmethod
    async def set_follow_goal(self, entity: EntityRef, radius: float) -> None:
        """Start following an entity. Does not wait; persists until cancelled."""

    @abstractmethod
    async def cancel_goal(self) -> None:
        pass

    @abstractmethod
    async def set_control_state(self, control: str, state: bool) -> None:
        pass

    @abstractmethod
    async def look(self, yaw: float, pitch: float) -> None:
        pass

    @abstractmethod
    async def query_inventory(self) -> List[InventoryItem]:
        pass

    @abstractmethod
    def find_entity_by_name(self, name: str) -> Optional[EntityRef]:
        pass

    @abstractmethod
    async def attack(self, entity: EntityRef) -> None:
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection. Implementations emit ENDED when done."""


# connect(config, name) -> session
SessionFactory = Callable[["ServerConfig", str], Awaitable[AgentSession]]
