"""
Simulated Session Backend
In-process stand-in for a game connection, used for development and dry
runs when no protocol client is wired in.
"""

import asyncio
import logging
import math
from typing import Optional, List, Dict, TYPE_CHECKING

from fleet.session.interface import (
    AgentSession,
    SessionEvent,
    EntityRef,
    InventoryItem,
    Vec3,
)

if TYPE_CHECKING:
    from fleet.config import ServerConfig

logger = logging.getLogger(__name__)

SPAWN_DELAY = 0.5
WALK_SPEED = 4.3  # units per second
TICK = 0.05

# Entities every simulated agent can see
DEFAULT_ENTITIES = [
    EntityRef(entity_id=1, name="Steve", kind="player", position=Vec3(10, 64, 10)),
    EntityRef(entity_id=2, name="Alex", kind="player", position=Vec3(-8, 64, 4)),
    EntityRef(entity_id=3, name="zombie", kind="mob", position=Vec3(20, 64, -6)),
]


class SimulatedSession(AgentSession):
    """
    A session that spawns after a short delay and walks in a straight line.

    Goals are cancellable: a cancelled or replaced motion goal raises from
    `set_motion_goal`, as a real pathfinder would.
    """

    def __init__(
        self,
        username: str,
        spawn_point: Optional[Vec3] = None,
        entities: Optional[List[EntityRef]] = None,
        speed: float = WALK_SPEED,
    ):
        super().__init__(username)
        self._position = None
        self._spawn_point = spawn_point or Vec3(0.0, 64.0, 0.0)
        self._entities: Dict[str, EntityRef] = {e.name: e for e in (entities or DEFAULT_ENTITIES)}
        self._speed = speed
        self._controls: Dict[str, bool] = {}
        self._goal_cancel: Optional[asyncio.Event] = None
        self._follow: Optional[EntityRef] = None
        self._inventory = [InventoryItem("bread", 8), InventoryItem("stone_sword", 1)]
        self._health = 20.0
        self._food = 20.0
        self.yaw = 0.0
        self.pitch = 0.0
        self.start_task: Optional[asyncio.Task] = None

    async def start(self, spawn_delay: float = SPAWN_DELAY) -> None:
        await asyncio.sleep(spawn_delay)
        if self.ended:
            return
        self._position = Vec3(self._spawn_point.x, self._spawn_point.y, self._spawn_point.z)
        self.emit(SessionEvent.spawned())

    @property
    def position(self) -> Optional[Vec3]:
        return self._position

    @property
    def health(self) -> float:
        return self._health

    @property
    def food(self) -> float:
        return self._food

    def _require_spawned(self) -> Vec3:
        if self.ended:
            raise ConnectionError("session closed")
        if self._position is None:
            raise ConnectionError("not spawned yet")
        return self._position

    async def chat(self, text: str) -> None:
        self._require_spawned()
        logger.debug(f"[{self.username}] chat: {text}")

    async def set_motion_goal(self, x: float, y: float, z: float, radius: float) -> None:
        pos = self._require_spawned()
        cancel = asyncio.Event()
        self._goal_cancel = cancel
        while True:
            dx, dy, dz = x - pos.x, y - pos.y, z - pos.z
            dist = math.sqrt(dx * dx + dy * dy + dz * dz)
            if dist <= radius:
                return
            if cancel.is_set() or self.ended:
                raise RuntimeError("goal cancelled")
            step = min(self._speed * TICK, dist - radius)
            pos = self._position = Vec3(
                pos.x + dx / dist * step,
                pos.y + dy / dist * step,
                pos.z + dz / dist * step,
            )
            await asyncio.sleep(TICK)

    async def set_follow_goal(self, entity: EntityRef, radius: float) -> None:
        self._require_spawned()
        self._follow = entity

    async def cancel_goal(self) -> None:
        if self._goal_cancel is not None:
            self._goal_cancel.set()
            self._goal_cancel = None
        self._follow = None

    async def set_control_state(self, control: str, state: bool) -> None:
        self._require_spawned()
        self._controls[control] = state

    async def look(self, yaw: float, pitch: float) -> None:
        self._require_spawned()
        self.yaw, self.pitch = yaw, pitch

    async def query_inventory(self) -> List[InventoryItem]:
        self._require_spawned()
        return list(self._inventory)

    def find_entity_by_name(self, name: str) -> Optional[EntityRef]:
        return self._entities.get(name)

    async def attack(self, entity: EntityRef) -> None:
        self._require_spawned()
        logger.debug(f"[{self.username}] attacks {entity.name}")

    async def disconnect(self) -> None:
        await self.cancel_goal()
        self.emit(SessionEvent.ended("disconnect requested"))


async def create_session(config: "ServerConfig", name: str) -> SimulatedSession:
    """SessionFactory for the simulated backend."""
    logger.info(f"Simulating connection of {name} to {config.address} ({config.version})")
    session = SimulatedSession(name)
    session.start_task = asyncio.ensure_future(session.start())
    return session
