"""
Shared test fixtures: a scripted session, a recording factory and a fleet
manager with millisecond timings.
"""

import asyncio
import sys
import os
from typing import Optional, List, Dict, Tuple

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fleet.config import FleetTimings, ServerConfig
from fleet.manager import FleetManager
from fleet.session.interface import AgentSession, SessionEvent, EntityRef, InventoryItem, Vec3


class FakeSession(AgentSession):
    """
    Scripted session for tests.

    Motion goals stay pending until `reach_goal()` or `cancel_goal()`;
    setting `fail_with` makes every action raise that exception.
    """

    def __init__(self, username: str, auto_spawn: bool = False):
        super().__init__(username)
        self.pos = Vec3(0.0, 64.0, 0.0)
        self.hp = 20.0
        self.hunger = 20.0
        self.entities: Dict[str, EntityRef] = {
            "Steve": EntityRef(entity_id=7, name="Steve", kind="player"),
            "zombie": EntityRef(entity_id=8, name="zombie", kind="mob"),
        }
        self.inventory = [InventoryItem("dirt", 64), InventoryItem("bread", 3)]
        self.fail_with: Optional[Exception] = None
        self.disconnect_error: Optional[Exception] = None
        # Cancel the pending goal on disconnect, as the simulated backend does
        self.cancel_on_disconnect = False

        self.chats: List[str] = []
        self.goals: List[Tuple[float, float, float, float]] = []
        self.follows: List[Tuple[str, float]] = []
        self.controls: List[Tuple[str, bool]] = []
        self.looks: List[Tuple[float, float]] = []
        self.attacks: List[str] = []
        self.cancels = 0
        self.disconnected = False
        self._goal: Optional[asyncio.Future] = None

        if auto_spawn:
            self.emit(SessionEvent.spawned())

    @property
    def position(self) -> Optional[Vec3]:
        return self.pos

    @property
    def health(self) -> float:
        return self.hp

    @property
    def food(self) -> float:
        return self.hunger

    def _check(self):
        if self.fail_with is not None:
            raise self.fail_with

    async def chat(self, text: str) -> None:
        self._check()
        self.chats.append(text)

    async def set_motion_goal(self, x, y, z, radius) -> None:
        self._check()
        self.goals.append((x, y, z, radius))
        self._goal = asyncio.get_running_loop().create_future()
        await self._goal

    def reach_goal(self):
        if self._goal is not None and not self._goal.done():
            self._goal.set_result(None)

    async def set_follow_goal(self, entity: EntityRef, radius: float) -> None:
        self._check()
        self.follows.append((entity.name, radius))

    async def cancel_goal(self) -> None:
        self._check()
        self.cancels += 1
        if self._goal is not None and not self._goal.done():
            self._goal.set_exception(RuntimeError("goal cancelled"))

    async def set_control_state(self, control: str, state: bool) -> None:
        self._check()
        self.controls.append((control, state))

    async def look(self, yaw: float, pitch: float) -> None:
        self._check()
        self.looks.append((yaw, pitch))

    async def query_inventory(self) -> List[InventoryItem]:
        self._check()
        return list(self.inventory)

    def find_entity_by_name(self, name: str) -> Optional[EntityRef]:
        return self.entities.get(name)

    async def attack(self, entity: EntityRef) -> None:
        self._check()
        self.attacks.append(entity.name)

    async def disconnect(self) -> None:
        self.disconnected = True
        if self.cancel_on_disconnect:
            await self.cancel_goal()
        if self.disconnect_error is not None:
            raise self.disconnect_error
        self.emit(SessionEvent.ended("quit"))


class FakeFactory:
    """Session factory that records every connection request."""

    def __init__(self, auto_spawn: bool = False):
        self.auto_spawn = auto_spawn
        self.calls: List[Tuple[ServerConfig, str]] = []
        self.sessions: List[FakeSession] = []
        self.fail_with: Optional[Exception] = None

    async def __call__(self, config: ServerConfig, name: str) -> FakeSession:
        self.calls.append((config, name))
        if self.fail_with is not None:
            raise self.fail_with
        session = FakeSession(name, auto_spawn=self.auto_spawn)
        self.sessions.append(session)
        return session

    @property
    def last(self) -> FakeSession:
        return self.sessions[-1]


FAST_TIMINGS = FleetTimings(
    reconnect_delay=0.05,
    welcome_delay=0.01,
    migration_delay=0.05,
    refresh_interval=0.01,
    jump_release=0.01,
    jump_window=0.05,
    look_window=0.05,
    attack_window=0.05,
)


async def settle(delay: float = 0.0, rounds: int = 5):
    """Let pending events and callbacks run."""
    if delay:
        await asyncio.sleep(delay)
    for _ in range(rounds):
        await asyncio.sleep(0)


async def connect_agent(fleet: FleetManager, factory: FakeFactory, agent_id: int, name: Optional[str] = None):
    """Register an agent and drive it to CONNECTED."""
    record = await fleet.register(agent_id, name)
    session = factory.last
    session.emit(SessionEvent.spawned())
    await settle()
    return record, session


@pytest.fixture
def factory():
    """Recording session factory"""
    return FakeFactory()


@pytest.fixture
def server_config():
    """Default target server"""
    return ServerConfig(host="mc.test", port=25565, version="1.20.1", max_agents=3)


@pytest.fixture
def fleet(factory, server_config):
    """Fleet manager with fast timings"""
    return FleetManager(session_factory=factory, config=server_config, timings=FAST_TIMINGS)
