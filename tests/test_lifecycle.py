"""
Lifecycle Tests
State machine table and event handling in the fleet manager.
"""

import asyncio
import random

import pytest

from conftest import settle, connect_agent
from fleet.config import AgentState, HistoryKind
from fleet.lifecycle import next_state, is_valid_edge
from fleet.session.interface import SessionEvent, SessionEventKind, Vec3


class TestTransitionTable:
    """Tests for the pure reducer"""

    def test_spawn_only_from_connecting(self):
        """spawned moves connecting -> connected and nothing else"""
        assert next_state(AgentState.CONNECTING, SessionEventKind.SPAWNED) == AgentState.CONNECTED
        assert next_state(AgentState.DEAD, SessionEventKind.SPAWNED) is None
        assert next_state(AgentState.ERROR, SessionEventKind.SPAWNED) is None

    def test_no_direct_connecting_to_kicked(self):
        """kicked and died need a connected agent"""
        assert next_state(AgentState.CONNECTING, SessionEventKind.KICKED) is None
        assert next_state(AgentState.CONNECTING, SessionEventKind.DIED) is None
        assert next_state(AgentState.CONNECTED, SessionEventKind.KICKED) == AgentState.KICKED
        assert next_state(AgentState.CONNECTED, SessionEventKind.DIED) == AgentState.DEAD

    def test_error_and_ended_from_any_state(self):
        """error and ended apply everywhere"""
        for state in AgentState:
            assert next_state(state, SessionEventKind.ERROR) == AgentState.ERROR
            assert next_state(state, SessionEventKind.ENDED) == AgentState.DISCONNECTED

    def test_chat_is_not_a_transition(self):
        """chat never changes state"""
        assert next_state(AgentState.CONNECTED, SessionEventKind.CHAT) is None

    def test_reconnect_edges(self):
        """Only terminal-ish states may return to connecting"""
        assert is_valid_edge(AgentState.KICKED, AgentState.CONNECTING)
        assert is_valid_edge(AgentState.DISCONNECTED, AgentState.CONNECTING)
        assert not is_valid_edge(AgentState.CONNECTED, AgentState.CONNECTING)
        assert not is_valid_edge(AgentState.CONNECTING, AgentState.KICKED)


class TestSessionEvents:
    """Tests for lifecycle handling inside the fleet manager"""

    def test_spawn_connects_agent(self, fleet, factory):
        """spawned sets connected_at, active and sends a welcome line"""
        async def scenario():
            record, session = await connect_agent(fleet, factory, 1)
            assert record.state == AgentState.CONNECTED
            assert record.connected_at is not None
            assert fleet.stats.active == 1
            await settle(0.03)
            assert any(record.name in line for line in session.chats)

        asyncio.run(scenario())

    def test_welcome_failure_is_only_logged(self, fleet, factory):
        """A failing welcome chat does not change state or counters"""
        async def scenario():
            record, session = await connect_agent(fleet, factory, 1)
            session.fail_with = RuntimeError("chat blocked")
            await settle(0.03)
            assert record.state == AgentState.CONNECTED
            assert fleet.stats.errors == 0

        asyncio.run(scenario())

    def test_kicked_decrements_active(self, fleet, factory):
        """kicked leaves the connected set"""
        async def scenario():
            record, session = await connect_agent(fleet, factory, 1)
            session.emit(SessionEvent.kicked("banned"))
            await settle()
            assert record.state == AgentState.KICKED
            assert fleet.stats.active == 0

        asyncio.run(scenario())

    def test_error_counts_without_deregistering(self, fleet, factory):
        """error increments errors and records an error entry"""
        async def scenario():
            record, session = await connect_agent(fleet, factory, 1)
            session.emit(SessionEvent.error("socket reset"))
            await settle()
            assert record.state == AgentState.ERROR
            assert fleet.stats.errors == 1
            assert fleet.lookup(1) is record
            assert fleet.history.recent(kind=HistoryKind.ERROR)[0].message.endswith("socket reset")

        asyncio.run(scenario())

    def test_died_keeps_agent_registered(self, fleet, factory):
        """died moves to dead with no respawn"""
        async def scenario():
            record, session = await connect_agent(fleet, factory, 1)
            session.emit(SessionEvent.died())
            session.emit(SessionEvent.spawned())
            await settle()
            assert record.state == AgentState.DEAD
            assert fleet.lookup(1) is record

        asyncio.run(scenario())

    def test_ended_removes_session(self, fleet, factory):
        """ended disconnects the record and drops the session handle"""
        async def scenario():
            record, session = await connect_agent(fleet, factory, 1)
            session.emit(SessionEvent.ended("server closed"))
            await settle()
            assert record.state == AgentState.DISCONNECTED
            assert fleet.stats.active == 0
            result = await fleet.execute(1, "chat", {"message": "hello?"})
            assert result.error_kind == "AgentUnavailable"

        asyncio.run(scenario())

    def test_error_then_ended_keeps_active_consistent(self, fleet, factory):
        """active never drifts from the number of connected records"""
        async def scenario():
            await connect_agent(fleet, factory, 1)
            _, second = await connect_agent(fleet, factory, 2)
            second.emit(SessionEvent.error("timeout"))
            second.emit(SessionEvent.ended())
            await settle()
            assert fleet.stats.active == 1
            assert fleet.stats.active >= 0

        asyncio.run(scenario())

    def test_chat_event_recorded(self, fleet, factory):
        """Chat from others is recorded, the agent's own echo is ignored"""
        async def scenario():
            record, session = await connect_agent(fleet, factory, 1)
            session.emit(SessionEvent.chat("Steve", "hi bots"))
            session.emit(SessionEvent.chat(session.username, "my own line"))
            await settle()
            chats = fleet.history.recent(kind=HistoryKind.CHAT)
            assert [e.message for e in chats] == ["<Steve> hi bots"]

        asyncio.run(scenario())

    def test_snapshot_refresh(self, fleet, factory):
        """Position, health and food follow the live session"""
        async def scenario():
            record, session = await connect_agent(fleet, factory, 1)
            session.pos = Vec3(10.0, 70.0, -4.0)
            session.hp = 12.0
            session.hunger = 6.0
            await settle(0.03)
            assert record.position.x == 10.0
            assert record.position.z == -4.0
            assert record.health == 12.0
            assert record.food == 6.0

        asyncio.run(scenario())

    def test_random_event_sequences_follow_edges(self, fleet, factory):
        """Every observed state change is an edge of the lifecycle graph"""
        observed = []

        def listener(event_type, payload):
            if event_type == "agent_update":
                observed.append(AgentState(payload["state"]))

        fleet.add_listener(listener)
        fleet.config_manager._config = fleet.config.model_copy(update={"auto_reconnect": False})
        rng = random.Random(7)
        kinds = [SessionEvent.spawned, SessionEvent.died, SessionEvent.kicked,
                 lambda: SessionEvent.error("x"), SessionEvent.ended]

        async def scenario():
            await fleet.register(1)
            session = factory.last
            for _ in range(12):
                session.emit(rng.choice(kinds)())
                await settle()

        asyncio.run(scenario())
        changes = [(a, b) for a, b in zip(observed, observed[1:]) if a != b]
        assert observed[0] == AgentState.CONNECTING
        for source, target in changes:
            assert is_valid_edge(source, target), f"{source} -> {target}"
