"""
Registry Tests
Agent registration, removal, capacity and id handling.
"""

import asyncio

import pytest

from conftest import settle, connect_agent
from fleet.config import AgentState, HistoryKind
from fleet.errors import DuplicateId, CapacityExceeded, NotFound
from fleet.session.interface import SessionEvent


class TestRegister:
    """Tests for FleetManager.register"""

    def test_register_creates_connecting_record(self, fleet, factory, server_config):
        """A new record starts connecting against the current target"""
        async def scenario():
            record = await fleet.register(5, "Scout")
            assert record.state == AgentState.CONNECTING
            assert record.server == "mc.test:25565"
            assert fleet.lookup(5) is record
            assert factory.calls == [(server_config, "Scout")]
            assert fleet.stats.total_created == 1

        asyncio.run(scenario())

    def test_auto_id_and_name(self, fleet):
        """Omitted id and name are assigned from the counter and prefix"""
        async def scenario():
            first = await fleet.register()
            second = await fleet.register()
            assert (first.id, first.name) == (1, "Bot_1")
            assert (second.id, second.name) == (2, "Bot_2")

        asyncio.run(scenario())

    def test_auto_ids_are_not_recycled(self, fleet):
        """Removing the newest agent does not hand its id out again"""
        async def scenario():
            await fleet.register()
            second = await fleet.register()
            await fleet.unregister(second.id)
            third = await fleet.register()
            assert third.id == 3

        asyncio.run(scenario())

    def test_duplicate_connected_id_rejected(self, fleet, factory):
        """A connected id cannot be registered again"""
        async def scenario():
            record, _ = await connect_agent(fleet, factory, 1)
            with pytest.raises(DuplicateId):
                await fleet.register(1, "Other")
            assert fleet.lookup(1) is record
            assert len(factory.calls) == 1

        asyncio.run(scenario())

    def test_disconnected_id_is_superseded(self, fleet, factory):
        """A disconnected id is replaced by a fresh record with the same name"""
        async def scenario():
            old, session = await connect_agent(fleet, factory, 1, "Miner")
            session.emit(SessionEvent.ended())
            await settle()
            new = await fleet.register(1)
            assert new is not old
            assert new.name == "Miner"
            assert new.state == AgentState.CONNECTING
            assert len(fleet) == 1

        asyncio.run(scenario())

    def test_capacity_exceeded_leaves_fleet_unchanged(self, fleet):
        """Registering past max_agents fails without side effects"""
        async def scenario():
            for i in range(1, 4):
                await fleet.register(i)
            before = [r.id for r in fleet.records()]
            created = fleet.stats.total_created
            with pytest.raises(CapacityExceeded):
                await fleet.register(4)
            assert [r.id for r in fleet.records()] == before
            assert fleet.stats.total_created == created

        asyncio.run(scenario())

    def test_factory_failure_marks_error(self, fleet, factory):
        """A failed connection leaves an errored record behind"""
        factory.fail_with = ConnectionRefusedError("connection refused")

        async def scenario():
            record = await fleet.register(1)
            assert record.state == AgentState.ERROR
            assert fleet.stats.errors == 1
            assert "connection refused" in fleet.history.recent(kind=HistoryKind.ERROR)[0].message
            result = await fleet.execute(1, "jump")
            assert result.error_kind == "AgentUnavailable"

        asyncio.run(scenario())


class TestUnregister:
    """Tests for FleetManager.unregister"""

    def test_unregister_disconnects_and_removes(self, fleet, factory):
        """The session is closed and the record is gone"""
        async def scenario():
            _, session = await connect_agent(fleet, factory, 1)
            await fleet.unregister(1)
            await settle()
            assert session.disconnected
            assert fleet.lookup(1) is None
            assert fleet.stats.active == 0

        asyncio.run(scenario())

    def test_unregister_missing(self, fleet):
        """Unknown ids raise NotFound"""
        async def scenario():
            with pytest.raises(NotFound):
                await fleet.unregister(42)

        asyncio.run(scenario())

    def test_disconnect_failure_not_propagated(self, fleet, factory):
        """A failing disconnect is logged and the record still removed"""
        async def scenario():
            _, session = await connect_agent(fleet, factory, 1)
            session.disconnect_error = OSError("broken pipe")
            await fleet.unregister(1)
            assert fleet.lookup(1) is None

        asyncio.run(scenario())

    def test_stale_events_after_removal_ignored(self, fleet, factory):
        """Events from a removed session never touch the fleet"""
        async def scenario():
            _, session = await connect_agent(fleet, factory, 1)
            await fleet.unregister(1)
            errors = fleet.stats.errors
            session.emit(SessionEvent.error("late"))
            await settle()
            assert fleet.lookup(1) is None
            assert fleet.stats.errors == errors

        asyncio.run(scenario())


class TestFleetWide:
    """Tests for stop-all and shutdown"""

    def test_stop_all(self, fleet, factory):
        """Every agent with a session receives stop"""
        async def scenario():
            _, a = await connect_agent(fleet, factory, 1)
            _, b = await connect_agent(fleet, factory, 2)
            stopped = await fleet.stop_all()
            assert stopped == 2
            assert a.cancels == 1 and b.cancels == 1

        asyncio.run(scenario())

    def test_stop_all_skips_unspawned(self, fleet, factory):
        """Agents still connecting are left alone and add no errors"""
        async def scenario():
            _, spawned = await connect_agent(fleet, factory, 1)
            await fleet.register(2)
            pending = factory.last
            pending.fail_with = ConnectionError("not spawned yet")
            stopped = await fleet.stop_all()
            assert stopped == 1
            assert spawned.cancels == 1
            assert pending.cancels == 0
            assert fleet.stats.errors == 0
            assert fleet.history.recent(kind=HistoryKind.ERROR) == []

        asyncio.run(scenario())

    def test_shutdown_disconnects_everything(self, fleet, factory):
        """shutdown closes every session"""
        async def scenario():
            _, a = await connect_agent(fleet, factory, 1)
            _, b = await connect_agent(fleet, factory, 2)
            await fleet.shutdown()
            assert a.disconnected and b.disconnected

        asyncio.run(scenario())
