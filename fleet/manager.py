"""
Fleet Manager
Agent registry, session event pump and shared fleet state.

Everything here runs on a single event loop. Session events, commands and
scheduled work interleave only at await points, so the registry, stats and
history need no locking; every handler that resumes after an await checks
that the record and session it started with are still the current ones.
"""

import asyncio
import inspect
import logging
from typing import Optional, List, Dict, Any, Callable, Set, Tuple
from datetime import datetime

from fleet.config import (
    AgentState,
    Activity,
    HistoryKind,
    FleetTimings,
    ServerConfig,
)
from fleet.errors import AgentUnavailable, CapacityExceeded, DuplicateId, NotFound
from fleet.history import EventHistory, HistoryEntry
from fleet.lifecycle import next_state
from fleet.models.agent_record import AgentRecord, Position
from fleet.session.interface import AgentSession, SessionEvent, SessionEventKind, SessionFactory
from fleet.stats import FleetStats
from fleet.config_manager import ConfigManager, ConfigStore
from fleet.dispatcher import CommandDispatcher, CommandResult
from fleet.reconnect import ReconnectionPolicy

logger = logging.getLogger(__name__)

FleetListener = Callable[[str, Dict[str, Any]], Any]

# States in which an id is considered live and may not be re-registered
LIVE_STATES = (AgentState.CONNECTING, AgentState.CONNECTED)


class FleetManager:
    """
    Supervises a fleet of agent sessions against one game server.

    Features:
    - Registry keyed by caller-assigned integer ids
    - Per-session event pump feeding the lifecycle state machine
    - Periodic position/health/food snapshot for connected agents
    - Command dispatch, reconnection and config migration
    - Bounded history, counters and change listeners
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        config: Optional[ServerConfig] = None,
        timings: Optional[FleetTimings] = None,
        store: Optional[ConfigStore] = None,
    ):
        self._factory = session_factory
        self.timings = timings or FleetTimings()

        self._records: Dict[int, AgentRecord] = {}
        self._sessions: Dict[int, AgentSession] = {}
        self._pumps: Dict[int, asyncio.Task] = {}
        self._refreshers: Dict[int, asyncio.Task] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._listeners: List[FleetListener] = []
        self._next_id = 1

        self.history = EventHistory()
        self.stats = FleetStats(active_counter=self._count_connected)
        self.config_manager = ConfigManager(self, config or ServerConfig(), store)
        self.dispatcher = CommandDispatcher(self)
        self.reconnection = ReconnectionPolicy(self, self.timings.reconnect_delay)

    # ==========================================================================
    # Registry
    # ==========================================================================

    @property
    def config(self) -> ServerConfig:
        """Current target server snapshot"""
        return self.config_manager.current

    def next_agent_id(self) -> int:
        """Next unused id. Ids are never handed out twice."""
        while self._next_id in self._records:
            self._next_id += 1
        return self._next_id

    async def register(
        self,
        agent_id: Optional[int] = None,
        name: Optional[str] = None,
        config: Optional[ServerConfig] = None,
    ) -> AgentRecord:
        """
        Create an agent record in CONNECTING and open its session.

        An id whose record is still connecting or connected is rejected; an
        id whose record is kicked, dead, errored or disconnected is
        superseded by the new record.

        Raises:
            DuplicateId: id is registered and live
            CapacityExceeded: fleet already holds max_agents records
        """
        config = config or self.config
        if agent_id is None:
            agent_id = self.next_agent_id()

        existing = self._records.get(agent_id)
        if existing and existing.state in LIVE_STATES:
            raise DuplicateId(f"Agent {agent_id} is already {existing.state.value}")
        if existing is None and len(self._records) >= config.max_agents:
            raise CapacityExceeded(f"Fleet is full ({config.max_agents} agents)")

        if existing:
            await self._detach(agent_id)
            # The id may have been claimed again while the old session closed
            current = self._records.get(agent_id)
            if current is not None and current is not existing:
                raise DuplicateId(f"Agent {agent_id} was re-registered concurrently")

        name = name or (existing.name if existing else f"{config.agent_name_prefix}{agent_id}")
        record = AgentRecord(id=agent_id, name=name, server=config.address)
        self._records[agent_id] = record
        self._next_id = max(self._next_id, agent_id + 1)
        self.stats.total_created += 1

        logger.info(f"Creating agent {name} (#{agent_id}) -> {config.address}")
        self.record_history(HistoryKind.SYSTEM, f"{name} connecting to {config.address}")
        self.notify_agent(record)

        try:
            session = await self._factory(config, name)
        except Exception as e:
            logger.error(f"Failed to create session for {name}: {e}")
            if self._records.get(agent_id) is record:
                record.state = AgentState.ERROR
                self.stats.errors += 1
                self.record_history(HistoryKind.ERROR, f"{name}: connection failed: {e}")
                self.notify_agent(record)
            return record

        if self._records.get(agent_id) is not record:
            # Removed or superseded while connecting
            logger.info(f"Discarding session for {name}: record no longer current")
            await self._disconnect_quietly(name, session)
            return record

        self._sessions[agent_id] = session
        self._pumps[agent_id] = self.spawn(self._pump(agent_id, session), name=f"pump-{agent_id}")
        return record

    async def unregister(self, agent_id: int) -> AgentRecord:
        """
        Disconnect an agent's session and remove its record.

        Raises:
            NotFound: no record with this id
        """
        record = self._records.get(agent_id)
        if record is None:
            raise NotFound(f"Agent {agent_id} not found")

        del self._records[agent_id]
        self.dispatcher.forget(agent_id)
        await self._detach(agent_id)

        logger.info(f"Removed agent {record.name} (#{agent_id})")
        self.record_history(HistoryKind.SYSTEM, f"{record.name} removed")
        self._notify("agent_removed", {"id": agent_id, "name": record.name})
        return record

    def lookup(self, agent_id: int) -> Optional[AgentRecord]:
        return self._records.get(agent_id)

    def records(self) -> List[AgentRecord]:
        """All agent records ordered by id"""
        return [self._records[i] for i in sorted(self._records)]

    def __len__(self) -> int:
        return len(self._records)

    def _count_connected(self) -> int:
        return sum(1 for r in self._records.values() if r.is_connected)

    # ==========================================================================
    # Session access
    # ==========================================================================

    def resolve(self, agent_id: int) -> Tuple[AgentRecord, AgentSession]:
        """
        Record and session for a command.

        Raises:
            AgentUnavailable: not registered, no session, or disconnected
        """
        record = self._records.get(agent_id)
        if record is None:
            raise AgentUnavailable(f"Agent {agent_id} not found")
        session = self._sessions.get(agent_id)
        if session is None or record.state == AgentState.DISCONNECTED:
            raise AgentUnavailable(f"Agent {record.name} is not connected")
        return record, session

    def is_current(self, record: AgentRecord, session: Optional[AgentSession] = None) -> bool:
        """Whether the record (and session, if given) are still the registered ones."""
        if self._records.get(record.id) is not record:
            return False
        if session is not None and self._sessions.get(record.id) is not session:
            return False
        return True

    async def release_session(self, agent_id: int) -> None:
        """Tear down an agent's session but keep its record, marked disconnected."""
        record = self._records.get(agent_id)
        await self._detach(agent_id)
        if record is not None and self._records.get(agent_id) is record:
            record.state = AgentState.DISCONNECTED
            record.activity = Activity.IDLE.value
            self.notify_agent(record)

    async def _detach(self, agent_id: int) -> None:
        """Forget and disconnect the session bound to an id (best-effort)."""
        session = self._sessions.pop(agent_id, None)
        self._stop_refresh(agent_id)
        pump = self._pumps.pop(agent_id, None)
        if session is not None:
            record = self._records.get(agent_id)
            await self._disconnect_quietly(record.name if record else str(agent_id), session)
        if pump is not None and pump is not asyncio.current_task():
            pump.cancel()

    async def _disconnect_quietly(self, name: str, session: AgentSession) -> None:
        try:
            await session.disconnect()
        except Exception as e:
            logger.warning(f"Disconnect failed for {name}: {e}")

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def _pump(self, agent_id: int, session: AgentSession) -> None:
        """Feed one session's events to the state machine, in arrival order."""
        async for event in session.events():
            if self._sessions.get(agent_id) is not session:
                logger.debug(f"Dropping {event.kind.value} from stale session of agent {agent_id}")
                return
            try:
                self.handle_event(agent_id, session, event)
            except Exception:
                logger.exception(f"Failed to handle {event.kind.value} for agent {agent_id}")

    def handle_event(self, agent_id: int, session: AgentSession, event: SessionEvent) -> None:
        """Apply one session event to the agent's record."""
        record = self._records.get(agent_id)
        if record is None:
            return

        if event.kind == SessionEventKind.CHAT:
            if event.sender == session.username:
                return
            logger.info(f"[{record.name}] <{event.sender}> {event.text}")
            self.record_history(HistoryKind.CHAT, f"<{event.sender}> {event.text}")
            return

        if event.kind == SessionEventKind.ERROR:
            logger.error(f"{record.name} error: {event.detail}")
            self.stats.errors += 1
            self.record_history(HistoryKind.ERROR, f"{record.name}: {event.detail}")

        previous = record.state
        target = next_state(previous, event.kind)
        if target is None:
            return
        record.state = target

        if previous == AgentState.CONNECTED and target != AgentState.CONNECTED:
            self._stop_refresh(agent_id)

        if event.kind == SessionEventKind.SPAWNED:
            record.connected_at = datetime.utcnow()
            self._copy_snapshot(record, session)
            logger.info(f"{record.name} connected")
            self.record_history(HistoryKind.SYSTEM, f"{record.name} connected")
            self._refreshers[agent_id] = self.spawn(
                self._refresh_loop(agent_id, record, session), name=f"refresh-{agent_id}"
            )
            self.spawn(self._welcome(record, session), name=f"welcome-{agent_id}")

        elif event.kind == SessionEventKind.KICKED:
            logger.warning(f"{record.name} kicked: {event.reason}")
            self.record_history(HistoryKind.SYSTEM, f"{record.name} kicked: {event.reason or 'no reason'}")
            self.reconnection.on_kicked(record)

        elif event.kind == SessionEventKind.DIED:
            logger.info(f"{record.name} died")
            self.record_history(HistoryKind.SYSTEM, f"{record.name} died")

        elif event.kind == SessionEventKind.ENDED:
            self._sessions.pop(agent_id, None)
            self._pumps.pop(agent_id, None)
            self._stop_refresh(agent_id)
            record.activity = Activity.IDLE.value
            logger.info(f"{record.name} disconnected")
            self.record_history(HistoryKind.SYSTEM, f"{record.name} disconnected")

        self.notify_agent(record)

    async def _welcome(self, record: AgentRecord, session: AgentSession) -> None:
        await asyncio.sleep(self.timings.welcome_delay)
        if not self.is_current(record, session) or not record.is_connected:
            return
        try:
            await session.chat(f"Hello! I'm {record.name}, fleet agent #{record.id}.")
        except Exception as e:
            logger.warning(f"Welcome message failed for {record.name}: {e}")

    async def _refresh_loop(self, agent_id: int, record: AgentRecord, session: AgentSession) -> None:
        """Copy live position/health/food into the record while connected."""
        while self.is_current(record, session) and record.is_connected:
            self._copy_snapshot(record, session)
            await asyncio.sleep(self.timings.refresh_interval)

    def _copy_snapshot(self, record: AgentRecord, session: AgentSession) -> None:
        pos = session.position
        if pos is not None:
            record.position = Position(pos.x, pos.y, pos.z)
        record.health = session.health
        record.food = session.food

    def _stop_refresh(self, agent_id: int) -> None:
        task = self._refreshers.pop(agent_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    # ==========================================================================
    # Commands
    # ==========================================================================

    async def execute(self, agent_id: int, command: str, params: Optional[Dict[str, Any]] = None) -> CommandResult:
        return await self.dispatcher.execute(agent_id, command, params)

    async def stop_all(self) -> int:
        """
        Issue `stop` to every spawned agent with a session. Returns how many stopped.

        Agents that have not spawned yet have no goal or controls to release
        and are skipped.
        """
        stopped = 0
        for agent_id in list(self._sessions):
            record = self._records.get(agent_id)
            if record is None or record.connected_at is None:
                continue
            result = await self.dispatcher.execute(agent_id, "stop")
            if result.success:
                stopped += 1
        self.record_history(HistoryKind.SYSTEM, f"Stop-all: {stopped} agent(s) stopped")
        return stopped

    async def update_config(self, changes: Dict[str, Any]) -> ServerConfig:
        return await self.config_manager.update_config(changes)

    # ==========================================================================
    # History, listeners and background work
    # ==========================================================================

    def record_history(self, kind: HistoryKind, message: str) -> HistoryEntry:
        entry = self.history.record(kind, message, fleet_size=len(self._records))
        self._notify("history", entry.to_dict())
        return entry

    def add_listener(self, listener: FleetListener) -> None:
        """Register a callback(event_type, payload); coroutine results are scheduled."""
        self._listeners.append(listener)

    def remove_listener(self, listener: FleetListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify_agent(self, record: AgentRecord) -> None:
        if self.is_current(record):
            self._notify("agent_update", record.to_dict())

    def _notify(self, event_type: str, payload: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event_type, payload)
                if inspect.isawaitable(result):
                    self.spawn(result, name=f"listener-{event_type}")
            except Exception as e:
                logger.warning(f"Fleet listener failed on {event_type}: {e}")

    def spawn(self, coro, name: Optional[str] = None) -> asyncio.Task:
        """Run a coroutine in the background, tracked until it finishes."""
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"Background task {task.get_name()} failed: {exc!r}")

    async def shutdown(self) -> None:
        """Disconnect every session and cancel all background work."""
        logger.info(f"Shutting down fleet ({len(self._sessions)} sessions)")
        for agent_id in list(self._sessions):
            await self._detach(agent_id)
        tasks = [t for t in self._tasks if t is not asyncio.current_task()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.record_history(HistoryKind.SYSTEM, "Fleet shut down")
