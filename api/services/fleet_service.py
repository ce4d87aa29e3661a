"""
Fleet Service
Bridges the HTTP/WebSocket layer and the fleet manager.
"""

import importlib
import logging
from typing import Optional, Dict, Any, List

from api.config import Settings, get_settings
from api.models.responses import (
    AgentResponse,
    PositionData,
    CommandResponse,
    ServerConfigResponse,
    HistoryEntryResponse,
    StatsResponse,
)
from fleet.config import HistoryKind
from fleet.config_manager import ConfigStore
from fleet.errors import NotFound
from fleet.manager import FleetManager
from fleet.models.agent_record import AgentRecord
from fleet.session.interface import SessionFactory

logger = logging.getLogger(__name__)


def load_session_factory(path: str) -> SessionFactory:
    """Resolve a "module:callable" import path to a session factory."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ValueError(f"session_backend must look like 'module:callable', got {path!r}")
    module = importlib.import_module(module_name)
    return getattr(module, attr)


def build_fleet(settings: Settings) -> FleetManager:
    """Create a fleet manager from settings, preferring a persisted server config."""
    store = ConfigStore(settings.config_path) if settings.config_path else None
    config = (store.load() if store else None) or settings.server_config()
    factory = load_session_factory(settings.session_backend)
    logger.info(f"Fleet target {config.address} via {settings.session_backend}")
    return FleetManager(session_factory=factory, config=config, store=store)


class FleetService:
    """
    Service for fleet operations.

    Integrates with:
    - FleetManager for registry, commands and config
    - WebSocket manager (through fleet listeners) for live updates
    """

    def __init__(self, fleet: Optional[FleetManager] = None):
        self._fleet = fleet

    @property
    def fleet(self) -> FleetManager:
        if self._fleet is None:
            self._fleet = build_fleet(get_settings())
        return self._fleet

    def set_fleet(self, fleet: FleetManager):
        """Replace the fleet manager (used by tests and custom launchers)."""
        self._fleet = fleet

    # ==========================================================================
    # Agents
    # ==========================================================================

    def _to_response(self, record: AgentRecord) -> AgentResponse:
        """Convert an agent record to its response model."""
        return AgentResponse(
            id=record.id,
            name=record.name,
            state=record.state.value,
            position=PositionData(**record.position.to_dict()),
            health=record.health,
            food=record.food,
            activity=record.activity,
            connected_at=record.connected_at,
            server=record.server,
            last_command=record.last_command,
        )

    def list_agents(self) -> List[AgentResponse]:
        return [self._to_response(r) for r in self.fleet.records()]

    def get_agent(self, agent_id: int) -> AgentResponse:
        record = self.fleet.lookup(agent_id)
        if record is None:
            raise NotFound(f"Agent {agent_id} not found")
        return self._to_response(record)

    async def create_agent(self, agent_id: Optional[int] = None, name: Optional[str] = None) -> AgentResponse:
        record = await self.fleet.register(agent_id, name)
        return self._to_response(record)

    async def remove_agent(self, agent_id: int) -> AgentResponse:
        record = await self.fleet.unregister(agent_id)
        return self._to_response(record)

    async def execute_command(
        self,
        agent_id: int,
        command: str,
        params: Optional[Dict[str, Any]] = None
    ) -> CommandResponse:
        result = await self.fleet.execute(agent_id, command, params)
        return CommandResponse(
            success=result.success,
            message=result.message,
            error=result.error,
            error_kind=result.error_kind,
            data=result.data,
        )

    async def stop_all(self) -> int:
        return await self.fleet.stop_all()

    # ==========================================================================
    # Server
    # ==========================================================================

    def get_config(self) -> ServerConfigResponse:
        return ServerConfigResponse(**self.fleet.config.model_dump())

    async def update_config(self, changes: Dict[str, Any]) -> ServerConfigResponse:
        config = await self.fleet.update_config(changes)
        return ServerConfigResponse(**config.model_dump())

    def get_history(self, limit: Optional[int] = None, kind: Optional[HistoryKind] = None) -> List[HistoryEntryResponse]:
        return [
            HistoryEntryResponse(**entry.to_dict())
            for entry in self.fleet.history.recent(limit=limit, kind=kind)
        ]

    def get_stats(self) -> StatsResponse:
        return StatsResponse(**self.fleet.stats.to_dict())

    def snapshot(self, history_limit: int = 10) -> Dict[str, Any]:
        """Current agents and recent history, sent to new feed clients."""
        return {
            "agents": [r.to_dict() for r in self.fleet.records()],
            "history": [e.to_dict() for e in self.fleet.history.recent(limit=history_limit)],
            "server": self.fleet.config.model_dump(),
        }

    def health(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "agents": len(self.fleet),
            "server": self.fleet.config.model_dump(),
        }

    async def shutdown(self):
        if self._fleet is not None:
            await self._fleet.shutdown()


# Global instance
fleet_service = FleetService()
