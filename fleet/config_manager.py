"""
Config Manager
Owns the target server snapshot and migrates live agents when it changes.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional, Dict, Any, Union, TYPE_CHECKING

from fleet.config import ServerConfig, HistoryKind
from fleet.errors import ConfigInvalid, FleetError

if TYPE_CHECKING:
    from fleet.manager import FleetManager
    from fleet.models.agent_record import AgentRecord

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("host", "port", "version")


class ConfigStore:
    """Persists the server snapshot as a JSON file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Optional[ServerConfig]:
        """Stored snapshot, or None if missing or unreadable."""
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return ServerConfig.parse(data)
        except (OSError, ValueError, ConfigInvalid) as e:
            logger.warning(f"Ignoring stored server config {self.path}: {e}")
            return None

    def save(self, config: ServerConfig) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(config.model_dump(), indent=2), encoding="utf-8")
        tmp.replace(self.path)


class ConfigManager:
    """
    Holds the current ServerConfig.

    Updates replace the snapshot, persist it, then move every connected
    agent to the new target: its session is closed immediately and a new
    one is opened under the same id and name after `migration_delay`.
    Agents that are not connected keep their record and pick up the new
    target the next time they are created.
    """

    def __init__(self, fleet: "FleetManager", initial: ServerConfig, store: Optional[ConfigStore] = None):
        self._fleet = fleet
        self._store = store
        self._config = initial

    @property
    def current(self) -> ServerConfig:
        return self._config

    async def update_config(self, changes: Dict[str, Any]) -> ServerConfig:
        """
        Replace the server snapshot and migrate connected agents.

        Raises:
            ConfigInvalid: host, port or version missing, or a field invalid
        """
        missing = [f for f in REQUIRED_FIELDS if changes.get(f) in (None, "")]
        if missing:
            raise ConfigInvalid(f"Missing server config field(s): {', '.join(missing)}")

        config = self._config.merged(changes)
        self._config = config

        if self._store is not None:
            try:
                self._store.save(config)
            except OSError as e:
                logger.warning(f"Failed to persist server config to {self._store.path}: {e}")

        logger.info(f"Server target is now {config.address} (version {config.version})")
        self._fleet.record_history(HistoryKind.SYSTEM, f"Server target changed to {config.address}")

        migrated = 0
        for record in self._fleet.records():
            if not record.is_connected:
                continue
            await self._fleet.release_session(record.id)
            self._fleet.spawn(self._recreate(record, config), name=f"migrate-{record.id}")
            migrated += 1

        if migrated:
            self._fleet.record_history(HistoryKind.SYSTEM, f"Migrating {migrated} agent(s) to {config.address}")
        return config

    async def _recreate(self, record: "AgentRecord", config: ServerConfig) -> None:
        await asyncio.sleep(self._fleet.timings.migration_delay)
        if not self._fleet.is_current(record):
            logger.info(f"Skipping migration of {record.name}: agent removed or replaced")
            return
        # A newer update may have replaced the snapshot while we waited
        if config is not self._config:
            config = self._config
        try:
            await self._fleet.register(record.id, record.name, config=config)
        except FleetError as e:
            logger.warning(f"Migration of {record.name} failed: {e.message}")
            self._fleet.record_history(HistoryKind.ERROR, f"{record.name}: migration failed: {e.message}")
