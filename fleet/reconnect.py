"""
Reconnection Policy
Single-shot, delayed re-registration of kicked agents.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

from fleet.config import HistoryKind
from fleet.errors import FleetError

if TYPE_CHECKING:
    from fleet.manager import FleetManager
    from fleet.models.agent_record import AgentRecord

logger = logging.getLogger(__name__)


class ReconnectionPolicy:
    """
    Re-creates a kicked agent once, after a fixed delay.

    There is no retry counter and no backoff growth: if the new session is
    kicked again it gets exactly one more attempt, and a failed attempt is
    not retried.
    """

    def __init__(self, fleet: "FleetManager", delay: float):
        self._fleet = fleet
        self.delay = delay

    def on_kicked(self, record: "AgentRecord") -> bool:
        """Schedule a reconnection if the current config allows it."""
        if not self._fleet.config.auto_reconnect:
            return False
        logger.info(f"Reconnecting {record.name} in {self.delay:g}s")
        self._fleet.spawn(self._reconnect(record), name=f"reconnect-{record.id}")
        return True

    async def _reconnect(self, record: "AgentRecord") -> None:
        await asyncio.sleep(self.delay)
        if not self._fleet.is_current(record):
            logger.info(f"Skipping reconnection of {record.name}: agent removed or replaced")
            return
        try:
            await self._fleet.register(record.id, record.name)
        except FleetError as e:
            logger.warning(f"Reconnection of {record.name} failed: {e.message}")
            self._fleet.record_history(HistoryKind.ERROR, f"{record.name}: reconnection failed: {e.message}")
