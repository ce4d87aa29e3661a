"""
WebSocket Manager
Live fleet feed: history entries and agent changes pushed to clients.
"""

from fastapi import WebSocket
from typing import Dict, Set, Optional, Any, List, Iterable
import asyncio
import logging
from datetime import datetime
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

# Fleet event type -> feed channel
EVENT_CHANNELS = {
    "history": "history",
    "agent_update": "agent",
    "agent_removed": "agent",
}

FEED_CHANNELS = frozenset(EVENT_CHANNELS.values())


@dataclass
class FeedClient:
    """One connected feed client and its filters."""
    websocket: WebSocket
    channels: Set[str] = field(default_factory=lambda: set(FEED_CHANNELS))
    # Empty means every agent
    agent_ids: Set[int] = field(default_factory=set)
    connected_at: datetime = field(default_factory=datetime.utcnow)

    def wants(self, channel: Optional[str], agent_id: Optional[int]) -> bool:
        if channel and channel not in self.channels:
            return False
        if agent_id is not None and self.agent_ids and agent_id not in self.agent_ids:
            return False
        return True

    def describe(self) -> Dict[str, Any]:
        return {
            "channels": sorted(self.channels),
            "agents": sorted(self.agent_ids),
        }


class WebSocketManager:
    """
    Fans fleet listener events out to feed clients.

    Clients start subscribed to every channel and every agent. They may
    narrow the channels (`subscribe` / `unsubscribe`) or the agents
    (`watch` / `unwatch`). Clients whose socket fails are dropped after the
    broadcast that found them dead.
    """

    def __init__(self):
        self._clients: Dict[WebSocket, FeedClient] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, snapshot: Optional[Dict[str, Any]] = None) -> FeedClient:
        """Accept a client and send it the current fleet snapshot."""
        await websocket.accept()
        client = FeedClient(websocket=websocket)
        async with self._lock:
            self._clients[websocket] = client
        logger.info(f"Feed client connected ({len(self._clients)} open)")

        greeting = {"type": "connected", **client.describe()}
        if snapshot is not None:
            greeting["snapshot"] = snapshot
        await websocket.send_json(greeting)
        return client

    async def disconnect(self, websocket: WebSocket):
        async with self._lock:
            if self._clients.pop(websocket, None) is not None:
                logger.info(f"Feed client left ({len(self._clients)} open)")

    async def publish(self, event_type: str, data: Dict[str, Any]):
        """Send one fleet event to every client whose filters match."""
        channel = EVENT_CHANNELS.get(event_type)
        agent_id = data.get("id") if channel == "agent" else None
        message = {
            "type": event_type,
            "data": data,
            "sent_at": datetime.utcnow().isoformat(),
        }
        targets = [c for c in list(self._clients.values()) if c.wants(channel, agent_id)]
        if not targets:
            return

        results = await asyncio.gather(
            *(c.websocket.send_json(message) for c in targets),
            return_exceptions=True,
        )
        await self._drop_failed(
            c.websocket for c, result in zip(targets, results) if isinstance(result, Exception)
        )

    async def _drop_failed(self, websockets: Iterable[WebSocket]):
        for websocket in websockets:
            logger.warning("Dropping feed client after failed send")
            await self.disconnect(websocket)

    async def on_fleet_event(self, event_type: str, payload: Dict[str, Any]):
        """Fleet listener entry point."""
        if self._clients:
            await self.publish(event_type, payload)

    # ==========================================================================
    # Client requests
    # ==========================================================================

    async def handle_message(self, websocket: WebSocket, data: Dict[str, Any]):
        """
        Apply a client request.

        - subscribe / unsubscribe: {"channels": ["history", "agent"]}
        - watch / unwatch: {"agents": [1, 2]}
        - ping: answered with pong
        """
        msg_type = data.get("type")
        client = self._clients.get(websocket)
        if client is None:
            return

        if msg_type in ("subscribe", "unsubscribe"):
            channels: List[str] = [c for c in data.get("channels", []) if c in FEED_CHANNELS]
            if msg_type == "subscribe":
                client.channels.update(channels)
            else:
                client.channels.difference_update(channels)
            reply = {"type": f"{msg_type}d", **client.describe()}

        elif msg_type in ("watch", "unwatch"):
            agent_ids = {a for a in data.get("agents", []) if isinstance(a, int)}
            if msg_type == "watch":
                client.agent_ids.update(agent_ids)
            else:
                client.agent_ids.difference_update(agent_ids)
            reply = {"type": f"{msg_type}ed", **client.describe()}

        elif msg_type == "ping":
            reply = {"type": "pong"}

        else:
            logger.warning(f"Unknown feed message type: {msg_type}")
            reply = {"type": "error", "error": f"unknown message type {msg_type!r}"}

        await websocket.send_json(reply)

    def get_connection_count(self) -> int:
        return len(self._clients)

    async def disconnect_all(self):
        """Close every feed client (shutdown)."""
        async with self._lock:
            clients = list(self._clients)
            self._clients.clear()
        for websocket in clients:
            try:
                await websocket.close()
            except RuntimeError as e:
                logger.debug(f"Feed client already closed: {e}")
        logger.info("Fleet feed closed")


# Global instance
ws_manager = WebSocketManager()
