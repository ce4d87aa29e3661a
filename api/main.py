"""
Botfleet API - FastAPI Application
Control server for a fleet of game agents.
"""

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from fleet import __version__
from api.config import get_settings
from api.routers import agents, server
from api.services.fleet_service import fleet_service
from api.websocket_manager import ws_manager

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire the live feed on startup; drain the fleet on shutdown."""
    settings = get_settings()
    fleet = fleet_service.fleet
    logger.info(f"Botfleet {__version__} starting, target {fleet.config.address}")
    logger.info(f"Debug mode: {settings.debug_mode}")
    fleet.add_listener(ws_manager.on_fleet_event)

    yield

    logger.info("Botfleet stopping: disconnecting agents")
    fleet.remove_listener(ws_manager.on_fleet_event)
    await fleet_service.shutdown()
    await ws_manager.disconnect_all()


app = FastAPI(
    title="Botfleet API",
    description="Create, command and monitor game agents on one server",
    version=__version__,
    lifespan=lifespan
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(agents.router, prefix="/api/agents", tags=["agents"])
app.include_router(server.router, prefix="/api/server", tags=["server"])


@app.get("/")
async def root():
    return {
        "status": "ok",
        "service": "Botfleet API",
        "version": __version__
    }


@app.get("/health")
async def health_check():
    """Fleet size and current target server."""
    return fleet_service.health()


@app.websocket("/ws/fleet")
async def fleet_feed(websocket: WebSocket):
    """
    Live fleet feed.

    On connect the client gets a snapshot of agents and recent history,
    then `history`, `agent_update` and `agent_removed` events as they happen.
    """
    await ws_manager.connect(websocket, snapshot=fleet_service.snapshot())
    try:
        while True:
            request = await websocket.receive_json()
            await ws_manager.handle_message(websocket, request)
    except WebSocketDisconnect:
        await ws_manager.disconnect(websocket)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug_mode
    )
