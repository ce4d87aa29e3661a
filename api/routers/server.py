"""
Server API Router
Target server config, history and statistics.
"""

from fastapi import APIRouter, HTTPException, Query
from typing import Optional
import logging

from api.models.requests import ServerConfigRequest
from api.models.responses import ServerConfigResponse, HistoryResponse, StatsResponse
from api.routers.agents import to_http_error
from api.services.fleet_service import fleet_service
from fleet.config import HistoryKind, HISTORY_CAPACITY
from fleet.errors import FleetError

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/config", response_model=ServerConfigResponse)
async def get_config():
    """Current target server."""
    return fleet_service.get_config()


@router.post("/config", response_model=ServerConfigResponse)
async def update_config(request: ServerConfigRequest):
    """
    Point the fleet at a new server.

    Connected agents are disconnected and re-created on the new target
    after a short delay.
    """
    try:
        return await fleet_service.update_config(request.model_dump(exclude_none=True))
    except FleetError as e:
        logger.warning(f"Rejected server config: {e.message}")
        raise to_http_error(e)


@router.get("/history", response_model=HistoryResponse)
async def get_history(
    limit: int = Query(HISTORY_CAPACITY, ge=1, le=HISTORY_CAPACITY, description="Maximum entries"),
    kind: Optional[HistoryKind] = Query(None, description="Filter by entry kind")
):
    """Recent fleet history, newest first."""
    entries = fleet_service.get_history(limit=limit, kind=kind)
    return HistoryResponse(entries=entries, total=len(entries))


@router.get("/stats", response_model=StatsResponse)
async def get_stats():
    """Aggregate fleet counters."""
    return fleet_service.get_stats()
