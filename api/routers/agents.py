"""
Agent API Router
Endpoints for creating, removing and commanding fleet agents.
"""

from fastapi import APIRouter, HTTPException
import logging

from api.models.requests import CreateAgentRequest, CommandRequest, ChatRequest, MoveRequest
from api.models.responses import AgentResponse, AgentListResponse, CommandResponse, StopAllResponse
from api.services.fleet_service import fleet_service
from fleet.errors import FleetError, NotFound, DuplicateId, CapacityExceeded, ConfigInvalid

router = APIRouter()
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotFound: 404,
    DuplicateId: 409,
    CapacityExceeded: 409,
    ConfigInvalid: 422,
}


def to_http_error(error: FleetError) -> HTTPException:
    """Map a fleet error onto an HTTP error with a structured detail."""
    status = next((code for cls, code in ERROR_STATUS.items() if isinstance(error, cls)), 400)
    return HTTPException(status_code=status, detail={"error": error.message, "error_kind": error.kind})


@router.get("", response_model=AgentListResponse)
async def list_agents():
    """List every registered agent."""
    agents = fleet_service.list_agents()
    return AgentListResponse(agents=agents, total=len(agents))


@router.post("", response_model=AgentResponse)
async def create_agent(request: CreateAgentRequest):
    """
    Create an agent and open its session.

    If no id is given the next free id is assigned; if no name is given it
    is derived from the configured name prefix.
    """
    try:
        return await fleet_service.create_agent(request.id, request.name)
    except FleetError as e:
        logger.warning(f"Failed to create agent: {e.message}")
        raise to_http_error(e)


@router.post("/stop", response_model=StopAllResponse)
async def stop_all_agents():
    """Stop every agent's motion."""
    stopped = await fleet_service.stop_all()
    return StopAllResponse(stopped=stopped, message=f"{stopped} agent(s) stopped")


@router.get("/{agent_id}", response_model=AgentResponse)
async def get_agent(agent_id: int):
    """Get one agent record."""
    try:
        return fleet_service.get_agent(agent_id)
    except FleetError as e:
        raise to_http_error(e)


@router.delete("/{agent_id}", response_model=AgentResponse)
async def remove_agent(agent_id: int):
    """Disconnect an agent and remove it from the fleet."""
    try:
        return await fleet_service.remove_agent(agent_id)
    except FleetError as e:
        raise to_http_error(e)


@router.post("/{agent_id}/commands", response_model=CommandResponse)
async def command_agent(agent_id: int, request: CommandRequest):
    """
    Run a command on an agent.

    Commands: chat, move, follow, stop, jump, look, inventory, attack.
    Failures come back as `success: false` with an `error_kind`.
    """
    return await fleet_service.execute_command(agent_id, request.command, request.params)


@router.post("/{agent_id}/chat", response_model=CommandResponse)
async def chat(agent_id: int, request: ChatRequest):
    """Send a chat line as the agent."""
    return await fleet_service.execute_command(agent_id, "chat", {"message": request.message})


@router.post("/{agent_id}/move", response_model=CommandResponse)
async def move(agent_id: int, request: MoveRequest):
    """Walk to a point, or 5 blocks in a direction."""
    params = request.model_dump(exclude_none=True, mode="json")
    return await fleet_service.execute_command(agent_id, "move", params)


@router.post("/{agent_id}/stop", response_model=CommandResponse)
async def stop(agent_id: int):
    """Cancel the agent's current goal."""
    return await fleet_service.execute_command(agent_id, "stop")
