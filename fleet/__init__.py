"""
Botfleet - Fleet Manager for remote game agents

This package supervises many independent agent sessions against a single
game server:
- Registry of agents keyed by integer id
- Lifecycle state machine driven by session events
- Command dispatch (chat, move, follow, jump, look, inventory, attack, stop)
- Single-shot reconnection after kicks and migration on config changes
- Bounded history and aggregate statistics
"""

from fleet.config import AgentState, CommandKind, HistoryKind, FleetTimings, ServerConfig
from fleet.manager import FleetManager
from fleet.dispatcher import CommandResult
from fleet.models.agent_record import AgentRecord

__version__ = "0.1.0"
__all__ = [
    "AgentState",
    "CommandKind",
    "HistoryKind",
    "FleetTimings",
    "ServerConfig",
    "FleetManager",
    "CommandResult",
    "AgentRecord",
]
