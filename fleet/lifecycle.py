"""
Lifecycle State Machine
Maps session events onto agent record states.
"""

from typing import Optional, Dict, FrozenSet
import logging

from fleet.config import AgentState
from fleet.session.interface import SessionEventKind

logger = logging.getLogger(__name__)

ALL_STATES: FrozenSet[AgentState] = frozenset(AgentState)

# event -> states it may fire from -> resulting state
TRANSITIONS: Dict[SessionEventKind, tuple] = {
    SessionEventKind.SPAWNED: (frozenset({AgentState.CONNECTING}), AgentState.CONNECTED),
    SessionEventKind.KICKED: (frozenset({AgentState.CONNECTED}), AgentState.KICKED),
    SessionEventKind.ERROR: (ALL_STATES, AgentState.ERROR),
    SessionEventKind.DIED: (frozenset({AgentState.CONNECTED}), AgentState.DEAD),
    SessionEventKind.ENDED: (ALL_STATES, AgentState.DISCONNECTED),
}

# States a reconnection or migration may move back to CONNECTING
RECONNECTABLE: FrozenSet[AgentState] = frozenset({
    AgentState.KICKED,
    AgentState.ERROR,
    AgentState.DEAD,
    AgentState.DISCONNECTED,
})


def next_state(state: AgentState, event: SessionEventKind) -> Optional[AgentState]:
    """
    Resulting state for `event` in `state`.

    Returns None when the event causes no transition (chat, or an event
    that is not valid from the current state).
    """
    rule = TRANSITIONS.get(event)
    if rule is None:
        return None
    sources, target = rule
    if state not in sources:
        logger.debug(f"Ignoring {event.value} in state {state.value}")
        return None
    return target


def is_valid_edge(source: AgentState, target: AgentState) -> bool:
    """Whether source -> target is an edge of the lifecycle graph."""
    if target == AgentState.CONNECTING:
        return source in RECONNECTABLE
    return any(
        target == rule_target and source in sources
        for sources, rule_target in TRANSITIONS.values()
    )
