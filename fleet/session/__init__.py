"""
Agent Session Module
Boundary to the game-protocol client plus a simulated backend.
"""

from fleet.session.interface import (
    AgentSession,
    SessionEvent,
    SessionEventKind,
    SessionFactory,
    EntityRef,
    InventoryItem,
    Vec3,
)

__all__ = [
    "AgentSession",
    "SessionEvent",
    "SessionEventKind",
    "SessionFactory",
    "EntityRef",
    "InventoryItem",
    "Vec3",
]
