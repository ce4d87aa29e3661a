"""
Fleet Errors
Failure taxonomy shared by the registry, dispatcher and config manager.
"""


class FleetError(Exception):
    """Base class. `kind` is the stable name used in structured results."""
    kind = "FleetError"

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind


class AgentUnavailable(FleetError):
    """No session for the agent, or the session was torn down."""
    kind = "AgentUnavailable"


class NotFound(FleetError):
    kind = "NotFound"


class DuplicateId(FleetError):
    kind = "DuplicateId"


class CapacityExceeded(FleetError):
    kind = "CapacityExceeded"


class TargetNotFound(FleetError):
    """Follow/attack target is not visible to the agent."""
    kind = "TargetNotFound"


class UnknownCommand(FleetError):
    kind = "UnknownCommand"


class InvalidParams(FleetError):
    kind = "InvalidParams"


class ConfigInvalid(FleetError):
    kind = "ConfigInvalid"


class SessionError(FleetError):
    """Opaque failure surfaced by the underlying session capability."""
    kind = "SessionError"


class GoalSuperseded(FleetError):
    """A newer motion goal replaced this one before it completed."""
    kind = "GoalSuperseded"
