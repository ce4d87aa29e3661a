from fleet.models.agent_record import AgentRecord, Position

__all__ = ["AgentRecord", "Position"]
