"""
Command Dispatcher
Validates and executes one command against one agent.
"""

import itertools
import logging
import math
import random
import asyncio
from typing import Optional, Dict, Any, Literal, TYPE_CHECKING
from dataclasses import dataclass, field
from pydantic import BaseModel, Field, ValidationError, model_validator

from fleet.config import (
    CommandKind,
    Activity,
    HistoryKind,
    MOVE_GOAL_RADIUS,
    FOLLOW_GOAL_RADIUS,
    DIRECTION_STEP,
    MOVEMENT_CONTROLS,
)
from fleet.errors import (
    FleetError,
    AgentUnavailable,
    TargetNotFound,
    UnknownCommand,
    InvalidParams,
    GoalSuperseded,
    SessionError,
)
from fleet.session.interface import AgentSession, Vec3

if TYPE_CHECKING:
    from fleet.manager import FleetManager
    from fleet.models.agent_record import AgentRecord

logger = logging.getLogger(__name__)


# =============================================================================
# Command Parameters
# =============================================================================

class ChatParams(BaseModel):
    message: str = Field(..., min_length=1, max_length=256)


class MoveParams(BaseModel):
    """Absolute target, or a 5-unit step relative to the current position."""
    x: Optional[float] = None
    y: Optional[float] = None
    z: Optional[float] = None
    direction: Optional[Literal["forward", "back", "left", "right"]] = None

    @model_validator(mode="after")
    def _check_target(self):
        has_coords = None not in (self.x, self.y, self.z)
        if not has_coords and self.direction is None:
            raise ValueError("move needs x, y and z, or a direction")
        return self

    def target(self, current: Optional[Vec3]) -> Vec3:
        if self.direction is None:
            return Vec3(self.x, self.y, self.z)
        if current is None:
            raise AgentUnavailable("Agent has no position yet")
        dx, dz = {
            "forward": (DIRECTION_STEP, 0),
            "back": (-DIRECTION_STEP, 0),
            "left": (0, -DIRECTION_STEP),
            "right": (0, DIRECTION_STEP),
        }[self.direction]
        return Vec3(current.x + dx, current.y, current.z + dz)


class FollowParams(BaseModel):
    player: str = Field(..., min_length=1)


class LookParams(BaseModel):
    yaw: Optional[float] = None
    pitch: Optional[float] = None


class AttackParams(BaseModel):
    target: str = Field(..., min_length=1)


class NoParams(BaseModel):
    pass


PARAM_MODELS = {
    CommandKind.CHAT: ChatParams,
    CommandKind.MOVE: MoveParams,
    CommandKind.FOLLOW: FollowParams,
    CommandKind.STOP: NoParams,
    CommandKind.JUMP: NoParams,
    CommandKind.LOOK: LookParams,
    CommandKind.INVENTORY: NoParams,
    CommandKind.ATTACK: AttackParams,
}


@dataclass
class CommandResult:
    """Structured outcome of a command"""
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str, **data) -> "CommandResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def failure(cls, error: FleetError) -> "CommandResult":
        return cls(success=False, error=error.message, error_kind=error.kind)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success}
        if self.success:
            result["message"] = self.message
        else:
            result["error"] = self.error
            result["error_kind"] = self.error_kind
        if self.data:
            result["data"] = self.data
        return result


class CommandDispatcher:
    """
    Executes commands against agent sessions.

    Each agent has at most one owned motion goal. A new move, follow or stop
    takes ownership before touching the session, so a move still in flight
    can tell it was superseded and never reports success.
    """

    def __init__(self, fleet: "FleetManager"):
        self._fleet = fleet
        self._goal_owner: Dict[int, int] = {}
        self._goal_seq = itertools.count(1)
        # agent id -> token of the command that last set its activity
        self._activity_owner: Dict[int, int] = {}
        self._activity_seq = itertools.count(1)

    # ------------------------------------------------------------------
    # Goal ownership
    # ------------------------------------------------------------------

    def _claim_goal(self, agent_id: int) -> int:
        token = next(self._goal_seq)
        self._goal_owner[agent_id] = token
        return token

    def _owns_goal(self, agent_id: int, token: int) -> bool:
        return self._goal_owner.get(agent_id) == token

    def forget(self, agent_id: int) -> None:
        self._goal_owner.pop(agent_id, None)
        self._activity_owner.pop(agent_id, None)

    def _set_activity(self, record: "AgentRecord", activity: str) -> int:
        """Set the activity and return a token that is current until the next change."""
        token = next(self._activity_seq)
        self._activity_owner[record.id] = token
        record.activity = activity
        return token

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def execute(
        self,
        agent_id: int,
        command: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> CommandResult:
        """
        Run `command` on an agent. Never raises for fleet or session failures.

        Unknown commands, invalid parameters and unavailable agents fail
        without side effects. Anything past that point counts as executed
        and is recorded in history.
        """
        try:
            kind = CommandKind(command)
        except ValueError:
            return CommandResult.failure(UnknownCommand(f"Unknown command: {command}"))

        try:
            parsed = PARAM_MODELS[kind].model_validate(params or {})
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) or err["msg"] for err in e.errors())
            return CommandResult.failure(InvalidParams(f"Invalid {kind.value} parameters: {fields}"))

        fleet = self._fleet
        try:
            record, session = fleet.resolve(agent_id)
        except AgentUnavailable as e:
            return CommandResult.failure(e)

        record.last_command = kind.value
        fleet.stats.commands_executed += 1
        fleet.record_history(HistoryKind.COMMAND, f"{record.name}: {self._describe(kind, parsed)}")

        handler = getattr(self, f"_do_{kind.value}")
        try:
            result = await handler(record, session, parsed)
        except (AgentUnavailable, TargetNotFound, GoalSuperseded) as e:
            result = CommandResult.failure(e)
        except Exception as e:
            if not fleet.is_current(record, session):
                result = CommandResult.failure(
                    AgentUnavailable(f"{record.name} disconnected during {kind.value}")
                )
            else:
                logger.error(f"{kind.value} failed for {record.name}: {e}")
                fleet.stats.errors += 1
                fleet.record_history(HistoryKind.ERROR, f"{record.name}: {kind.value} failed: {e}")
                result = CommandResult.failure(SessionError(str(e)))

        fleet.notify_agent(record)
        return result

    def _describe(self, kind: CommandKind, params: BaseModel) -> str:
        args = {k: v for k, v in params.model_dump().items() if v is not None}
        if not args:
            return kind.value
        return f"{kind.value} " + " ".join(f"{k}={v}" for k, v in args.items())

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _do_chat(self, record: "AgentRecord", session: AgentSession, params: ChatParams) -> CommandResult:
        await session.chat(params.message)
        self._fleet.stats.messages_sent += 1
        return CommandResult.ok(f"{record.name} said: {params.message}")

    async def _do_move(self, record: "AgentRecord", session: AgentSession, params: MoveParams) -> CommandResult:
        target = params.target(session.position)
        token = self._claim_goal(record.id)
        await session.cancel_goal()
        self._set_activity(record, Activity.MOVING.value)
        self._fleet.notify_agent(record)

        try:
            await session.set_motion_goal(target.x, target.y, target.z, MOVE_GOAL_RADIUS)
        except Exception:
            # Removal or disconnect also cancels the goal; that is not a newer move
            if not self._fleet.is_current(record, session):
                raise AgentUnavailable(f"{record.name} disconnected during move")
            if not self._owns_goal(record.id, token):
                raise GoalSuperseded(f"{record.name}: move replaced by a newer goal")
            self._goal_owner.pop(record.id, None)
            self._set_activity(record, Activity.IDLE.value)
            raise

        if not self._fleet.is_current(record, session):
            raise AgentUnavailable(f"{record.name} disconnected during move")
        if not self._owns_goal(record.id, token):
            raise GoalSuperseded(f"{record.name}: move replaced by a newer goal")

        self._goal_owner.pop(record.id, None)
        self._set_activity(record, Activity.IDLE.value)
        self._fleet.stats.movements += 1
        return CommandResult.ok(
            f"{record.name} reached ({target.x:g}, {target.y:g}, {target.z:g})",
            position=target.to_dict(),
        )

    async def _do_follow(self, record: "AgentRecord", session: AgentSession, params: FollowParams) -> CommandResult:
        entity = session.find_entity_by_name(params.player)
        if entity is None:
            raise TargetNotFound(f"Player {params.player} is not visible to {record.name}")
        self._claim_goal(record.id)
        await session.cancel_goal()
        await session.set_follow_goal(entity, FOLLOW_GOAL_RADIUS)
        self._set_activity(record, f"following {params.player}")
        return CommandResult.ok(f"{record.name} is following {params.player}")

    async def _do_stop(self, record: "AgentRecord", session: AgentSession, params: NoParams) -> CommandResult:
        self._goal_owner.pop(record.id, None)
        await session.cancel_goal()
        for control in MOVEMENT_CONTROLS:
            await session.set_control_state(control, False)
        self._set_activity(record, Activity.IDLE.value)
        return CommandResult.ok(f"{record.name} stopped")

    async def _do_jump(self, record: "AgentRecord", session: AgentSession, params: NoParams) -> CommandResult:
        await session.set_control_state("jump", True)
        token = self._set_activity(record, Activity.JUMPING.value)
        self._fleet.spawn(self._release_jump(record, session), name=f"jump-{record.id}")
        self._revert_later(record, token, self._fleet.timings.jump_window)
        return CommandResult.ok(f"{record.name} jumped")

    async def _do_look(self, record: "AgentRecord", session: AgentSession, params: LookParams) -> CommandResult:
        yaw = params.yaw if params.yaw is not None else random.uniform(0, 2 * math.pi)
        pitch = params.pitch if params.pitch is not None else random.uniform(-math.pi / 2, math.pi / 2)
        await session.look(yaw, pitch)
        token = self._set_activity(record, Activity.LOOKING.value)
        self._revert_later(record, token, self._fleet.timings.look_window)
        return CommandResult.ok(f"{record.name} looked around", yaw=yaw, pitch=pitch)

    async def _do_inventory(self, record: "AgentRecord", session: AgentSession, params: NoParams) -> CommandResult:
        items = await session.query_inventory()
        return CommandResult.ok(
            f"{record.name} holds {len(items)} item stack(s)",
            items=[item.to_dict() for item in items],
        )

    async def _do_attack(self, record: "AgentRecord", session: AgentSession, params: AttackParams) -> CommandResult:
        entity = session.find_entity_by_name(params.target)
        if entity is None:
            raise TargetNotFound(f"{params.target} is not visible to {record.name}")
        await session.attack(entity)
        token = self._set_activity(record, f"attacking {params.target}")
        self._revert_later(record, token, self._fleet.timings.attack_window)
        return CommandResult.ok(f"{record.name} attacked {params.target}")

    # ------------------------------------------------------------------
    # Timed follow-ups
    # ------------------------------------------------------------------

    async def _release_jump(self, record: "AgentRecord", session: AgentSession) -> None:
        await asyncio.sleep(self._fleet.timings.jump_release)
        if not self._fleet.is_current(record, session):
            return
        try:
            await session.set_control_state("jump", False)
        except Exception as e:
            logger.warning(f"Failed to release jump for {record.name}: {e}")

    def _revert_later(self, record: "AgentRecord", token: int, delay: float) -> None:
        """Reset the activity to idle after `delay` unless a later command set it."""
        async def revert():
            await asyncio.sleep(delay)
            if self._fleet.is_current(record) and self._activity_owner.get(record.id) == token:
                self._set_activity(record, Activity.IDLE.value)
                self._fleet.notify_agent(record)

        self._fleet.spawn(revert(), name=f"revert-{record.id}")
