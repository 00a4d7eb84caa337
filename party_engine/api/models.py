from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from party_engine.content.registry import TARGETED_TYPES, DynamicType, Question
from party_engine.errors import ErrorCode
from party_engine.players import Player


DEFAULT_MAX_ROUNDS = 50
DEFAULT_EXTENSION_ROUNDS = 25
SNAPSHOT_VERSION = 1


class GamePhase(StrEnum):
    waiting = "waiting"
    playing = "playing"
    paused = "paused"
    finished = "finished"


class EndReason(StrEnum):
    rounds_completed = "rounds_completed"
    no_more_questions = "no_more_questions"
    manual = "manual"


class ResolvedQuestion(Question):
    """A question with its owning dynamic denormalized onto it."""

    dynamic_id: str
    dynamic_name: str
    dynamic_instruction: str = ""
    dynamic_type: DynamicType
    same_gender: bool = False

    @property
    def requires_targets(self) -> bool:
        return self.dynamic_type in TARGETED_TYPES


class DynamicStatus(BaseModel):
    id: str
    name: str
    total_questions: int
    used_questions: int
    remaining_questions: int
    is_available: bool


class TargetStatus(StrEnum):
    resolved = "resolved"
    not_required = "not_required"
    # Constraints cannot be met with this roster; skip without marking anything.
    skip = "skip"
    # Every valid combination already played; skipped until the roster grows.
    blocked = "blocked"


class TargetResult(BaseModel):
    status: TargetStatus
    question_id: str
    dynamic_id: str
    targets: list[Player] = Field(default_factory=list)
    reason: str | None = None

    @property
    def needs_skip(self) -> bool:
        return self.status in {TargetStatus.skip, TargetStatus.blocked}


class RoundHistoryEntry(BaseModel):
    round: int
    question: ResolvedQuestion | None
    result: Any = None
    timestamp: datetime


class GameSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    max_rounds: int | None = Field(default=None, ge=1, alias="maxRounds")


class GameStats(BaseModel):
    duration_seconds: float
    rounds_played: int
    total_rounds: int
    questions_remaining: int


class GameState(BaseModel):
    current_round: int = 0
    total_rounds: int = DEFAULT_MAX_ROUNDS
    max_rounds: int = DEFAULT_MAX_ROUNDS
    game_phase: GamePhase = GamePhase.waiting
    current_question: ResolvedQuestion | None = None
    current_targets: list[Player] = Field(default_factory=list)
    game_start_time: datetime | None = None
    round_history: list[RoundHistoryEntry] = Field(default_factory=list)
    questions_remaining: int = 0
    dynamics_status: list[DynamicStatus] = Field(default_factory=list)


class EngineErrorInfo(BaseModel):
    code: ErrorCode
    message: str


class EngineResult(BaseModel):
    """Structured outcome of every public engine call.

    Callers check `success` before reading `game_state` / `question`.
    """

    success: bool
    error: EngineErrorInfo | None = None
    game_state: GameState | None = None
    question: ResolvedQuestion | None = None
    targets: list[Player] = Field(default_factory=list)

    game_ended: bool = False
    reason: str | None = None
    can_extend: bool = False
    game_stats: GameStats | None = None
    new_total_rounds: int | None = None

    # Dynamic ids skipped automatically while resolving targets.
    auto_skipped: list[str] = Field(default_factory=list)
    players: list[Player] | None = None


class SchedulerSnapshot(BaseModel):
    used_questions: dict[str, list[str]] = Field(default_factory=dict)
    last_dynamic_id: str | None = None
    available_dynamics: list[str] | None = None


class SingleTargetTracking(BaseModel):
    last_player_id: str | None = None
    used_player_ids: list[str] = Field(default_factory=list)


class TargetingSnapshot(BaseModel):
    single_target: dict[str, SingleTargetTracking] = Field(default_factory=dict)
    paired_target: dict[str, list[str]] = Field(default_factory=dict)
    blocked_dynamics: list[str] = Field(default_factory=list)
    known_player_ids: list[str] = Field(default_factory=list)
    last_processed_question_id: str | None = None
    last_result: TargetResult | None = None


class GameSnapshot(BaseModel):
    version: int = SNAPSHOT_VERSION
    current_round: int = 0
    max_rounds: int = DEFAULT_MAX_ROUNDS
    total_rounds: int = DEFAULT_MAX_ROUNDS
    game_phase: GamePhase = GamePhase.waiting
    game_start_time: datetime | None = None
    current_question: ResolvedQuestion | None = None
    current_targets: list[Player] = Field(default_factory=list)
    round_history: list[RoundHistoryEntry] = Field(default_factory=list)
    players: list[Player] = Field(default_factory=list)
    appearance_counts: dict[str, int] = Field(default_factory=dict)
    dynamics_state: SchedulerSnapshot = Field(default_factory=SchedulerSnapshot)
    targeting_state: TargetingSnapshot = Field(default_factory=TargetingSnapshot)


# HTTP request/response bodies.


class SessionCreateRequest(BaseModel):
    players: list[Player] = Field(default_factory=list)
    settings: GameSettings | None = None


class PlayersUpdateRequest(BaseModel):
    players: list[Player]


class ActionRequest(BaseModel):
    additional_rounds: int = Field(default=DEFAULT_EXTENSION_ROUNDS, ge=1, le=500)
    reason: str = EndReason.manual.value


class TargetsRequest(BaseModel):
    question_id: str | None = None


class RoundResultRequest(BaseModel):
    result: Any = None


class SessionResponse(BaseModel):
    session_id: UUID
    result: EngineResult


class SessionListResponse(BaseModel):
    session_ids: list[UUID]
