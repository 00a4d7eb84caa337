from __future__ import annotations

import logging
import random
from collections.abc import Callable, Collection, Sequence
from datetime import UTC, datetime
from typing import Any

from statemachine.exceptions import TransitionNotAllowed

from party_engine.api.models import (
    DEFAULT_EXTENSION_ROUNDS,
    DEFAULT_MAX_ROUNDS,
    SNAPSHOT_VERSION,
    DynamicStatus,
    EndReason,
    EngineErrorInfo,
    EngineResult,
    GamePhase,
    GameSettings,
    GameSnapshot,
    GameState,
    GameStats,
    ResolvedQuestion,
    RoundHistoryEntry,
    TargetStatus,
)
from party_engine.content.registry import ContentPool, DynamicType
from party_engine.dynamics_manager import DynamicsManager
from party_engine.errors import (
    ContentExhaustedError,
    EngineError,
    InvalidStateError,
    SnapshotVersionError,
)
from party_engine.fsm import SessionFSM
from party_engine.players import Player, filter_by_gender
from party_engine.targeting import PlayerTargeting


logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(tz=UTC)


def _failure(e: EngineError) -> EngineResult:
    return EngineResult(success=False, error=EngineErrorInfo(code=e.code, message=e.message))


class GameEngine:
    """Round lifecycle of one party session.

    Owns the scheduler and the targeting ledgers for a single game. Every public
    method returns an `EngineResult`; calls made in the wrong phase come back with
    `success=False` instead of raising.

    The engine is synchronous and holds no locks. Callers that share a session
    across requests serialize access themselves and persist `save_game_state()`.
    """

    def __init__(
        self,
        pool: ContentPool,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.pool = pool
        self.rng = rng or random.Random()
        self.clock = clock or _now
        self.dynamics = DynamicsManager(pool, rng=self.rng)
        self.targeting = PlayerTargeting(rng=self.rng)
        self.state = GameState()
        self.players: list[Player] = []
        self.appearance_counts: dict[str, int] = {}

    # Lifecycle

    def start_game(self, players: Sequence[Player] = (), settings: GameSettings | None = None) -> EngineResult:
        total = settings.max_rounds if settings is not None and settings.max_rounds else DEFAULT_MAX_ROUNDS

        self.players = list(players)
        self.appearance_counts = {}
        self.dynamics.reset()
        self.targeting.reset()
        self.targeting.on_roster_change(self.players)

        phase = self.state.game_phase
        self.state = GameState(
            current_round=1,
            total_rounds=total,
            max_rounds=total,
            game_phase=phase,
            game_start_time=self.clock(),
        )
        self._transition("start")

        self.state.current_question = self._draw()
        logger.info("game started players=%s total_rounds=%s", len(self.players), total)
        return self._ok(question=self.state.current_question)

    def next_round(self) -> EngineResult:
        try:
            self._require_playing("advance the round")
        except EngineError as e:
            return _failure(e)

        if self.state.current_round > self.state.total_rounds:
            return self._rounds_completed()

        self.state.current_round += 1
        if self.state.current_round > self.state.total_rounds:
            return self._rounds_completed()

        try:
            self._set_question(self._require_draw())
        except ContentExhaustedError:
            return self.end_game(EndReason.no_more_questions)

        return self._ok(question=self.state.current_question)

    def skip_dynamic(self) -> EngineResult:
        """Replace the current question without consuming a round."""

        try:
            self._require_playing("skip")
        except EngineError as e:
            return _failure(e)

        if self.state.current_round > self.state.total_rounds:
            return self._rounds_completed()
        return self._skip()

    def extend_game(self, additional_rounds: int = DEFAULT_EXTENSION_ROUNDS) -> EngineResult:
        if additional_rounds < 1:
            return _failure(InvalidStateError("additional_rounds must be positive"))

        self.state.total_rounds += additional_rounds
        self.state.max_rounds = self.state.total_rounds

        if self.state.current_question is None and self.state.game_phase == GamePhase.playing:
            self._set_question(self._draw())

        logger.info("game extended total_rounds=%s", self.state.total_rounds)
        return self._ok(question=self.state.current_question, new_total_rounds=self.state.total_rounds)

    def pause_game(self) -> EngineResult:
        try:
            self._transition("pause")
        except EngineError as e:
            return _failure(e)
        logger.info("game paused round=%s", self.state.current_round)
        return self._ok()

    def resume_game(self) -> EngineResult:
        try:
            self._transition("resume")
        except EngineError as e:
            return _failure(e)
        logger.info("game resumed round=%s", self.state.current_round)
        return self._ok()

    def end_game(self, reason: str = EndReason.manual.value) -> EngineResult:
        self._transition("finish")

        started = self.state.game_start_time
        duration = (self.clock() - started).total_seconds() if started is not None else 0.0
        stats = GameStats(
            duration_seconds=max(duration, 0.0),
            rounds_played=max(self.state.current_round - 1, 0),
            total_rounds=self.state.total_rounds,
            questions_remaining=self.dynamics.get_remaining_questions_count(),
        )
        logger.info("game ended reason=%s rounds_played=%s", reason, stats.rounds_played)
        return self._ok(game_ended=True, reason=str(reason), game_stats=stats)

    def reset_game(self) -> EngineResult:
        self._transition("reset")
        self.state = GameState(game_phase=self.state.game_phase)
        self.players = []
        self.appearance_counts = {}
        self.dynamics.reset()
        self.targeting.reset()
        return self._ok()

    def add_round_result(self, result: Any) -> EngineResult:
        if self.state.game_phase == GamePhase.waiting:
            return _failure(InvalidStateError("No game in progress"))

        self.state.round_history.append(
            RoundHistoryEntry(
                round=self.state.current_round,
                question=self.state.current_question,
                result=result,
                timestamp=self.clock(),
            )
        )
        return self._ok()

    # Targeting

    def resolve_targets(self, question_id: str | None = None) -> EngineResult:
        """Pick the players for the current question.

        When the roster cannot satisfy the question, or its dynamic is blocked, the
        question is skipped and the next one is tried within the same round. A
        blocked dynamic sits out the rest of the round; an unplayable question only
        rules out that question. The dynamics skipped this way are reported in
        `auto_skipped`.
        """

        try:
            self._require_playing("resolve targets")
            question = self.state.current_question
            if question is None:
                raise InvalidStateError("No current question")
            if question_id is not None and question_id != question.id:
                raise InvalidStateError(f"Question {question_id} is not the current question")
        except EngineError as e:
            return _failure(e)

        skipped: list[str] = []
        blocked: set[str] = set()
        unplayable: set[tuple[str, str]] = set()
        while True:
            result = self.targeting.resolve_for(question, self.players)
            if not result.needs_skip:
                break

            skipped.append(question.dynamic_id)
            if result.status == TargetStatus.blocked:
                blocked.add(question.dynamic_id)
            else:
                unplayable.add((question.dynamic_id, question.id))
            logger.info(
                "auto-skipping dynamic_id=%s question_id=%s status=%s", question.dynamic_id, question.id, result.status
            )
            outcome = self._skip(excluded_ids=blocked, skipped_questions=unplayable)
            if outcome.game_ended or outcome.question is None:
                outcome.auto_skipped = skipped
                return outcome
            question = outcome.question

        self.state.current_targets = list(result.targets)
        return self._ok(question=question, targets=self.state.current_targets, auto_skipped=skipped)

    def update_players(self, players: Sequence[Player]) -> EngineResult:
        self.players = list(players)
        self.targeting.on_roster_change(self.players)
        logger.info("roster updated players=%s", len(self.players))
        return EngineResult(success=True, players=list(self.players), game_state=self.get_game_state())

    # Persistence

    def save_game_state(self) -> GameSnapshot:
        return GameSnapshot(
            version=SNAPSHOT_VERSION,
            current_round=self.state.current_round,
            max_rounds=self.state.max_rounds,
            total_rounds=self.state.total_rounds,
            game_phase=self.state.game_phase,
            game_start_time=self.state.game_start_time,
            current_question=self.state.current_question,
            current_targets=list(self.state.current_targets),
            round_history=list(self.state.round_history),
            players=list(self.players),
            appearance_counts=dict(self.appearance_counts),
            dynamics_state=self.dynamics.save_state(),
            targeting_state=self.targeting.save_state(),
        )

    def load_game_state(self, snapshot: GameSnapshot) -> EngineResult:
        if snapshot.version != SNAPSHOT_VERSION:
            return _failure(SnapshotVersionError(f"Unsupported snapshot version {snapshot.version}"))

        self.state = GameState(
            current_round=snapshot.current_round,
            total_rounds=snapshot.total_rounds,
            max_rounds=snapshot.max_rounds,
            game_phase=snapshot.game_phase,
            current_question=snapshot.current_question,
            current_targets=list(snapshot.current_targets),
            game_start_time=snapshot.game_start_time,
            round_history=list(snapshot.round_history),
        )
        self.players = list(snapshot.players)
        self.appearance_counts = dict(snapshot.appearance_counts)

        self.dynamics.reset()
        self.dynamics.load_state(snapshot.dynamics_state)
        self.targeting.reset()
        self.targeting.load_state(snapshot.targeting_state)
        return self._ok()

    # Queries

    def get_game_state(self) -> GameState:
        state = self.state.model_copy(deep=True)
        state.questions_remaining = self.dynamics.get_remaining_questions_count()
        state.dynamics_status = self.dynamics.get_dynamics_status()
        return state

    def get_available_dynamics(self) -> list[DynamicStatus]:
        return self.dynamics.get_dynamics_status()

    # Internals

    def _ok(self, **kwargs: Any) -> EngineResult:
        return EngineResult(success=True, game_state=self.get_game_state(), **kwargs)

    def _transition(self, event: str) -> None:
        fsm = SessionFSM(self.state)
        try:
            fsm.send(event)
        except TransitionNotAllowed as e:
            raise InvalidStateError(f"Cannot {event} while {self.state.game_phase.value}") from e
        fsm.sync_phase_to_model()

    def _require_playing(self, action: str) -> None:
        if self.state.game_phase != GamePhase.playing:
            raise InvalidStateError(f"Cannot {action} while {self.state.game_phase.value}")

    def _rounds_completed(self) -> EngineResult:
        # The budget is spent: hold the round one past the total until the caller
        # extends or ends the game.
        self.state.current_round = self.state.total_rounds + 1
        self._set_question(None)
        logger.info("rounds completed total_rounds=%s", self.state.total_rounds)
        return self._ok(game_ended=True, reason=EndReason.rounds_completed.value, can_extend=True)

    def _skip(
        self, *, excluded_ids: Collection[str] = (), skipped_questions: Collection[tuple[str, str]] = ()
    ) -> EngineResult:
        try:
            self._set_question(self._require_draw(excluded_ids=excluded_ids, skipped_questions=skipped_questions))
        except ContentExhaustedError:
            if self.state.current_round >= self.state.total_rounds:
                return self._rounds_completed()
            return self.end_game(EndReason.no_more_questions)
        return self._ok(question=self.state.current_question)

    def _set_question(self, question: ResolvedQuestion | None) -> None:
        self.state.current_question = question
        self.state.current_targets = []

    def _require_draw(
        self, *, excluded_ids: Collection[str] = (), skipped_questions: Collection[tuple[str, str]] = ()
    ) -> ResolvedQuestion:
        question = self._draw(excluded_ids=excluded_ids, skipped_questions=skipped_questions)
        if question is None:
            raise ContentExhaustedError("No more questions available")
        return question

    def _capped_dynamic_ids(self) -> set[str]:
        capped: set[str] = set()
        for dynamic_id, count in self.appearance_counts.items():
            dynamic = self.pool.get(dynamic_id)
            if dynamic is not None and dynamic.max_appearances is not None and count >= dynamic.max_appearances:
                capped.add(dynamic_id)
        return capped

    def _draw(
        self, *, excluded_ids: Collection[str] = (), skipped_questions: Collection[tuple[str, str]] = ()
    ) -> ResolvedQuestion | None:
        excluded = set(excluded_ids) | self._capped_dynamic_ids()
        skipped = set(skipped_questions)

        while self.dynamics.has_more_questions():
            question = self.dynamics.get_next_question(excluded_ids=excluded, skipped_questions=skipped)
            if question is None:
                return None

            # A gender-restricted vote needs at least two voters of that gender.
            if question.dynamic_type == DynamicType.vote and question.gender_restriction is not None:
                if len(filter_by_gender(self.players, question.gender_restriction)) < 2:
                    logger.debug(
                        "vote lacks voters, redrawing dynamic_id=%s question_id=%s", question.dynamic_id, question.id
                    )
                    skipped.add((question.dynamic_id, question.id))
                    continue

            self.appearance_counts[question.dynamic_id] = self.appearance_counts.get(question.dynamic_id, 0) + 1
            self.targeting.clear_guard()
            return question

        return None
