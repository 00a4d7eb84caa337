from __future__ import annotations

import logging
import random
from collections.abc import Collection

from party_engine.api.models import DynamicStatus, ResolvedQuestion, SchedulerSnapshot
from party_engine.content.registry import ContentPool, Dynamic, Question


logger = logging.getLogger(__name__)


class DynamicsManager:
    """Rotation scheduler: picks the next dynamic and an unused question inside it.

    Guarantees for one game (between two `reset()` calls):
    - a consumable question is returned at most once;
    - a dynamic whose questions are all used is retired for good;
    - the same dynamic is not picked twice in a row while another one is available.

    Dynamics with reusable questions (see `Dynamic.reuses_questions`) never retire.
    """

    def __init__(self, pool: ContentPool, *, rng: random.Random | None = None) -> None:
        self.pool = pool
        self.rng = rng or random.Random()
        self.available_dynamics: list[Dynamic] = self._playable_dynamics()
        self.used_questions: dict[str, set[str]] = {}
        self.last_dynamic_id: str | None = None
        self._initialize_used_questions()

    def _playable_dynamics(self) -> list[Dynamic]:
        return [d for d in self.pool.dynamics if d.questions]

    def _initialize_used_questions(self) -> None:
        self.used_questions = {d.id: set() for d in self.pool.dynamics}

    def has_available_questions(self, dynamic_id: str) -> bool:
        dynamic = self.pool.get(dynamic_id)
        if dynamic is None:
            return False
        return len(self.used_questions.get(dynamic_id, ())) < len(dynamic.questions)

    def _drawable(self, dynamic: Dynamic, skipped: Collection[tuple[str, str]]) -> list[Question]:
        used = self.used_questions.get(dynamic.id, set())
        return [q for q in dynamic.questions if q.id not in used and (dynamic.id, q.id) not in skipped]

    def get_random_dynamic(
        self, *, excluded_ids: Collection[str] = (), skipped_questions: Collection[tuple[str, str]] = ()
    ) -> Dynamic | None:
        """`skipped_questions` holds `(dynamic_id, question_id)` pairs that may not be drawn right now."""

        candidates = [
            d for d in self.available_dynamics if d.id not in excluded_ids and self._drawable(d, skipped_questions)
        ]
        if not candidates:
            return None

        # Only fall back to repeating the previous dynamic when it is the last one left.
        fresh = [d for d in candidates if d.id != self.last_dynamic_id]
        selection = fresh or candidates

        selected = self.rng.choice(selection)
        self.last_dynamic_id = selected.id
        return selected

    def get_random_question(
        self, dynamic_id: str, *, skipped_questions: Collection[tuple[str, str]] = ()
    ) -> ResolvedQuestion | None:
        dynamic = self.pool.get(dynamic_id)
        if dynamic is None:
            return None

        unused = self._drawable(dynamic, skipped_questions)
        if not unused:
            return None

        selected = self.rng.choice(unused)
        if not dynamic.reuses_questions:
            self.mark_question_as_used(dynamic_id, selected.id)

        return ResolvedQuestion(
            **selected.model_dump(),
            dynamic_id=dynamic.id,
            dynamic_name=dynamic.name,
            dynamic_instruction=dynamic.instruction,
            dynamic_type=dynamic.type,
            same_gender=dynamic.same_gender,
        )

    def mark_question_as_used(self, dynamic_id: str, question_id: str) -> None:
        self.used_questions.setdefault(dynamic_id, set()).add(question_id)
        if not self.has_available_questions(dynamic_id):
            self.remove_dynamic_from_available(dynamic_id)
            logger.debug("dynamic exhausted dynamic_id=%s", dynamic_id)

    def remove_dynamic_from_available(self, dynamic_id: str) -> None:
        self.available_dynamics = [d for d in self.available_dynamics if d.id != dynamic_id]

    def get_next_question(
        self, *, excluded_ids: Collection[str] = (), skipped_questions: Collection[tuple[str, str]] = ()
    ) -> ResolvedQuestion | None:
        dynamic = self.get_random_dynamic(excluded_ids=excluded_ids, skipped_questions=skipped_questions)
        if dynamic is None:
            return None

        question = self.get_random_question(dynamic.id, skipped_questions=skipped_questions)
        if question is not None:
            logger.debug("drew question dynamic_id=%s question_id=%s", dynamic.id, question.id)
        return question

    def has_more_questions(self) -> bool:
        return len(self.available_dynamics) > 0

    def get_remaining_questions_count(self) -> int:
        return sum(len(d.questions) - len(self.used_questions.get(d.id, ())) for d in self.available_dynamics)

    def get_dynamics_status(self) -> list[DynamicStatus]:
        available_ids = {d.id for d in self.available_dynamics}
        out: list[DynamicStatus] = []
        for d in self.pool.dynamics:
            used = len(self.used_questions.get(d.id, ()))
            out.append(
                DynamicStatus(
                    id=d.id,
                    name=d.name,
                    total_questions=len(d.questions),
                    used_questions=used,
                    remaining_questions=len(d.questions) - used,
                    is_available=d.id in available_ids,
                )
            )
        return out

    def reset(self) -> None:
        self.available_dynamics = self._playable_dynamics()
        self._initialize_used_questions()
        self.last_dynamic_id = None

    def save_state(self) -> SchedulerSnapshot:
        return SchedulerSnapshot(
            used_questions={k: sorted(v) for k, v in self.used_questions.items()},
            last_dynamic_id=self.last_dynamic_id,
            available_dynamics=[d.id for d in self.available_dynamics],
        )

    def load_state(self, snapshot: SchedulerSnapshot) -> None:
        # Ids that are no longer in the pool (content changed between saves) are dropped.
        self._initialize_used_questions()
        for dynamic_id, question_ids in snapshot.used_questions.items():
            if dynamic_id in self.pool:
                self.used_questions[dynamic_id] = set(question_ids)

        self.last_dynamic_id = snapshot.last_dynamic_id

        if snapshot.available_dynamics is not None:
            wanted = set(snapshot.available_dynamics)
            self.available_dynamics = [d for d in self.pool.dynamics if d.id in wanted]
