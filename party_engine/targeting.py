from __future__ import annotations

import logging
import random
from collections.abc import Sequence

from party_engine.api.models import (
    ResolvedQuestion,
    SingleTargetTracking,
    TargetingSnapshot,
    TargetResult,
    TargetStatus,
)
from party_engine.content.registry import DynamicType
from party_engine.errors import StructuralImpossibilityError
from party_engine.players import Player, filter_by_gender, group_by_gender, player_ids


logger = logging.getLogger(__name__)


class PlayerTargeting:
    """Chooses which player(s) a drawn question applies to.

    Each dynamic keeps its own participation ledger, so playing in one dynamic
    never affects eligibility in another.

    - single_target: rotate through every eligible player before anyone repeats,
      and never pick the same player twice across a cycle boundary.
    - paired_target: prefer players that have not played this dynamic yet; once no
      new pairing is possible the dynamic is blocked until a new player joins.
    - vote / free_for_all: no targeting.
    """

    def __init__(self, *, rng: random.Random | None = None) -> None:
        self.rng = rng or random.Random()
        self.single_target: dict[str, SingleTargetTracking] = {}
        self.paired_target: dict[str, list[str]] = {}
        self.blocked_dynamics: set[str] = set()
        self.known_player_ids: list[str] = []
        self.last_processed_question_id: str | None = None
        self.last_result: TargetResult | None = None

    def reset(self) -> None:
        self.single_target = {}
        self.paired_target = {}
        self.blocked_dynamics = set()
        self.known_player_ids = []
        self.clear_guard()

    def clear_guard(self) -> None:
        self.last_processed_question_id = None
        self.last_result = None

    def resolve_for(self, question: ResolvedQuestion, roster: Sequence[Player]) -> TargetResult:
        """Resolve targets for `question` at most once.

        A repeated call for the question that was just processed returns the
        stored result without touching any ledger.
        """

        last = self.last_result
        if last is not None and self.last_processed_question_id == question.id and last.dynamic_id == question.dynamic_id:
            logger.debug("targets already resolved question_id=%s", question.id)
            return last

        result = self.resolve(question, roster)
        self.last_processed_question_id = question.id
        self.last_result = result
        return result

    def resolve(self, question: ResolvedQuestion, roster: Sequence[Player]) -> TargetResult:
        dynamic_id = question.dynamic_id

        def _result(status: TargetStatus, targets: list[Player] | None = None, reason: str | None = None) -> TargetResult:
            return TargetResult(
                status=status,
                question_id=question.id,
                dynamic_id=dynamic_id,
                targets=targets or [],
                reason=reason,
            )

        if not question.requires_targets:
            return _result(TargetStatus.not_required)

        if dynamic_id in self.blocked_dynamics:
            return _result(TargetStatus.blocked, reason="all pairings already played")

        try:
            if question.dynamic_type == DynamicType.single_target:
                targets = [self._select_single(question, roster)]
            elif question.same_gender:
                pair = self._select_same_gender_pair(question, roster)
                targets = list(pair) if pair else []
            else:
                pair = self._select_any_pair(question, roster)
                targets = list(pair) if pair else []
        except StructuralImpossibilityError as e:
            logger.info("targeting impossible dynamic_id=%s reason=%s", dynamic_id, e.message)
            return _result(TargetStatus.skip, reason=e.message)

        if not targets:
            self.blocked_dynamics.add(dynamic_id)
            logger.info("dynamic blocked dynamic_id=%s", dynamic_id)
            return _result(TargetStatus.blocked, reason="all pairings already played")

        logger.debug("targets resolved dynamic_id=%s players=%s", dynamic_id, [p.id for p in targets])
        return _result(TargetStatus.resolved, targets=targets)

    def _eligible(self, question: ResolvedQuestion, roster: Sequence[Player]) -> list[Player]:
        eligible = filter_by_gender(roster, question.gender_restriction)
        if question.target_gender is not None:
            eligible = filter_by_gender(eligible, question.target_gender)
        return eligible

    def _select_single(self, question: ResolvedQuestion, roster: Sequence[Player]) -> Player:
        eligible = self._eligible(question, roster)
        if not eligible:
            raise StructuralImpossibilityError("no player matches the gender restriction")

        tracking = self.single_target.setdefault(question.dynamic_id, SingleTargetTracking())
        used = set(tracking.used_player_ids)
        remaining = [p for p in eligible if p.id not in used]

        if remaining:
            selected = self.rng.choice(remaining)
            tracking.used_player_ids.append(selected.id)
        else:
            # Everyone has had a turn: start a new cycle, avoiding an immediate repeat.
            candidates = eligible
            if tracking.last_player_id is not None and len(eligible) > 1:
                candidates = [p for p in eligible if p.id != tracking.last_player_id]
            selected = self.rng.choice(candidates)
            tracking.used_player_ids = [selected.id]

        tracking.last_player_id = selected.id
        return selected

    def _select_same_gender_pair(
        self, question: ResolvedQuestion, roster: Sequence[Player]
    ) -> tuple[Player, Player] | None:
        eligible = self._eligible(question, roster)
        by_gender = group_by_gender(eligible)
        if not any(len(members) >= 2 for members in by_gender.values()):
            raise StructuralImpossibilityError("no two players share a gender")

        participated = set(self.paired_target.get(question.dynamic_id, ()))
        fresh = [p for p in eligible if p.id not in participated]
        fresh_by_gender = group_by_gender(fresh)

        fresh_buckets = [g for g, members in fresh_by_gender.items() if len(members) >= 2]
        if fresh_buckets:
            gender = self.rng.choice(fresh_buckets)
            first, second = self.rng.sample(fresh_by_gender[gender], 2)
            return self._record_pair(question.dynamic_id, first, second)

        anchors = [p for p in fresh if len(by_gender.get(p.gender_key, ())) >= 2]
        if anchors:
            anchor = self.rng.choice(anchors)
            same = [p for p in by_gender[anchor.gender_key] if p.id != anchor.id]
            partners = [p for p in same if p.id not in participated] or same
            return self._record_pair(question.dynamic_id, anchor, self.rng.choice(partners))

        return None

    def _select_any_pair(self, question: ResolvedQuestion, roster: Sequence[Player]) -> tuple[Player, Player] | None:
        eligible = self._eligible(question, roster)
        if len(eligible) < 2:
            raise StructuralImpossibilityError("fewer than two eligible players")

        participated = set(self.paired_target.get(question.dynamic_id, ()))
        fresh = [p for p in eligible if p.id not in participated]

        if len(fresh) >= 2:
            first, second = self.rng.sample(fresh, 2)
            return self._record_pair(question.dynamic_id, first, second)

        if fresh:
            anchor = fresh[0]
            partner = self.rng.choice([p for p in eligible if p.id != anchor.id])
            return self._record_pair(question.dynamic_id, anchor, partner)

        return None

    def _record_pair(self, dynamic_id: str, first: Player, second: Player) -> tuple[Player, Player]:
        ledger = self.paired_target.setdefault(dynamic_id, [])
        for p in (first, second):
            if p.id not in ledger:
                ledger.append(p.id)
        return first, second

    def on_roster_change(self, roster: Sequence[Player]) -> None:
        """Rebind ledgers to a new roster.

        New players reopen every blocked dynamic; removed players are purged from
        all participation ledgers. Nothing else is reset.
        """

        new_ids = player_ids(roster)
        previous = set(self.known_player_ids)
        current = set(new_ids)

        added = current - previous
        removed = previous - current

        if added and self.blocked_dynamics:
            logger.info("roster grew, unblocking dynamics=%s", sorted(self.blocked_dynamics))
            self.blocked_dynamics.clear()

        if removed:
            for dynamic_id, ledger in self.paired_target.items():
                self.paired_target[dynamic_id] = [pid for pid in ledger if pid not in removed]
            for tracking in self.single_target.values():
                tracking.used_player_ids = [pid for pid in tracking.used_player_ids if pid not in removed]
                if tracking.last_player_id in removed:
                    tracking.last_player_id = None

        self.known_player_ids = new_ids

    def save_state(self) -> TargetingSnapshot:
        return TargetingSnapshot(
            single_target={k: v.model_copy(deep=True) for k, v in self.single_target.items()},
            paired_target={k: list(v) for k, v in self.paired_target.items()},
            blocked_dynamics=sorted(self.blocked_dynamics),
            known_player_ids=list(self.known_player_ids),
            last_processed_question_id=self.last_processed_question_id,
            last_result=self.last_result,
        )

    def load_state(self, snapshot: TargetingSnapshot) -> None:
        self.single_target = {k: v.model_copy(deep=True) for k, v in snapshot.single_target.items()}
        self.paired_target = {k: list(v) for k, v in snapshot.paired_target.items()}
        self.blocked_dynamics = set(snapshot.blocked_dynamics)
        self.known_player_ids = list(snapshot.known_player_ids)
        self.last_processed_question_id = snapshot.last_processed_question_id
        self.last_result = snapshot.last_result
