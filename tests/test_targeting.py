from __future__ import annotations

import random

import pytest

from party_engine.api.models import ResolvedQuestion, TargetStatus
from party_engine.content.registry import DynamicType
from party_engine.players import Player
from party_engine.targeting import PlayerTargeting


def _question(
    dynamic_type: DynamicType,
    *,
    dynamic_id: str = "d",
    question_id: str = "q1",
    same_gender: bool = False,
    **fields: object,
) -> ResolvedQuestion:
    return ResolvedQuestion(
        id=question_id,
        text="...",
        dynamic_id=dynamic_id,
        dynamic_name=dynamic_id,
        dynamic_type=dynamic_type,
        same_gender=same_gender,
        **fields,
    )


def _ids(players: list[Player]) -> set[str]:
    return {p.id for p in players}


@pytest.mark.parametrize("seed", range(12))
def test_single_target_visits_everyone_before_repeating(make_players, seed: int) -> None:
    roster = make_players("male", "female", "male")
    t = PlayerTargeting(rng=random.Random(seed))
    q = _question(DynamicType.single_target)

    picks = [t.resolve(q, roster).targets[0].id for _ in range(4)]

    assert set(picks[:3]) == {"p1", "p2", "p3"}
    assert picks[3] != picks[2]


def test_single_target_ledgers_are_per_dynamic(make_players, rng: random.Random) -> None:
    roster = make_players("male", "female")
    t = PlayerTargeting(rng=rng)

    a1 = t.resolve(_question(DynamicType.single_target, dynamic_id="a"), roster).targets[0]
    b1 = t.resolve(_question(DynamicType.single_target, dynamic_id="b"), roster).targets[0]
    a2 = t.resolve(_question(DynamicType.single_target, dynamic_id="a"), roster).targets[0]

    assert a1.id != a2.id
    assert t.single_target["b"].used_player_ids == [b1.id]


def test_single_target_honours_gender_restriction(make_players, rng: random.Random) -> None:
    roster = make_players("Hombre", "Mujer", "female")
    t = PlayerTargeting(rng=rng)
    q = _question(DynamicType.single_target, gender_restriction="female")

    picks = {t.resolve(q, roster).targets[0].id for _ in range(4)}

    assert picks == {"p2", "p3"}


def test_single_target_uses_target_gender_too(make_players, rng: random.Random) -> None:
    roster = make_players("male", "female")
    t = PlayerTargeting(rng=rng)
    q = _question(DynamicType.single_target, gender_restriction="all", target_gender="male")

    assert t.resolve(q, roster).targets[0].id == "p1"


def test_single_target_without_eligible_player_is_skipped(make_players, rng: random.Random) -> None:
    roster = make_players("male", "male")
    t = PlayerTargeting(rng=rng)

    result = t.resolve(_question(DynamicType.single_target, gender_restriction="female"), roster)

    assert result.status == TargetStatus.skip
    assert result.needs_skip
    assert result.targets == []
    assert "d" not in t.blocked_dynamics
    assert "d" not in t.single_target


def test_same_gender_pairs_never_mix(make_players) -> None:
    roster = make_players("male", "female", "male", "female")
    by_id = {p.id: p for p in roster}

    for seed in range(10):
        t = PlayerTargeting(rng=random.Random(seed))
        q = _question(DynamicType.paired_target, same_gender=True)

        first = t.resolve(q, roster)
        second = t.resolve(q, roster)

        for result in (first, second):
            assert result.status == TargetStatus.resolved
            a, b = result.targets
            assert by_id[a.id].canonical_gender == by_id[b.id].canonical_gender

        # Both genders get their turn before anyone plays twice.
        assert _ids(first.targets) | _ids(second.targets) == {"p1", "p2", "p3", "p4"}


def test_same_gender_without_any_matching_pair_is_skipped_not_blocked(make_players, rng: random.Random) -> None:
    roster = make_players("male", "female")
    t = PlayerTargeting(rng=rng)

    result = t.resolve(_question(DynamicType.paired_target, same_gender=True), roster)

    assert result.status == TargetStatus.skip
    assert t.blocked_dynamics == set()


def test_same_gender_never_pairs_a_man_with_a_woman(make_players, rng: random.Random) -> None:
    roster = make_players("man", "woman")
    t = PlayerTargeting(rng=rng)

    result = t.resolve(_question(DynamicType.paired_target, same_gender=True), roster)

    assert result.status == TargetStatus.skip
    assert result.targets == []


def test_same_gender_pairs_registration_labels(make_players, rng: random.Random) -> None:
    roster = make_players("man", "woman", "other", "woman")
    t = PlayerTargeting(rng=rng)

    result = t.resolve(_question(DynamicType.paired_target, same_gender=True), roster)

    assert result.status == TargetStatus.resolved
    assert _ids(result.targets) == {"p2", "p4"}


def test_female_restriction_includes_woman_label(make_players, rng: random.Random) -> None:
    roster = make_players("man", "woman")
    t = PlayerTargeting(rng=rng)

    result = t.resolve(_question(DynamicType.single_target, gender_restriction="female"), roster)

    assert result.status == TargetStatus.resolved
    assert [p.id for p in result.targets] == ["p2"]


def test_same_gender_anchors_a_fresh_player_with_a_veteran(make_players, rng: random.Random) -> None:
    roster = make_players("male", "male", "male")
    t = PlayerTargeting(rng=rng)
    q = _question(DynamicType.paired_target, same_gender=True)

    first = t.resolve(q, roster)
    second = t.resolve(q, roster)

    fresh = {"p1", "p2", "p3"} - _ids(first.targets)
    assert second.status == TargetStatus.resolved
    assert fresh <= _ids(second.targets)


def test_paired_dynamic_blocks_once_everyone_played_and_reopens_on_join(make_players, rng: random.Random) -> None:
    roster = make_players("male", "male")
    t = PlayerTargeting(rng=rng)
    t.on_roster_change(roster)
    q = _question(DynamicType.paired_target, same_gender=True)

    assert t.resolve(q, roster).status == TargetStatus.resolved
    assert t.resolve(q, roster).status == TargetStatus.blocked
    assert "d" in t.blocked_dynamics
    assert t.resolve(q, roster).status == TargetStatus.blocked

    grown = roster + [Player(id="p9", name="Late", gender="male")]
    t.on_roster_change(grown)

    assert t.blocked_dynamics == set()
    result = t.resolve(q, grown)
    assert result.status == TargetStatus.resolved
    assert "p9" in _ids(result.targets)


def test_any_gender_pairs_prefer_fresh_players(make_players, rng: random.Random) -> None:
    roster = make_players("male", "female", "other")
    t = PlayerTargeting(rng=rng)
    q = _question(DynamicType.paired_target)

    first = t.resolve(q, roster)
    second = t.resolve(q, roster)
    third = t.resolve(q, roster)

    assert first.status == second.status == TargetStatus.resolved
    assert ({"p1", "p2", "p3"} - _ids(first.targets)) <= _ids(second.targets)
    assert third.status == TargetStatus.blocked


def test_pair_with_one_eligible_player_is_skipped(make_players, rng: random.Random) -> None:
    roster = make_players("male", "female")
    t = PlayerTargeting(rng=rng)

    result = t.resolve(_question(DynamicType.paired_target, gender_restriction="female"), roster)

    assert result.status == TargetStatus.skip
    assert t.paired_target == {}


@pytest.mark.parametrize("dynamic_type", [DynamicType.vote, DynamicType.free_for_all])
def test_untargeted_types_need_no_targets(make_players, rng: random.Random, dynamic_type: DynamicType) -> None:
    t = PlayerTargeting(rng=rng)

    result = t.resolve(_question(dynamic_type), make_players("male"))

    assert result.status == TargetStatus.not_required
    assert not result.needs_skip


def test_resolve_for_processes_a_question_once(make_players, rng: random.Random) -> None:
    roster = make_players("male", "female", "male")
    t = PlayerTargeting(rng=rng)
    q = _question(DynamicType.single_target)

    first = t.resolve_for(q, roster)
    again = t.resolve_for(q, roster)

    assert again == first
    assert t.single_target["d"].used_player_ids == [first.targets[0].id]

    t.clear_guard()
    t.resolve_for(q, roster)
    assert len(t.single_target["d"].used_player_ids) == 2


def test_removed_players_are_purged_from_ledgers(make_players, rng: random.Random) -> None:
    roster = make_players("male", "male", "male")
    t = PlayerTargeting(rng=rng)
    t.on_roster_change(roster)

    t.resolve(_question(DynamicType.paired_target, dynamic_id="pair"), roster)
    for _ in range(3):
        t.resolve(_question(DynamicType.single_target, dynamic_id="single"), roster)

    t.on_roster_change(roster[:1])

    assert set(t.paired_target["pair"]) <= {"p1"}
    assert set(t.single_target["single"].used_player_ids) <= {"p1"}
    assert t.single_target["single"].last_player_id in {None, "p1"}
    assert t.known_player_ids == ["p1"]


def test_shrinking_roster_does_not_unblock(make_players, rng: random.Random) -> None:
    roster = make_players("male", "male", "male")
    t = PlayerTargeting(rng=rng)
    t.on_roster_change(roster)
    t.blocked_dynamics.add("pair")

    t.on_roster_change(roster[:2])

    assert t.blocked_dynamics == {"pair"}


def test_state_survives_save_and_load(make_players, rng: random.Random) -> None:
    roster = make_players("male", "female", "male")
    t = PlayerTargeting(rng=rng)
    t.on_roster_change(roster)
    t.resolve_for(_question(DynamicType.single_target, dynamic_id="single"), roster)
    t.resolve(_question(DynamicType.paired_target, dynamic_id="pair"), roster)
    t.blocked_dynamics.add("arm")

    snapshot = t.save_state()
    restored = PlayerTargeting(rng=random.Random(0))
    restored.load_state(type(snapshot).model_validate_json(snapshot.model_dump_json()))

    assert restored.save_state() == snapshot
    assert restored.blocked_dynamics == {"arm"}
