from __future__ import annotations

import logging
import random
from collections.abc import Callable
from typing import Any
from uuid import UUID, uuid4

import redis

from party_engine.actions import SessionAction, dispatch_action
from party_engine.api.models import (
    ActionRequest,
    EngineResult,
    GameSettings,
    GameSnapshot,
)
from party_engine.content.registry import ContentPool
from party_engine.errors import SessionNotFoundError, SnapshotVersionError
from party_engine.game_engine import GameEngine
from party_engine.lock import session_lock
from party_engine.players import Player


logger = logging.getLogger(__name__)


SESSIONS_SET_KEY = "party:sessions"
SESSION_KEY_PREFIX = "party:session:"  # + {uuid}


def _session_key(session_id: UUID) -> str:
    return f"{SESSION_KEY_PREFIX}{session_id}"


def save_session(*, r: redis.Redis, session_id: UUID, snapshot: GameSnapshot) -> None:
    r.set(_session_key(session_id), snapshot.model_dump_json())
    r.sadd(SESSIONS_SET_KEY, str(session_id))


def get_session(*, r: redis.Redis, session_id: UUID) -> GameSnapshot | None:
    raw = r.get(_session_key(session_id))
    if not raw:
        return None
    return GameSnapshot.model_validate_json(raw)


def require_session(*, r: redis.Redis, session_id: UUID) -> GameSnapshot:
    snapshot = get_session(r=r, session_id=session_id)
    if snapshot is None:
        raise SessionNotFoundError("Session not found")
    return snapshot


def delete_session(*, r: redis.Redis, session_id: UUID) -> bool:
    with session_lock(r=r, session_id=session_id):
        removed = r.delete(_session_key(session_id))
        r.srem(SESSIONS_SET_KEY, str(session_id))
    if removed:
        logger.info("session deleted session_id=%s", session_id)
    return bool(removed)


def list_session_ids(*, r: redis.Redis) -> list[UUID]:
    out: list[UUID] = []
    for sid in sorted(r.smembers(SESSIONS_SET_KEY)):
        try:
            out.append(UUID(sid))
        except ValueError:
            continue
    return out


def restore_engine(*, snapshot: GameSnapshot, pool: ContentPool, rng: random.Random | None = None) -> GameEngine:
    engine = GameEngine(pool, rng=rng)
    result = engine.load_game_state(snapshot)
    if not result.success:
        raise SnapshotVersionError(result.error.message if result.error else "Unsupported snapshot")
    return engine


def create_session(
    *,
    r: redis.Redis,
    pool: ContentPool,
    players: list[Player],
    settings: GameSettings | None = None,
    rng: random.Random | None = None,
) -> tuple[UUID, EngineResult]:
    session_id = uuid4()
    engine = GameEngine(pool, rng=rng)
    result = engine.start_game(players, settings)
    save_session(r=r, session_id=session_id, snapshot=engine.save_game_state())
    logger.info("session created session_id=%s", session_id)
    return session_id, result


def _mutate(
    *,
    r: redis.Redis,
    session_id: UUID,
    pool: ContentPool,
    op: Callable[[GameEngine], EngineResult],
    rng: random.Random | None = None,
) -> EngineResult:
    with session_lock(r=r, session_id=session_id):
        engine = restore_engine(snapshot=require_session(r=r, session_id=session_id), pool=pool, rng=rng)
        result = op(engine)
        # Failed calls leave the engine untouched, so only successes are written back.
        if result.success:
            save_session(r=r, session_id=session_id, snapshot=engine.save_game_state())
        return result


def apply_action(
    *,
    r: redis.Redis,
    session_id: UUID,
    pool: ContentPool,
    action: SessionAction,
    body: ActionRequest | None = None,
    rng: random.Random | None = None,
) -> EngineResult:
    return _mutate(
        r=r,
        session_id=session_id,
        pool=pool,
        rng=rng,
        op=lambda engine: dispatch_action(engine=engine, action=action, body=body),
    )


def resolve_session_targets(
    *,
    r: redis.Redis,
    session_id: UUID,
    pool: ContentPool,
    question_id: str | None = None,
    rng: random.Random | None = None,
) -> EngineResult:
    return _mutate(r=r, session_id=session_id, pool=pool, rng=rng, op=lambda e: e.resolve_targets(question_id))


def update_session_players(
    *,
    r: redis.Redis,
    session_id: UUID,
    pool: ContentPool,
    players: list[Player],
) -> EngineResult:
    return _mutate(r=r, session_id=session_id, pool=pool, op=lambda e: e.update_players(players))


def add_session_result(*, r: redis.Redis, session_id: UUID, pool: ContentPool, result: Any) -> EngineResult:
    return _mutate(r=r, session_id=session_id, pool=pool, op=lambda e: e.add_round_result(result))


def read_session(*, r: redis.Redis, session_id: UUID, pool: ContentPool) -> GameEngine:
    return restore_engine(snapshot=require_session(r=r, session_id=session_id), pool=pool)
