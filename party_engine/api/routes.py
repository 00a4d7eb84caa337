from __future__ import annotations

from typing import NoReturn
from uuid import UUID

import redis
from fastapi import APIRouter, Depends, HTTPException, Response, status

from party_engine.actions import parse_action
from party_engine.api.deps import get_pool, get_redis
from party_engine.api.models import (
    ActionRequest,
    DynamicStatus,
    EngineResult,
    PlayersUpdateRequest,
    RoundResultRequest,
    SessionCreateRequest,
    SessionListResponse,
    SessionResponse,
    TargetsRequest,
)
from party_engine.content.registry import ContentPool
from party_engine.errors import SessionBusyError, SessionNotFoundError, SnapshotVersionError
from party_engine.game_store import (
    add_session_result,
    apply_action,
    create_session,
    delete_session,
    list_session_ids,
    read_session,
    resolve_session_targets,
    update_session_players,
)

router = APIRouter()


def _raise_for(e: Exception) -> NoReturn:
    if isinstance(e, SessionNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found") from e
    if isinstance(e, SessionBusyError):
        raise HTTPException(status_code=status.HTTP_423_LOCKED, detail=str(e)) from e
    if isinstance(e, SnapshotVersionError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message) from e
    raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e


def _respond(session_id: UUID, result: EngineResult) -> SessionResponse:
    if not result.success:
        detail = result.error.model_dump(mode="json") if result.error else "Request failed"
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)
    return SessionResponse(session_id=session_id, result=result)


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/sessions", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session_route(
    payload: SessionCreateRequest,
    r: redis.Redis = Depends(get_redis),
    pool: ContentPool = Depends(get_pool),
) -> SessionResponse:
    session_id, result = create_session(r=r, pool=pool, players=payload.players, settings=payload.settings)
    return _respond(session_id, result)


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions_route(r: redis.Redis = Depends(get_redis)) -> SessionListResponse:
    return SessionListResponse(session_ids=list_session_ids(r=r))


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session_route(
    session_id: UUID,
    r: redis.Redis = Depends(get_redis),
    pool: ContentPool = Depends(get_pool),
) -> SessionResponse:
    try:
        engine = read_session(r=r, session_id=session_id, pool=pool)
    except (SessionNotFoundError, SnapshotVersionError) as e:
        _raise_for(e)
    return SessionResponse(
        session_id=session_id,
        result=EngineResult(success=True, game_state=engine.get_game_state(), players=engine.players),
    )


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session_route(session_id: UUID, r: redis.Redis = Depends(get_redis)) -> Response:
    try:
        removed = delete_session(r=r, session_id=session_id)
    except SessionBusyError as e:
        _raise_for(e)
    if not removed:
        _raise_for(SessionNotFoundError("Session not found"))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/sessions/{session_id}/dynamics", response_model=list[DynamicStatus])
async def get_session_dynamics_route(
    session_id: UUID,
    r: redis.Redis = Depends(get_redis),
    pool: ContentPool = Depends(get_pool),
) -> list[DynamicStatus]:
    try:
        engine = read_session(r=r, session_id=session_id, pool=pool)
    except (SessionNotFoundError, SnapshotVersionError) as e:
        _raise_for(e)
    return engine.get_available_dynamics()


@router.post("/sessions/{session_id}/actions/{action}", response_model=SessionResponse)
async def session_action_route(
    session_id: UUID,
    action: str,
    payload: ActionRequest | None = None,
    r: redis.Redis = Depends(get_redis),
    pool: ContentPool = Depends(get_pool),
) -> SessionResponse:
    try:
        act = parse_action(action)
        result = apply_action(r=r, session_id=session_id, pool=pool, action=act, body=payload)
    except (SessionNotFoundError, SessionBusyError, ValueError) as e:
        _raise_for(e)
    return _respond(session_id, result)


@router.post("/sessions/{session_id}/targets", response_model=SessionResponse)
async def resolve_targets_route(
    session_id: UUID,
    payload: TargetsRequest | None = None,
    r: redis.Redis = Depends(get_redis),
    pool: ContentPool = Depends(get_pool),
) -> SessionResponse:
    question_id = payload.question_id if payload is not None else None
    try:
        result = resolve_session_targets(r=r, session_id=session_id, pool=pool, question_id=question_id)
    except (SessionNotFoundError, SessionBusyError, ValueError) as e:
        _raise_for(e)
    return _respond(session_id, result)


@router.put("/sessions/{session_id}/players", response_model=SessionResponse)
async def update_players_route(
    session_id: UUID,
    payload: PlayersUpdateRequest,
    r: redis.Redis = Depends(get_redis),
    pool: ContentPool = Depends(get_pool),
) -> SessionResponse:
    try:
        result = update_session_players(r=r, session_id=session_id, pool=pool, players=payload.players)
    except (SessionNotFoundError, SessionBusyError, ValueError) as e:
        _raise_for(e)
    return _respond(session_id, result)


@router.post("/sessions/{session_id}/results", response_model=SessionResponse)
async def add_round_result_route(
    session_id: UUID,
    payload: RoundResultRequest,
    r: redis.Redis = Depends(get_redis),
    pool: ContentPool = Depends(get_pool),
) -> SessionResponse:
    try:
        result = add_session_result(r=r, session_id=session_id, pool=pool, result=payload.result)
    except (SessionNotFoundError, SessionBusyError, ValueError) as e:
        _raise_for(e)
    return _respond(session_id, result)
