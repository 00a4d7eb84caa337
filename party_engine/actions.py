from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum

from party_engine.api.models import ActionRequest, EngineResult
from party_engine.game_engine import GameEngine


class SessionAction(StrEnum):
    next_round = "next_round"
    skip = "skip"
    pause = "pause"
    resume = "resume"
    extend = "extend"
    end = "end"
    reset = "reset"


_HANDLERS: dict[SessionAction, Callable[[GameEngine, ActionRequest], EngineResult]] = {
    SessionAction.next_round: lambda engine, _: engine.next_round(),
    SessionAction.skip: lambda engine, _: engine.skip_dynamic(),
    SessionAction.pause: lambda engine, _: engine.pause_game(),
    SessionAction.resume: lambda engine, _: engine.resume_game(),
    SessionAction.extend: lambda engine, body: engine.extend_game(body.additional_rounds),
    SessionAction.end: lambda engine, body: engine.end_game(body.reason),
    SessionAction.reset: lambda engine, _: engine.reset_game(),
}


def parse_action(action: str) -> SessionAction:
    try:
        return SessionAction(action)
    except ValueError as e:
        raise ValueError(f"Unknown action: {action}") from e


def dispatch_action(*, engine: GameEngine, action: SessionAction, body: ActionRequest | None = None) -> EngineResult:
    return _HANDLERS[action](engine, body or ActionRequest())
