from __future__ import annotations

from statemachine import State, StateMachine

from party_engine.api.models import GamePhase, GameState


class SessionFSM(StateMachine):
    """Guards game phase transitions on a `GameState`.

    waiting -> playing -> paused <-> playing -> finished. `start` and `finish`
    are accepted from any phase (a new game can be started over a finished one),
    `reset` returns to waiting. The engine mutates everything else.
    """

    waiting = State(GamePhase.waiting.value, value=GamePhase.waiting.value, initial=True)
    playing = State(GamePhase.playing.value, value=GamePhase.playing.value)
    paused = State(GamePhase.paused.value, value=GamePhase.paused.value)
    finished = State(GamePhase.finished.value, value=GamePhase.finished.value)

    start = waiting.to(playing) | playing.to.itself() | paused.to(playing) | finished.to(playing)
    pause = playing.to(paused)
    resume = paused.to(playing)
    finish = waiting.to(finished) | playing.to(finished) | paused.to(finished) | finished.to.itself()
    reset = waiting.to.itself() | playing.to(waiting) | paused.to(waiting) | finished.to(waiting)

    def __init__(self, game: GameState):
        self.game = game
        super().__init__(start_value=game.game_phase.value)

    def sync_phase_to_model(self) -> None:
        self.game.game_phase = GamePhase(str(self.current_state.value))
