import logging
from typing import List, Optional

from errors import InvalidTransition
from scoring import functions
from scoring.models import GameWon, MatchCompleted, ScoreConfig, ScoreState

logger = logging.getLogger(__name__)


class ScoreEngine:
    """Live point-by-point state of one match.

    Holds the current immutable ScoreState and swaps it for the value returned
    by the pure transitions in ``scoring.functions``. A refused transition
    raises InvalidTransition and leaves the state as it was.
    """

    def __init__(self, config: Optional[ScoreConfig] = None, state: Optional[ScoreState] = None):
        self.config = config or ScoreConfig()
        self.state = state or functions.initial_state(self.config)
        self._undo: List[ScoreState] = []

    def point(self) -> Optional[GameWon]:
        state, won = functions.point(self.state, self.config)
        self._push(state)
        return won

    def side_out(self) -> ScoreState:
        self._push(functions.side_out(self.state, self.config))
        return self.state

    def start(self) -> ScoreState:
        self.state = functions.start(self.state)
        return self.state

    def pause(self) -> ScoreState:
        self.state = functions.pause(self.state)
        return self.state

    def toggle(self) -> ScoreState:
        return self.pause() if self.state.is_active else self.start()

    def reset(self) -> ScoreState:
        self.state = functions.reset(self.config)
        self._undo.clear()
        return self.state

    def configure(self, match_format=None, winning_score=None, initial_server=None) -> ScoreConfig:
        self.state, self.config = functions.reconfigure(
            self.state, self.config,
            match_format=match_format,
            winning_score=winning_score,
            initial_server=initial_server,
        )
        return self.config

    def undo(self) -> ScoreState:
        """Step back over the last point or side-out."""
        if not self.state.is_active:
            raise InvalidTransition("cannot undo: scoring is not active")
        if not self._undo:
            raise InvalidTransition("nothing to undo")
        self.state = self._undo.pop()
        return self.state

    def replace_state(self, state: ScoreState) -> None:
        """Overwrite the current state without recording an undo step."""
        self.state = state

    def _push(self, state: ScoreState) -> None:
        self._undo.append(self.state)
        self.state = state


class SetAggregator:
    """Turns the games played on a ScoreEngine into a match result."""

    def __init__(self, engine: Optional[ScoreEngine] = None):
        self.engine = engine or ScoreEngine()
        self.result: Optional[MatchCompleted] = None

    @property
    def state(self) -> ScoreState:
        return self.engine.state

    @property
    def config(self) -> ScoreConfig:
        return self.engine.config

    def point(self) -> Optional[MatchCompleted]:
        won = self.engine.point()
        if won is None:
            return None
        return self.on_game_won(won)

    def on_game_won(self, won: GameWon) -> Optional[MatchCompleted]:
        state, completed = functions.record_game(self.engine.state, self.engine.config, won)
        self.engine.replace_state(state)
        logger.debug("Game %d won by %s (%d-%d)",
                     len(state.game_history), won.winner.value, won.points_a, won.points_b)
        if completed is not None:
            self.result = completed
            logger.info("Match decided: %s wins %d-%d",
                        completed.winner.value, completed.final_score_a, completed.final_score_b)
        return completed

    def reset(self) -> ScoreState:
        self.result = None
        return self.engine.reset()
