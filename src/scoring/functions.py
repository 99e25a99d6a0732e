from dataclasses import replace
from typing import Optional, Tuple

from config import WINNING_SCORES
from errors import InvalidConfiguration, InvalidTransition
from scoring.models import (
    GameResult, GameWon, MatchCompleted, MatchFormat, ScoreConfig, ScoreState, Side,
)


def game_winner(points_a: int, points_b: int, winning_score: int) -> Optional[Side]:
    """Side that has reached the winning score with a two point lead, if any."""
    if points_a >= winning_score and points_a - points_b >= 2:
        return Side.A
    if points_b >= winning_score and points_b - points_a >= 2:
        return Side.B
    return None


def initial_state(config: ScoreConfig) -> ScoreState:
    return ScoreState(serving_side=config.initial_server, server_slot=1)


def make_config(
    match_format=MatchFormat.SINGLE_GAME,
    winning_score: int = None,
    initial_server=Side.A,
) -> ScoreConfig:
    """Build a validated ScoreConfig from raw values (enum members or their strings)."""
    try:
        match_format = MatchFormat(match_format)
        initial_server = Side(initial_server)
    except ValueError as exc:
        raise InvalidConfiguration(str(exc)) from exc
    if winning_score is None:
        winning_score = ScoreConfig.winning_score
    if winning_score not in WINNING_SCORES:
        raise InvalidConfiguration(
            f"winning score must be one of {WINNING_SCORES}, got {winning_score}"
        )
    return ScoreConfig(
        match_format=match_format,
        winning_score=winning_score,
        initial_server=initial_server,
    )


def _require_active(state: ScoreState, action: str):
    if not state.is_active:
        raise InvalidTransition(f"cannot {action}: scoring is not active")


# -- Live game transitions -----------------------------------------------------

def point(state: ScoreState, config: ScoreConfig) -> Tuple[ScoreState, Optional[GameWon]]:
    """Award a rally to the serving side.

    Only the serving side can score; serve stays where it is. Returns the new
    state and a GameWon outcome when the point ends the game. Deciding what the
    game means for the match is left to the set aggregation step.
    """
    _require_active(state, "score a point")

    if state.serving_side is Side.A:
        state = replace(state, points_a=state.points_a + 1)
    else:
        state = replace(state, points_b=state.points_b + 1)

    winner = game_winner(state.points_a, state.points_b, config.winning_score)
    if winner is None:
        return state, None
    return state, GameWon(winner=winner, points_a=state.points_a, points_b=state.points_b)


def is_first_serve(state: ScoreState, config: ScoreConfig) -> bool:
    return (
        state.first_serve
        and state.points_a == 0
        and state.points_b == 0
        and state.serving_side is config.initial_server
        and state.server_slot == 1
    )


def side_out(state: ScoreState, config: ScoreConfig) -> ScoreState:
    """Rotate serve after the serving side loses a rally.

    The side that opens a game only gets one server; afterwards each side
    serves with server 1 then server 2 before the serve crosses over.
    """
    _require_active(state, "side out")

    if is_first_serve(state, config):
        return replace(state, serving_side=state.serving_side.other, server_slot=1, first_serve=False)
    if state.server_slot == 1:
        return replace(state, server_slot=2, first_serve=False)
    return replace(state, serving_side=state.serving_side.other, server_slot=1, first_serve=False)


def start(state: ScoreState) -> ScoreState:
    if state.is_active:
        raise InvalidTransition("scoring is already active")
    if state.is_finished:
        raise InvalidTransition("match is decided; reset before starting again")
    return replace(state, is_active=True, has_started=True)


def pause(state: ScoreState) -> ScoreState:
    _require_active(state, "pause")
    return replace(state, is_active=False)


def reset(config: ScoreConfig) -> ScoreState:
    return initial_state(config)


def reconfigure(state: ScoreState, current: ScoreConfig, **changes) -> Tuple[ScoreState, ScoreConfig]:
    """Change format, winning score or initial server before play begins."""
    if state.is_active or state.has_started:
        raise InvalidTransition("configuration is frozen once scoring has started")
    values = {
        "match_format": current.match_format,
        "winning_score": current.winning_score,
        "initial_server": current.initial_server,
    }
    values.update({k: v for k, v in changes.items() if v is not None})
    config = make_config(**values)
    return initial_state(config), config


# -- Set aggregation -----------------------------------------------------------

def record_game(
    state: ScoreState, config: ScoreConfig, won: GameWon,
) -> Tuple[ScoreState, Optional[MatchCompleted]]:
    """Fold a finished game into the match.

    Appends the game to history and bumps the winner's game count. When the
    winner has enough games the match is decided and scoring stops, otherwise
    the next game starts from 0-0 with the initial server.
    """
    game = GameResult(
        number=len(state.game_history) + 1,
        points_a=won.points_a,
        points_b=won.points_b,
        winner=won.winner,
    )
    games_a = state.games_won_a + (1 if won.winner is Side.A else 0)
    games_b = state.games_won_b + (1 if won.winner is Side.B else 0)
    history = state.game_history + (game,)

    if max(games_a, games_b) >= config.match_format.games_to_win:
        state = replace(
            state,
            games_won_a=games_a,
            games_won_b=games_b,
            game_history=history,
            is_active=False,
            winner=won.winner,
        )
        if config.match_format is MatchFormat.SINGLE_GAME:
            final_a, final_b = won.points_a, won.points_b
        else:
            final_a, final_b = games_a, games_b
        return state, MatchCompleted(
            winner=won.winner,
            final_score_a=final_a,
            final_score_b=final_b,
            games=history,
        )

    state = replace(
        state,
        points_a=0,
        points_b=0,
        serving_side=config.initial_server,
        server_slot=1,
        first_serve=True,
        games_won_a=games_a,
        games_won_b=games_b,
        game_history=history,
    )
    return state, None
