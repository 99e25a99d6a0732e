from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, Tuple

from config import DEFAULT_WINNING_SCORE


class Side(str, Enum):
    A = "A"
    B = "B"

    @property
    def other(self) -> "Side":
        return Side.B if self is Side.A else Side.A


class MatchFormat(str, Enum):
    SINGLE_GAME = "single"
    BEST_OF_THREE = "best_of_3"

    @property
    def games_to_win(self) -> int:
        return 1 if self is MatchFormat.SINGLE_GAME else 2


@dataclass(frozen=True)
class ScoreConfig:
    match_format: MatchFormat = MatchFormat.SINGLE_GAME
    winning_score: int = DEFAULT_WINNING_SCORE
    initial_server: Side = Side.A


@dataclass(frozen=True)
class GameResult:
    number: int
    points_a: int
    points_b: int
    winner: Side


@dataclass(frozen=True)
class ScoreState:
    points_a: int = 0
    points_b: int = 0
    serving_side: Side = Side.A
    server_slot: int = 1
    is_active: bool = False
    games_won_a: int = 0
    games_won_b: int = 0
    game_history: Tuple[GameResult, ...] = ()
    has_started: bool = False
    first_serve: bool = True
    winner: Optional[Side] = None

    def points(self, side: Side) -> int:
        return self.points_a if side is Side.A else self.points_b

    def games_won(self, side: Side) -> int:
        return self.games_won_a if side is Side.A else self.games_won_b

    @property
    def is_finished(self) -> bool:
        return self.winner is not None

    def to_dict(self) -> dict:
        return asdict(self)


# -- Outcomes ------------------------------------------------------------------

@dataclass(frozen=True)
class GameWon:
    winner: Side
    points_a: int
    points_b: int


@dataclass(frozen=True)
class MatchCompleted:
    winner: Side
    final_score_a: int
    final_score_b: int
    games: Tuple[GameResult, ...] = field(default_factory=tuple)
