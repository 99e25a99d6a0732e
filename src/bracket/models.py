from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

from scoring.models import Side


def generate_id():
    import uuid
    return str(uuid.uuid4())[:8]


class MatchStatus(str, Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Allowed status moves; Cancelled is reachable from every non-Completed state
TRANSITIONS: Dict[MatchStatus, Tuple[MatchStatus, ...]] = {
    MatchStatus.PENDING: (MatchStatus.SCHEDULED, MatchStatus.CANCELLED),
    MatchStatus.SCHEDULED: (MatchStatus.IN_PROGRESS, MatchStatus.CANCELLED),
    MatchStatus.IN_PROGRESS: (MatchStatus.COMPLETED, MatchStatus.CANCELLED),
    MatchStatus.COMPLETED: (),
    MatchStatus.CANCELLED: (),
}


@dataclass(frozen=True)
class Team:
    id: str
    tournament_id: str
    name: str
    player1_name: str
    player2_name: str


@dataclass(frozen=True)
class Tournament:
    id: str
    name: str
    size: int
    status: str = "active"  # active, finished


@dataclass(frozen=True)
class Match:
    id: str
    tournament_id: str
    round: int   # 1-based
    slot: int    # 0-based position within the round
    team_a: Optional[str] = None
    team_b: Optional[str] = None
    status: MatchStatus = MatchStatus.PENDING
    score_a: int = 0
    score_b: int = 0
    winner: Optional[str] = None
    version: int = 0
    games: Tuple[dict, ...] = field(default_factory=tuple)

    def team(self, side: Side) -> Optional[str]:
        return self.team_a if side is Side.A else self.team_b

    def side_of(self, team_id: str) -> Optional[Side]:
        if team_id is not None and team_id == self.team_a:
            return Side.A
        if team_id is not None and team_id == self.team_b:
            return Side.B
        return None

    @property
    def loser(self) -> Optional[str]:
        if self.winner is None:
            return None
        return self.team_b if self.winner == self.team_a else self.team_a

    @property
    def is_ready(self) -> bool:
        return self.team_a is not None and self.team_b is not None

    def evolve(self, **fields) -> "Match":
        return replace(self, **fields)


def team_field(side: Side) -> str:
    return "team_a" if side is Side.A else "team_b"


@dataclass(frozen=True)
class SlotRef:
    """A team position in a specific match of the bracket."""
    match_id: str
    round: int
    slot: int
    side: Side


@dataclass(frozen=True)
class BracketTopology:
    """Fixed shape of an elimination bracket.

    ``rounds[r][i]`` is the id of the match in round r+1, slot i. Built once
    when the bracket is generated and never mutated.
    """
    tournament_id: str
    rounds: Tuple[Tuple[str, ...], ...]

    @property
    def final_round(self) -> int:
        return len(self.rounds)

    @property
    def final_match_id(self) -> str:
        return self.rounds[-1][0]

    def match_id(self, round_number: int, slot: int) -> str:
        return self.rounds[round_number - 1][slot]

    def target(self, round_number: int, slot: int) -> Optional[SlotRef]:
        """Where the winner of (round, slot) goes; None for the final."""
        if round_number >= self.final_round:
            return None
        target_slot = slot // 2
        side = Side.A if slot % 2 == 0 else Side.B
        return SlotRef(
            match_id=self.match_id(round_number + 1, target_slot),
            round=round_number + 1,
            slot=target_slot,
            side=side,
        )

    def feeders(self, round_number: int, slot: int) -> List[str]:
        """Ids of the previous-round matches that feed (round, slot)."""
        if round_number <= 1:
            return []
        previous = self.rounds[round_number - 2]
        return [previous[slot * 2], previous[slot * 2 + 1]]
