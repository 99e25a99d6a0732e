import math
import random
from typing import Dict, List, Optional, Sequence, Tuple

from config import BRACKET_SIZES
from errors import InvalidConfiguration, InvalidTransition
from bracket.models import (
    BracketTopology, Match, MatchStatus, Team, TRANSITIONS, generate_id,
)

ROUND_NAMES = {1: "final", 2: "semi_final", 4: "quarter_final", 8: "round_16", 16: "round_32"}


def round_count(size: int) -> int:
    if size not in BRACKET_SIZES:
        raise InvalidConfiguration(f"bracket size must be one of {BRACKET_SIZES}, got {size}")
    return int(math.log2(size))


def round_name(round_number: int, total_rounds: int) -> str:
    """quarter_final, semi_final, final... counted back from the last round."""
    matches_in_round = 2 ** (total_rounds - round_number)
    return ROUND_NAMES.get(matches_in_round, f"round_{matches_in_round * 2}")


def draw_pairs(size: int) -> List[Tuple[int, int]]:
    """Draw positions meeting in round 1, in slot order: 1vN, 2vN-1, ..."""
    round_count(size)
    return [(i + 1, size - i) for i in range(size // 2)]


def parse_team_lines(text: str, tournament_id: str) -> List[Team]:
    """Parse ``Team name: Player One / Player Two`` lines, one team per line."""
    teams = []
    for line in text.split("\n"):
        line = line.strip()
        if not line:
            continue
        name, _, players = line.partition(":")
        p1, _, p2 = players.partition("/")
        if not name.strip() or not p1.strip() or not p2.strip():
            raise InvalidConfiguration(f"expected 'Team: Player 1 / Player 2', got {line!r}")
        teams.append(Team(
            id=generate_id(), tournament_id=tournament_id,
            name=name.strip(), player1_name=p1.strip(), player2_name=p2.strip(),
        ))
    return teams


def generate_bracket(
    tournament_id: str, team_ids: Sequence[str], shuffle: bool = False,
) -> Tuple[List[Match], BracketTopology]:
    """Create every match of a single-elimination bracket.

    ``team_ids`` is the draw: position 1 first. Round 1 is filled from the
    draw and Scheduled; later rounds start Pending with empty slots and are
    filled as winners advance.
    """
    draw = list(team_ids)
    if len(set(draw)) != len(draw):
        raise InvalidConfiguration("a team can only occupy one draw position")
    rounds_total = round_count(len(draw))
    if shuffle:
        random.shuffle(draw)

    matches: List[Match] = []
    rounds: List[Tuple[str, ...]] = []
    for slot, (pos_a, pos_b) in enumerate(draw_pairs(len(draw))):
        matches.append(Match(
            id=generate_id(), tournament_id=tournament_id, round=1, slot=slot,
            team_a=draw[pos_a - 1], team_b=draw[pos_b - 1],
            status=MatchStatus.SCHEDULED,
        ))
    rounds.append(tuple(m.id for m in matches))

    for round_number in range(2, rounds_total + 1):
        round_matches = [
            Match(id=generate_id(), tournament_id=tournament_id, round=round_number, slot=slot)
            for slot in range(len(draw) // 2 ** round_number)
        ]
        matches.extend(round_matches)
        rounds.append(tuple(m.id for m in round_matches))

    return matches, BracketTopology(tournament_id=tournament_id, rounds=tuple(rounds))


def topology_from_matches(tournament_id: str, matches: Sequence[Match]) -> BracketTopology:
    """Rebuild the topology from stored matches (round, slot)."""
    by_round: Dict[int, Dict[int, str]] = {}
    for m in matches:
        by_round.setdefault(m.round, {})[m.slot] = m.id
    if not by_round:
        raise InvalidConfiguration(f"tournament {tournament_id} has no bracket")

    rounds = []
    expected = len(by_round[1]) if 1 in by_round else 0
    for round_number in range(1, len(by_round) + 1):
        slots = by_round.get(round_number)
        if not slots or sorted(slots) != list(range(expected)):
            raise InvalidConfiguration(
                f"tournament {tournament_id}: round {round_number} does not have {expected} slots"
            )
        rounds.append(tuple(slots[i] for i in range(expected)))
        expected //= 2
    if len(rounds[-1]) != 1:
        raise InvalidConfiguration(f"tournament {tournament_id}: last round is not a single final")
    return BracketTopology(tournament_id=tournament_id, rounds=tuple(rounds))


def check_transition(match: Match, new_status: MatchStatus):
    if new_status not in TRANSITIONS[match.status]:
        raise InvalidTransition(
            f"match {match.id}: cannot go from {match.status.value} to {new_status.value}"
        )


def is_round_resolved(round_matches: Sequence[Match]) -> bool:
    return bool(round_matches) and all(m.status is MatchStatus.COMPLETED for m in round_matches)


def final_match(matches: Sequence[Match]) -> Optional[Match]:
    if not matches:
        return None
    last_round = max(m.round for m in matches)
    finals = [m for m in matches if m.round == last_round]
    return finals[0] if len(finals) == 1 else None


def champion(matches: Sequence[Match]) -> Optional[str]:
    final = final_match(matches)
    if final is None or final.status is not MatchStatus.COMPLETED:
        return None
    return final.winner


def runner_up(matches: Sequence[Match]) -> Optional[str]:
    final = final_match(matches)
    if final is None or final.status is not MatchStatus.COMPLETED:
        return None
    return final.loser
