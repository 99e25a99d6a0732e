"""MatchStore contract used by the engines.

The store owns durable match and team records. Every write is a
compare-and-set on ``Match.version``: a caller passes the version it read
and the write fails with VersionConflict if someone else got there first.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from errors import AlreadyCompleted, InvalidTransition, VersionConflict
from bracket.functions import check_transition
from bracket.models import Match, MatchStatus, Team, Tournament

UPDATABLE_FIELDS = {"team_a", "team_b", "status", "score_a", "score_b"}
SCORE_FIELDS = {"score_a", "score_b"}


def apply_update(match: Match, fields: Dict[str, Any], expected_version: int) -> Match:
    """Validate a field update against the match rules and return the new value."""
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"fields cannot be updated directly: {sorted(unknown)}")
    if match.version != expected_version:
        raise VersionConflict(
            f"match {match.id}: expected version {expected_version}, found {match.version}"
        )
    if match.status is MatchStatus.COMPLETED:
        raise AlreadyCompleted(f"match {match.id} is completed", match=match)
    if match.status is MatchStatus.CANCELLED:
        raise InvalidTransition(f"match {match.id} is cancelled")

    status = fields.get("status")
    if status is not None:
        status = MatchStatus(status)
        if status is MatchStatus.COMPLETED:
            raise InvalidTransition("use finalize_match to complete a match")
        if status is not match.status:
            check_transition(match, status)
        fields = dict(fields, status=status)

    if SCORE_FIELDS & set(fields) and (status or match.status) is not MatchStatus.IN_PROGRESS:
        raise InvalidTransition(f"match {match.id}: scores change only while in progress")

    return match.evolve(**fields, version=match.version + 1)


def apply_finalize(match: Match, winner: str, score_a: int, score_b: int,
                   games: Sequence[dict] = ()) -> Match:
    if match.status is MatchStatus.COMPLETED:
        raise AlreadyCompleted(f"match {match.id} is already completed", match=match)
    check_transition(match, MatchStatus.COMPLETED)
    if winner not in (match.team_a, match.team_b) or winner is None:
        raise InvalidTransition(f"match {match.id}: {winner} is not playing in this match")
    return match.evolve(
        status=MatchStatus.COMPLETED,
        winner=winner,
        score_a=score_a,
        score_b=score_b,
        games=tuple(games),
        version=match.version + 1,
    )


class MatchStore(ABC):

    @abstractmethod
    async def get_match(self, match_id: str) -> Match:
        """Return the match or raise NotFound."""

    @abstractmethod
    async def list_matches(self, tournament_id: str, round_number: Optional[int] = None) -> List[Match]:
        """Matches of a tournament ordered by round then slot."""

    @abstractmethod
    async def update_match(self, match_id: str, fields: Dict[str, Any], expected_version: int) -> Match:
        """Compare-and-set write of team, status or score fields."""

    @abstractmethod
    async def finalize_match(self, match_id: str, winner: str, score_a: int, score_b: int,
                             games: Sequence[dict] = ()) -> Match:
        """Complete a match; raises AlreadyCompleted if it already is."""

    @abstractmethod
    async def create_bracket(self, tournament: Tournament, teams: Sequence[Team],
                             matches: Sequence[Match]) -> None:
        pass

    @abstractmethod
    async def finish_tournament(self, tournament_id: str) -> bool:
        """Mark an active tournament finished. False if it already was."""

    @abstractmethod
    async def get_tournament(self, tournament_id: str) -> Tournament:
        pass

    @abstractmethod
    async def list_teams(self, tournament_id: str) -> List[Team]:
        pass
