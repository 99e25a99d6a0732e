from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence

from errors import NotFound
from bracket.models import Match, Team, Tournament
from store.base import MatchStore, apply_finalize, apply_update


class InMemoryMatchStore(MatchStore):
    """Dict-backed MatchStore.

    Reads and writes never await between checking the version and storing
    the new value, so each write is atomic on the event loop.
    """

    def __init__(self):
        self.tournaments: Dict[str, Tournament] = {}
        self.teams: Dict[str, Team] = {}
        self.matches: Dict[str, Match] = {}

    async def get_match(self, match_id: str) -> Match:
        match = self.matches.get(match_id)
        if match is None:
            raise NotFound(f"match {match_id} not found")
        return match

    async def list_matches(self, tournament_id: str, round_number: Optional[int] = None) -> List[Match]:
        found = [
            m for m in self.matches.values()
            if m.tournament_id == tournament_id and (round_number is None or m.round == round_number)
        ]
        return sorted(found, key=lambda m: (m.round, m.slot))

    async def update_match(self, match_id: str, fields: Dict[str, Any], expected_version: int) -> Match:
        match = await self.get_match(match_id)
        updated = apply_update(match, fields, expected_version)
        self.matches[match_id] = updated
        return updated

    async def finalize_match(self, match_id: str, winner: str, score_a: int, score_b: int,
                             games: Sequence[dict] = ()) -> Match:
        match = await self.get_match(match_id)
        finalized = apply_finalize(match, winner, score_a, score_b, games)
        self.matches[match_id] = finalized
        return finalized

    async def create_bracket(self, tournament: Tournament, teams: Sequence[Team],
                             matches: Sequence[Match]) -> None:
        self.tournaments[tournament.id] = tournament
        self.teams.update({t.id: t for t in teams})
        self.matches.update({m.id: m for m in matches})

    async def get_tournament(self, tournament_id: str) -> Tournament:
        tournament = self.tournaments.get(tournament_id)
        if tournament is None:
            raise NotFound(f"tournament {tournament_id} not found")
        return tournament

    async def finish_tournament(self, tournament_id: str) -> bool:
        tournament = await self.get_tournament(tournament_id)
        if tournament.status == "finished":
            return False
        self.tournaments[tournament_id] = replace(tournament, status="finished")
        return True

    async def list_teams(self, tournament_id: str) -> List[Team]:
        return [t for t in self.teams.values() if t.tournament_id == tournament_id]
