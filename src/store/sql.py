import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from database import MatchORM, TeamORM, TournamentORM
from errors import AlreadyCompleted, NotFound, VersionConflict
from bracket.models import Match, MatchStatus, Team, Tournament
from store.base import MatchStore, apply_finalize, apply_update

logger = logging.getLogger(__name__)


def _orm_to_match(m: MatchORM) -> Match:
    return Match(
        id=m.id, tournament_id=m.tournament_id,
        round=m.round, slot=m.slot,
        team_a=m.team_a, team_b=m.team_b,
        status=MatchStatus(m.status),
        score_a=m.score_a, score_b=m.score_b,
        winner=m.winner, version=m.version,
        games=tuple(m.games or ()),
    )


def _orm_to_team(t: TeamORM) -> Team:
    return Team(
        id=t.id, tournament_id=t.tournament_id, name=t.name,
        player1_name=t.player1_name, player2_name=t.player2_name,
    )


class SqlMatchStore(MatchStore):
    """MatchStore on an AsyncSession.

    Writes are a single ``UPDATE ... WHERE id = :id AND version = :expected``
    committed straight away, so concurrent writers in other processes lose
    with VersionConflict instead of overwriting each other.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_orm(self, match_id: str) -> MatchORM:
        row = await self.session.get(MatchORM, match_id, populate_existing=True)
        if row is None:
            raise NotFound(f"match {match_id} not found")
        return row

    async def get_match(self, match_id: str) -> Match:
        return _orm_to_match(await self._get_orm(match_id))

    async def list_matches(self, tournament_id: str, round_number: Optional[int] = None) -> List[Match]:
        stmt = select(MatchORM).where(MatchORM.tournament_id == tournament_id)
        if round_number is not None:
            stmt = stmt.where(MatchORM.round == round_number)
        stmt = stmt.order_by(MatchORM.round, MatchORM.slot).execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return [_orm_to_match(m) for m in result.scalars()]

    async def _compare_and_set(self, match_id: str, expected_version: int, values: Dict[str, Any]) -> bool:
        stmt = (
            update(MatchORM)
            .where(MatchORM.id == match_id, MatchORM.version == expected_version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            await self.session.rollback()
            return False
        await self.session.commit()
        return True

    async def update_match(self, match_id: str, fields: Dict[str, Any], expected_version: int) -> Match:
        current = await self.get_match(match_id)
        updated = apply_update(current, fields, expected_version)

        values = {k: getattr(updated, k) for k in fields}
        if "status" in values:
            values["status"] = updated.status.value
        values["version"] = updated.version

        if not await self._compare_and_set(match_id, expected_version, values):
            raise VersionConflict(f"match {match_id} changed while writing version {expected_version}")
        return updated

    async def finalize_match(self, match_id: str, winner: str, score_a: int, score_b: int,
                             games: Sequence[dict] = ()) -> Match:
        current = await self.get_match(match_id)
        finalized = apply_finalize(current, winner, score_a, score_b, games)
        values = {
            "status": finalized.status.value,
            "winner": finalized.winner,
            "score_a": finalized.score_a,
            "score_b": finalized.score_b,
            "games": list(finalized.games),
            "version": finalized.version,
        }
        if await self._compare_and_set(match_id, current.version, values):
            return finalized

        latest = await self.get_match(match_id)
        if latest.status is MatchStatus.COMPLETED:
            raise AlreadyCompleted(f"match {match_id} is already completed", match=latest)
        raise VersionConflict(f"match {match_id} changed while finalizing")

    async def create_bracket(self, tournament: Tournament, teams: Sequence[Team],
                             matches: Sequence[Match]) -> None:
        self.session.add(TournamentORM(
            id=tournament.id, name=tournament.name, size=tournament.size, status=tournament.status,
        ))
        self.session.add_all([
            TeamORM(id=t.id, tournament_id=t.tournament_id, name=t.name,
                    player1_name=t.player1_name, player2_name=t.player2_name)
            for t in teams
        ])
        # Teams must exist before matches reference them
        await self.session.flush()
        self.session.add_all([
            MatchORM(
                id=m.id, tournament_id=m.tournament_id,
                round=m.round, slot=m.slot,
                team_a=m.team_a, team_b=m.team_b,
                status=m.status.value, version=m.version, games=list(m.games),
            )
            for m in matches
        ])
        await self.session.commit()
        logger.info("Stored bracket %s: %d teams, %d matches", tournament.id, len(teams), len(matches))

    async def get_tournament(self, tournament_id: str) -> Tournament:
        row = await self.session.get(TournamentORM, tournament_id, populate_existing=True)
        if row is None:
            raise NotFound(f"tournament {tournament_id} not found")
        return Tournament(id=row.id, name=row.name, size=row.size, status=row.status)

    async def finish_tournament(self, tournament_id: str) -> bool:
        await self.get_tournament(tournament_id)
        stmt = (
            update(TournamentORM)
            .where(TournamentORM.id == tournament_id, TournamentORM.status != "finished")
            .values(status="finished")
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            await self.session.rollback()
            return False
        await self.session.commit()
        return True

    async def list_teams(self, tournament_id: str) -> List[Team]:
        result = await self.session.execute(
            select(TeamORM).where(TeamORM.tournament_id == tournament_id).order_by(TeamORM.name)
        )
        return [_orm_to_team(t) for t in result.scalars()]
