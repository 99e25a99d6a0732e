import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Dict, Optional

from config import ADVANCE_MAX_RETRIES
from errors import (
    AlreadyCompleted, InvalidTransition, MissingWinner, NotCompleted, SlotConflict, VersionConflict,
)
from events import BracketObserver, LoggingObserver
from bracket import functions
from bracket.models import BracketTopology, Match, MatchStatus, SlotRef, team_field
from scoring.models import MatchCompleted, Side
from store.base import MatchStore

logger = logging.getLogger(__name__)


class KeyedLocks:
    """One asyncio.Lock per key, dropped again once nobody holds or waits for it."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = defaultdict(int)

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def __call__(self, key: str):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield lock
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


@dataclass(frozen=True)
class Advancement:
    source: Match
    target: Optional[Match] = None
    side: Optional[Side] = None
    written: bool = False
    champion: Optional[str] = None

    @property
    def scheduled(self) -> bool:
        return self.target is not None and self.target.status is MatchStatus.SCHEDULED


class BracketEngine:
    """Moves match winners through a fixed single-elimination bracket.

    Every write into a next-round match happens under that match's lock and as
    a compare-and-set on its version, so two sibling matches finishing at the
    same time both land in their slots. Replaying a completion is a no-op.
    """

    def __init__(
        self,
        store: MatchStore,
        observer: Optional[BracketObserver] = None,
        locks: Optional[KeyedLocks] = None,
        max_retries: int = ADVANCE_MAX_RETRIES,
        topologies: Optional[Dict[str, BracketTopology]] = None,
    ):
        self.store = store
        self.observer = LoggingObserver() if observer is None else observer
        self.locks = KeyedLocks() if locks is None else locks
        self.max_retries = max_retries
        # Shared between engines; a bracket keeps its shape once created
        self._topologies: Dict[str, BracketTopology] = {} if topologies is None else topologies

    async def topology(self, tournament_id: str) -> BracketTopology:
        cached = self._topologies.get(tournament_id)
        if cached is None:
            matches = await self.store.list_matches(tournament_id)
            cached = functions.topology_from_matches(tournament_id, matches)
            self._topologies[tournament_id] = cached
        return cached

    def remember_topology(self, topology: BracketTopology) -> None:
        self._topologies[topology.tournament_id] = topology

    # -- Advancement -----------------------------------------------------------

    async def advance(self, completed: Match) -> Advancement:
        """Place the winner of ``completed`` into its next-round slot."""
        if completed.status is not MatchStatus.COMPLETED:
            raise NotCompleted(f"match {completed.id} is {completed.status.value}, not completed")
        if completed.winner is None:
            raise MissingWinner(f"match {completed.id} has no winner")

        topology = await self.topology(completed.tournament_id)
        target = topology.target(completed.round, completed.slot)
        if target is None:
            if await self.store.finish_tournament(completed.tournament_id):
                logger.info("Tournament %s decided: %s", completed.tournament_id, completed.winner)
                self.observer.on_champion_decided(completed.winner, completed)
            return Advancement(source=completed, champion=completed.winner)

        async with self.locks(target.match_id):
            return await self._fill_slot(completed, target)

    async def _fill_slot(self, completed: Match, target: SlotRef) -> Advancement:
        winner = completed.winner
        for attempt in range(1, self.max_retries + 1):
            match = await self.store.get_match(target.match_id)
            current = match.team(target.side)

            if current == winner:
                logger.debug("Match %s already has %s on side %s", match.id, winner, target.side.value)
                return Advancement(source=completed, target=match, side=target.side)
            if current is not None:
                logger.error(
                    "Slot conflict: match %s side %s holds %s, refusing to overwrite with %s from match %s",
                    match.id, target.side.value, current, winner, completed.id,
                )
                raise SlotConflict(
                    f"match {match.id} side {target.side.value} already holds {current}",
                    match_id=match.id, side=target.side, existing=current, incoming=winner,
                )
            if match.status is MatchStatus.CANCELLED:
                raise InvalidTransition(f"match {match.id} is cancelled; {winner} cannot advance into it")

            fields = {team_field(target.side): winner}
            if match.team(target.side.other) is not None and match.status is MatchStatus.PENDING:
                fields["status"] = MatchStatus.SCHEDULED

            try:
                updated = await self.store.update_match(match.id, fields, match.version)
            except VersionConflict:
                logger.warning("Version conflict writing match %s (attempt %d/%d)",
                               match.id, attempt, self.max_retries)
                continue

            logger.info("Advanced %s from match %s into match %s side %s",
                        winner, completed.id, updated.id, target.side.value)
            self.observer.on_slot_filled(updated, target.side, winner)
            return Advancement(source=completed, target=updated, side=target.side, written=True)

        raise VersionConflict(
            f"could not advance match {completed.id} into {target.match_id} "
            f"after {self.max_retries} attempts"
        )

    # -- Match lifecycle -------------------------------------------------------

    async def record_result(self, match_id: str, result: MatchCompleted) -> Advancement:
        """Finalize a match from a scoring result and advance its winner.

        A repeated delivery of the same result finalizes nothing and advances
        idempotently; a different result for a completed match is refused.
        """
        match = await self.store.get_match(match_id)
        winner = match.team(result.winner)
        if winner is None:
            raise MissingWinner(f"match {match_id} has no team on side {result.winner.value}")
        games = [
            {"number": g.number, "points_a": g.points_a, "points_b": g.points_b, "winner": g.winner.value}
            for g in result.games
        ]
        try:
            finalized = await self.store.finalize_match(
                match_id, winner, result.final_score_a, result.final_score_b, games,
            )
        except AlreadyCompleted as exc:
            recorded = exc.match
            if (recorded is None or recorded.winner != winner
                    or (recorded.score_a, recorded.score_b) != (result.final_score_a, result.final_score_b)):
                raise
            logger.info("Match %s result re-delivered; already recorded", match_id)
            finalized = recorded
        else:
            self.observer.on_match_completed(finalized)
        return await self.advance(finalized)

    async def start_match(self, match_id: str) -> Match:
        match = await self.store.get_match(match_id)
        if match.status is MatchStatus.IN_PROGRESS:
            return match
        if not match.is_ready:
            raise InvalidTransition(f"match {match_id} is still waiting for teams")
        return await self.store.update_match(match_id, {"status": MatchStatus.IN_PROGRESS}, match.version)

    async def cancel_match(self, match_id: str) -> Match:
        """Cancel a match. Teams already placed downstream are left alone."""
        match = await self.store.get_match(match_id)
        if match.status is MatchStatus.CANCELLED:
            return match
        cancelled = await self.store.update_match(match_id, {"status": MatchStatus.CANCELLED}, match.version)
        logger.warning("Match %s cancelled (round %d slot %d)", match_id, match.round, match.slot)
        return cancelled

    # -- Queries ---------------------------------------------------------------

    async def is_round_resolved(self, tournament_id: str, round_number: int) -> bool:
        return functions.is_round_resolved(await self.store.list_matches(tournament_id, round_number))

    async def champion(self, tournament_id: str) -> Optional[str]:
        topology = await self.topology(tournament_id)
        final = await self.store.get_match(topology.final_match_id)
        if final.status is not MatchStatus.COMPLETED:
            return None
        return final.winner

    async def runner_up(self, tournament_id: str) -> Optional[str]:
        topology = await self.topology(tournament_id)
        final = await self.store.get_match(topology.final_match_id)
        if final.status is not MatchStatus.COMPLETED:
            return None
        return final.loser
