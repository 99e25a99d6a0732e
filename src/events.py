import logging
from typing import Iterable, List

logger = logging.getLogger(__name__)


class BracketObserver:
    """Receives scoreboard notifications. Override the methods you need."""

    def on_match_completed(self, match) -> None:
        pass

    def on_slot_filled(self, match, side, team: str) -> None:
        pass

    def on_champion_decided(self, team: str, match) -> None:
        pass


class LoggingObserver(BracketObserver):

    def on_match_completed(self, match) -> None:
        logger.info(
            "Match %s (round %s slot %s) completed: winner %s, %s-%s",
            match.id, match.round, match.slot, match.winner, match.score_a, match.score_b,
        )

    def on_slot_filled(self, match, side, team: str) -> None:
        logger.info("Team %s placed into match %s side %s", team, match.id, side.value)

    def on_champion_decided(self, team: str, match) -> None:
        logger.info("Tournament %s champion: %s", match.tournament_id, team)


class ObserverGroup(BracketObserver):
    """Fans every notification out to a list of observers, in order."""

    def __init__(self, observers: Iterable[BracketObserver] = ()):
        self.observers: List[BracketObserver] = list(observers)

    def add(self, observer: BracketObserver) -> None:
        self.observers.append(observer)

    def on_match_completed(self, match) -> None:
        for o in self.observers:
            o.on_match_completed(match)

    def on_slot_filled(self, match, side, team: str) -> None:
        for o in self.observers:
            o.on_slot_filled(match, side, team)

    def on_champion_decided(self, team: str, match) -> None:
        for o in self.observers:
            o.on_champion_decided(team, match)
