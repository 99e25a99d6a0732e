import pytest

from events import BracketObserver
from bracket.engine import BracketEngine
from bracket.functions import generate_bracket
from bracket.models import MatchStatus, Team, Tournament
from scoring.models import GameResult, MatchCompleted, Side
from store.memory import InMemoryMatchStore


class RecordingObserver(BracketObserver):

    def __init__(self):
        self.completed = []
        self.filled = []
        self.champions = []

    def on_match_completed(self, match):
        self.completed.append(match.id)

    def on_slot_filled(self, match, side, team):
        self.filled.append((match.id, side, team))

    def on_champion_decided(self, team, match):
        self.champions.append(team)


def make_teams(tournament_id, count):
    return [
        Team(id=f"t{i}", tournament_id=tournament_id, name=f"Team {i}",
             player1_name=f"P{i}a", player2_name=f"P{i}b")
        for i in range(1, count + 1)
    ]


def result_for(side: Side, points_won: int = 11, points_lost: int = 5) -> MatchCompleted:
    a, b = (points_won, points_lost) if side is Side.A else (points_lost, points_won)
    return MatchCompleted(
        winner=side, final_score_a=a, final_score_b=b,
        games=(GameResult(number=1, points_a=a, points_b=b, winner=side),),
    )


async def finish(engine: BracketEngine, match_id: str, side: Side = Side.A):
    match = await engine.store.get_match(match_id)
    if match.status is MatchStatus.SCHEDULED:
        await engine.start_match(match_id)
    return await engine.record_result(match_id, result_for(side))


@pytest.fixture
def store():
    return InMemoryMatchStore()


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def engine(store, observer):
    return BracketEngine(store, observer=observer)


async def seed_bracket(store, size=8, tournament_id="tour"):
    """Store a bracket with team tN in draw position N and return its topology."""
    teams = make_teams(tournament_id, size)
    matches, topology = generate_bracket(tournament_id, [t.id for t in teams])
    await store.create_bracket(Tournament(id=tournament_id, name="Open", size=size), teams, matches)
    return topology


@pytest.fixture
async def bracket8(store):
    return await seed_bracket(store)
