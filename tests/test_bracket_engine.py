import asyncio

import pytest

from conftest import RecordingObserver, finish, result_for, seed_bracket
from errors import (
    AlreadyCompleted, InvalidTransition, MissingWinner, NotCompleted, SlotConflict, VersionConflict,
)
from bracket.engine import BracketEngine, KeyedLocks
from bracket.models import MatchStatus
from scoring.models import Side
from store.memory import InMemoryMatchStore


class SlowStore(InMemoryMatchStore):
    """Yields to the event loop on every read, so concurrent writers interleave."""

    async def get_match(self, match_id):
        await asyncio.sleep(0)
        return await super().get_match(match_id)


class AlwaysConflictingStore(InMemoryMatchStore):

    async def update_match(self, match_id, fields, expected_version):
        raise VersionConflict("someone else always wins")


@pytest.mark.asyncio
async def test_quarterfinals_fill_semifinal_sides(engine, store, bracket8):
    semi0 = bracket8.match_id(2, 0)

    await finish(engine, bracket8.match_id(1, 0), Side.A)   # t1 beats t8
    semi = await store.get_match(semi0)
    assert (semi.team_a, semi.team_b) == ("t1", None)
    assert semi.status is MatchStatus.PENDING

    await finish(engine, bracket8.match_id(1, 1), Side.B)   # t7 beats t2
    semi = await store.get_match(semi0)
    assert (semi.team_a, semi.team_b) == ("t1", "t7")
    assert semi.status is MatchStatus.SCHEDULED


@pytest.mark.asyncio
async def test_second_advance_is_a_no_op(engine, store, observer, bracket8):
    adv = await finish(engine, bracket8.match_id(1, 2), Side.A)
    assert adv.written
    version = (await store.get_match(bracket8.match_id(2, 1))).version

    again = await engine.advance(await store.get_match(bracket8.match_id(1, 2)))
    assert not again.written
    target = await store.get_match(bracket8.match_id(2, 1))
    assert target.version == version
    assert target.team_a == "t3"
    assert len(observer.filled) == 1


@pytest.mark.asyncio
async def test_redelivered_result_is_idempotent(engine, store, observer, bracket8):
    qf = bracket8.match_id(1, 3)
    await finish(engine, qf, Side.B)
    adv = await engine.record_result(qf, result_for(Side.B))

    assert not adv.written
    assert observer.completed == [qf]
    assert (await store.get_match(bracket8.match_id(2, 1))).team_b == "t5"


@pytest.mark.asyncio
async def test_conflicting_result_for_completed_match_refused(engine, bracket8):
    qf = bracket8.match_id(1, 0)
    await finish(engine, qf, Side.A)
    with pytest.raises(AlreadyCompleted):
        await engine.record_result(qf, result_for(Side.B))


@pytest.mark.asyncio
async def test_slot_holding_another_team_is_a_conflict(engine, store, bracket8):
    semi0 = bracket8.match_id(2, 0)
    store.matches[semi0] = store.matches[semi0].evolve(team_a="t4")

    with pytest.raises(SlotConflict) as info:
        await finish(engine, bracket8.match_id(1, 0), Side.A)
    assert info.value.existing == "t4"
    assert info.value.incoming == "t1"
    assert (await store.get_match(semi0)).team_a == "t4"


@pytest.mark.asyncio
async def test_advance_requires_completed_match_with_winner(engine, store, bracket8):
    qf = await store.get_match(bracket8.match_id(1, 0))
    with pytest.raises(NotCompleted):
        await engine.advance(qf)
    with pytest.raises(MissingWinner):
        await engine.advance(qf.evolve(status=MatchStatus.COMPLETED))


@pytest.mark.asyncio
async def test_champion_defined_only_after_final(engine, store, observer, bracket8):
    for slot in range(4):
        await finish(engine, bracket8.match_id(1, slot), Side.A)   # t1, t2, t3, t4
    assert await engine.is_round_resolved("tour", 1)
    assert not await engine.is_round_resolved("tour", 2)

    for slot in range(2):
        await finish(engine, bracket8.match_id(2, slot), Side.B)   # t2, t4
    final = await store.get_match(bracket8.final_match_id)
    assert (final.team_a, final.team_b, final.status) == ("t2", "t4", MatchStatus.SCHEDULED)

    await engine.start_match(final.id)
    assert await engine.champion("tour") is None

    adv = await engine.record_result(final.id, result_for(Side.A))
    assert adv.champion == "t2"
    assert await engine.champion("tour") == "t2"
    assert await engine.runner_up("tour") == "t4"
    assert observer.champions == ["t2"]


@pytest.mark.asyncio
async def test_round_not_resolved_until_every_match_completed(engine, bracket8):
    for slot in range(3):
        await finish(engine, bracket8.match_id(1, slot))
        assert not await engine.is_round_resolved("tour", 1)
    await finish(engine, bracket8.match_id(1, 3))
    assert await engine.is_round_resolved("tour", 1)


async def _complete_quarterfinals(store, topology, slots):
    completed = []
    for slot in slots:
        match = await store.get_match(topology.match_id(1, slot))
        done = match.evolve(status=MatchStatus.COMPLETED, winner=match.team_a, score_a=11, version=match.version + 1)
        store.matches[done.id] = done
        completed.append(done)
    return completed


@pytest.mark.asyncio
async def test_concurrent_siblings_both_land():
    slow = SlowStore()
    topology = await seed_bracket(slow)
    first, second = await _complete_quarterfinals(slow, topology, [0, 1])

    # separate engines share no locks; only the version check keeps both writes
    one, two = BracketEngine(slow, observer=RecordingObserver()), BracketEngine(slow, observer=RecordingObserver())
    results = await asyncio.gather(one.advance(first), two.advance(second))

    assert all(r.written for r in results)
    semi = await slow.get_match(topology.match_id(2, 0))
    assert (semi.team_a, semi.team_b) == ("t1", "t2")
    assert semi.status is MatchStatus.SCHEDULED
    assert semi.version == 2


@pytest.mark.asyncio
async def test_concurrent_siblings_with_shared_engine(store, engine, bracket8):
    first, second = await _complete_quarterfinals(store, bracket8, [2, 3])
    await asyncio.gather(engine.advance(second), engine.advance(first))
    semi = await store.get_match(bracket8.match_id(2, 1))
    assert (semi.team_a, semi.team_b) == ("t3", "t4")
    assert semi.status is MatchStatus.SCHEDULED


@pytest.mark.asyncio
async def test_gives_up_after_bounded_retries():
    store = AlwaysConflictingStore()
    topology = await seed_bracket(store)
    (done,) = await _complete_quarterfinals(store, topology, [0])
    engine = BracketEngine(store, observer=RecordingObserver(), max_retries=2)
    with pytest.raises(VersionConflict):
        await engine.advance(done)


@pytest.mark.asyncio
async def test_cancelled_match_blocks_advancement(engine, store, bracket8):
    await engine.cancel_match(bracket8.match_id(2, 0))
    with pytest.raises(InvalidTransition):
        await finish(engine, bracket8.match_id(1, 0))
    qf = await store.get_match(bracket8.match_id(1, 0))
    assert qf.status is MatchStatus.COMPLETED


@pytest.mark.asyncio
async def test_completed_match_cannot_be_cancelled(engine, bracket8):
    await finish(engine, bracket8.match_id(1, 0))
    with pytest.raises(AlreadyCompleted):
        await engine.cancel_match(bracket8.match_id(1, 0))


@pytest.mark.asyncio
async def test_waiting_match_cannot_start(engine, bracket8):
    with pytest.raises(InvalidTransition):
        await engine.start_match(bracket8.match_id(2, 0))


@pytest.mark.asyncio
async def test_result_needs_match_in_progress(engine, bracket8):
    with pytest.raises(InvalidTransition):
        await engine.record_result(bracket8.match_id(1, 0), result_for(Side.A))


@pytest.mark.asyncio
async def test_champion_announced_once(store, observer, bracket8):
    engine = BracketEngine(store, observer=observer)
    for round_number, slots in ((1, 4), (2, 2), (3, 1)):
        for slot in range(slots):
            await finish(engine, bracket8.match_id(round_number, slot), Side.A)
    final = await store.get_match(bracket8.final_match_id)
    again = await engine.advance(final)
    assert again.champion == "t1"
    assert observer.champions == ["t1"]


@pytest.mark.asyncio
async def test_champion_not_announced_again_by_another_engine(store, observer, bracket8):
    first = BracketEngine(store, observer=observer)
    for round_number, slots in ((1, 4), (2, 2), (3, 1)):
        for slot in range(slots):
            await finish(first, bracket8.match_id(round_number, slot), Side.B)
    final = await store.get_match(bracket8.final_match_id)

    later = BracketEngine(store, observer=observer)
    assert (await later.advance(final)).champion == final.winner
    assert observer.champions == [final.winner]
    assert (await store.get_tournament("tour")).status == "finished"


@pytest.mark.asyncio
async def test_slot_locks_released_after_advancing(engine, store, bracket8):
    first, second = await _complete_quarterfinals(store, bracket8, [0, 1])
    await asyncio.gather(engine.advance(first), engine.advance(second))
    assert len(engine.locks) == 0


@pytest.mark.asyncio
async def test_slot_lock_survives_while_waited_on():
    locks = KeyedLocks()
    async with locks("m1"):
        waiter = asyncio.ensure_future(_hold(locks, "m1"))
        await asyncio.sleep(0)
        assert len(locks) == 1
    await waiter
    assert len(locks) == 0


async def _hold(locks, key):
    async with locks(key):
        await asyncio.sleep(0)
