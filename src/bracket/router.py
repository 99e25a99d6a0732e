import logging
from typing import Dict, List

from fastapi import APIRouter, Form, Depends, HTTPException
from fastapi.responses import RedirectResponse

from deps import AdminSession, get_bracket_engine, require_admin
from errors import InvalidConfiguration
from bracket import functions
from bracket.engine import Advancement, BracketEngine
from bracket.models import Match, Team, Tournament, generate_id

router = APIRouter(prefix='/bracket', tags=['Bracket'])
logger = logging.getLogger(__name__)


def _match_to_dict(m: Match, teams: Dict[str, Team]) -> dict:
    def name(team_id):
        return teams[team_id].name if team_id in teams else None

    return {
        "id": m.id, "round": m.round, "slot": m.slot,
        "team_a": m.team_a, "team_b": m.team_b,
        "team_a_name": name(m.team_a), "team_b_name": name(m.team_b),
        "status": m.status.value,
        "score_a": m.score_a, "score_b": m.score_b,
        "winner": m.winner, "games": list(m.games),
        "version": m.version,
    }


def _team_to_dict(t: Team) -> dict:
    return {"id": t.id, "name": t.name, "players": [t.player1_name, t.player2_name]}


def _advancement_to_dict(adv: Advancement, teams: Dict[str, Team]) -> dict:
    return {
        "source": _match_to_dict(adv.source, teams),
        "target": _match_to_dict(adv.target, teams) if adv.target else None,
        "side": adv.side.value if adv.side else None,
        "written": adv.written,
        "champion": adv.champion,
    }


async def _teams_by_id(engine: BracketEngine, tid: str) -> Dict[str, Team]:
    return {t.id: t for t in await engine.store.list_teams(tid)}


# Routes

@router.post("/create")
async def create_bracket(
    name: str = Form(...),
    teams: str = Form(...),
    shuffle: bool = Form(False),
    admin: AdminSession = Depends(require_admin),
    engine: BracketEngine = Depends(get_bracket_engine),
):
    tid = generate_id()
    try:
        team_list = functions.parse_team_lines(teams, tid)
        matches, topology = functions.generate_bracket(tid, [t.id for t in team_list], shuffle=shuffle)
    except InvalidConfiguration as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    tournament = Tournament(id=tid, name=name, size=len(team_list))
    await engine.store.create_bracket(tournament, team_list, matches)
    engine.remember_topology(topology)
    logger.info("Created %d-team bracket %s (%s)", len(team_list), tid, name)

    return RedirectResponse(f"/bracket/{tid}", status_code=303)


@router.get("/{tid}")
async def bracket_view(tid: str, engine: BracketEngine = Depends(get_bracket_engine)):
    tournament = await engine.store.get_tournament(tid)
    teams = await _teams_by_id(engine, tid)
    matches = await engine.store.list_matches(tid)
    total = functions.round_count(tournament.size)

    rounds: List[dict] = []
    for round_number in range(1, total + 1):
        round_matches = [m for m in matches if m.round == round_number]
        rounds.append({
            "round": round_number,
            "name": functions.round_name(round_number, total),
            "resolved": functions.is_round_resolved(round_matches),
            "matches": [_match_to_dict(m, teams) for m in round_matches],
        })

    return {
        "id": tournament.id,
        "name": tournament.name,
        "size": tournament.size,
        "teams": [_team_to_dict(t) for t in teams.values()],
        "rounds": rounds,
        "champion": functions.champion(matches),
        "runner_up": functions.runner_up(matches),
    }


@router.get("/{tid}/rounds/{round_number}")
async def round_view(tid: str, round_number: int, engine: BracketEngine = Depends(get_bracket_engine)):
    teams = await _teams_by_id(engine, tid)
    matches = await engine.store.list_matches(tid, round_number)
    if not matches:
        raise HTTPException(status_code=404, detail="Round not found")
    return {
        "round": round_number,
        "resolved": await engine.is_round_resolved(tid, round_number),
        "matches": [_match_to_dict(m, teams) for m in matches],
    }


@router.post("/matches/{match_id}/start")
async def start_match(
    match_id: str,
    admin: AdminSession = Depends(require_admin),
    engine: BracketEngine = Depends(get_bracket_engine),
):
    match = await engine.start_match(match_id)
    return _match_to_dict(match, await _teams_by_id(engine, match.tournament_id))


@router.post("/matches/{match_id}/advance")
async def advance_match(
    match_id: str,
    admin: AdminSession = Depends(require_admin),
    engine: BracketEngine = Depends(get_bracket_engine),
):
    """Re-deliver a completed match to the bracket (safe to repeat)."""
    match = await engine.store.get_match(match_id)
    adv = await engine.advance(match)
    return _advancement_to_dict(adv, await _teams_by_id(engine, match.tournament_id))


@router.post("/matches/{match_id}/cancel")
async def cancel_match(
    match_id: str,
    admin: AdminSession = Depends(require_admin),
    engine: BracketEngine = Depends(get_bracket_engine),
):
    match = await engine.cancel_match(match_id)
    return _match_to_dict(match, await _teams_by_id(engine, match.tournament_id))
