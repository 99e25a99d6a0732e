import logging
from typing import Dict, Optional

from fastapi import APIRouter, Form, Depends, HTTPException

from config import DEFAULT_WINNING_SCORE, WINNING_SCORES
from deps import AdminSession, get_bracket_engine, require_admin
from bracket.engine import BracketEngine
from bracket.models import MatchStatus
from scoring import functions
from scoring.engine import ScoreEngine, SetAggregator
from scoring.models import GameResult, MatchCompleted, MatchFormat, ScoreState, Side

router = APIRouter(prefix='/scoring', tags=['Scoring'])
logger = logging.getLogger(__name__)

# In-memory storage: one live scorer per match, lost on restart
live_sessions: Dict[str, SetAggregator] = {}


def _session_view(match_id: str, agg: SetAggregator) -> dict:
    return {
        "match_id": match_id,
        "config": {
            "match_format": agg.config.match_format.value,
            "winning_score": agg.config.winning_score,
            "initial_server": agg.config.initial_server.value,
        },
        "state": agg.state.to_dict(),
        "result": None if agg.result is None else {
            "winner": agg.result.winner.value,
            "final_score_a": agg.result.final_score_a,
            "final_score_b": agg.result.final_score_b,
        },
    }


def _get_live(match_id: str) -> SetAggregator:
    agg = live_sessions.get(match_id)
    if agg is None:
        raise HTTPException(status_code=404, detail="No scoring session for this match")
    return agg


async def _persist_live_score(engine: BracketEngine, match_id: str, state: ScoreState):
    """Mirror the live points onto the match record while it is in progress."""
    match = await engine.store.get_match(match_id)
    if match.status is not MatchStatus.IN_PROGRESS:
        return
    if (match.score_a, match.score_b) == (state.points_a, state.points_b):
        return
    await engine.store.update_match(
        match_id, {"score_a": state.points_a, "score_b": state.points_b}, match.version,
    )


async def _complete(engine: BracketEngine, match_id: str, completed: MatchCompleted) -> dict:
    # A failed write keeps the live session so /complete can send the result again
    adv = await engine.record_result(match_id, completed)
    live_sessions.pop(match_id, None)
    return {
        "target_match": adv.target.id if adv.target else None,
        "side": adv.side.value if adv.side else None,
        "scheduled": adv.scheduled,
        "champion": adv.champion,
    }


# Routes

@router.post("/{match_id}/open")
async def open_session(
    match_id: str,
    match_format: Optional[str] = Form(None),
    winning_score: Optional[int] = Form(None),
    initial_server: Optional[str] = Form(None),
    admin: AdminSession = Depends(require_admin),
    engine: BracketEngine = Depends(get_bracket_engine),
):
    """Open (or rejoin) the live scorer of a match.

    Rejoining with settings that differ from the open session is refused;
    those go through /configure.
    """
    match = await engine.store.get_match(match_id)
    if match.status in (MatchStatus.COMPLETED, MatchStatus.CANCELLED):
        raise HTTPException(status_code=409, detail=f"Match is {match.status.value}")
    if not match.is_ready:
        raise HTTPException(status_code=409, detail="Match is still waiting for teams")

    agg = live_sessions.get(match_id)
    if agg is None:
        config = functions.make_config(
            match_format or MatchFormat.SINGLE_GAME,
            winning_score or DEFAULT_WINNING_SCORE,
            initial_server or Side.A,
        )
        agg = SetAggregator(ScoreEngine(config))
        live_sessions[match_id] = agg
        logger.info("Opened scoring for match %s (%s to %d)",
                    match_id, config.match_format.value, config.winning_score)
        return _session_view(match_id, agg)

    current = agg.config
    requested = functions.make_config(
        match_format or current.match_format,
        winning_score or current.winning_score,
        initial_server or current.initial_server,
    )
    if requested != current:
        raise HTTPException(
            status_code=409,
            detail="Scoring is already open with other settings; change them with /configure",
        )
    return _session_view(match_id, agg)


@router.get("/{match_id}")
async def session_view(match_id: str):
    return _session_view(match_id, _get_live(match_id))


@router.post("/{match_id}/configure")
async def configure(
    match_id: str,
    match_format: Optional[str] = Form(None),
    winning_score: Optional[int] = Form(None),
    initial_server: Optional[str] = Form(None),
    admin: AdminSession = Depends(require_admin),
):
    agg = _get_live(match_id)
    agg.engine.configure(match_format, winning_score, initial_server)
    return _session_view(match_id, agg)


@router.post("/{match_id}/start")
async def start(
    match_id: str,
    admin: AdminSession = Depends(require_admin),
    engine: BracketEngine = Depends(get_bracket_engine),
):
    agg = _get_live(match_id)
    await engine.start_match(match_id)
    agg.engine.start()
    return _session_view(match_id, agg)


@router.post("/{match_id}/pause")
async def pause(match_id: str, admin: AdminSession = Depends(require_admin)):
    agg = _get_live(match_id)
    agg.engine.pause()
    return _session_view(match_id, agg)


@router.post("/{match_id}/point")
async def point(
    match_id: str,
    admin: AdminSession = Depends(require_admin),
    engine: BracketEngine = Depends(get_bracket_engine),
):
    agg = _get_live(match_id)
    completed = agg.point()
    view = _session_view(match_id, agg)
    if completed is None:
        await _persist_live_score(engine, match_id, agg.state)
    else:
        view["advancement"] = await _complete(engine, match_id, completed)
    return view


@router.post("/{match_id}/complete")
async def complete(
    match_id: str,
    admin: AdminSession = Depends(require_admin),
    engine: BracketEngine = Depends(get_bracket_engine),
):
    """Send a decided live match to the bracket again after a failed write."""
    agg = _get_live(match_id)
    if agg.result is None:
        raise HTTPException(status_code=409, detail="Match is not decided yet")
    view = _session_view(match_id, agg)
    view["advancement"] = await _complete(engine, match_id, agg.result)
    return view


@router.post("/{match_id}/side-out")
async def side_out(match_id: str, admin: AdminSession = Depends(require_admin)):
    agg = _get_live(match_id)
    agg.engine.side_out()
    return _session_view(match_id, agg)


@router.post("/{match_id}/undo")
async def undo(
    match_id: str,
    admin: AdminSession = Depends(require_admin),
    engine: BracketEngine = Depends(get_bracket_engine),
):
    agg = _get_live(match_id)
    agg.engine.undo()
    await _persist_live_score(engine, match_id, agg.state)
    return _session_view(match_id, agg)


@router.post("/{match_id}/reset")
async def reset(match_id: str, admin: AdminSession = Depends(require_admin)):
    agg = _get_live(match_id)
    agg.reset()
    return _session_view(match_id, agg)


@router.post("/{match_id}/result")
async def submit_result(
    match_id: str,
    score_a: int = Form(...),
    score_b: int = Form(...),
    winning_score: int = Form(DEFAULT_WINNING_SCORE),
    admin: AdminSession = Depends(require_admin),
    engine: BracketEngine = Depends(get_bracket_engine),
):
    """Record a finished single game entered by hand instead of point by point."""
    if winning_score not in WINNING_SCORES:
        raise HTTPException(status_code=400, detail=f"Winning score must be one of {WINNING_SCORES}")
    winner = functions.game_winner(score_a, score_b, winning_score)
    if winner is None:
        raise HTTPException(
            status_code=400,
            detail=f"{score_a}-{score_b} does not finish a game to {winning_score} (win by 2)",
        )
    match = await engine.store.get_match(match_id)
    if match.status is not MatchStatus.COMPLETED:
        await engine.start_match(match_id)
    completed = MatchCompleted(
        winner=winner, final_score_a=score_a, final_score_b=score_b,
        games=(GameResult(number=1, points_a=score_a, points_b=score_b, winner=winner),),
    )
    return {"match_id": match_id, "advancement": await _complete(engine, match_id, completed)}
