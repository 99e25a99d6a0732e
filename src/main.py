import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config import LOG_LEVEL
from database import init_models
from errors import (
    AlreadyCompleted, InvalidConfiguration, InvalidTransition, NotCompleted, NotFound,
    ScoreboardError, SlotConflict, VersionConflict,
)
from bracket.router import router as bracket_router
from scoring.router import router as scoring_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

STATUS_CODES = [
    (NotFound, 404),
    (InvalidConfiguration, 400),
    (NotCompleted, 400),   # includes MissingWinner
    (SlotConflict, 409),
    (AlreadyCompleted, 409),
    (InvalidTransition, 409),
    (VersionConflict, 503),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    if os.getenv("CREATE_TABLES", "1") == "1":
        await init_models()
    yield


app = FastAPI(title="Doubles Knockout Scoreboard", lifespan=lifespan)
app.include_router(bracket_router)
app.include_router(scoring_router)


@app.exception_handler(ScoreboardError)
async def scoreboard_error_handler(request: Request, exc: ScoreboardError):
    status_code = next((code for cls, code in STATUS_CODES if isinstance(exc, cls)), 500)
    if isinstance(exc, SlotConflict):
        # Needs an operator: the bracket is inconsistent
        logger.error("Bracket inconsistency on %s %s: %s", request.method, request.url.path, exc)
    body = {"detail": str(exc), "error": type(exc).__name__}
    if status_code == 503:
        body["retry"] = True
    return JSONResponse(status_code=status_code, content=body)


@app.get("/")
async def index():
    return {"routes": ["/bracket", "/scoring"]}
