from dataclasses import dataclass
from typing import Dict, Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

import config
from database import get_session
from events import LoggingObserver, ObserverGroup
from bracket.engine import BracketEngine, KeyedLocks
from bracket.models import BracketTopology
from store.base import MatchStore
from store.sql import SqlMatchStore

# Shared by every request so writes into one match queue up inside this process
slot_locks = KeyedLocks()
topologies: Dict[str, BracketTopology] = {}
observers = ObserverGroup([LoggingObserver()])


@dataclass(frozen=True)
class AdminSession:
    token: str


def require_admin(x_admin_token: Optional[str] = Header(default=None)) -> AdminSession:
    if config.ADMIN_TOKEN and x_admin_token != config.ADMIN_TOKEN:
        raise HTTPException(status_code=401, detail="Admin token required")
    return AdminSession(token=x_admin_token or "")


async def get_store(session: AsyncSession = Depends(get_session)) -> MatchStore:
    return SqlMatchStore(session)


async def get_bracket_engine(store: MatchStore = Depends(get_store)) -> BracketEngine:
    return BracketEngine(store, observer=observers, locks=slot_locks, topologies=topologies)
