import os
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine
from dotenv import load_dotenv
from asyncpg import Connection
from uuid import uuid4
from sqlalchemy import (
    Column, ForeignKey, Integer, JSON, String,
    func, DateTime,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, relationship

load_dotenv()

POSTGRES_USER = os.getenv("POSTGRES_USER")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD")
POSTGRES_DB = os.getenv("POSTGRES_DB_URL")

class Base(DeclarativeBase): pass

postgres_file_name = f"{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_DB}"

# DATABASE_URL overrides the POSTGRES_* parts, e.g. sqlite+aiosqlite:///scoreboard.db
DATABASE_URL = os.getenv("DATABASE_URL", f"postgresql+asyncpg://{postgres_file_name}")

class FixedConnection(Connection):
    def _get_unique_id(self, prefix: str) -> str:
        return f'__asyncpg_{prefix}_{uuid4()}__'


def make_engine(url: str) -> AsyncEngine:
    connect_args = {}
    if url.startswith("postgresql+asyncpg"):
        # pgbouncer in transaction mode cannot keep prepared statements
        connect_args = {
            "statement_cache_size": 0,
            "prepared_statement_cache_size": 0,
            "connection_class": FixedConnection,
        }
    return create_async_engine(url, echo=False, future=True, connect_args=connect_args)


def make_sessionmaker(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


engine = make_engine(DATABASE_URL)

# Фабрика сессий
AsyncSessionLocal = make_sessionmaker(engine)


async def get_session():
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_models(bind: AsyncEngine = engine):
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

#ORM

GamesType = JSON().with_variant(JSONB(), "postgresql")


class TournamentORM(Base):
    __tablename__ = "tournaments"

    id            = Column(String, primary_key=True)
    name          = Column(String, nullable=False)
    size          = Column(Integer, nullable=False)
    status        = Column(String, nullable=False, default="active")
    created_at    = Column(DateTime(timezone=True), server_default=func.now())

    teams = relationship(
        "TeamORM",
        back_populates="tournament",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    matches = relationship(
        "MatchORM",
        back_populates="tournament",
        cascade="all, delete-orphan",
        order_by="MatchORM.round, MatchORM.slot",
        lazy="selectin",
    )


class TeamORM(Base):
    __tablename__ = "teams"

    id            = Column(String, primary_key=True)
    tournament_id = Column(String, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False)
    name          = Column(String, nullable=False)
    player1_name  = Column(String, nullable=False)
    player2_name  = Column(String, nullable=False)

    tournament = relationship("TournamentORM", back_populates="teams")


class MatchORM(Base):
    __tablename__ = "matches"

    id            = Column(String, primary_key=True)
    tournament_id = Column(String, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False)
    round         = Column(Integer, nullable=False)
    slot          = Column(Integer, nullable=False)
    team_a        = Column(String, ForeignKey("teams.id"), nullable=True)
    team_b        = Column(String, ForeignKey("teams.id"), nullable=True)
    status        = Column(String, nullable=False, default="pending")
    score_a       = Column(Integer, nullable=False, default=0)
    score_b       = Column(Integer, nullable=False, default=0)
    winner        = Column(String, ForeignKey("teams.id"), nullable=True)
    version       = Column(Integer, nullable=False, default=0)  # compare-and-set counter
    games         = Column(GamesType, nullable=False, default=list)
    updated_at    = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    tournament = relationship("TournamentORM", back_populates="matches")
