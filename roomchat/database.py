"""
RoomChat – Async SQLAlchemy engine, session factory, and declarative base.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine, AsyncSession
from sqlalchemy.orm import DeclarativeBase


# ── Declarative base ──
class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


# ── Engine ──
def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    engine_kwargs = {
        "echo": echo,
        "future": True,
    }

    # If using PostgreSQL (Render/Supabase), disable prepared statement caching
    # because PgBouncer (transaction mode) does not support it properly.
    if "postgresql" in database_url:
        engine_kwargs["connect_args"] = {"statement_cache_size": 0}

    return create_async_engine(database_url, **engine_kwargs)


# ── Session factory ──
def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create every table registered on ``Base.metadata``."""
    # Importing the models package registers the tables on the metadata.
    import roomchat.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
