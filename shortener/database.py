"""Database engine and session factory for the URL shortener.

This module provides SQLAlchemy async engine setup, session factory creation
and table lifecycle helpers, using PostgreSQL as the backend in production.

Flow Diagram — Database Lifecycle
=================================
::
    ┌─────────────┐
    │  lifespan   │
    │  startup    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │build_engine │
    │ (settings)  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ init_db()   │
    │ create_all  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ LinkStore   │
    │ opens one   │
    │ session per │
    │ operation   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ close_db()  │
    │ (shutdown)  │
    └─────────────┘

How to Use
===========
**Step 1 — Build the engine**::
    engine = build_engine(settings)
    sessions = build_sessionmaker(engine)

**Step 2 — Create tables**::
    await init_db(engine)

**Step 3 — Cleanup on shutdown**::
    await close_db(engine)

Key Behaviours
===============
- Connection pooling is configured for PostgreSQL; SQLite (used by the test
  suite) falls back to SQLAlchemy's default pool.
- Sessions do not expire attributes on commit so ORM objects stay readable
  after the session closes.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    build_engine():  Creates the async engine from settings.
    build_sessionmaker():  Creates the async session factory.
    init_db():  Creates all tables.
    close_db():  Disposes the engine.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from shortener.config import Settings

__all__ = ["Base", "build_engine", "build_sessionmaker", "init_db", "close_db"]


class Base(DeclarativeBase):
    pass


def build_engine(settings: Settings) -> AsyncEngine:
    if settings.DATABASE_URL.startswith("sqlite"):
        return create_async_engine(settings.DATABASE_URL, echo=False)

    return create_async_engine(
        settings.DATABASE_URL,
        echo=(settings.APP_ENV == "development"),
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True,
    )


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()
