"""Durable store for short links, backed by SQLAlchemy async sessions.

The store is the source of truth for every link. It opens one session per
operation so that detached background work (click flushes, expired-link
deletion) never shares a session with the request that scheduled it.

Error translation
=================
::
    IntegrityError on insert        ──► CodeTakenError
    OperationalError / DBAPIError   ──► StoreUnavailableError
    connection refused / OSError    ──► StoreUnavailableError

Classes:
    LinkStore:  Point queries, inserts, relative click increments, hard deletes.
"""

import datetime
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import delete, func, or_, select, text, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortener.exceptions import CodeTakenError, StoreUnavailableError
from shortener.models import ShortLink

__all__ = ["LinkStore"]


class LinkStore:
    def __init__(self, sessions: async_sessionmaker[AsyncSession], logger: logging.Logger):
        self._sessions = sessions
        self._logger = logger

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sessions() as session:
                yield session
        except IntegrityError:
            raise
        except (OperationalError, DBAPIError, OSError) as exc:
            self._logger.error(f"Database operation failed: {exc}")
            raise StoreUnavailableError(f"Database unavailable: {exc}") from exc

    async def ping(self) -> None:
        async with self._session() as session:
            await session.execute(text("SELECT 1"))

    async def find_by_short_code(self, short_code: str) -> ShortLink | None:
        async with self._session() as session:
            result = await session.execute(
                select(ShortLink).where(ShortLink.short_code == short_code, ShortLink.deleted_at.is_(None))
            )
            return result.scalar_one_or_none()

    async def find_by_id(self, link_id: uuid.UUID) -> ShortLink | None:
        async with self._session() as session:
            result = await session.execute(
                select(ShortLink).where(ShortLink.id == link_id, ShortLink.deleted_at.is_(None))
            )
            return result.scalar_one_or_none()

    async def find_owned(self, owner_id: uuid.UUID, link_id: uuid.UUID) -> ShortLink | None:
        async with self._session() as session:
            result = await session.execute(
                select(ShortLink).where(
                    ShortLink.id == link_id,
                    ShortLink.owner_id == owner_id,
                    ShortLink.deleted_at.is_(None),
                )
            )
            return result.scalar_one_or_none()

    async def count_by_short_code(self, short_code: str) -> int:
        async with self._session() as session:
            result = await session.execute(
                select(func.count())
                .select_from(ShortLink)
                .where(ShortLink.short_code == short_code, ShortLink.deleted_at.is_(None))
            )
            return int(result.scalar_one())

    async def create(self, link: ShortLink) -> ShortLink:
        """Insert ``link``; a unique-constraint race on short_code becomes CodeTakenError."""
        try:
            async with self._session() as session:
                session.add(link)
                await session.commit()
                await session.refresh(link)
                return link
        except IntegrityError as exc:
            self._logger.warning(f"Short code collision on insert: {link.short_code}")
            raise CodeTakenError(f"Short code '{link.short_code}' is already taken") from exc

    async def increment_clicks(self, short_code: str, delta: int) -> int:
        """Add ``delta`` to the stored counter with a relative UPDATE.

        Returns the number of rows touched (0 when the link is already gone).
        """
        async with self._session() as session:
            result = await session.execute(
                update(ShortLink)
                .where(ShortLink.short_code == short_code)
                .values(clicks=ShortLink.clicks + delta)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount

    async def hard_delete(self, link_id: uuid.UUID) -> int:
        async with self._session() as session:
            result = await session.execute(
                delete(ShortLink).where(ShortLink.id == link_id).execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount

    async def list_by_owner(self, owner_id: uuid.UUID, offset: int, limit: int) -> tuple[list[ShortLink], int]:
        conditions = (
            ShortLink.owner_id == owner_id,
            ShortLink.is_anonymous.is_(False),
            ShortLink.deleted_at.is_(None),
        )
        async with self._session() as session:
            total = await session.execute(select(func.count()).select_from(ShortLink).where(*conditions))
            result = await session.execute(
                select(ShortLink)
                .where(*conditions)
                .order_by(ShortLink.created_at.desc(), ShortLink.id)
                .offset(offset)
                .limit(limit)
            )
            return list(result.scalars().all()), int(total.scalar_one())

    async def top_by_clicks(self, limit: int, now: datetime.datetime) -> list[ShortLink]:
        async with self._session() as session:
            result = await session.execute(
                select(ShortLink)
                .where(
                    ShortLink.deleted_at.is_(None),
                    or_(ShortLink.expires_at.is_(None), ShortLink.expires_at > now),
                )
                .order_by(ShortLink.clicks.desc(), ShortLink.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
