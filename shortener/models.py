"""SQLAlchemy ORM models for the URL shortener service.

Data Model Layout
=================
::
    short_links table
    ├─ id (UUID PRIMARY KEY)
    ├─ owner_id (UUID NULL, INDEXED)        -- NULL for anonymous links
    ├─ long_url (TEXT NOT NULL)
    ├─ short_code (VARCHAR(20) UNIQUE, INDEXED)
    ├─ clicks (BIGINT DEFAULT 0)            -- durable part of the click total
    ├─ is_anonymous (BOOLEAN, INDEXED)
    ├─ expires_at (TIMESTAMPTZ NULL)        -- NULL means permanent
    ├─ created_at (TIMESTAMPTZ)
    ├─ updated_at (TIMESTAMPTZ, ON UPDATE)  -- bumped by every click flush
    └─ deleted_at (TIMESTAMPTZ NULL)        -- never set, links are hard-deleted

How to Use
===========
**Step 1 — Create a link**::
    link = ShortLink(short_code="abc123", long_url="https://example.com")
    session.add(link)
    await session.commit()

**Step 2 — Check expiry**::
    if link.is_expired(utcnow()):
        ...

Key Behaviours
===============
- short_code is unique and indexed for fast lookups during redirects.
- clicks lags the real total by at most one flush batch; the unflushed part
  lives in Redis under ``clicks:<short_code>``.
- Naive timestamps (SQLite) are interpreted as UTC.

Classes:
    ShortLink:  A short code mapped to a long URL with click tracking.
"""

import datetime
import uuid

from sqlalchemy import BigInteger, Boolean, DateTime, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from shortener.database import Base

__all__ = ["ShortLink", "utcnow"]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _as_utc(value: datetime.datetime) -> datetime.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


class ShortLink(Base):
    __tablename__ = "short_links"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True, nullable=True)
    long_url: Mapped[str] = mapped_column(Text, nullable=False)
    short_code: Mapped[str] = mapped_column(String(20), unique=True, index=True, nullable=False)
    clicks: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    is_anonymous: Mapped[bool] = mapped_column(Boolean, default=False, index=True, nullable=False)
    expires_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )
    deleted_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), index=True, nullable=True)

    def is_expired(self, now: datetime.datetime) -> bool:
        if self.expires_at is None:
            return False
        return _as_utc(now) >= _as_utc(self.expires_at)

    def cache_ttl_seconds(self, now: datetime.datetime, default: int) -> int:
        """Seconds the ``url:<code>`` mapping may live in Redis.

        Permanent links get ``default``; expiring links never outlive their
        ``expires_at``.
        """
        if self.expires_at is None:
            return default
        remaining = (_as_utc(self.expires_at) - _as_utc(now)).total_seconds()
        return max(1, int(remaining))

    def __repr__(self) -> str:
        return f"<ShortLink(id={self.id}, short_code='{self.short_code}', clicks={self.clicks})>"
