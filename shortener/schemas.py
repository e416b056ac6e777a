"""Pydantic schemas for request/response validation in the URL shortener.

Schema Hierarchy
=================
::
    LinkCreate (Input)
    ├─ long_url: str
    ├─ short_code: str | None (custom code, validated by the service)
    └─ expiry_hours: int | None (anonymous links only)

    LinkResponse (Output)
    ├─ id, owner_id, long_url, short_code, short_url
    ├─ clicks (stored + buffered)
    ├─ is_anonymous, expires_at
    └─ created_at, updated_at

    LinkListResponse (Output)
    ├─ data: list[LinkResponse]
    └─ meta: PaginationMeta

    LinkStatsResponse (Output)
    └─ short_code, total_clicks, last_accessed_at

    HealthResponse (Output)
    └─ status, database, cache

Key Behaviours
===============
- URL syntax and custom code rules are enforced by the service so that
  non-HTTP callers get the same errors.
- All datetime fields are timezone-aware when the backend supports it.
- Models are configured for ORM attribute mapping.
"""

import datetime
import uuid

from pydantic import BaseModel, Field

from shortener.enums import HealthStatus

__all__ = [
    "LinkCreate",
    "LinkResponse",
    "PaginationMeta",
    "LinkListResponse",
    "LinkStatsResponse",
    "HealthResponse",
    "MessageResponse",
]


class LinkCreate(BaseModel):
    long_url: str = Field(..., description="Target address, e.g. 'https://example.com/page'")
    short_code: str | None = Field(None, description="Optional custom code (6-20 chars, [A-Za-z0-9_-])")
    expiry_hours: int | None = Field(
        None,
        description="Lifetime of an anonymous link in hours; 168 when omitted or not positive.",
    )


class LinkResponse(BaseModel):
    id: uuid.UUID
    owner_id: uuid.UUID | None
    long_url: str
    short_code: str
    short_url: str
    clicks: int
    is_anonymous: bool
    expires_at: datetime.datetime | None
    created_at: datetime.datetime
    updated_at: datetime.datetime

    model_config = {"from_attributes": True}


class PaginationMeta(BaseModel):
    page: int
    per_page: int
    total: int
    total_pages: int


class LinkListResponse(BaseModel):
    data: list[LinkResponse]
    meta: PaginationMeta


class LinkStatsResponse(BaseModel):
    short_code: str
    total_clicks: int
    last_accessed_at: datetime.datetime


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus


class MessageResponse(BaseModel):
    message: str
