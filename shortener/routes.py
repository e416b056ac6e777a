"""FastAPI route definitions for the URL shortener REST API.

API Endpoint Overview
=====================
::
    GET    /health
        └─ HealthResponse (200)

    GET    /urls/:short_code
        └─ 307 Redirect or 404

    POST   /api/urls                    (anonymous)
        ├─ LinkCreate (request body)
        └─ LinkResponse (201) or 400/409

    GET    /api/stats/:short_code
        └─ LinkStatsResponse (200) or 404

    POST   /v1/api/urls                 (X-User-ID)
    GET    /v1/api/urls?page&per_page   (X-User-ID)
    GET    /v1/api/urls/:id             (X-User-ID)
    DELETE /v1/api/urls/:id             (X-User-ID)

Key Behaviours
===============
- Handlers only translate between HTTP and the service layer; service errors
  are rendered by the ``ShortenerError`` handler registered in ``main``.
- 307 redirects preserve the HTTP method.
"""

import uuid

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse

from shortener.dependencies import (
    RequestContext,
    get_current_user_id,
    get_request_context,
    get_url_service,
)
from shortener.enums import HealthStatus
from shortener.models import ShortLink
from shortener.schemas import (
    HealthResponse,
    LinkCreate,
    LinkListResponse,
    LinkResponse,
    LinkStatsResponse,
    MessageResponse,
    PaginationMeta,
)
from shortener.url_service import URLShorteningService

__all__ = ["router"]

router = APIRouter()


def _to_response(link: ShortLink, service: URLShorteningService) -> LinkResponse:
    return LinkResponse(
        id=link.id,
        owner_id=link.owner_id,
        long_url=link.long_url,
        short_code=link.short_code,
        short_url=service.short_url(link),
        clicks=link.clicks,
        is_anonymous=link.is_anonymous,
        expires_at=link.expires_at,
        created_at=link.created_at,
        updated_at=link.updated_at,
    )


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(ctx: RequestContext = Depends(get_request_context)) -> HealthResponse:
    db_status = HealthStatus.HEALTHY
    cache_status = HealthStatus.HEALTHY

    try:
        await ctx.services.store.ping()
    except Exception as e:
        ctx.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    try:
        await ctx.services.cache.ping()
    except Exception as e:
        ctx.logger.error(f"Cache health check failed: {e}")
        cache_status = HealthStatus.UNHEALTHY

    status = (
        HealthStatus.HEALTHY
        if db_status is HealthStatus.HEALTHY and cache_status is HealthStatus.HEALTHY
        else HealthStatus.UNHEALTHY
    )
    return HealthResponse(status=status, database=db_status, cache=cache_status)


@router.get("/urls/{short_code:path}", tags=["redirect"])
async def redirect_to_url(
    short_code: str,
    ctx: RequestContext = Depends(get_request_context),
    service: URLShorteningService = Depends(get_url_service),
) -> RedirectResponse:
    resolution = await service.resolve(short_code)
    ctx.logger.debug(
        f"Redirect {short_code} -> {resolution.long_url} "
        f"(cache={resolution.cache_status}, {ctx.get_duration():.1f}ms)"
    )
    return RedirectResponse(url=resolution.long_url, status_code=307)


@router.post("/api/urls", response_model=LinkResponse, status_code=201, tags=["urls"])
async def create_anonymous_url(
    payload: LinkCreate,
    service: URLShorteningService = Depends(get_url_service),
) -> LinkResponse:
    link = await service.create_anonymous_link(payload.long_url, payload.short_code, payload.expiry_hours)
    return _to_response(link, service)


@router.get("/api/stats/{short_code}", response_model=LinkStatsResponse, tags=["urls"])
async def get_stats(
    short_code: str,
    service: URLShorteningService = Depends(get_url_service),
) -> LinkStatsResponse:
    stats = await service.get_stats(short_code)
    return LinkStatsResponse(
        short_code=stats.short_code,
        total_clicks=stats.total_clicks,
        last_accessed_at=stats.last_accessed_at,
    )


@router.post("/v1/api/urls", response_model=LinkResponse, status_code=201, tags=["urls"])
async def create_url(
    payload: LinkCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: URLShorteningService = Depends(get_url_service),
) -> LinkResponse:
    link = await service.create_link(user_id, payload.long_url, payload.short_code)
    return _to_response(link, service)


@router.get("/v1/api/urls", response_model=LinkListResponse, tags=["urls"])
async def list_urls(
    page: int = Query(1),
    per_page: int | None = Query(None),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: URLShorteningService = Depends(get_url_service),
) -> LinkListResponse:
    result = await service.list_links_for_user(user_id, page, per_page)
    return LinkListResponse(
        data=[_to_response(link, service) for link in result.links],
        meta=PaginationMeta(
            page=result.page,
            per_page=result.per_page,
            total=result.total,
            total_pages=result.total_pages,
        ),
    )


@router.get("/v1/api/urls/{link_id}", response_model=LinkResponse, tags=["urls"])
async def get_url(
    link_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: URLShorteningService = Depends(get_url_service),
) -> LinkResponse:
    link = await service.get_link(user_id, link_id)
    return _to_response(link, service)


@router.delete("/v1/api/urls/{link_id}", response_model=MessageResponse, tags=["urls"])
async def delete_url(
    link_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: URLShorteningService = Depends(get_url_service),
) -> MessageResponse:
    await service.delete_link(user_id, link_id)
    return MessageResponse(message="URL deleted successfully")
