"""FastAPI route definitions for the share-link REST API.

This module provides all HTTP endpoints with dependency injection, error
handling, and response serialization for the share-link service.

API Endpoint Overview
=====================
::
    GET  /health
        └─ HealthResponse (200)

    POST /share                      (bearer token)
        ├─ ShareLinkCreate (request body)
        └─ ShareLinkCreated (201) or 400/401/500

    POST /share/track                (bearer token)
        └─ {"ok": true}

    GET  /s/:shortId                 (public)
        └─ 302 Redirect, 404 "Link not found", 410 "Link expired", 500 "Internal"

    GET  /admin/shares/overview      (admin)
    GET  /admin/shares/top?limit=N   (admin, N <= 50)
    GET  /admin/shares/recent?limit=N (admin, N <= 100)

Request Flow Diagram
====================
::
    ┌─────────────┐
    │  HTTP       │
    │  Request    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Auth / admin│  Unauthorized (401) / Forbidden (403)
    │ capability  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Inject      │
    │ context     │
    │ (DB, Cache) │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Call Service│  ShareLinkError ─▶ {"ok": false, "error": ...}
    │ Layer       │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Serialize   │
    │ (camelCase) │
    └─────────────┘

Key Behaviours
===============
- All endpoints use async/await for non-blocking I/O.
- The redirect endpoint is unauthenticated and answers in plain text; it never
  exposes internal error detail.
- Admin endpoints clamp ``limit`` to their maximum instead of rejecting it.
- 302 redirects match what browsers and link unfurlers expect from share links.
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse, RedirectResponse, Response
from sqlalchemy import text

from sharelinks.admin_service import DEFAULT_RECENT_LIMIT, DEFAULT_TOP_LIMIT, AdminAnalyticsService
from sharelinks.auth import Principal, get_current_principal, require_admin
from sharelinks.dependencies import (
    RequestContext,
    get_admin_service,
    get_link_creation_service,
    get_redirect_service,
    get_request_context,
    get_tracking_service,
)
from sharelinks.enums import HealthStatus, RedirectStatus
from sharelinks.link_service import LinkCreationService, RedirectService, ShareTrackingService
from sharelinks.schemas import (
    ErrorResponse,
    HealthResponse,
    OkResponse,
    ShareLinkCreate,
    ShareLinkCreated,
    ShareLinkList,
    ShareOverview,
    ShareTrackRequest,
)

__all__ = ["router", "admin_router"]

router = APIRouter()
admin_router = APIRouter(
    prefix="/admin/shares",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(ctx: RequestContext = Depends(get_request_context)) -> HealthResponse:
    db_status = HealthStatus.HEALTHY
    cache_status = HealthStatus.HEALTHY

    try:
        await ctx.database.execute(text("SELECT 1"))
    except Exception as e:
        ctx.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    try:
        await ctx.cache_writer.ping()
    except Exception as e:
        ctx.logger.error(f"Cache health check failed: {e}")
        cache_status = HealthStatus.UNHEALTHY

    status = (
        HealthStatus.HEALTHY
        if db_status is HealthStatus.HEALTHY and cache_status is HealthStatus.HEALTHY
        else HealthStatus.UNHEALTHY
    )
    return HealthResponse(status=status, database=db_status, cache=cache_status)


@router.post(
    "/share",
    response_model=ShareLinkCreated,
    status_code=201,
    tags=["share"],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def create_share_link(
    payload: ShareLinkCreate,
    principal: Principal = Depends(get_current_principal),
    ctx: RequestContext = Depends(get_request_context),
    service: LinkCreationService = Depends(get_link_creation_service),
) -> ShareLinkCreated:
    ctx.add_tag("share_create")
    ctx.logger.info(
        f"Short link requested by {principal.user_id}: {payload.url}",
        extra={"operation": "create_share_link", "target_url": payload.url, "app_id": payload.app_id},
    )

    created = await service.create_link(payload, principal, ctx.base_url)

    ctx.logger.info(
        f"Short link created: {created.short_id}",
        extra={"operation": "create_share_link", "short_id": created.short_id, "duration_ms": ctx.get_duration()},
    )
    return created


@router.post("/share/track", response_model=OkResponse, tags=["share"])
async def track_share(
    payload: ShareTrackRequest,
    principal: Principal = Depends(get_current_principal),
    service: ShareTrackingService = Depends(get_tracking_service),
) -> OkResponse:
    await service.track(payload, principal)
    return OkResponse()


@router.get("/s/{short_id}", tags=["redirect"])
async def redirect_short_link(
    short_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: RedirectService = Depends(get_redirect_service),
) -> Response:
    ctx.add_tag("redirect")

    try:
        outcome = await service.resolve(short_id, referrer=ctx.referrer, user_agent=ctx.user_agent)
    except Exception as exc:
        ctx.logger.error(
            f"Redirect failed for {short_id}: {exc}",
            extra={"operation": "redirect", "short_id": short_id, "duration_ms": ctx.get_duration()},
        )
        return PlainTextResponse("Internal", status_code=500)

    if outcome.status is RedirectStatus.NOT_FOUND:
        ctx.logger.info(f"Redirect miss for {short_id} ({outcome.metric_label})")
        return PlainTextResponse("Link not found", status_code=404)
    if outcome.status is RedirectStatus.EXPIRED:
        ctx.logger.info(f"Redirect refused for expired link {short_id}")
        return PlainTextResponse("Link expired", status_code=410)

    ctx.logger.info(
        f"Redirect successful: {short_id} -> {outcome.location}",
        extra={"operation": "redirect", "short_id": short_id, "duration_ms": ctx.get_duration()},
    )
    return RedirectResponse(url=outcome.location, status_code=302)


@admin_router.get("/overview", response_model=ShareOverview)
async def share_overview(service: AdminAnalyticsService = Depends(get_admin_service)) -> ShareOverview:
    return await service.overview()


@admin_router.get("/top", response_model=ShareLinkList)
async def top_share_links(
    limit: int = Query(DEFAULT_TOP_LIMIT, ge=1),
    service: AdminAnalyticsService = Depends(get_admin_service),
) -> ShareLinkList:
    return await service.top_by_clicks(limit)


@admin_router.get("/recent", response_model=ShareLinkList)
async def recent_share_links(
    limit: int = Query(DEFAULT_RECENT_LIMIT, ge=1),
    service: AdminAnalyticsService = Depends(get_admin_service),
) -> ShareLinkList:
    return await service.most_recent(limit)
