"""Pydantic schemas for request/response validation in the share-link service.

This module defines Pydantic models for API input validation and output serialization.
The public wire format is camelCase (``shortId``, ``expiresInDays``); Python code
uses snake_case field names and the models translate through an alias generator.

Schema Hierarchy
=================
::
    ShareLinkCreate (Input)
    ├─ url: str | None (checked by LinkCreationService)
    ├─ appId: str | None
    ├─ expiresInDays: float | None (default 30, 0/null = never)
    └─ meta: dict | None (opaque)

    ShareLinkCreated (Output)
    ├─ ok, shortUrl, id, shortId

    ShareLinkOut (Output, admin)
    ├─ id, shortId, originalUrl, appId, createdBy, expiresAt, meta
    ├─ analytics: ShareAnalytics
    │   ├─ clicks, byReferrer, byPlatform, lastClickAt
    └─ createdAt, updatedAt

    CachedShareLink (Redis payload / lookup result)
    └─ id, short_id, original_url, expires_at

How to Use
===========
**Step 1 — Input validation**::
    @router.post("/share")
    async def create_share(payload: ShareLinkCreate):
        ...

**Step 2 — Response serialization**::
    return ShareLinkList(data=[ShareLinkOut.from_model(link) for link in links])

Key Behaviours
===============
- Requests accept both camelCase aliases and snake_case field names.
- Naive datetimes read back from SQLite are interpreted as UTC.
- ``meta`` is passed through untouched; no schema is imposed on it.
"""

import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from sharelinks.config import get_settings
from sharelinks.enums import HealthStatus, Platform
from sharelinks.models import ShareLink

__all__ = [
    "ShareLinkCreate",
    "ShareLinkCreated",
    "ShareTrackRequest",
    "ShareAnalytics",
    "ShareLinkOut",
    "ShareOverview",
    "ShareLinkList",
    "OkResponse",
    "ErrorResponse",
    "HealthResponse",
    "ClickEvent",
    "TrackEvent",
    "CachedShareLink",
]


def _as_utc(value: datetime.datetime | None) -> datetime.datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=datetime.UTC)
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ShareLinkCreate(CamelModel):
    url: str | None = None
    app_id: str | None = None
    expires_in_days: float | None = Field(default_factory=lambda: get_settings().DEFAULT_EXPIRES_IN_DAYS)
    meta: dict[str, Any] | None = None


class ShareLinkCreated(CamelModel):
    ok: bool = True
    short_url: str
    id: int
    short_id: str


class ShareTrackRequest(CamelModel):
    app_id: str | None = None
    kind: str | None = None


class ShareAnalytics(CamelModel):
    clicks: int = 0
    by_referrer: dict[str, int] = Field(default_factory=dict)
    by_platform: dict[str, int] = Field(default_factory=dict)
    last_click_at: datetime.datetime | None = None


class ShareLinkOut(CamelModel):
    id: int
    short_id: str
    original_url: str
    app_id: str | None = None
    created_by: str | None = None
    expires_at: datetime.datetime | None = None
    meta: dict[str, Any] = Field(default_factory=dict)
    analytics: ShareAnalytics
    created_at: datetime.datetime
    updated_at: datetime.datetime

    @field_validator("expires_at", "created_at", "updated_at")
    @classmethod
    def ensure_utc(cls, v: datetime.datetime | None) -> datetime.datetime | None:
        return _as_utc(v)

    @classmethod
    def from_model(cls, link: ShareLink) -> "ShareLinkOut":
        return cls(
            id=link.id,
            short_id=link.short_id,
            original_url=link.original_url,
            app_id=link.app_id,
            created_by=link.created_by,
            expires_at=link.expires_at,
            meta=link.meta or {},
            analytics=ShareAnalytics(
                clicks=link.total_clicks,
                by_referrer=link.clicks_by_referrer,
                by_platform=link.clicks_by_platform,
                last_click_at=_as_utc(link.last_click_at),
            ),
            created_at=link.created_at,
            updated_at=link.updated_at,
        )


class ShareOverview(CamelModel):
    ok: bool = True
    total_short_links: int
    total_clicks: int


class ShareLinkList(CamelModel):
    ok: bool = True
    data: list[ShareLinkOut]


class OkResponse(BaseModel):
    ok: bool = True


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus


class ClickEvent(BaseModel):
    """Kafka click event payload, keyed by short_id for partition affinity."""

    short_id: str = Field(..., description="Short identifier being clicked, e.g. 'Ab3_x9Qz'")
    referrer: str = Field(..., description="Referrer key, 'direct' when no header was sent")
    platform: Platform
    clicked_at: datetime.datetime


class TrackEvent(BaseModel):
    """Client-reported share action (copy link, native share sheet, ...)."""

    user_id: str | None = None
    app_id: str | None = None
    kind: str | None = None
    tracked_at: datetime.datetime


class CachedShareLink(BaseModel):
    """Redis cache payload for a short link; also the result of a lookup."""

    id: int
    short_id: str
    original_url: str
    expires_at: datetime.datetime | None = None

    model_config = {"from_attributes": True}

    @field_validator("expires_at")
    @classmethod
    def ensure_utc(cls, v: datetime.datetime | None) -> datetime.datetime | None:
        return _as_utc(v)

    def is_expired(self, now: datetime.datetime) -> bool:
        return self.expires_at is not None and now > self.expires_at
