"""Share Link Service Layer - Core Business Logic

This module provides the service layer for creating short links, resolving them
on the public redirect path, and recording click analytics.

Architecture Overview
==================
::
    ┌─────────────────────────────────────────────────────────────┐
    │                    Service Layer                            │
    │  ┌───────────────────┐ ┌───────────────────┐ ┌────────────┐ │
    │  │ LinkCreation      │ │ Redirect          │ │ ShareTrack │ │
    │  │ Service           │ │ Service           │ │ Service    │ │
    │  │ • Validate URL    │ │ • Cache lookup    │ │ • Log      │ │
    │  │ • Generate id     │ │ • Expiry check    │ │ • Publish  │ │
    │  │ • Retry conflicts │ │ • Atomic counters │ │            │ │
    │  └───────────────────┘ └───────────────────┘ └────────────┘ │
    └─────────────────────────────────────────────────────────────┘
                │                    │                    │
                ▼                    ▼                    ▼
    ┌─────────────────┐  ┌─────────────────┐  ┌─────────────────┐
    │ ShareLinkStore  │  │     Redis       │  │     Kafka       │
    │ (SQL database)  │  │ (lookup cache)  │  │ (event stream)  │
    └─────────────────┘  └─────────────────┘  └─────────────────┘

Link Creation Flow
------------------
::
    ┌─────────────┐
    │ POST /share │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Validate URL │──── empty / not http(s) ──▶ InvalidInput (400)
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Generate id  │◀────────────┐
    └──────┬──────┘             │ ShortIdConflict
           ▼                    │ (attempt < max)
    ┌─────────────┐             │
    │ INSERT link  │─────────────┘
    └──────┬──────┘
           ▼                 all attempts collided ──▶ IdentifierSpaceExhausted
    ┌─────────────┐
    │ Cache link   │ (best effort)
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ 201 shortUrl │
    └─────────────┘

Redirect Flow
-------------
::
    ┌──────────────┐
    │ GET /s/:id   │
    └──────┬───────┘
           ▼
    ┌──────────────┐   miss   ┌──────────────┐
    │ Redis cache  │────────▶│ DB lookup    │ (stampede lock)
    └──────┬───────┘          └──────┬───────┘
           ▼                         ▼
           └──────────┬──────────────┘
                      ▼
           none ─▶ 404 │ expired ─▶ 410 (no analytics)
                      ▼
    ┌──────────────────────────┐
    │ UPDATE total_clicks + 1  │  one transaction,
    │ UPSERT referrer  +1      │  failures logged and
    │ UPSERT platform  +1      │  never block the redirect
    └──────────┬───────────────┘
               ▼
    ┌──────────────┐
    │ Click event  │ Kafka, Redis stream fallback
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ 302 Redirect │
    └──────────────┘

Usage Examples
=============
```python
@router.get("/s/{short_id}")
async def redirect(short_id: str, service: RedirectService = Depends(get_redirect_service)):
    outcome = await service.resolve(short_id, referrer=..., user_agent=...)
```
"""

import asyncio
import datetime
import logging
import math
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

import redis.asyncio as redis
import validators
from prometheus_client import Counter, Histogram
from pydantic import BaseModel, ValidationError

from sharelinks.auth import Principal
from sharelinks.config import Settings
from sharelinks.enums import CacheStatus, Platform, RedirectStatus, RequestStatus
from sharelinks.exceptions import IdentifierSpaceExhausted, InvalidInput, ShareLinkError, ShortIdConflict
from sharelinks.identifiers import generate_short_id, is_well_formed
from sharelinks.kafka import EventProducer
from sharelinks.models import utcnow
from sharelinks.schemas import (
    CachedShareLink,
    ClickEvent,
    ShareLinkCreate,
    ShareLinkCreated,
    ShareTrackRequest,
    TrackEvent,
)
from sharelinks.store import ShareLinkStore

__all__ = [
    "DIRECT_REFERRER",
    "MAX_REFERRER_KEY_BYTES",
    "RedirectOutcome",
    "LinkCreationService",
    "RedirectService",
    "ShareTrackingService",
    "classify_referrer",
]


# ============================================================================
# CONSTANTS
# ============================================================================

DIRECT_REFERRER = "direct"
MAX_REFERRER_KEY_BYTES = 2048
ALLOWED_URL_SCHEMES = {"http", "https"}


# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

SHARE_CREATION_REQUESTS_TOTAL = Counter(
    "sharelinks_creation_requests_total",
    "Total short link creation requests",
    ["status"],
)
SHARE_CREATION_DURATION = Histogram(
    "sharelinks_creation_duration_seconds",
    "Time taken to create short links",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)
SHORT_ID_COLLISIONS_TOTAL = Counter(
    "sharelinks_short_id_collisions_total",
    "Generated short identifiers rejected by the unique index",
)
SHARE_REDIRECT_REQUESTS_TOTAL = Counter(
    "sharelinks_redirect_requests_total",
    "Total redirect resolutions by outcome",
    ["outcome"],
)
SHARE_LOOKUP_DURATION = Histogram(
    "sharelinks_lookup_duration_seconds",
    "Time taken to resolve a short identifier",
    ["cache_hit"],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 1.0],
)
ANALYTICS_WRITE_FAILURES_TOTAL = Counter(
    "sharelinks_analytics_write_failures_total",
    "Click analytics writes that failed after a successful lookup",
    ["reason"],
)
CACHE_HITS_TOTAL = Counter(
    "sharelinks_cache_hits_total",
    "Total cache hits for short link lookups",
)
CACHE_MISSES_TOTAL = Counter(
    "sharelinks_cache_misses_total",
    "Total cache misses for short link lookups",
)
EVENTS_PUBLISHED_TOTAL = Counter(
    "sharelinks_events_published_total",
    "Share events published to Kafka",
    ["topic"],
)
EVENTS_FALLBACK_TOTAL = Counter(
    "sharelinks_events_fallback_total",
    "Share events written to the Redis stream because Kafka was unavailable",
)


# ============================================================================
# HELPERS
# ============================================================================


@dataclass(frozen=True)
class RedirectOutcome:
    """Result of resolving a short identifier.

    ``reason`` distinguishes causes that share a caller-visible status, e.g. a
    lookup timeout is reported as NOT_FOUND with ``reason="lookup_timeout"``.
    """

    status: RedirectStatus
    location: str | None = None
    reason: str | None = None

    @property
    def metric_label(self) -> str:
        return self.reason or self.status.value


def classify_referrer(raw: str | None) -> str:
    """Map a raw Referer header to its counter key.

    Keys are capped at ``MAX_REFERRER_KEY_BYTES`` of UTF-8 so they fit the
    counter index; a multi-byte character is never split.
    """
    if not raw:
        return DIRECT_REFERRER
    encoded = raw.encode("utf-8")
    if len(encoded) <= MAX_REFERRER_KEY_BYTES:
        return raw
    return encoded[:MAX_REFERRER_KEY_BYTES].decode("utf-8", errors="ignore")


def _validate_url(url: str | None) -> str:
    if url is None or not url.strip():
        raise InvalidInput("url required")
    url = url.strip()
    if urlsplit(url).scheme.lower() not in ALLOWED_URL_SCHEMES or not validators.url(url):
        raise InvalidInput("url must be an absolute http(s) URL")
    return url


def _expires_at(expires_in_days: float | None, now: datetime.datetime) -> datetime.datetime | None:
    # 0 and null both mean "never expires".
    if not expires_in_days:
        return None
    if not math.isfinite(expires_in_days):
        raise InvalidInput("expiresInDays is out of range")
    try:
        return now + datetime.timedelta(days=expires_in_days)
    except (OverflowError, ValueError) as exc:
        raise InvalidInput("expiresInDays is out of range") from exc


# ============================================================================
# SERVICES
# ============================================================================


class _LinkCacheMixin:
    """Redis read/write helpers shared by the services.

    Every cache failure is logged and treated as a miss; the database stays
    the source of truth.
    """

    _cache_read: redis.Redis
    _cache_write: redis.Redis
    _logger: logging.LoggerAdapter
    _settings: Settings

    @staticmethod
    def _cache_key(short_id: str) -> str:
        return f"share:{short_id}"

    async def _lookup_from_cache(self, short_id: str) -> Optional[CachedShareLink]:
        try:
            cached_data = await self._cache_read.get(self._cache_key(short_id))
        except redis.RedisError as exc:
            self._logger.warning(f"Cache read failed for {short_id}: {exc}")
            return None

        if cached_data:
            try:
                return CachedShareLink.model_validate_json(cached_data)
            except ValidationError as exc:
                self._logger.error(f"Cache deserialization error for {short_id}: {exc}")
        return None

    async def _cache_link(self, link: CachedShareLink) -> None:
        try:
            await self._cache_write.setex(
                self._cache_key(link.short_id),
                self._settings.LINK_CACHE_TTL_SECONDS,
                link.model_dump_json(),
            )
        except redis.RedisError as exc:
            self._logger.warning(f"Cache write failed for {link.short_id}: {exc}")


class _EventPublisherMixin:
    """Best-effort event publishing: Kafka first, then the Redis stream."""

    _events: EventProducer
    _cache_write: redis.Redis
    _logger: logging.LoggerAdapter
    _settings: Settings

    async def _publish_with_fallback(
        self,
        topic: str,
        publish: Callable[[BaseModel], Awaitable[bool]],
        event: BaseModel,
    ) -> None:
        try:
            if await publish(event):
                EVENTS_PUBLISHED_TOTAL.labels(topic=topic).inc()
                return
        except Exception as exc:
            self._logger.error(f"Kafka publish error on {topic}: {exc}")

        EVENTS_FALLBACK_TOTAL.inc()
        try:
            await self._cache_write.xadd(
                self._settings.CLICK_STREAM_KEY,
                {"topic": topic, "payload": event.model_dump_json()},
            )
        except redis.RedisError as exc:
            self._logger.error(f"Redis stream fallback failed on {topic}: {exc}")


class LinkCreationService(_LinkCacheMixin):
    """Creates short links.

    Example:
        >>> service = LinkCreationService.from_context(ctx)
        >>> created = await service.create_link(ShareLinkCreate(url="https://example.com"), principal, base_url)
        >>> created.short_url
        'https://nexora.app/s/Ab3_x9Qz'
    """

    def __init__(self, ctx: "RequestContext"):
        self._store = ShareLinkStore(ctx.database)
        self._cache_write = ctx.cache_writer
        self._cache_read = ctx.cache_reader
        self._logger = ctx.logger
        self._settings = ctx.settings

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "LinkCreationService":
        return cls(ctx)

    async def create_link(
        self,
        request: ShareLinkCreate,
        principal: Principal | None,
        base_url: str,
    ) -> ShareLinkCreated:
        """Validate, allocate an identifier and persist a new link.

        The identifier is regenerated on a unique-index conflict, up to
        ``SHORT_ID_MAX_ATTEMPTS`` inserts.

        Args:
            request: Creation payload.
            principal: Authenticated creator, recorded as ``created_by``.
            base_url: Request base URL, used when ``BASE_URL`` is not configured.

        Raises:
            InvalidInput: Missing or non-http(s) URL, or an out-of-range expiry.
            IdentifierSpaceExhausted: Every attempt collided.
            PersistenceFailure: The store rejected the write.
        """
        start_time = time.perf_counter()

        try:
            original_url = _validate_url(request.url)
            expires_at = _expires_at(request.expires_in_days, utcnow())

            link = None
            for attempt in range(1, self._settings.SHORT_ID_MAX_ATTEMPTS + 1):
                short_id = generate_short_id(self._settings.SHORT_ID_LENGTH)
                try:
                    link = await self._store.insert(
                        short_id=short_id,
                        original_url=original_url,
                        app_id=request.app_id,
                        created_by=principal.user_id if principal else None,
                        expires_at=expires_at,
                        meta=request.meta,
                    )
                    break
                except ShortIdConflict:
                    SHORT_ID_COLLISIONS_TOTAL.inc()
                    self._logger.warning(f"Short id collision on attempt {attempt}: {short_id}")

            if link is None:
                raise IdentifierSpaceExhausted(
                    f"No free short identifier after {self._settings.SHORT_ID_MAX_ATTEMPTS} attempts"
                )

            await self._cache_link(CachedShareLink.model_validate(link))

            duration = time.perf_counter() - start_time
            SHARE_CREATION_DURATION.observe(duration)
            SHARE_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
            self._logger.info(f"Short link created: {link.short_id} in {duration:.3f}s")

            base = (self._settings.BASE_URL or base_url).rstrip("/")
            return ShareLinkCreated(short_url=f"{base}/s/{link.short_id}", id=link.id, short_id=link.short_id)

        except InvalidInput as exc:
            SHARE_CREATION_DURATION.observe(time.perf_counter() - start_time)
            SHARE_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.VALIDATION_ERROR).inc()
            self._logger.warning(f"Short link creation rejected: {exc}")
            raise

        except ShareLinkError as exc:
            SHARE_CREATION_DURATION.observe(time.perf_counter() - start_time)
            SHARE_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR).inc()
            self._logger.error(f"Short link creation failed: {exc}")
            raise


class RedirectService(_LinkCacheMixin, _EventPublisherMixin):
    """Resolves short identifiers on the public, unauthenticated hot path.

    Lookups are cache-first and bounded by ``LOOKUP_TIMEOUT_SECONDS``.
    Analytics are recorded with database-side increments; a failed write is
    logged and counted but the caller is still redirected.
    """

    def __init__(self, ctx: "RequestContext"):
        self._store = ShareLinkStore(ctx.database)
        self._events = ctx.events
        self._cache_write = ctx.cache_writer
        self._cache_read = ctx.cache_reader
        self._logger = ctx.logger
        self._settings = ctx.settings

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "RedirectService":
        return cls(ctx)

    async def resolve(
        self,
        short_id: str,
        referrer: str | None = None,
        user_agent: str | None = None,
    ) -> RedirectOutcome:
        """Resolve ``short_id`` and record a click when it redirects.

        Raises:
            PersistenceFailure: The lookup itself failed (not a timeout).
        """
        outcome = await self._resolve(short_id, referrer, user_agent)
        SHARE_REDIRECT_REQUESTS_TOTAL.labels(outcome=outcome.metric_label).inc()
        return outcome

    async def _resolve(self, short_id: str, referrer: str | None, user_agent: str | None) -> RedirectOutcome:
        if not is_well_formed(short_id):
            return RedirectOutcome(RedirectStatus.NOT_FOUND, reason="malformed")

        try:
            link = await asyncio.wait_for(self.lookup(short_id), timeout=self._settings.LOOKUP_TIMEOUT_SECONDS)
        except TimeoutError:
            self._logger.warning(
                f"Lookup timed out for {short_id}",
                extra={"operation": "redirect", "short_id": short_id, "error": "lookup_timeout"},
            )
            return RedirectOutcome(RedirectStatus.NOT_FOUND, reason="lookup_timeout")

        if link is None:
            return RedirectOutcome(RedirectStatus.NOT_FOUND)

        now = utcnow()
        if link.is_expired(now):
            return RedirectOutcome(RedirectStatus.EXPIRED)

        referrer_key = classify_referrer(referrer)
        platform = Platform.from_user_agent(user_agent)
        await self._record_click(link, referrer_key, platform, now)

        return RedirectOutcome(RedirectStatus.REDIRECT, location=link.original_url)

    async def lookup(self, short_id: str) -> Optional[CachedShareLink]:
        """Cache-first lookup with stampede protection on a miss."""
        start_time = time.perf_counter()

        cached = await self._lookup_from_cache(short_id)
        if cached:
            CACHE_HITS_TOTAL.inc()
            SHARE_LOOKUP_DURATION.labels(cache_hit=CacheStatus.HIT).observe(time.perf_counter() - start_time)
            return cached

        CACHE_MISSES_TOTAL.inc()
        lock_acquired = await self._acquire_lock(short_id)
        if lock_acquired is False:
            for _ in range(self._settings.CACHE_LOCK_RETRY_COUNT):
                await asyncio.sleep(self._settings.CACHE_LOCK_RETRY_DELAY_SECONDS)
                cached = await self._lookup_from_cache(short_id)
                if cached:
                    return cached

        try:
            link = await self._store.find_by_short_id(short_id)
            if link:
                await self._cache_link(link)
        finally:
            if lock_acquired:
                await self._release_lock(short_id)

        SHARE_LOOKUP_DURATION.labels(cache_hit=CacheStatus.MISS).observe(time.perf_counter() - start_time)
        return link

    async def _record_click(
        self,
        link: CachedShareLink,
        referrer_key: str,
        platform: Platform,
        clicked_at: datetime.datetime,
    ) -> None:
        try:
            recorded = await asyncio.wait_for(
                self._store.record_click(link.id, referrer_key, platform, clicked_at),
                timeout=self._settings.ANALYTICS_WRITE_TIMEOUT_SECONDS,
            )
        except Exception as exc:
            reason = "timeout" if isinstance(exc, TimeoutError) else type(exc).__name__
            ANALYTICS_WRITE_FAILURES_TOTAL.labels(reason=reason).inc()
            self._logger.error(
                f"Analytics write failed for {link.short_id}: {reason}: {exc}",
                extra={"operation": "record_click", "short_id": link.short_id, "error": reason},
            )
            await self._rollback_quietly(link.short_id)
            return

        if not recorded:
            self._logger.warning(f"Link {link.short_id} vanished before its click was recorded")
            return

        await self._publish_with_fallback(
            self._settings.KAFKA_CLICK_TOPIC,
            self._events.publish_click,
            ClickEvent(short_id=link.short_id, referrer=referrer_key, platform=platform, clicked_at=clicked_at),
        )

    async def _rollback_quietly(self, short_id: str) -> None:
        try:
            await self._store.rollback()
        except Exception as exc:
            self._logger.error(f"Rollback after failed analytics write for {short_id} failed: {exc}")

    async def _acquire_lock(self, short_id: str) -> bool | None:
        """Take the per-identifier fill lock; None when the cache is unreachable."""
        try:
            locked = await self._cache_write.set(
                f"lock:share:{short_id}",
                "1",
                ex=self._settings.CACHE_LOCK_TTL_SECONDS,
                nx=True,
            )
        except redis.RedisError as exc:
            self._logger.warning(f"Cache lock unavailable for {short_id}: {exc}")
            return None
        return bool(locked)

    async def _release_lock(self, short_id: str) -> None:
        try:
            await self._cache_write.delete(f"lock:share:{short_id}")
        except redis.RedisError as exc:
            self._logger.warning(f"Cache lock release failed for {short_id}: {exc}")


class ShareTrackingService(_EventPublisherMixin):
    """Accepts client-reported share actions and forwards them as events."""

    def __init__(self, ctx: "RequestContext"):
        self._events = ctx.events
        self._cache_write = ctx.cache_writer
        self._logger = ctx.logger
        self._settings = ctx.settings

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "ShareTrackingService":
        return cls(ctx)

    async def track(self, request: ShareTrackRequest, principal: Principal) -> None:
        self._logger.info(f"track share user={principal.user_id} app={request.app_id} kind={request.kind}")
        event = TrackEvent(user_id=principal.user_id, app_id=request.app_id, kind=request.kind, tracked_at=utcnow())
        await self._publish_with_fallback(self._settings.KAFKA_TRACK_TOPIC, self._events.publish_track, event)
