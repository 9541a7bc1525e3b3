"""Dependency injection with a lifecycle-scoped service manager.

This module provides a centralized way to inject database and cache dependencies
with consistent naming across all API endpoints. Shared resources (settings,
logger, Redis clients, Kafka producer) live on the ``ServiceManager``, which is initialized in
the application lifespan and cleaned up on shutdown; the database session is
the only per-request resource.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

import redis.asyncio as redis
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from sharelinks.admin_service import AdminAnalyticsService
from sharelinks.config import Settings, get_settings
from sharelinks.database import get_db
from sharelinks.kafka import EventProducer
from sharelinks.link_service import LinkCreationService, RedirectService, ShareTrackingService


# ============================================================================
# SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Owner of shared resources for the lifetime of the application.

    One instance is created per application in the lifespan and stored on
    ``app.state.service_manager``.
    """

    _initialized: bool = False

    async def initialize(self) -> None:
        """Initialize shared resources once at startup."""
        if not self._initialized:
            self.settings = get_settings()
            self.logger = self._setup_logger()
            self.cache_writer = await self._setup_redis_writer()
            self.cache_reader = await self._setup_redis_reader()
            self.events = EventProducer(self.settings, self.logger)
            await self.events.start()
            self._initialized = True

    def _setup_logger(self) -> logging.Logger:
        logger = logging.getLogger("sharelinks")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.setLevel(self.settings.LOG_LEVEL)
        return logger

    async def _setup_redis_writer(self) -> redis.Redis:
        return redis.from_url(self.settings.REDIS_URL, encoding="utf-8", decode_responses=True)

    async def _setup_redis_reader(self) -> redis.Redis:
        # Replica for cache GETs on the redirect path; primary when unset.
        redis_url = self.settings.REDIS_REPLICA_URL or self.settings.REDIS_URL
        return redis.from_url(redis_url, encoding="utf-8", decode_responses=True)

    async def cleanup(self) -> None:
        """Cleanup shared resources at shutdown."""
        if hasattr(self, "events"):
            await self.events.stop()
        if hasattr(self, "cache_writer"):
            await self.cache_writer.aclose()
        if hasattr(self, "cache_reader"):
            await self.cache_reader.aclose()
        self._initialized = False


# ============================================================================
# REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request view of shared resources plus tracking information.

    Attributes:
        database: Async database session (only per-request resource)
        service_manager: Service manager with shared resources
        request_id: Unique identifier for this request
        trace_id: Correlation ID for distributed tracing
        user_agent: Client user agent string
        referrer: Raw Referer/Referrer header
        client_ip: Client IP address
        base_url: Scheme and host the request arrived on
        start_time: Request start timestamp
        tags: Request tags for categorization
    """

    database: AsyncSession
    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    trace_id: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    client_ip: Optional[str] = None
    base_url: str = ""
    start_time: float = field(default_factory=lambda: time.time())
    tags: list[str] = field(default_factory=list)

    @property
    def cache_writer(self) -> redis.Redis:
        return self.service_manager.cache_writer

    @property
    def cache_reader(self) -> redis.Redis:
        return self.service_manager.cache_reader

    @property
    def events(self) -> EventProducer:
        return self.service_manager.events

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Shared logger with request context attached to every record."""
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "trace_id": self.trace_id or self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
                "tags": ",".join(self.tags),
            },
        )

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager(request: Request) -> ServiceManager:
    manager: ServiceManager | None = getattr(request.app.state, "service_manager", None)
    if manager is None:
        manager = ServiceManager()
        request.app.state.service_manager = manager
    if not manager._initialized:
        await manager.initialize()
    return manager


async def get_request_context(
    request: Request,
    db: AsyncSession = Depends(get_db),
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    client_ip = request.client.host if request.client else None

    return RequestContext(
        database=db,
        service_manager=manager,
        trace_id=request.headers.get("x-trace-id"),
        user_agent=request.headers.get("user-agent"),
        referrer=request.headers.get("referer") or request.headers.get("referrer"),
        client_ip=client_ip,
        base_url=str(request.base_url),
    )


def get_link_creation_service(ctx: RequestContext = Depends(get_request_context)) -> LinkCreationService:
    return LinkCreationService.from_context(ctx)


def get_redirect_service(ctx: RequestContext = Depends(get_request_context)) -> RedirectService:
    return RedirectService.from_context(ctx)


def get_tracking_service(ctx: RequestContext = Depends(get_request_context)) -> ShareTrackingService:
    return ShareTrackingService.from_context(ctx)


def get_admin_service(ctx: RequestContext = Depends(get_request_context)) -> AdminAnalyticsService:
    return AdminAnalyticsService.from_context(ctx)
