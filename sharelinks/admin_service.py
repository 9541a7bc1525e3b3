"""Read-only share statistics for admins.

All methods are pure reads; limits are clamped rather than rejected, so
``?limit=500`` on the top list returns at most ``ADMIN_TOP_MAX_LIMIT`` links.
"""

from prometheus_client import Histogram

from sharelinks.schemas import ShareLinkList, ShareLinkOut, ShareOverview
from sharelinks.store import ShareLinkStore

__all__ = ["AdminAnalyticsService", "DEFAULT_TOP_LIMIT", "DEFAULT_RECENT_LIMIT"]

DEFAULT_TOP_LIMIT = 10
DEFAULT_RECENT_LIMIT = 20

ADMIN_QUERY_DURATION = Histogram(
    "sharelinks_admin_query_duration_seconds",
    "Time taken by admin share statistics queries",
    ["query"],
)


class AdminAnalyticsService:
    def __init__(self, ctx: "RequestContext"):
        self._store = ShareLinkStore(ctx.database)
        self._logger = ctx.logger
        self._settings = ctx.settings

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "AdminAnalyticsService":
        return cls(ctx)

    async def overview(self) -> ShareOverview:
        with ADMIN_QUERY_DURATION.labels(query="overview").time():
            total_links, total_clicks = await self._store.overview()
        return ShareOverview(total_short_links=total_links, total_clicks=total_clicks)

    async def top_by_clicks(self, limit: int = DEFAULT_TOP_LIMIT) -> ShareLinkList:
        limit = min(self._settings.ADMIN_TOP_MAX_LIMIT, limit)
        with ADMIN_QUERY_DURATION.labels(query="top").time():
            links = await self._store.top_by_clicks(limit)
        self._logger.debug(f"Top {limit} share links by clicks returned {len(links)} rows")
        return ShareLinkList(data=[ShareLinkOut.from_model(link) for link in links])

    async def most_recent(self, limit: int = DEFAULT_RECENT_LIMIT) -> ShareLinkList:
        limit = min(self._settings.ADMIN_RECENT_MAX_LIMIT, limit)
        with ADMIN_QUERY_DURATION.labels(query="recent").time():
            links = await self._store.most_recent(limit)
        return ShareLinkList(data=[ShareLinkOut.from_model(link) for link in links])
