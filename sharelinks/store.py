"""Persistence boundary for share links.

``ShareLinkStore`` owns every SQL statement the service issues and translates
SQLAlchemy errors into domain errors, so the service layer never sees a
driver exception.

Click Recording
===============
::
    BEGIN
    UPDATE share_links
       SET total_clicks = total_clicks + 1, last_click_at = :now
     WHERE id = :link_id
    INSERT INTO share_link_counters (link_id, dimension, key, clicks)
         VALUES (:link_id, 'referrer', :referrer, 1)
    ON CONFLICT (link_id, dimension, key) DO UPDATE SET clicks = clicks + 1
    INSERT ... 'platform' ...  (same upsert)
    COMMIT

All three counters move in one transaction and every increment is computed by
the database, so concurrent redirects of the same link never lose updates and
the totals stay equal to the sum of each keyed map.
"""

import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sharelinks.enums import CounterDimension, Platform
from sharelinks.exceptions import PersistenceFailure, ShortIdConflict
from sharelinks.models import ShareLink, ShareLinkCounter
from sharelinks.schemas import CachedShareLink

__all__ = ["ShareLinkStore"]

_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class ShareLinkStore:
    """Durable storage of short links and their analytics counters."""

    def __init__(self, db: AsyncSession):
        self._db = db

    async def insert(
        self,
        *,
        short_id: str,
        original_url: str,
        app_id: str | None = None,
        created_by: str | None = None,
        expires_at: datetime.datetime | None = None,
        meta: dict[str, Any] | None = None,
    ) -> ShareLink:
        """Persist a new link with zeroed analytics.

        Raises:
            ShortIdConflict: ``short_id`` is already taken.
            PersistenceFailure: Any other storage error.
        """
        link = ShareLink(
            short_id=short_id,
            original_url=original_url,
            app_id=app_id,
            created_by=created_by,
            expires_at=expires_at,
            meta=meta or {},
            total_clicks=0,
            last_click_at=None,
            counters=[],
        )
        try:
            self._db.add(link)
            await self._db.commit()
        except IntegrityError as exc:
            await self._db.rollback()
            raise ShortIdConflict(f"Short identifier '{short_id}' already in use") from exc
        except SQLAlchemyError as exc:
            await self._db.rollback()
            raise PersistenceFailure("Create failed") from exc
        return link

    async def find_by_short_id(self, short_id: str) -> CachedShareLink | None:
        try:
            result = await self._db.execute(
                select(
                    ShareLink.id,
                    ShareLink.short_id,
                    ShareLink.original_url,
                    ShareLink.expires_at,
                ).where(ShareLink.short_id == short_id)
            )
            row = result.one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceFailure("Lookup failed") from exc
        if row is None:
            return None
        return CachedShareLink(**row._asdict())

    async def record_click(
        self,
        link_id: int,
        referrer: str,
        platform: Platform,
        clicked_at: datetime.datetime,
    ) -> bool:
        """Atomically count one click. Returns False if the link no longer exists."""
        insert = self._upsert_insert()
        try:
            result = await self._db.execute(
                update(ShareLink)
                .where(ShareLink.id == link_id)
                .values(
                    total_clicks=ShareLink.total_clicks + 1,
                    last_click_at=clicked_at,
                    updated_at=clicked_at,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self._db.rollback()
                return False

            for dimension, key in (
                (CounterDimension.REFERRER, referrer),
                (CounterDimension.PLATFORM, str(platform)),
            ):
                stmt = insert(ShareLinkCounter).values(
                    link_id=link_id,
                    dimension=str(dimension),
                    key=key,
                    clicks=1,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["link_id", "dimension", "key"],
                    set_={"clicks": ShareLinkCounter.clicks + 1},
                )
                await self._db.execute(stmt)

            await self._db.commit()
        except SQLAlchemyError as exc:
            await self._db.rollback()
            raise PersistenceFailure("Analytics write failed") from exc
        return True

    async def rollback(self) -> None:
        await self._db.rollback()

    async def overview(self) -> tuple[int, int]:
        """Return ``(link_count, click_sum)`` across all links."""
        try:
            result = await self._db.execute(
                select(
                    func.count(ShareLink.id),
                    func.coalesce(func.sum(ShareLink.total_clicks), 0),
                )
            )
            total_links, total_clicks = result.one()
        except SQLAlchemyError as exc:
            raise PersistenceFailure("Failed") from exc
        return int(total_links), int(total_clicks)

    async def top_by_clicks(self, limit: int) -> list[ShareLink]:
        return await self._list(
            select(ShareLink).order_by(ShareLink.total_clicks.desc(), ShareLink.id.desc()).limit(limit)
        )

    async def most_recent(self, limit: int) -> list[ShareLink]:
        return await self._list(
            select(ShareLink).order_by(ShareLink.created_at.desc(), ShareLink.id.desc()).limit(limit)
        )

    async def _list(self, stmt) -> list[ShareLink]:
        try:
            result = await self._db.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise PersistenceFailure("Failed") from exc

    def _upsert_insert(self):
        dialect = self._db.get_bind().dialect.name
        try:
            return _UPSERT_INSERTS[dialect]
        except KeyError:
            raise PersistenceFailure(f"Atomic counters are not supported on '{dialect}'") from None
