"""SQLAlchemy ORM models for the share-link service.

This module defines the database schema for short links and their click
analytics. The two keyed analytics maps (by referrer, by platform) are stored
as rows so that every counter can be bumped with a single atomic upsert.

Data Model Layout
=================
::
    share_links table
    ├─ id (SERIAL PRIMARY KEY)
    ├─ short_id (VARCHAR(16) UNIQUE, INDEXED)
    ├─ original_url (TEXT NOT NULL)
    ├─ app_id (VARCHAR(64) NULL)
    ├─ created_by (VARCHAR(64) NULL)
    ├─ expires_at (TIMESTAMPTZ NULL)
    ├─ meta (JSON NOT NULL DEFAULT {})
    ├─ total_clicks (INTEGER DEFAULT 0, INDEXED)
    ├─ last_click_at (TIMESTAMPTZ NULL)
    ├─ created_at (TIMESTAMPTZ, INDEXED)
    └─ updated_at (TIMESTAMPTZ)

    share_link_counters table
    ├─ id (SERIAL PRIMARY KEY)
    ├─ link_id (FK share_links.id)
    ├─ dimension ("referrer" | "platform")
    ├─ key (VARCHAR(2048))
    ├─ clicks (INTEGER DEFAULT 0)
    └─ UNIQUE (link_id, dimension, key)

Class Relationship Diagram
=========================
::
    ShareLink 1 ──── * ShareLinkCounter

How to Use
===========
**Step 1 — Import**::
    from sharelinks.models import ShareLink

**Step 2 — Create a new link**::
    link = ShareLink(short_id="Ab3_x9Qz", original_url="https://example.com")
    db.add(link)
    await db.commit()

**Step 3 — Read analytics**::
    link.clicks_by_referrer   # {"direct": 3, "https://twitter.com": 1}
    link.clicks_by_platform   # {"mobile": 2, "desktop": 2}

Key Behaviours
===============
- short_id is unique and indexed for the redirect hot path.
- Links are immutable after creation apart from analytics columns.
- total_clicks always equals the sum of each keyed map; the store updates all
  three in one transaction.
- Timestamps are set in Python (UTC) so that every dialect orders them with
  sub-second precision.

Classes:
    ShareLink:  A short link and its click totals.
    ShareLinkCounter:  One keyed analytics counter of a link.
"""

import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sharelinks.database import Base
from sharelinks.enums import CounterDimension

__all__ = ["ShareLink", "ShareLinkCounter", "utcnow"]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class ShareLink(Base):
    __tablename__ = "share_links"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    short_id: Mapped[str] = mapped_column(String(16), unique=True, index=True, nullable=False)
    original_url: Mapped[str] = mapped_column(Text, nullable=False)
    app_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    expires_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    meta: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    total_clicks: Mapped[int] = mapped_column(Integer, default=0, index=True, nullable=False)
    last_click_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, index=True, nullable=False
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    counters: Mapped[list["ShareLinkCounter"]] = relationship(
        back_populates="link", cascade="all, delete-orphan", lazy="selectin"
    )

    def _counter_map(self, dimension: CounterDimension) -> dict[str, int]:
        return {c.key: c.clicks for c in self.counters if c.dimension == dimension}

    @property
    def clicks_by_referrer(self) -> dict[str, int]:
        return self._counter_map(CounterDimension.REFERRER)

    @property
    def clicks_by_platform(self) -> dict[str, int]:
        return self._counter_map(CounterDimension.PLATFORM)

    def __repr__(self) -> str:
        return f"<ShareLink(id={self.id}, short_id='{self.short_id}', total_clicks={self.total_clicks})>"


class ShareLinkCounter(Base):
    __tablename__ = "share_link_counters"
    __table_args__ = (UniqueConstraint("link_id", "dimension", "key", name="uq_share_link_counter"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    link_id: Mapped[int] = mapped_column(ForeignKey("share_links.id", ondelete="CASCADE"), nullable=False)
    dimension: Mapped[str] = mapped_column(String(16), nullable=False)
    key: Mapped[str] = mapped_column(String(2048), nullable=False)
    clicks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    link: Mapped[ShareLink] = relationship(back_populates="counters")
