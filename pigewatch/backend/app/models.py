# app/models.py
from __future__ import annotations

import enum
import json
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# -----------------------------
# Core enums
# -----------------------------
class ListingSource(str, enum.Enum):
    aggregator = "aggregator"
    classifieds = "classifieds"
    manual = "manual"


class VendorType(str, enum.Enum):
    particulier = "particulier"
    professionnel = "professionnel"
    inconnu = "inconnu"


class ListingType(str, enum.Enum):
    apartment = "APARTMENT"
    house = "HOUSE"
    studio = "STUDIO"
    loft = "LOFT"
    penthouse = "PENTHOUSE"
    townhouse = "TOWNHOUSE"
    other = "OTHER"


class JobRunStatus(str, enum.Enum):
    running = "running"
    success = "success"
    failed = "failed"


# -----------------------------
# Models
# -----------------------------
class Listing(Base):
    __tablename__ = "listings"
    __table_args__ = (
        UniqueConstraint("url", name="uq_listing_url"),
        UniqueConstraint("source", "external_id", name="uq_listing_source_ext"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    source: Mapped[ListingSource] = mapped_column(Enum(ListingSource), index=True)
    external_id: Mapped[str | None] = mapped_column(String(120), nullable=True)
    url: Mapped[str] = mapped_column(String(1024))

    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    price: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    surface: Mapped[float | None] = mapped_column(Float, nullable=True)
    rooms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bedrooms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    city: Mapped[str] = mapped_column(String(120), default="", index=True)
    postal_code: Mapped[str | None] = mapped_column(String(10), nullable=True, index=True)
    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lon: Mapped[float | None] = mapped_column(Float, nullable=True)

    # platform the aggregator picked the ad up from (leboncoin, seloger, ...)
    origin: Mapped[str | None] = mapped_column(String(80), nullable=True)
    publisher: Mapped[str | None] = mapped_column(String(255), nullable=True)
    vendor_type: Mapped[VendorType] = mapped_column(Enum(VendorType), default=VendorType.inconnu, index=True)

    listing_type: Mapped[ListingType] = mapped_column(Enum(ListingType), default=ListingType.other)
    transaction_type: Mapped[str | None] = mapped_column(String(20), nullable=True)  # sale|rental
    property_state: Mapped[str | None] = mapped_column(String(80), nullable=True)

    # JSON list of image urls
    images_json: Mapped[str] = mapped_column(Text, default="[]")

    published_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    is_new: Mapped[bool] = mapped_column(Boolean, default=True)
    last_scraped_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    @property
    def images(self) -> list[str]:
        try:
            data = json.loads(self.images_json or "[]")
        except ValueError:
            return []
        return [str(x) for x in data] if isinstance(data, list) else []


class Location(Base):
    """A located address hypothesis for a listing."""

    __tablename__ = "locations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    listing_id: Mapped[int] = mapped_column(ForeignKey("listings.id", ondelete="CASCADE"), index=True)

    address: Mapped[str] = mapped_column(String(255))
    lat: Mapped[float] = mapped_column(Float)
    lon: Mapped[float] = mapped_column(Float)
    confidence: Mapped[float] = mapped_column(Float, default=0.0)
    source: Mapped[str] = mapped_column(String(50), default="manual")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class SavedSearch(Base):
    __tablename__ = "saved_searches"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_search_user_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(80), index=True)
    name: Mapped[str] = mapped_column(String(120))

    # serialized PigeFilters
    filters_json: Mapped[str] = mapped_column(Text, default="{}")
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Tag(Base):
    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("name", name="uq_tag_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(60))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class ListingTag(Base):
    __tablename__ = "listing_tags"
    __table_args__ = (UniqueConstraint("listing_id", "tag_id", name="uq_listing_tag"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    listing_id: Mapped[int] = mapped_column(ForeignKey("listings.id", ondelete="CASCADE"), index=True)
    tag_id: Mapped[int] = mapped_column(ForeignKey("tags.id", ondelete="CASCADE"), index=True)


class UserScan(Base):
    """
    Per-user, per-hour scan counter used by the throttle guard.
    `hour` is the wall-clock hour truncated to :00.
    """

    __tablename__ = "user_scans"
    __table_args__ = (UniqueConstraint("user_id", "hour", name="uq_user_scan_hour"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(80), index=True)
    hour: Mapped[datetime] = mapped_column(DateTime, index=True)
    count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class JobRun(Base):
    """
    Tracks job executions (sync, clean, ...).
    """

    __tablename__ = "job_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_name: Mapped[str] = mapped_column(String(80), index=True)

    status: Mapped[JobRunStatus] = mapped_column(Enum(JobRunStatus), default=JobRunStatus.running, index=True)

    started_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # store error message
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # {"new": ..., "duplicates": ...}
    summary_json: Mapped[str | None] = mapped_column(Text, nullable=True)
