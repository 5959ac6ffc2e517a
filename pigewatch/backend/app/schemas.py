from pydantic import BaseModel, Field
from datetime import datetime
from typing import Literal

from .service_layer.use_cases.piges import PigeFilters

ProviderName = Literal["aggregator", "classifieds"]


class ListingOut(BaseModel):
    id: int
    source: str
    external_id: str | None = None
    url: str

    title: str
    description: str | None = None
    price: int | None = None
    surface: float | None = None
    rooms: int | None = None
    bedrooms: int | None = None

    city: str
    postal_code: str | None = None
    lat: float | None = None
    lon: float | None = None

    origin: str | None = None
    publisher: str | None = None
    vendor_type: str
    listing_type: str
    transaction_type: str | None = None
    property_state: str | None = None

    images: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    published_at: datetime | None = None
    is_new: bool
    created_at: datetime


class ListingPage(BaseModel):
    items: list[ListingOut]
    total: int
    page: int
    limit: int
    pages: int


class NormalizedListingOut(BaseModel):
    external_id: str
    title: str
    url: str
    provider: str
    price: int | None = None
    surface: float | None = None
    rooms: int | None = None
    bedrooms: int | None = None
    city: str
    postal_code: str
    published_at: datetime | None = None
    description: str | None = None
    images: list[str]
    origin: str | None = None
    publisher: str | None = None
    transaction_type: str | None = None
    state: str | None = None
    is_pro: bool


class PigeFetchRequest(BaseModel):
    filters: PigeFilters
    persist: bool = False


class PigeFetchMeta(BaseModel):
    total: int
    pages: int
    has_more: bool
    partial: bool = False
    errors: list[str] = Field(default_factory=list)
    created: int | None = None
    duplicates: int | None = None


class PigeFetchResponse(BaseModel):
    status: Literal["ok"] = "ok"
    data: list[NormalizedListingOut]
    meta: PigeFetchMeta


class ScanOut(BaseModel):
    hour: datetime
    count: int
    created_at: datetime


class LocationIn(BaseModel):
    address: str = Field(..., min_length=1, max_length=255)
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    confidence: float = Field(0.0, ge=0, le=1)
    source: str = Field("manual", max_length=50)


class LocationOut(BaseModel):
    id: int
    listing_id: int
    address: str
    lat: float
    lon: float
    confidence: float
    source: str
    created_at: datetime


class TagIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=60)


class TagOut(BaseModel):
    id: int
    name: str


class SavedSearchIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    filters: PigeFilters


class SavedSearchOut(BaseModel):
    id: int
    name: str
    filters: PigeFilters
    last_run_at: datetime | None = None
    created_at: datetime


class SyncRequest(BaseModel):
    provider: ProviderName = "aggregator"
    postal_codes: list[str] = Field(default_factory=list)
    city: str | None = None
    price_min: int | None = Field(default=None, ge=0)
    price_max: int | None = Field(default=None, ge=0)
    surface_min: int | None = Field(default=None, ge=0)
    surface_max: int | None = Field(default=None, ge=0)
    rooms: int | None = Field(default=None, ge=0)
    property_kind: Literal["appartement", "maison", "studio", "loft", "penthouse"] | None = None
    limit: int | None = Field(default=None, ge=1, le=5000)
    update_existing: bool = False


class SyncStatsOut(BaseModel):
    average_price: float
    average_surface: float
    new_cities: list[str]


class SyncOut(BaseModel):
    job_run_id: int
    new: int = Field(..., ge=0)
    duplicates: int = Field(..., ge=0)
    updated: int = Field(..., ge=0)
    errors: int = Field(..., ge=0)
    total_processed: int = Field(..., ge=0)
    stats: SyncStatsOut


class CleanOut(BaseModel):
    job_run_id: int
    deleted_listings: int
    deleted_scan_counters: int
