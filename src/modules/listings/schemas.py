"""Schemas for Listings module."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

from src.modules.listings.models import CuisineType, DietaryType, Listing, ListingStatus
from src.modules.listings.priority import is_priority_active, priority_seconds_remaining
from src.shared.utils.time import ensure_utc


class ListingView(StrEnum):
    """Audience a listing query is evaluated for."""

    CONSUMER = "consumer"
    ORGANISATION = "organisation"
    VENDOR = "vendor"


class ListingCreate(BaseModel):
    """Create listing request."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=2000)
    location: str = Field(..., min_length=1, max_length=300)
    cuisine: CuisineType
    dietary_info: list[DietaryType] = Field(default_factory=list)
    image_url: str | None = Field(None, max_length=500)
    total_portions: int = Field(..., gt=0, le=10_000)
    best_before: datetime
    priority_requested: bool = False

    @field_validator("title", "location")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class ListingUpdate(BaseModel):
    """Update listing request. An empty dietary list is stored as ["none"]."""

    cuisine: CuisineType | None = None
    dietary_info: list[DietaryType] | None = None
    best_before: datetime | None = None


class ListingResponse(BaseModel):
    """Listing response with derived, non-persisted fields."""

    id: int
    vendor_id: int
    title: str
    description: str | None
    location: str
    cuisine: CuisineType
    dietary_info: list[DietaryType]
    image_url: str | None
    total_portions: int
    remaining_portions: int
    reserved_portions: int
    available_portions: int
    status: ListingStatus
    best_before: datetime
    priority_until: datetime | None
    available_for_charity: bool
    priority_active: bool
    # Only surfaced to organisations
    priority_seconds_remaining: int | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @classmethod
    def from_listing(
        cls, listing: Listing, now: datetime, view: ListingView = ListingView.ORGANISATION
    ) -> "ListingResponse":
        countdown = None
        if view != ListingView.CONSUMER:
            countdown = priority_seconds_remaining(listing, now)
        return cls(
            id=listing.id,
            vendor_id=listing.vendor_id,
            title=listing.title,
            description=listing.description,
            location=listing.location,
            cuisine=CuisineType(listing.cuisine),
            dietary_info=[DietaryType(d) for d in listing.dietary_info or []],
            image_url=listing.image_url,
            total_portions=listing.total_portions,
            remaining_portions=listing.remaining_portions,
            reserved_portions=listing.reserved_portions,
            available_portions=listing.available_portions,
            status=ListingStatus(listing.status),
            best_before=ensure_utc(listing.best_before),
            priority_until=ensure_utc(listing.priority_until),
            available_for_charity=listing.available_for_charity,
            priority_active=is_priority_active(listing, now),
            priority_seconds_remaining=countdown,
            created_at=ensure_utc(listing.created_at),
            updated_at=ensure_utc(listing.updated_at),
        )


class ListingCancelRequest(BaseModel):
    """Cancel listing request."""

    reason: str | None = Field(None, max_length=500)


class ExpireListingsResponse(BaseModel):
    count: int
    listing_ids: list[int]
