"""Schemas for Collections module."""

from datetime import datetime

from pydantic import BaseModel, Field

from src.modules.collections.models import Collection
from src.modules.listings.schemas import ListingResponse
from src.modules.reservations.schemas import ReservationResponse
from src.shared.utils.time import ensure_utc


class ScanRequest(BaseModel):
    """QR scan submitted by a consumer or a charitable organisation.

    Consumers send `portions_to_collect`; organisations send `reservation_id`.
    `listing_id` picks the listing when the vendor has more than one active.
    """

    qr_code: str = Field(..., min_length=1, max_length=200)
    portions_to_collect: int | None = None
    reservation_id: int | None = None
    listing_id: int | None = None


class CollectionResponse(BaseModel):
    id: int
    consumer_id: int
    listing_id: int
    portions_collected: int
    collected_at: datetime

    model_config = {"from_attributes": True}

    @classmethod
    def from_collection(cls, collection: Collection) -> "CollectionResponse":
        return cls(
            id=collection.id,
            consumer_id=collection.consumer_id,
            listing_id=collection.listing_id,
            portions_collected=collection.portions_collected,
            collected_at=ensure_utc(collection.collected_at),
        )


class ScanResultResponse(BaseModel):
    """Outcome of a successful scan."""

    state: str
    listing: ListingResponse
    collection: CollectionResponse | None = None
    reservation: ReservationResponse | None = None
