"""Schemas for Reservations module."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from src.modules.reservations.models import DepositStatus, Reservation
from src.shared.utils.time import ensure_utc


class ReservationCreate(BaseModel):
    """Reserve portions for a charitable organisation."""

    listing_id: int
    portions: int = Field(..., gt=0)


class ReservationResponse(BaseModel):
    """Reservation response."""

    id: int
    listing_id: int
    organisation_id: int
    portions_reserved: int
    deposit_amount: Decimal
    deposit_status: DepositStatus
    collected: bool
    collected_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @classmethod
    def from_reservation(cls, reservation: Reservation) -> "ReservationResponse":
        return cls(
            id=reservation.id,
            listing_id=reservation.listing_id,
            organisation_id=reservation.organisation_id,
            portions_reserved=reservation.portions_reserved,
            deposit_amount=reservation.deposit_amount,
            deposit_status=DepositStatus(reservation.deposit_status),
            collected=reservation.collected,
            collected_at=ensure_utc(reservation.collected_at),
            created_at=ensure_utc(reservation.created_at),
            updated_at=ensure_utc(reservation.updated_at),
        )
