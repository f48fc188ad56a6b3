"""Listing models: the single source of truth for portion counts."""

from datetime import datetime
from enum import StrEnum

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import BaseModel


class ListingStatus(StrEnum):
    """Listing status enumeration."""

    ACTIVE = "active"
    EXPIRED = "expired"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not ListingStatus.ACTIVE


class CuisineType(StrEnum):
    CHINESE = "chinese"
    MALAY = "malay"
    INDIAN = "indian"
    WESTERN = "western"
    JAPANESE = "japanese"
    KOREAN = "korean"
    THAI = "thai"
    VIETNAMESE = "vietnamese"
    ITALIAN = "italian"
    MEXICAN = "mexican"
    OTHER = "other"


class DietaryType(StrEnum):
    VEGETARIAN = "vegetarian"
    VEGAN = "vegan"
    HALAL = "halal"
    KOSHER = "kosher"
    GLUTEN_FREE = "gluten_free"
    DAIRY_FREE = "dairy_free"
    NUT_FREE = "nut_free"
    NONE = "none"


class Listing(BaseModel):
    """A vendor's surplus-food offer with a fixed number of portions.

    remaining_portions is decremented only by pickups; reserved_portions is the
    maintained sum of open charity holds and is never recomputed on read.
    """

    __tablename__ = "listings"
    __table_args__ = (
        CheckConstraint("total_portions > 0", name="total_positive"),
        CheckConstraint(
            "remaining_portions >= 0 AND remaining_portions <= total_portions",
            name="remaining_bounds",
        ),
        CheckConstraint(
            "reserved_portions >= 0 AND reserved_portions <= remaining_portions",
            name="reserved_bounds",
        ),
        # Expiry sweep
        Index("ix_listings_status_best_before", "status", "best_before"),
    )

    vendor_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[str] = mapped_column(String(300), nullable=False)
    cuisine: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    dietary_info: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    total_portions: Mapped[int] = mapped_column(Integer, nullable=False)
    remaining_portions: Mapped[int] = mapped_column(Integer, nullable=False)
    reserved_portions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ListingStatus.ACTIVE.value, index=True
    )
    best_before: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    priority_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    available_for_charity: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Bumped by every counter/status UPDATE; reservation holds are conditional on it
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    @property
    def available_portions(self) -> int:
        """Portions neither collected nor held by a reservation."""
        return self.remaining_portions - self.reserved_portions

    @property
    def is_active(self) -> bool:
        return self.status == ListingStatus.ACTIVE.value
