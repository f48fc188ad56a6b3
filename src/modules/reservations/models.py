"""Reservation models: a charitable organisation's paid hold on portions."""

from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, BigIntPK


class DepositStatus(StrEnum):
    """Deposit status enumeration."""

    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class Reservation(Base):
    """Reservation created once the flat deposit is paid.

    Holds portions (listing.reserved_portions) but does not decrement
    listing.remaining_portions until it is collected. Never deleted.
    """

    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("portions_reserved > 0", name="portions_positive"),
        # At most one open (uncollected) reservation per organisation per listing
        Index(
            "uq_reservations_open_listing_org",
            "listing_id",
            "organisation_id",
            unique=True,
            postgresql_where=text("NOT collected"),
            sqlite_where=text("NOT collected"),
        ),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    listing_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("listings.id"), nullable=False, index=True
    )
    organisation_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    portions_reserved: Mapped[int] = mapped_column(Integer, nullable=False)

    deposit_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    deposit_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DepositStatus.PENDING.value
    )

    collected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    collected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
