"""Models for Collections module."""

from datetime import date, datetime

from sqlalchemy import BigInteger, CheckConstraint, Date, DateTime, ForeignKey, Integer, func
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, BigIntPK


class Collection(Base):
    """Immutable record of a consumer walk-up pickup. Rows are never updated or deleted."""

    __tablename__ = "collections"
    __table_args__ = (
        CheckConstraint(
            "portions_collected >= 1 AND portions_collected <= 5",
            name="portions_range",
        ),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    consumer_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    listing_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("listings.id"), nullable=False, index=True
    )
    portions_collected: Mapped[int] = mapped_column(Integer, nullable=False)
    collected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )


class ConsumerDailyTotal(Base):
    """Portions a consumer has collected on one UTC day.

    Bumped by a conditional upsert in the scan transaction, so concurrent
    scans by the same consumer serialise on this row.
    """

    __tablename__ = "consumer_daily_totals"
    __table_args__ = (CheckConstraint("portions >= 0", name="portions_non_negative"),)

    consumer_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    day: Mapped[date] = mapped_column(Date, primary_key=True)
    portions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
