"""Service for Reservations module (the reservation manager)."""

import asyncio
import logging
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.service import AuditAction, AuditService
from src.core.config import settings
from src.core.exceptions import (
    AlreadyCollectedError,
    AlreadyTerminalError,
    ConflictError,
    DepositNotPaidError,
    DuplicateReservationError,
    ExceedsReservationCapError,
    NotFoundError,
    ReservationNotFoundError,
    ValidationError,
)
from src.modules.listings.models import ListingStatus
from src.modules.listings.service import ListingService
from src.modules.reservations.models import DepositStatus, Reservation
from src.shared.utils.money import round_money
from src.shared.utils.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)


def reservation_cap(available: int, ratio: Decimal | None = None) -> int:
    """Largest single reservation allowed: floor(available * ratio).

    >>> reservation_cap(100)
    85
    >>> reservation_cap(1)
    0
    """
    if available <= 0:
        return 0
    ratio = ratio if ratio is not None else settings.reservation_cap_ratio
    return int((Decimal(available) * ratio).to_integral_value(rounding=ROUND_FLOOR))


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after failed attempt number `attempt` (1-based)."""
    delay_ms = min(
        settings.conflict_backoff_base_ms * 2 ** (attempt - 1),
        settings.conflict_backoff_max_ms,
    )
    return delay_ms / 1000


class ReservationService:
    """Creates reservations against listings and marks them collected."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)
        self.listings = ListingService(db)

    async def get_by_id(self, reservation_id: int) -> Reservation:
        result = await self.db.execute(
            select(Reservation)
            .where(Reservation.id == reservation_id)
            .execution_options(populate_existing=True)
        )
        reservation = result.scalar_one_or_none()
        if not reservation:
            raise NotFoundError("Reservation", reservation_id)
        return reservation

    async def get_open_for(self, listing_id: int, organisation_id: int) -> Reservation | None:
        """Uncollected reservation of this organisation on this listing, if any."""
        result = await self.db.execute(
            select(Reservation).where(
                Reservation.listing_id == listing_id,
                Reservation.organisation_id == organisation_id,
                Reservation.collected.is_(False),
            )
        )
        return result.scalar_one_or_none()

    async def list_reservations(
        self,
        organisation_id: int | None = None,
        listing_id: int | None = None,
        collected: bool | None = None,
        page: int = 1,
        limit: int = 100,
    ) -> tuple[list[Reservation], int]:
        query = select(Reservation).order_by(Reservation.created_at.desc(), Reservation.id.desc())
        if organisation_id is not None:
            query = query.where(Reservation.organisation_id == organisation_id)
        if listing_id is not None:
            query = query.where(Reservation.listing_id == listing_id)
        if collected is not None:
            query = query.where(Reservation.collected.is_(collected))

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar() or 0

        offset = (page - 1) * limit
        result = await self.db.execute(query.offset(offset).limit(limit))
        return list(result.scalars().all()), total

    async def reserve(
        self,
        listing_id: int,
        organisation_id: int,
        portions: int,
        now: datetime | None = None,
    ) -> Reservation:
        """Hold `portions` on a listing for an organisation and take the deposit.

        The hold is an optimistic update on the listing version; on a lost race
        the listing is re-read and the cap re-evaluated, up to
        settings.conflict_max_attempts times.
        """
        if portions <= 0:
            raise ValidationError("Portions must be greater than zero", field="portions")
        now = ensure_utc(now) if now else utcnow()

        attempts = settings.conflict_max_attempts
        for attempt in range(1, attempts + 1):
            listing = await self.listings.get_by_id(listing_id, for_update=True)
            if not listing.is_active:
                raise AlreadyTerminalError(listing.status)
            if ensure_utc(listing.best_before) <= now:
                # Past best_before, not yet swept
                raise AlreadyTerminalError(ListingStatus.EXPIRED.value)
            if await self.get_open_for(listing_id, organisation_id):
                raise DuplicateReservationError(listing_id)

            available = listing.available_portions
            cap = reservation_cap(available)
            if portions > cap:
                raise ExceedsReservationCapError(portions, cap, available)

            if await self.listings.hold_portions(listing_id, portions, listing.version):
                break

            logger.warning(
                "Reservation hold on listing %s lost a race (attempt %d/%d)",
                listing_id,
                attempt,
                attempts,
            )
            if attempt < attempts:
                await asyncio.sleep(backoff_delay(attempt))
        else:
            raise ConflictError()

        reservation = Reservation(
            listing_id=listing_id,
            organisation_id=organisation_id,
            portions_reserved=portions,
            deposit_amount=self._charge_deposit(listing_id, organisation_id),
            deposit_status=DepositStatus.PAID.value,
            collected=False,
        )
        self.db.add(reservation)
        try:
            await self.db.flush()
        except IntegrityError:
            # Concurrent duplicate hit the open-reservation unique index
            await self.db.rollback()
            raise DuplicateReservationError(listing_id)

        await self.audit.log(
            action=AuditAction.RESERVATION_CREATE,
            entity_type="Reservation",
            entity_id=reservation.id,
            user_id=organisation_id,
            new_values={
                "listing_id": listing_id,
                "portions_reserved": portions,
                "deposit_amount": str(reservation.deposit_amount),
            },
        )
        await self.db.commit()
        logger.info(
            "Organisation %s reserved %s portion(s) of listing %s",
            organisation_id,
            portions,
            listing_id,
        )
        return await self.get_by_id(reservation.id)

    async def mark_collected(
        self,
        reservation_id: int,
        organisation_id: int,
        listing_id: int,
        now: datetime | None = None,
    ) -> Reservation:
        """Fulfil a reservation at pickup.

        Flips `collected` exactly once, then takes the reserved portions off the
        listing (remaining and reserved both drop). Runs in the caller's
        transaction; does not commit.
        """
        result = await self.db.execute(
            select(Reservation).where(
                Reservation.id == reservation_id,
                Reservation.organisation_id == organisation_id,
                Reservation.listing_id == listing_id,
            )
        )
        reservation = result.scalar_one_or_none()
        if not reservation:
            raise ReservationNotFoundError()
        if reservation.collected:
            raise AlreadyCollectedError()
        if reservation.deposit_status != DepositStatus.PAID.value:
            raise DepositNotPaidError()

        now = ensure_utc(now) if now else utcnow()
        result = await self.db.execute(
            update(Reservation)
            .where(
                Reservation.id == reservation_id,
                Reservation.collected.is_(False),
                Reservation.deposit_status == DepositStatus.PAID.value,
            )
            .values(collected=True, collected_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise AlreadyCollectedError()

        await self.listings.decrement_remaining(
            listing_id,
            reservation.portions_reserved,
            release_reserved=reservation.portions_reserved,
            user_id=organisation_id,
        )
        await self.audit.log(
            action=AuditAction.RESERVATION_COLLECT,
            entity_type="Reservation",
            entity_id=reservation_id,
            user_id=organisation_id,
            old_values={"collected": False},
            new_values={"collected": True, "collected_at": now.isoformat()},
        )
        return await self.get_by_id(reservation_id)

    # --- Helpers ---

    def _charge_deposit(self, listing_id: int, organisation_id: int) -> Decimal:
        # Flat deposit; payment capture is simulated as immediately successful
        amount = round_money(settings.deposit_amount)
        logger.info(
            "Deposit of %s charged to organisation %s for listing %s",
            amount,
            organisation_id,
            listing_id,
        )
        return amount
