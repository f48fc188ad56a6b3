"""Service for Collections module: the QR scan processor.

A scan moves through SCAN_RECEIVED -> VENDOR_RESOLVED -> LISTING_RESOLVED ->
ROLE_DISPATCHED -> CONSUMER_PATH | ORG_PATH -> COMPLETED. Any failure ends in
FAILED with the transaction rolled back, so a failed scan leaves no trace.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.service import AuditAction, AuditService
from src.core.auth.models import Principal, UserRole
from src.core.config import settings
from src.core.exceptions import (
    AppException,
    DailyLimitExceededError,
    InvalidPortionCountError,
    PriorityWindowActiveError,
    UnsupportedRoleError,
    ValidationError,
)
from src.modules.collections.models import Collection, ConsumerDailyTotal
from src.modules.listings.models import Listing
from src.modules.listings.priority import is_priority_active
from src.modules.listings.service import ListingService
from src.modules.reservations.models import Reservation
from src.modules.reservations.service import ReservationService
from src.modules.vendors.service import VendorService
from src.shared.utils.time import ensure_utc, start_of_utc_day, utcnow

logger = logging.getLogger(__name__)


class ScanState(StrEnum):
    SCAN_RECEIVED = "scan_received"
    VENDOR_RESOLVED = "vendor_resolved"
    LISTING_RESOLVED = "listing_resolved"
    ROLE_DISPATCHED = "role_dispatched"
    CONSUMER_PATH = "consumer_path"
    ORG_PATH = "org_path"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ConsumerCollection:
    """Walk-up pickup of a number of unreserved portions."""

    portions: int


@dataclass(frozen=True)
class OrganisationCollection:
    """Pickup of a paid reservation."""

    reservation_id: int


ScanIntent = ConsumerCollection | OrganisationCollection


def resolve_scan_intent(
    principal: Principal,
    portions_to_collect: int | None = None,
    reservation_id: int | None = None,
) -> ScanIntent:
    """Validate the scan payload for the caller's role. No database access."""
    if principal.role == UserRole.CONSUMER:
        maximum = settings.max_portions_per_scan
        if portions_to_collect is None or not 1 <= portions_to_collect <= maximum:
            raise InvalidPortionCountError(1, maximum)
        return ConsumerCollection(portions=portions_to_collect)

    if principal.role == UserRole.CHARITABLE_ORGANISATION:
        if reservation_id is None:
            raise ValidationError(
                "Reservation ID is required for organisations", field="reservation_id"
            )
        return OrganisationCollection(reservation_id=reservation_id)

    raise UnsupportedRoleError(principal.role.value)


@dataclass
class ScanResult:
    state: ScanState
    listing: Listing
    collection: Collection | None = None
    reservation: Reservation | None = None
    trail: list[ScanState] = field(default_factory=list)


class CollectionService:
    """Turns a QR scan into exactly one collection or one reservation pickup."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)
        self.listings = ListingService(db)
        self.reservations = ReservationService(db)
        self.vendors = VendorService(db)

    async def process_scan(
        self,
        principal: Principal,
        qr_code: str,
        portions_to_collect: int | None = None,
        reservation_id: int | None = None,
        listing_id: int | None = None,
        now: datetime | None = None,
    ) -> ScanResult:
        now = ensure_utc(now) if now else utcnow()
        intent = resolve_scan_intent(principal, portions_to_collect, reservation_id)

        trail = [ScanState.SCAN_RECEIVED]
        try:
            vendor_id = await self.vendors.resolve_vendor(qr_code)
            trail.append(ScanState.VENDOR_RESOLVED)

            listing = await self.listings.get_active_for_vendor(vendor_id, listing_id, now)
            trail.append(ScanState.LISTING_RESOLVED)
            trail.append(ScanState.ROLE_DISPATCHED)

            if isinstance(intent, ConsumerCollection):
                trail.append(ScanState.CONSUMER_PATH)
                result = await self._collect_walk_up(principal.id, listing, intent.portions, now)
            else:
                trail.append(ScanState.ORG_PATH)
                result = await self._collect_reservation(
                    principal.id, listing, intent.reservation_id, now
                )

            await self.db.commit()
        except AppException as exc:
            await self.db.rollback()
            logger.info(
                "Scan by %s %s failed after %s: %s",
                principal.role.value,
                principal.id,
                trail[-1],
                exc.code,
            )
            raise
        except Exception:
            await self.db.rollback()
            logger.exception("Scan by %s %s failed after %s", principal.role.value, principal.id, trail[-1])
            raise

        trail.append(ScanState.COMPLETED)
        result.trail = trail
        return result

    async def portions_collected_since(self, consumer_id: int, since: datetime) -> int:
        result = await self.db.execute(
            select(func.coalesce(func.sum(Collection.portions_collected), 0)).where(
                Collection.consumer_id == consumer_id,
                Collection.collected_at >= since,
            )
        )
        return int(result.scalar_one())

    async def list_for_consumer(
        self, consumer_id: int, page: int = 1, limit: int = 100
    ) -> tuple[list[Collection], int]:
        query = (
            select(Collection)
            .where(Collection.consumer_id == consumer_id)
            .order_by(Collection.collected_at.desc(), Collection.id.desc())
        )
        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar() or 0

        offset = (page - 1) * limit
        result = await self.db.execute(query.offset(offset).limit(limit))
        return list(result.scalars().all()), total

    # --- Role paths ---

    async def _collect_walk_up(
        self, consumer_id: int, listing: Listing, portions: int, now: datetime
    ) -> ScanResult:
        if is_priority_active(listing, now):
            raise PriorityWindowActiveError()

        await self._take_daily_allowance(consumer_id, portions, now)

        listing = await self.listings.decrement_remaining(listing.id, portions, user_id=consumer_id)

        collection = Collection(
            consumer_id=consumer_id,
            listing_id=listing.id,
            portions_collected=portions,
            collected_at=now,
        )
        self.db.add(collection)
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.COLLECTION_CREATE,
            entity_type="Collection",
            entity_id=collection.id,
            user_id=consumer_id,
            new_values={"listing_id": listing.id, "portions_collected": portions},
        )
        logger.info(
            "Consumer %s collected %s portion(s) from listing %s",
            consumer_id,
            portions,
            listing.id,
        )
        return ScanResult(state=ScanState.COMPLETED, listing=listing, collection=collection)

    async def _take_daily_allowance(self, consumer_id: int, portions: int, now: datetime) -> None:
        """Add `portions` to the consumer's total for the UTC day of `now`.

        One upsert that only updates while the new total stays within the
        daily limit. The row lock it takes holds a concurrent scan by the same
        consumer until this transaction ends.
        """
        limit = settings.consumer_daily_portion_limit
        day = start_of_utc_day(now).date()
        if portions <= limit:
            insert = pg_insert if self.db.bind.dialect.name == "postgresql" else sqlite_insert
            stmt = insert(ConsumerDailyTotal).values(
                consumer_id=consumer_id, day=day, portions=portions
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["consumer_id", "day"],
                set_={"portions": ConsumerDailyTotal.portions + portions},
                where=ConsumerDailyTotal.portions + portions <= limit,
            )
            result = await self.db.execute(stmt)
            if result.rowcount == 1:
                return

        collected_today = await self.portions_collected_since(consumer_id, start_of_utc_day(now))
        raise DailyLimitExceededError(limit, collected_today)

    async def _collect_reservation(
        self, organisation_id: int, listing: Listing, reservation_id: int, now: datetime
    ) -> ScanResult:
        reservation = await self.reservations.mark_collected(
            reservation_id, organisation_id, listing.id, now
        )
        listing = await self.listings.get_by_id(listing.id)
        logger.info(
            "Organisation %s collected reservation %s from listing %s",
            organisation_id,
            reservation_id,
            listing.id,
        )
        return ScanResult(state=ScanState.COMPLETED, listing=listing, reservation=reservation)
