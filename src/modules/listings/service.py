"""Service for Listings module (the listing state store)."""

import logging
from datetime import datetime

from sqlalchemy import String, case, cast, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.service import AuditAction, AuditService
from src.core.config import settings
from src.core.exceptions import (
    ActiveListingLimitError,
    AlreadyTerminalError,
    AuthorizationError,
    InsufficientPortionsError,
    NoActiveListingError,
    NotFoundError,
    ValidationError,
)
from src.modules.listings.models import (
    CuisineType,
    DietaryType,
    Listing,
    ListingStatus,
)
from src.modules.listings.priority import priority_deadline
from src.modules.listings.schemas import ListingCreate, ListingUpdate, ListingView
from src.modules.reservations.models import DepositStatus, Reservation
from src.shared.utils.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)

_STATUS_AUDIT_ACTIONS = {
    ListingStatus.CANCELLED: AuditAction.LISTING_CANCEL,
    ListingStatus.EXPIRED: AuditAction.LISTING_EXPIRE,
    ListingStatus.COMPLETED: AuditAction.LISTING_COMPLETE,
}


class ListingService:
    """Owns listing rows and every mutation of their portion counters."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def get_by_id(self, listing_id: int, for_update: bool = False) -> Listing:
        """Get listing by ID, always re-reading counters from the database."""
        query = (
            select(Listing)
            .where(Listing.id == listing_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        listing = result.scalar_one_or_none()
        if not listing:
            raise NotFoundError("Listing", listing_id)
        return listing

    async def count_active_for_vendor(self, vendor_id: int) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(Listing)
            .where(Listing.vendor_id == vendor_id, Listing.status == ListingStatus.ACTIVE.value)
        )
        return result.scalar_one()

    async def get_active_for_vendor(
        self,
        vendor_id: int,
        listing_id: int | None = None,
        now: datetime | None = None,
    ) -> Listing:
        """Resolve the vendor's current active listing (scan target).

        Listings past best_before count as gone even before the expiry sweep
        marks them expired.
        """
        now = ensure_utc(now) if now else utcnow()
        query = select(Listing).where(
            Listing.vendor_id == vendor_id,
            Listing.status == ListingStatus.ACTIVE.value,
            Listing.best_before > now,
        )
        if listing_id is not None:
            query = query.where(Listing.id == listing_id)
        result = await self.db.execute(query.execution_options(populate_existing=True))
        listings = list(result.scalars().all())
        if not listings:
            raise NoActiveListingError()
        if len(listings) > 1:
            raise ValidationError(
                "Vendor has several active listings; specify which one to collect from",
                field="listing_id",
            )
        return listings[0]

    async def create_listing(
        self,
        vendor_id: int,
        data: ListingCreate,
        now: datetime | None = None,
        commit: bool = True,
    ) -> Listing:
        """Create an active listing with remaining = total and nothing reserved."""
        now = ensure_utc(now) if now else utcnow()
        best_before = ensure_utc(data.best_before)
        if best_before <= now:
            raise ValidationError("Best before must be in the future", field="best_before")

        limit = settings.max_active_listings_per_vendor
        if await self.count_active_for_vendor(vendor_id) >= limit:
            raise ActiveListingLimitError(limit)

        dietary = [d.value for d in data.dietary_info] or [DietaryType.NONE.value]
        listing = Listing(
            vendor_id=vendor_id,
            title=data.title,
            description=data.description,
            location=data.location,
            cuisine=data.cuisine.value,
            dietary_info=dietary,
            image_url=data.image_url,
            total_portions=data.total_portions,
            remaining_portions=data.total_portions,
            reserved_portions=0,
            status=ListingStatus.ACTIVE.value,
            best_before=best_before,
            priority_until=priority_deadline(now) if data.priority_requested else None,
            available_for_charity=data.priority_requested,
            version=1,
        )
        self.db.add(listing)
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.LISTING_CREATE,
            entity_type="Listing",
            entity_id=listing.id,
            user_id=vendor_id,
            new_values={
                "total_portions": listing.total_portions,
                "best_before": best_before.isoformat(),
                "priority_until": listing.priority_until.isoformat()
                if listing.priority_until
                else None,
            },
        )
        logger.info(
            "Listing %s created by vendor %s with %s portions",
            listing.id,
            vendor_id,
            listing.total_portions,
        )

        if commit:
            await self.db.commit()
            return await self.get_by_id(listing.id)
        return listing

    async def update_listing(
        self,
        listing_id: int,
        vendor_id: int,
        data: ListingUpdate,
        now: datetime | None = None,
    ) -> Listing:
        """Owner edits cuisine, dietary info or best_before of an active listing."""
        now = ensure_utc(now) if now else utcnow()
        listing = await self.get_by_id(listing_id)
        if listing.vendor_id != vendor_id:
            raise AuthorizationError("Only the listing owner can edit it")

        old_values = {
            "cuisine": listing.cuisine,
            "dietary_info": list(listing.dietary_info or []),
            "best_before": ensure_utc(listing.best_before).isoformat(),
        }
        changes: dict = {}
        if data.cuisine is not None:
            changes["cuisine"] = data.cuisine.value
        if data.dietary_info is not None:
            changes["dietary_info"] = [d.value for d in data.dietary_info] or [
                DietaryType.NONE.value
            ]
        if data.best_before is not None:
            best_before = ensure_utc(data.best_before)
            if best_before <= now:
                raise ValidationError("Best before must be in the future", field="best_before")
            changes["best_before"] = best_before

        if not listing.is_active:
            raise AlreadyTerminalError(listing.status)
        if not changes:
            return listing

        result = await self.db.execute(
            update(Listing)
            .where(Listing.id == listing_id, Listing.status == ListingStatus.ACTIVE.value)
            .values(**changes, version=Listing.version + 1)
            .execution_options(synchronize_session=False)
        )
        listing = await self.get_by_id(listing_id)
        if result.rowcount == 0:
            raise AlreadyTerminalError(listing.status)

        new_values = {
            key: value.isoformat() if isinstance(value, datetime) else value
            for key, value in changes.items()
        }
        await self.audit.log(
            action=AuditAction.LISTING_UPDATE,
            entity_type="Listing",
            entity_id=listing_id,
            user_id=vendor_id,
            old_values={key: old_values[key] for key in changes},
            new_values=new_values,
        )
        await self.db.commit()
        logger.info("Listing %s updated by vendor %s: %s", listing_id, vendor_id, sorted(changes))
        return listing

    async def list_listings(
        self,
        view: ListingView,
        now: datetime | None = None,
        *,
        vendor_id: int | None = None,
        status: ListingStatus | None = None,
        cuisines: list[CuisineType] | None = None,
        dietary: list[DietaryType] | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 100,
    ) -> tuple[list[Listing], int]:
        """List listings as seen by `view`.

        Consumers never see listings inside their charity priority window;
        organisations see every active listing. The vendor view is the vendor's
        own history in any status.
        """
        now = ensure_utc(now) if now else utcnow()
        query = select(Listing).order_by(Listing.created_at.desc(), Listing.id.desc())

        if view == ListingView.VENDOR:
            if vendor_id is not None:
                query = query.where(Listing.vendor_id == vendor_id)
            if status is not None:
                query = query.where(Listing.status == status.value)
        else:
            query = query.where(
                Listing.status == ListingStatus.ACTIVE.value,
                Listing.best_before > now,
            )
            if view == ListingView.CONSUMER:
                query = query.where(
                    or_(Listing.priority_until.is_(None), Listing.priority_until <= now)
                )

        if cuisines:
            query = query.where(Listing.cuisine.in_([c.value for c in cuisines]))
        if dietary:
            # JSON list rendered as text, e.g. '["vegan", "halal"]'
            dietary_text = cast(Listing.dietary_info, String)
            query = query.where(or_(*[dietary_text.like(f'%"{d.value}"%') for d in dietary]))
        if search and search.strip():
            s = f"%{search.strip()}%"
            query = query.where(
                Listing.title.ilike(s) | Listing.description.ilike(s) | Listing.location.ilike(s)
            )

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar() or 0

        offset = (page - 1) * limit
        query = query.offset(offset).limit(limit)
        result = await self.db.execute(query)
        listings = list(result.scalars().all())

        return listings, total

    async def decrement_remaining(
        self,
        listing_id: int,
        portions: int,
        release_reserved: int = 0,
        user_id: int | None = None,
    ) -> Listing:
        """Take `portions` off remaining_portions in one conditional UPDATE.

        `release_reserved` portions of the reserved counter are released in the
        same statement (reservation pickup). The guard keeps
        reserved <= remaining, so walk-up collections can only take unreserved
        portions. The listing completes when remaining reaches zero.
        Runs in the caller's transaction; does not commit.
        """
        if portions <= 0:
            raise ValidationError("Portions must be greater than zero", field="portions")

        new_remaining = Listing.remaining_portions - portions
        result = await self.db.execute(
            update(Listing)
            .where(
                Listing.id == listing_id,
                Listing.status == ListingStatus.ACTIVE.value,
                Listing.reserved_portions >= release_reserved,
                new_remaining >= Listing.reserved_portions - release_reserved,
            )
            .values(
                remaining_portions=new_remaining,
                reserved_portions=Listing.reserved_portions - release_reserved,
                status=case(
                    (new_remaining == 0, ListingStatus.COMPLETED.value),
                    else_=Listing.status,
                ),
                version=Listing.version + 1,
            )
            .execution_options(synchronize_session=False)
        )

        listing = await self.get_by_id(listing_id)
        if result.rowcount == 0:
            if not listing.is_active:
                raise AlreadyTerminalError(listing.status)
            raise InsufficientPortionsError(listing_id, portions, listing.available_portions)

        if listing.status == ListingStatus.COMPLETED.value:
            await self.audit.log(
                action=AuditAction.LISTING_COMPLETE,
                entity_type="Listing",
                entity_id=listing.id,
                user_id=user_id,
                new_values={"status": listing.status},
            )
            logger.info("Listing %s fully collected", listing_id)
        return listing

    async def hold_portions(self, listing_id: int, portions: int, expected_version: int) -> bool:
        """Add `portions` to reserved_portions if the listing is unchanged since it was read.

        Returns False when another writer bumped the version in between.
        Runs in the caller's transaction; does not commit.
        """
        result = await self.db.execute(
            update(Listing)
            .where(
                Listing.id == listing_id,
                Listing.status == ListingStatus.ACTIVE.value,
                Listing.version == expected_version,
                Listing.reserved_portions + portions <= Listing.remaining_portions,
            )
            .values(
                reserved_portions=Listing.reserved_portions + portions,
                version=Listing.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_status(
        self,
        listing_id: int,
        status: ListingStatus,
        user_id: int | None = None,
        comment: str | None = None,
        commit: bool = True,
    ) -> Listing:
        """One-way transition from active into a terminal status."""
        status = ListingStatus(status)
        if not status.is_terminal:
            raise ValidationError("Listings can only move to a terminal status", field="status")

        result = await self.db.execute(
            update(Listing)
            .where(Listing.id == listing_id, Listing.status == ListingStatus.ACTIVE.value)
            .values(status=status.value, version=Listing.version + 1)
            .execution_options(synchronize_session=False)
        )
        listing = await self.get_by_id(listing_id)
        if result.rowcount == 0:
            raise AlreadyTerminalError(listing.status)

        await self.audit.log(
            action=_STATUS_AUDIT_ACTIONS[status],
            entity_type="Listing",
            entity_id=listing.id,
            user_id=user_id,
            old_values={"status": ListingStatus.ACTIVE.value},
            new_values={"status": listing.status},
            comment=comment,
        )

        if commit:
            await self.db.commit()
        return listing

    async def cancel_listing(
        self, listing_id: int, vendor_id: int, reason: str | None = None
    ) -> tuple[Listing, list[int]]:
        """Owner cancels a listing; open deposits are refunded.

        Returns the listing and the ids of refunded reservations.
        """
        listing = await self.get_by_id(listing_id)
        if listing.vendor_id != vendor_id:
            raise AuthorizationError("Only the listing owner can cancel it")

        listing = await self.mark_status(
            listing_id,
            ListingStatus.CANCELLED,
            user_id=vendor_id,
            comment=reason,
            commit=False,
        )
        refunded = await self._refund_open_deposits(listing_id, user_id=vendor_id)

        await self.db.commit()
        logger.info(
            "Listing %s cancelled by vendor %s, %d deposit(s) refunded",
            listing_id,
            vendor_id,
            len(refunded),
        )
        return listing, refunded

    async def expire_overdue(self, now: datetime | None = None) -> list[Listing]:
        """Move active listings whose best_before has passed to expired.

        Deposits of uncollected reservations are kept (no-show).
        """
        now = ensure_utc(now) if now else utcnow()
        result = await self.db.execute(
            select(Listing.id)
            .where(Listing.status == ListingStatus.ACTIVE.value, Listing.best_before < now)
            .order_by(Listing.id)
        )
        listing_ids = list(result.scalars().all())

        expired: list[Listing] = []
        for listing_id in listing_ids:
            try:
                listing = await self.mark_status(
                    listing_id,
                    ListingStatus.EXPIRED,
                    comment="best_before passed",
                    commit=False,
                )
            except AlreadyTerminalError:
                # Cancelled or fully collected since the select
                continue
            expired.append(listing)

        await self.db.commit()
        logger.info("Expiry sweep moved %d listing(s) to expired", len(expired))
        return expired

    # --- Helpers ---

    async def _refund_open_deposits(self, listing_id: int, user_id: int | None) -> list[int]:
        result = await self.db.execute(
            select(Reservation.id).where(
                Reservation.listing_id == listing_id,
                Reservation.collected.is_(False),
                Reservation.deposit_status == DepositStatus.PAID.value,
            )
        )
        reservation_ids = list(result.scalars().all())
        if not reservation_ids:
            return []

        await self.db.execute(
            update(Reservation)
            .where(Reservation.id.in_(reservation_ids))
            .values(deposit_status=DepositStatus.REFUNDED.value)
            .execution_options(synchronize_session=False)
        )
        for reservation_id in reservation_ids:
            await self.audit.log(
                action=AuditAction.RESERVATION_REFUND,
                entity_type="Reservation",
                entity_id=reservation_id,
                user_id=user_id,
                old_values={"deposit_status": DepositStatus.PAID.value},
                new_values={"deposit_status": DepositStatus.REFUNDED.value},
                comment=f"Listing {listing_id} cancelled",
            )
        return reservation_ids
