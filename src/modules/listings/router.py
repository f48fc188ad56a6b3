"""API endpoints for Listings module."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth.dependencies import (
    AdminPrincipal,
    CurrentPrincipal,
    VendorPrincipal,
    require_roles,
)
from src.core.auth.models import Principal, UserRole
from src.core.database.session import get_db
from src.core.exceptions import AuthorizationError, NotFoundError
from src.core.realtime.events import ChangeType, publish_change
from src.modules.listings.models import CuisineType, DietaryType, ListingStatus
from src.modules.listings.priority import is_priority_active
from src.modules.listings.schemas import (
    ExpireListingsResponse,
    ListingCancelRequest,
    ListingCreate,
    ListingResponse,
    ListingUpdate,
    ListingView,
)
from src.modules.listings.service import ListingService
from src.modules.reservations.schemas import ReservationResponse
from src.modules.reservations.service import ReservationService
from src.shared.schemas.base import ApiResponse, PaginatedResponse
from src.shared.utils.time import utcnow

router = APIRouter(prefix="/listings", tags=["Listings"])

_ALLOWED_VIEWS = {
    UserRole.CONSUMER: {ListingView.CONSUMER},
    UserRole.CHARITABLE_ORGANISATION: {ListingView.CONSUMER, ListingView.ORGANISATION},
    UserRole.VENDOR: set(ListingView),
    UserRole.ADMIN: set(ListingView),
}

_DEFAULT_VIEWS = {
    UserRole.CONSUMER: ListingView.CONSUMER,
    UserRole.CHARITABLE_ORGANISATION: ListingView.ORGANISATION,
    UserRole.VENDOR: ListingView.VENDOR,
    UserRole.ADMIN: ListingView.ORGANISATION,
}


def _resolve_view(principal: Principal, requested: ListingView | None) -> ListingView:
    view = requested or _DEFAULT_VIEWS[principal.role]
    if view not in _ALLOWED_VIEWS[principal.role]:
        raise AuthorizationError(f"Role {principal.role.value} cannot use the {view.value} view")
    return view


async def _publish_listing(listing, change: ChangeType = ChangeType.UPDATE) -> None:
    record = ListingResponse.from_listing(listing, utcnow(), ListingView.ORGANISATION)
    await publish_change("listings", change, record.model_dump(mode="json"), listing.id)


@router.post(
    "",
    response_model=ApiResponse[ListingResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_listing(
    payload: ListingCreate,
    principal: VendorPrincipal,
    db: AsyncSession = Depends(get_db),
):
    service = ListingService(db)
    listing = await service.create_listing(principal.id, payload)
    await _publish_listing(listing, ChangeType.INSERT)
    return ApiResponse(
        success=True,
        data=ListingResponse.from_listing(listing, utcnow(), ListingView.VENDOR),
        message="Food listing created successfully!",
    )


@router.get("", response_model=ApiResponse[PaginatedResponse[ListingResponse]])
async def list_listings(
    principal: CurrentPrincipal,
    view: ListingView | None = Query(None, alias="role"),
    cuisine: list[CuisineType] | None = Query(None),
    dietary: list[DietaryType] | None = Query(None),
    search: str | None = Query(None, max_length=200),
    listing_status: ListingStatus | None = Query(None, alias="status"),
    vendor_id: int | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    view = _resolve_view(principal, view)
    if view == ListingView.VENDOR and not principal.is_admin:
        vendor_id = principal.id

    now = utcnow()
    service = ListingService(db)
    listings, total = await service.list_listings(
        view,
        now,
        vendor_id=vendor_id,
        status=listing_status,
        cuisines=cuisine,
        dietary=dietary,
        search=search,
        page=page,
        limit=limit,
    )
    return ApiResponse(
        success=True,
        data=PaginatedResponse.create(
            items=[ListingResponse.from_listing(l, now, view) for l in listings],
            total=total,
            page=page,
            limit=limit,
        ),
    )


@router.post("/expire", response_model=ApiResponse[ExpireListingsResponse])
async def expire_listings(
    principal: AdminPrincipal,
    db: AsyncSession = Depends(get_db),
):
    """Run the expiry sweep now (normally triggered by the scheduler)."""
    service = ListingService(db)
    expired = await service.expire_overdue()
    for listing in expired:
        await _publish_listing(listing)
    return ApiResponse(
        success=True,
        data=ExpireListingsResponse(
            count=len(expired), listing_ids=[l.id for l in expired]
        ),
    )


@router.get("/{listing_id}", response_model=ApiResponse[ListingResponse])
async def get_listing(
    listing_id: int,
    principal: CurrentPrincipal,
    db: AsyncSession = Depends(get_db),
):
    now = utcnow()
    service = ListingService(db)
    listing = await service.get_by_id(listing_id)

    view = _DEFAULT_VIEWS[principal.role]
    if view == ListingView.VENDOR and listing.vendor_id != principal.id:
        view = ListingView.CONSUMER
    if view == ListingView.CONSUMER and is_priority_active(listing, now):
        # Hidden from consumers until the charity window closes
        raise NotFoundError("Listing", listing_id)

    return ApiResponse(success=True, data=ListingResponse.from_listing(listing, now, view))


@router.patch("/{listing_id}", response_model=ApiResponse[ListingResponse])
async def update_listing(
    listing_id: int,
    payload: ListingUpdate,
    principal: VendorPrincipal,
    db: AsyncSession = Depends(get_db),
):
    """Edit cuisine, dietary info or best-before of an active listing (owner only)."""
    service = ListingService(db)
    listing = await service.update_listing(listing_id, principal.id, payload)
    await _publish_listing(listing)
    return ApiResponse(
        success=True,
        data=ListingResponse.from_listing(listing, utcnow(), ListingView.VENDOR),
        message="Listing updated successfully!",
    )


@router.post("/{listing_id}/cancel", response_model=ApiResponse[ListingResponse])
async def cancel_listing(
    listing_id: int,
    principal: VendorPrincipal,
    payload: ListingCancelRequest | None = None,
    db: AsyncSession = Depends(get_db),
):
    service = ListingService(db)
    listing, refunded = await service.cancel_listing(
        listing_id,
        vendor_id=principal.id,
        reason=payload.reason if payload else None,
    )
    await _publish_listing(listing)
    message = "Listing cancelled"
    if refunded:
        message = f"Listing cancelled, {len(refunded)} deposit(s) refunded"
    return ApiResponse(
        success=True,
        data=ListingResponse.from_listing(listing, utcnow(), ListingView.VENDOR),
        message=message,
    )


@router.get(
    "/{listing_id}/reservations",
    response_model=ApiResponse[list[ReservationResponse]],
)
async def list_listing_reservations(
    listing_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_roles(UserRole.VENDOR, UserRole.ADMIN)),
):
    listing = await ListingService(db).get_by_id(listing_id)
    if not principal.is_admin and listing.vendor_id != principal.id:
        raise AuthorizationError("Only the listing owner can view its reservations")

    reservations, _ = await ReservationService(db).list_reservations(
        listing_id=listing_id, limit=1000
    )
    return ApiResponse(
        success=True,
        data=[ReservationResponse.from_reservation(r) for r in reservations],
    )
