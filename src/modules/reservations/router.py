"""API endpoints for Reservations module."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth.dependencies import OrganisationPrincipal, require_roles
from src.core.auth.models import Principal, UserRole
from src.core.database.session import get_db
from src.core.exceptions import ReservationNotFoundError
from src.core.realtime.events import ChangeType, publish_change
from src.modules.listings.schemas import ListingResponse, ListingView
from src.modules.reservations.schemas import ReservationCreate, ReservationResponse
from src.modules.reservations.service import ReservationService
from src.shared.schemas.base import ApiResponse, PaginatedResponse
from src.shared.utils.time import utcnow
from src.shared.utils.timeouts import with_request_timeout

router = APIRouter(prefix="/reservations", tags=["Reservations"])


@router.post(
    "",
    response_model=ApiResponse[ReservationResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_reservation(
    payload: ReservationCreate,
    principal: OrganisationPrincipal,
    db: AsyncSession = Depends(get_db),
):
    service = ReservationService(db)
    reservation = await with_request_timeout(
        service.reserve(payload.listing_id, principal.id, payload.portions)
    )
    data = ReservationResponse.from_reservation(reservation)

    listing = await service.listings.get_by_id(reservation.listing_id)
    await publish_change(
        "reservations", ChangeType.INSERT, data.model_dump(mode="json"), listing.id
    )
    await publish_change(
        "listings",
        ChangeType.UPDATE,
        ListingResponse.from_listing(listing, utcnow(), ListingView.ORGANISATION).model_dump(
            mode="json"
        ),
        listing.id,
    )
    return ApiResponse(
        success=True,
        data=data,
        message="Reservation successful! Deposit paid.",
    )


@router.get("", response_model=ApiResponse[PaginatedResponse[ReservationResponse]])
async def list_reservations(
    listing_id: int | None = Query(None),
    collected: bool | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(
        require_roles(UserRole.CHARITABLE_ORGANISATION, UserRole.ADMIN)
    ),
):
    service = ReservationService(db)
    reservations, total = await service.list_reservations(
        organisation_id=None if principal.is_admin else principal.id,
        listing_id=listing_id,
        collected=collected,
        page=page,
        limit=limit,
    )
    return ApiResponse(
        success=True,
        data=PaginatedResponse.create(
            items=[ReservationResponse.from_reservation(r) for r in reservations],
            total=total,
            page=page,
            limit=limit,
        ),
    )


@router.get("/{reservation_id}", response_model=ApiResponse[ReservationResponse])
async def get_reservation(
    reservation_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(
        require_roles(UserRole.CHARITABLE_ORGANISATION, UserRole.ADMIN)
    ),
):
    service = ReservationService(db)
    reservation = await service.get_by_id(reservation_id)
    if not principal.is_admin and reservation.organisation_id != principal.id:
        raise ReservationNotFoundError()
    return ApiResponse(success=True, data=ReservationResponse.from_reservation(reservation))
