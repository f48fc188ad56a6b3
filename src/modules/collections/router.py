"""API endpoints for Collections module."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth.dependencies import ConsumerPrincipal, CurrentPrincipal
from src.core.auth.models import UserRole
from src.core.database.session import get_db
from src.core.realtime.events import ChangeType, publish_change
from src.modules.collections.schemas import (
    CollectionResponse,
    ScanRequest,
    ScanResultResponse,
)
from src.modules.collections.service import CollectionService
from src.modules.listings.schemas import ListingResponse, ListingView
from src.modules.reservations.schemas import ReservationResponse
from src.shared.schemas.base import ApiResponse, PaginatedResponse
from src.shared.utils.time import utcnow
from src.shared.utils.timeouts import with_request_timeout

router = APIRouter(tags=["Collections"])


@router.post("/scan", response_model=ApiResponse[ScanResultResponse])
async def scan_qr_code(
    payload: ScanRequest,
    principal: CurrentPrincipal,
    db: AsyncSession = Depends(get_db),
):
    """Collect food by scanning the vendor's QR code."""
    service = CollectionService(db)
    result = await with_request_timeout(
        service.process_scan(
            principal,
            payload.qr_code,
            portions_to_collect=payload.portions_to_collect,
            reservation_id=payload.reservation_id,
            listing_id=payload.listing_id,
        )
    )

    listing_id = result.listing.id
    view = (
        ListingView.CONSUMER if principal.role == UserRole.CONSUMER else ListingView.ORGANISATION
    )
    data = ScanResultResponse(
        state=result.state.value,
        listing=ListingResponse.from_listing(result.listing, utcnow(), view),
        collection=CollectionResponse.from_collection(result.collection)
        if result.collection
        else None,
        reservation=ReservationResponse.from_reservation(result.reservation)
        if result.reservation
        else None,
    )

    if data.collection:
        await publish_change(
            "collections", ChangeType.INSERT, data.collection.model_dump(mode="json"), listing_id
        )
    if data.reservation:
        await publish_change(
            "reservations", ChangeType.UPDATE, data.reservation.model_dump(mode="json"), listing_id
        )
    await publish_change(
        "listings",
        ChangeType.UPDATE,
        ListingResponse.from_listing(result.listing, utcnow(), ListingView.ORGANISATION).model_dump(
            mode="json"
        ),
        listing_id,
    )
    return ApiResponse(success=True, data=data, message="Food collected successfully!")


@router.get("/collections", response_model=ApiResponse[PaginatedResponse[CollectionResponse]])
async def list_my_collections(
    principal: ConsumerPrincipal,
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    service = CollectionService(db)
    collections, total = await service.list_for_consumer(principal.id, page=page, limit=limit)
    return ApiResponse(
        success=True,
        data=PaginatedResponse.create(
            items=[CollectionResponse.from_collection(c) for c in collections],
            total=total,
            page=page,
            limit=limit,
        ),
    )
