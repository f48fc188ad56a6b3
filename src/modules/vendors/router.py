"""API endpoints for Vendors module."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth.dependencies import VendorPrincipal
from src.core.database.session import get_db
from src.modules.vendors.schemas import VendorQRCodeResponse
from src.modules.vendors.service import VendorService
from src.shared.schemas.base import ApiResponse
from src.shared.utils.time import ensure_utc

router = APIRouter(prefix="/vendors", tags=["Vendors"])


@router.post("/me/qr-code", response_model=ApiResponse[VendorQRCodeResponse])
async def get_or_create_qr_code(
    principal: VendorPrincipal,
    db: AsyncSession = Depends(get_db),
):
    """Return the vendor's QR code, issuing it on first call."""
    qr = await VendorService(db).get_or_create_qr_code(principal.id)
    return ApiResponse(
        success=True,
        data=VendorQRCodeResponse(
            vendor_id=qr.vendor_id,
            qr_code=qr.qr_code,
            created_at=ensure_utc(qr.created_at),
        ),
    )
