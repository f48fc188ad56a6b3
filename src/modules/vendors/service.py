"""Service for Vendors module."""

import logging
import secrets

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.service import AuditAction, AuditService
from src.core.exceptions import InvalidQRCodeError
from src.modules.vendors.models import VendorQRCode

logger = logging.getLogger(__name__)

QR_TOKEN_BYTES = 24


def generate_qr_token() -> str:
    return secrets.token_urlsafe(QR_TOKEN_BYTES)


class VendorService:
    """Issues vendor QR codes and resolves scanned codes back to vendors."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def get_qr_code(self, vendor_id: int) -> VendorQRCode | None:
        result = await self.db.execute(
            select(VendorQRCode)
            .where(VendorQRCode.vendor_id == vendor_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_create_qr_code(self, vendor_id: int) -> VendorQRCode:
        """Return the vendor's QR code, issuing one on first request."""
        qr = await self.get_qr_code(vendor_id)
        if qr:
            return qr

        qr = VendorQRCode(vendor_id=vendor_id, qr_code=generate_qr_token())
        self.db.add(qr)
        await self.db.flush()
        await self.audit.log(
            action=AuditAction.QR_CODE_CREATE,
            entity_type="VendorQRCode",
            entity_id=qr.id,
            user_id=vendor_id,
        )
        await self.db.commit()
        logger.info("Issued QR code for vendor %s", vendor_id)
        return await self.get_qr_code(vendor_id)

    async def resolve_vendor(self, qr_code: str) -> int:
        """Vendor id behind a scanned QR code."""
        qr_code = (qr_code or "").strip()
        if not qr_code:
            raise InvalidQRCodeError()
        result = await self.db.execute(
            select(VendorQRCode.vendor_id).where(VendorQRCode.qr_code == qr_code)
        )
        vendor_id = result.scalar_one_or_none()
        if vendor_id is None:
            raise InvalidQRCodeError()
        return vendor_id
