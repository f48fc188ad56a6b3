"""Vendor QR code model: the static code a vendor displays at pickup."""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import BaseModel


class VendorQRCode(BaseModel):
    """One QR code per vendor. Scanning it resolves the vendor, never a listing."""

    __tablename__ = "vendor_qr_codes"

    vendor_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    qr_code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
