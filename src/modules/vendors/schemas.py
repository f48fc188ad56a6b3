"""Schemas for Vendors module."""

from datetime import datetime

from pydantic import BaseModel


class VendorQRCodeResponse(BaseModel):
    vendor_id: int
    qr_code: str
    created_at: datetime

    model_config = {"from_attributes": True}
