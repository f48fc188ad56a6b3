from enum import StrEnum
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.models import AuditLog


class AuditAction(StrEnum):
    """Ledger audit actions."""

    LISTING_CREATE = "listing.create"
    LISTING_UPDATE = "listing.update"
    LISTING_CANCEL = "listing.cancel"
    LISTING_EXPIRE = "listing.expire"
    LISTING_COMPLETE = "listing.complete"
    RESERVATION_CREATE = "reservation.create"
    RESERVATION_COLLECT = "reservation.collect"
    RESERVATION_REFUND = "reservation.refund"
    COLLECTION_CREATE = "collection.create"
    QR_CODE_CREATE = "qr_code.create"


class AuditService:
    """Service for creating audit logs."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        action: str | AuditAction,
        entity_type: str,
        entity_id: int,
        user_id: int | None = None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        comment: str | None = None,
    ) -> AuditLog:
        """Create an audit log entry in the caller's transaction."""
        audit_log = AuditLog(
            user_id=user_id,
            action=str(action),
            entity_type=entity_type,
            entity_id=entity_id,
            old_values=old_values,
            new_values=new_values,
            comment=comment,
        )

        self.db.add(audit_log)
        await self.db.flush()

        return audit_log

    async def list_for_entity(self, entity_type: str, entity_id: int) -> list[AuditLog]:
        """Audit entries for one entity, oldest first."""
        result = await self.db.execute(
            select(AuditLog)
            .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.id)
        )
        return list(result.scalars().all())
