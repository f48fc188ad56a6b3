"""Initial ledger tables

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # Listings
    op.create_table(
        "listings",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("vendor_id", sa.BigInteger(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(300), nullable=False),
        sa.Column("cuisine", sa.String(30), nullable=False),
        sa.Column("dietary_info", postgresql.JSONB(), nullable=False),
        sa.Column("image_url", sa.String(500), nullable=True),
        sa.Column("total_portions", sa.Integer(), nullable=False),
        sa.Column("remaining_portions", sa.Integer(), nullable=False),
        sa.Column("reserved_portions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("best_before", sa.DateTime(timezone=True), nullable=False),
        sa.Column("priority_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "available_for_charity", sa.Boolean(), nullable=False, server_default="false"
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_listings"),
        sa.CheckConstraint("total_portions > 0", name="ck_listings_total_positive"),
        sa.CheckConstraint(
            "remaining_portions >= 0 AND remaining_portions <= total_portions",
            name="ck_listings_remaining_bounds",
        ),
        sa.CheckConstraint(
            "reserved_portions >= 0 AND reserved_portions <= remaining_portions",
            name="ck_listings_reserved_bounds",
        ),
    )
    op.create_index("ix_listings_vendor_id", "listings", ["vendor_id"])
    op.create_index("ix_listings_cuisine", "listings", ["cuisine"])
    op.create_index("ix_listings_status", "listings", ["status"])
    op.create_index("ix_listings_status_best_before", "listings", ["status", "best_before"])

    # Reservations
    op.create_table(
        "reservations",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("listing_id", sa.BigInteger(), nullable=False),
        sa.Column("organisation_id", sa.BigInteger(), nullable=False),
        sa.Column("portions_reserved", sa.Integer(), nullable=False),
        sa.Column("deposit_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("deposit_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("collected", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("collected_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_reservations"),
        sa.ForeignKeyConstraint(
            ["listing_id"],
            ["listings.id"],
            name="fk_reservations_listing_id_listings",
        ),
        sa.CheckConstraint("portions_reserved > 0", name="ck_reservations_portions_positive"),
    )
    op.create_index("ix_reservations_listing_id", "reservations", ["listing_id"])
    op.create_index("ix_reservations_organisation_id", "reservations", ["organisation_id"])
    op.create_index(
        "uq_reservations_open_listing_org",
        "reservations",
        ["listing_id", "organisation_id"],
        unique=True,
        postgresql_where=sa.text("NOT collected"),
    )

    # Collections
    op.create_table(
        "collections",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("consumer_id", sa.BigInteger(), nullable=False),
        sa.Column("listing_id", sa.BigInteger(), nullable=False),
        sa.Column("portions_collected", sa.Integer(), nullable=False),
        sa.Column(
            "collected_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_collections"),
        sa.ForeignKeyConstraint(
            ["listing_id"],
            ["listings.id"],
            name="fk_collections_listing_id_listings",
        ),
        sa.CheckConstraint(
            "portions_collected >= 1 AND portions_collected <= 5",
            name="ck_collections_portions_range",
        ),
    )
    op.create_index("ix_collections_consumer_id", "collections", ["consumer_id"])
    op.create_index("ix_collections_listing_id", "collections", ["listing_id"])
    op.create_index("ix_collections_collected_at", "collections", ["collected_at"])

    # Vendor QR codes
    op.create_table(
        "vendor_qr_codes",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("vendor_id", sa.BigInteger(), nullable=False),
        sa.Column("qr_code", sa.String(64), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_vendor_qr_codes"),
        sa.UniqueConstraint("vendor_id", name="uq_vendor_qr_codes_vendor_id"),
    )
    op.create_index("ix_vendor_qr_codes_qr_code", "vendor_qr_codes", ["qr_code"], unique=True)

    # Audit logs
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=False),
        sa.Column("entity_id", sa.BigInteger(), nullable=False),
        sa.Column("old_values", postgresql.JSONB(), nullable=True),
        sa.Column("new_values", postgresql.JSONB(), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_audit_logs"),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("vendor_qr_codes")
    op.drop_table("collections")
    op.drop_index("uq_reservations_open_listing_org", table_name="reservations")
    op.drop_table("reservations")
    op.drop_table("listings")
