"""Consumer daily totals

Revision ID: 002_consumer_daily_totals
Revises: 001_initial
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "002_consumer_daily_totals"
down_revision: Union[str, None] = "001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "consumer_daily_totals",
        sa.Column("consumer_id", sa.BigInteger(), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("portions", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("consumer_id", "day", name="pk_consumer_daily_totals"),
        sa.CheckConstraint(
            "portions >= 0", name="ck_consumer_daily_totals_portions_non_negative"
        ),
    )

    # Backfill from existing collections
    op.execute(
        """
        INSERT INTO consumer_daily_totals (consumer_id, day, portions)
        SELECT consumer_id, CAST(collected_at AT TIME ZONE 'UTC' AS DATE), SUM(portions_collected)
        FROM collections
        GROUP BY consumer_id, CAST(collected_at AT TIME ZONE 'UTC' AS DATE)
        """
    )


def downgrade() -> None:
    op.drop_table("consumer_daily_totals")
