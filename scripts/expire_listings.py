#!/usr/bin/env python3
"""
Expiry sweep: moves active listings whose best_before has passed to `expired`.

Meant to run from cron every few minutes. Deposits of uncollected reservations
on expired listings are kept (no-show).

Usage:
    python scripts/expire_listings.py --dry-run  # List overdue listings only
    python scripts/expire_listings.py            # Expire them
"""

import asyncio
import sys
from pathlib import Path

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy import select

from src.core.config import settings
from src.core.database.session import async_session
from src.core.logging_config import configure_logging
from src.modules.listings.models import Listing, ListingStatus
from src.modules.listings.service import ListingService
from src.shared.utils.time import utcnow


async def list_overdue() -> list[Listing]:
    async with async_session() as session:
        result = await session.execute(
            select(Listing)
            .where(
                Listing.status == ListingStatus.ACTIVE.value,
                Listing.best_before < utcnow(),
            )
            .order_by(Listing.best_before)
        )
        return list(result.scalars().all())


async def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(description="Expire listings past their best_before time")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only list overdue listings, change nothing",
    )
    args = parser.parse_args()

    configure_logging()

    db_host = settings.database_url.split("@")[1] if "@" in settings.database_url else "unknown"
    print(f"Environment: {settings.app_env}")
    print(f"Database: {db_host}")

    if args.dry_run:
        overdue = await list_overdue()
        print(f"{len(overdue)} overdue listing(s)")
        for listing in overdue:
            print(
                f"  #{listing.id} vendor={listing.vendor_id} "
                f"best_before={listing.best_before.isoformat()} "
                f"remaining={listing.remaining_portions} reserved={listing.reserved_portions}"
            )
        return

    async with async_session() as session:
        expired = await ListingService(session).expire_overdue()
    print(f"Expired {len(expired)} listing(s): {[l.id for l in expired]}")


if __name__ == "__main__":
    asyncio.run(main())
