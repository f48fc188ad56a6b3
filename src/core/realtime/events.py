"""Change events emitted after every committed ledger mutation.

Delivery is best effort: subscribers that miss an event catch up on their
next read. Events are published only after the transaction commits.
"""

import logging
from enum import StrEnum
from typing import Any

from src.core.realtime.manager import ConnectionManager, manager

logger = logging.getLogger(__name__)

LISTINGS_CHANNEL = "listings"


class ChangeType(StrEnum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"


def listing_channel(listing_id: int) -> str:
    return f"listing:{listing_id}"


async def publish_change(
    table: str,
    change: ChangeType,
    record: dict[str, Any],
    listing_id: int,
    feed: ConnectionManager = manager,
) -> dict[str, Any]:
    """Broadcast a row change to the global feed and the listing's own channel."""
    event = {"table": table, "type": str(change), "record": record}
    logger.debug("Publishing %s on %s (listing %s)", change, table, listing_id)
    await feed.broadcast(LISTINGS_CHANNEL, event)
    await feed.broadcast(listing_channel(listing_id), event)
    return event
