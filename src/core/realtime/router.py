"""WebSocket change feed for dashboards."""

from fastapi import APIRouter, WebSocket
from starlette.websockets import WebSocketDisconnect

from src.core.realtime.events import LISTINGS_CHANNEL, listing_channel
from src.core.realtime.manager import manager

router = APIRouter()


async def _subscribe(channel: str, websocket: WebSocket) -> None:
    await manager.connect(channel, websocket)
    try:
        while True:
            # Subscribers only listen; inbound frames are ignored
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(channel, websocket)


@router.websocket("/ws/listings")
async def listings_feed(websocket: WebSocket) -> None:
    await _subscribe(LISTINGS_CHANNEL, websocket)


@router.websocket("/ws/listings/{listing_id}")
async def listing_feed(websocket: WebSocket, listing_id: int) -> None:
    await _subscribe(listing_channel(listing_id), websocket)
