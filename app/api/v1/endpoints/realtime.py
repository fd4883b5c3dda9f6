"""Websocket change feed: pushes bid and notification changes to the connected user."""
import asyncio
import logging
from typing import Any, Dict

from fastapi import APIRouter, Query, WebSocket, status

from app.api.deps import AuthUser
from app.api.v1.endpoints.notifications import inbox_for
from app.core.security import verify_access_token
from app.database import get_db_session
from app.services.realtime import LANES, NOTIFICATIONS, SHIPMENT_BIDS, VENDORS, broker
from app.services.shipment_bid_service import ShipmentBidService
from app.services.vendor_service import VendorService


logger = logging.getLogger(__name__)

router = APIRouter()

ADMIN_COLLECTIONS = (LANES, VENDORS, SHIPMENT_BIDS, NOTIFICATIONS)
VENDOR_COLLECTIONS = (SHIPMENT_BIDS, NOTIFICATIONS)


async def is_visible(user: AuthUser, message: Dict[str, Any]) -> bool:
    """Whether a change notice concerns the user."""
    collection = message.get("collection")
    if collection == NOTIFICATIONS:
        return message.get("user_id") == inbox_for(user)
    if user.is_admin:
        return True
    if collection != SHIPMENT_BIDS:
        return False

    async with get_db_session() as db:
        vendor = await VendorService(db).get_active_vendor(user.id)
        if vendor is None:
            return False
        service = ShipmentBidService(db)
        bid = await service.get_bid(message.get("id", ""))
        return bid is not None and await service.vendor_may_view(bid, vendor)


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws")
async def realtime_feed(websocket: WebSocket, token: str = Query(...)):
    """Subscribe with `?token=<access token>`; every message is a JSON change notice."""
    claims = verify_access_token(token)
    if claims is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    user = AuthUser(id=claims["sub"], name=claims["name"], role=claims["role"])
    await websocket.accept()

    queue: asyncio.Queue = asyncio.Queue()
    collections = ADMIN_COLLECTIONS if user.is_admin else VENDOR_COLLECTIONS
    unsubscribers = [broker.subscribe(collection, queue.put_nowait) for collection in collections]
    disconnected = asyncio.create_task(_wait_for_disconnect(websocket))
    logger.info("Realtime feed opened for %s %s", user.role, user.id)

    try:
        while True:
            next_message = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait({next_message, disconnected}, return_when=asyncio.FIRST_COMPLETED)
            if next_message not in done:
                next_message.cancel()
                break
            message = next_message.result()
            if await is_visible(user, message):
                await websocket.send_json(message)
    finally:
        disconnected.cancel()
        for unsubscribe in unsubscribers:
            unsubscribe()
        logger.info("Realtime feed closed for %s %s", user.role, user.id)
