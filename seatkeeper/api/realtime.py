"""
Realtime seat updates over WebSocket.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from ..database import get_db_session
from ..schemas.realtime import ClientMessage
from ..services.expiry_reaper import ExpiryReaper
from ..services.notification_service import seat_broadcaster
from ..services.seat_inventory import SeatInventoryService
from ..utils.clock import Clock
from ..utils.dependencies import get_clock
from ..utils.exceptions import ShowNotFoundError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/realtime", tags=["realtime"])

# Application close code for an unknown show
CLOSE_SHOW_NOT_FOUND = 4404


@router.websocket("/shows/{show_id}")
async def seat_updates(websocket: WebSocket, show_id: UUID, clock: Clock = Depends(get_clock)):
    """
    Subscribe to full seat snapshots of one show.

    The first message is the current snapshot. After that a snapshot arrives
    whenever a committed change touches the show. Sending
    ``{"type": "check-expiry"}`` reclaims expired holds now.
    """
    async with get_db_session() as session:
        try:
            await SeatInventoryService(session, clock).list(show_id)
        except ShowNotFoundError:
            await websocket.accept()
            await websocket.close(code=CLOSE_SHOW_NOT_FOUND, reason="Show not found")
            return

        await seat_broadcaster.connect(websocket, show_id)
        snapshot = await seat_broadcaster.build_snapshot(session, show_id)
    if not await seat_broadcaster.send(websocket, snapshot):
        return

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = ClientMessage.model_validate_json(raw)
            except PydanticValidationError:
                logger.debug(f"Ignoring malformed realtime message for show {show_id}")
                continue

            if message.type != "check-expiry":
                continue

            async with get_db_session() as session:
                reclaimed = await ExpiryReaper(session, clock).sweep(show_id)
                # Reclaims reach every subscriber through the outbox
                if not reclaimed:
                    snapshot = await seat_broadcaster.build_snapshot(session, show_id)
                    await seat_broadcaster.send(websocket, snapshot)

    except WebSocketDisconnect:
        logger.debug(f"WebSocket for show {show_id} disconnected")
    finally:
        await seat_broadcaster.disconnect(websocket)
