"""
WebSocket endpoint for the investor / admin relay.

No authentication: any client may connect, join as an investor or send
admin messages. Frames are JSON envelopes, see realtime/events.py.
"""
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from wealth_relay.deps import get_connection_manager, get_event_router
from wealth_relay.realtime.events import RealtimeEvent
from wealth_relay.realtime.manager import ConnectionManager
from wealth_relay.realtime.router import EventRouter
import logging
import json

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    manager: ConnectionManager = Depends(get_connection_manager),
    event_router: EventRouter = Depends(get_event_router),
):
    connection = await manager.connect(websocket)
    ctx = event_router.open(connection)

    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(frame.get("code", 1000))
            data = frame.get("text")
            if data is None:
                logger.warning(
                    f"Binary frame received on connection {connection.id}",
                    extra={"connection_id": connection.id, "investor_id": ctx.investor_id},
                )
                manager.send_personal_message(
                    RealtimeEvent.error("VALIDATION_ERROR", "Frames must be JSON text"),
                    connection.id,
                )
                continue
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                logger.error(
                    f"Invalid JSON received on connection {connection.id}",
                    extra={"connection_id": connection.id},
                )
                manager.send_personal_message(
                    RealtimeEvent.error("VALIDATION_ERROR", "Frame is not valid JSON"),
                    connection.id,
                )
                continue
            event_router.handle(ctx, message)

    except WebSocketDisconnect:
        logger.info(
            "Client disconnected",
            extra={"connection_id": connection.id, "investor_id": ctx.investor_id},
        )
    except Exception as e:
        logger.error(
            f"WebSocket error on connection {connection.id}: {e}",
            extra={"connection_id": connection.id, "investor_id": ctx.investor_id},
            exc_info=True,
        )
    finally:
        await manager.disconnect(connection.id)
        event_router.close(ctx)
