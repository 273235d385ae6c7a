import logging
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from app.config import settings
from app.realtime.hub import ConnectionEvent

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def realtime(websocket: WebSocket):
    """Push channel: one connection per client, server -> client events plus ping/pong."""
    origin = websocket.headers.get("origin")
    if origin and origin not in settings.ALLOWED_ORIGINS:
        logger.warning("realtime connection rejected for origin %s", origin)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    hub = websocket.app.state.hub
    await websocket.accept()
    client_id = uuid.uuid4().hex
    await hub.submit(ConnectionEvent("connect", client_id, websocket=websocket))
    try:
        while True:
            text = await websocket.receive_text()
            await hub.submit(ConnectionEvent("message", client_id, message=text))
    except WebSocketDisconnect:
        pass
    finally:
        await hub.submit(ConnectionEvent("disconnect", client_id))
