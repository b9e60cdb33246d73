import json
from typing import Optional
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query, status
from realtime.manager import Connection
from realtime.handlers import session_joined, session_left, handle_client_event
from routes.deps import verify_token
from logging_config import get_logger, user_id_var, session_id_var

router = APIRouter(tags=["Realtime"])
logger = get_logger("ws")


def _token_from_request(websocket: WebSocket, token: Optional[str]) -> Optional[str]:
    if token:
        return token
    auth_header = websocket.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


@router.websocket("/ws")
async def notification_socket(websocket: WebSocket, token: Optional[str] = Query(default=None)):
    """
    Real-time channel. Messages in both directions are JSON envelopes:
    {"event": "<name>", "data": <payload>}
    """
    user = verify_token(_token_from_request(websocket, token))
    if user is None:
        # Rejected before accept: no session, presence or room state is created
        logger.warning("Socket connection rejected: missing or invalid token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Authentication token required")
        return

    await websocket.accept()
    connection = Connection(websocket, user)
    user_id_var.set(user.id)
    session_id_var.set(connection.session_id)
    logger.info(f"User connected: {user.email} ({connection.session_id})")

    await session_joined(connection)
    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(frame.get("code", 1000), frame.get("reason"))
            raw = frame.get("text")
            if raw is None:
                logger.warning("Ignoring binary socket frame")
                continue
            try:
                message = json.loads(raw)
            except ValueError:
                logger.warning("Ignoring malformed socket message")
                continue
            if not isinstance(message, dict):
                continue
            await handle_client_event(connection, message.get("event"), message.get("data"))
    except WebSocketDisconnect as e:
        logger.info(f"User disconnected: {user.email} (code={e.code})")
    finally:
        await session_left(connection)
