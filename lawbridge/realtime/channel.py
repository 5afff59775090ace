"""
Live Channel Endpoint
=====================

WebSocket endpoint for pushed updates.

Connect:   /ws?token=<access token>
    A valid token joins the connection to ``user_<id>``. Without a token the
    connection stays roomless. A bad token closes with 4001 (4003 for an
    inactive account).

Client frames:
    {"action": "join",  "room": "case_<id>"}
    {"action": "leave", "room": "case_<id>"}
    {"action": "ping"}

Server frames:
    {"type": "connected", "connectionId": ..., "rooms": [...]}
    {"type": "room:joined" | "room:left" | "room:denied", "room": ...}
    {"type": "pong"} / {"type": "error", "message": ...}
    {"type": <event>, "resourceId": ..., "resource": {...}}

Joins are checked with RoomAccessPolicy (same rules as the HTTP case guard).
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..access import RoomAccessPolicy
from ..auth import Principal, get_auth_service
from ..db.session import get_db_session
from ..errors import LawBridgeError, Forbidden
from .registry import ConnectionRegistry
from .rooms import user_room

logger = logging.getLogger(__name__)

router = APIRouter()

CLOSE_UNAUTHENTICATED = 4001
CLOSE_FORBIDDEN = 4003


def _authenticate(token: str) -> Principal:
    with get_db_session() as db:
        return get_auth_service(db).principal_from_token(token)


def _may_join(principal: Optional[Principal], room: str) -> bool:
    with get_db_session() as db:
        return RoomAccessPolicy(db).can_join(principal, room)


async def handle_message(
    websocket: WebSocket,
    registry: ConnectionRegistry,
    conn_id: str,
    principal: Optional[Principal],
    raw: str,
) -> None:
    try:
        message = json.loads(raw)
    except ValueError:
        await websocket.send_json({"type": "error", "message": "Invalid JSON"})
        return
    if not isinstance(message, dict):
        await websocket.send_json({"type": "error", "message": "Expected an object"})
        return

    action = message.get("action")
    room = message.get("room")

    if action == "ping":
        await websocket.send_json({"type": "pong"})
    elif action == "join":
        if isinstance(room, str) and _may_join(principal, room):
            registry.join(conn_id, room)
            logger.info(f"Connection {conn_id} joined {room}")
            await websocket.send_json({"type": "room:joined", "room": room})
        else:
            logger.warning(
                f"Connection {conn_id} denied join to {room} "
                f"(user={principal.user_id if principal else None})"
            )
            await websocket.send_json({"type": "room:denied", "room": room})
    elif action == "leave":
        left = isinstance(room, str) and registry.leave(conn_id, room)
        await websocket.send_json({"type": "room:left", "room": room, "left": bool(left)})
    else:
        await websocket.send_json({"type": "error", "message": f"Unknown action: {action}"})


@router.websocket("/ws")
async def live_channel(websocket: WebSocket):
    await websocket.accept()
    registry: ConnectionRegistry = websocket.app.state.registry

    principal = None
    token = websocket.query_params.get("token")
    if token:
        try:
            principal = _authenticate(token)
        except LawBridgeError as e:
            code = CLOSE_FORBIDDEN if isinstance(e, Forbidden) else CLOSE_UNAUTHENTICATED
            logger.warning(f"Live channel auth failed: {e.message}")
            await websocket.send_json({"type": "error", "message": e.message})
            await websocket.close(code=code)
            return

    conn_id = registry.register(websocket, user_id=principal.user_id if principal else None)
    if principal is not None:
        registry.join(conn_id, user_room(principal.user_id))

    try:
        await websocket.send_json({
            "type": "connected",
            "connectionId": conn_id,
            "rooms": sorted(registry.rooms_of(conn_id)),
        })
        while True:
            raw = await websocket.receive_text()
            await handle_message(websocket, registry, conn_id, principal, raw)
    except WebSocketDisconnect:
        pass
    finally:
        registry.disconnect(conn_id)
