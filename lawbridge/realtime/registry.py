"""
Connection Registry
===================

In-process table of live connections and the rooms each has joined.

A connection only mutates its own memberships (join/leave); the channel
runtime removes all of them on disconnect. The one cross-connection write
is ``evict_user``, used when a case share is revoked.
"""

import uuid
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional, Set

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    id: str
    sender: Any  # anything with ``async send_json(dict)``
    user_id: Optional[str] = None
    rooms: Set[str] = field(default_factory=set)


@dataclass
class RoomDelivery:
    room: str
    delivered: int = 0
    failed: int = 0


class ConnectionRegistry:

    def __init__(self):
        self._connections: Dict[str, Connection] = {}
        self._rooms: Dict[str, Set[str]] = {}

    def register(self, sender, user_id: Optional[str] = None, conn_id: Optional[str] = None) -> str:
        conn_id = conn_id or uuid.uuid4().hex
        self._connections[conn_id] = Connection(id=conn_id, sender=sender, user_id=user_id)
        logger.info(f"Live connection {conn_id} registered (user={user_id})")
        return conn_id

    def join(self, conn_id: str, room: str) -> bool:
        conn = self._connections.get(conn_id)
        if conn is None:
            return False
        conn.rooms.add(room)
        self._rooms.setdefault(room, set()).add(conn_id)
        return True

    def leave(self, conn_id: str, room: str) -> bool:
        conn = self._connections.get(conn_id)
        if conn is None or room not in conn.rooms:
            return False
        conn.rooms.discard(room)
        self._discard_member(room, conn_id)
        return True

    def _discard_member(self, room: str, conn_id: str):
        members = self._rooms.get(room)
        if members is None:
            return
        members.discard(conn_id)
        if not members:
            del self._rooms[room]

    def disconnect(self, conn_id: str) -> None:
        conn = self._connections.pop(conn_id, None)
        if conn is None:
            return
        for room in conn.rooms:
            self._discard_member(room, conn_id)
        logger.info(f"Live connection {conn_id} disconnected (user={conn.user_id})")

    def evict_user(self, user_id: str, room: str) -> int:
        """Remove every connection of ``user_id`` from ``room``."""
        evicted = 0
        for conn_id in list(self._rooms.get(room, ())):
            conn = self._connections.get(conn_id)
            if conn is not None and conn.user_id == user_id:
                self.leave(conn_id, room)
                evicted += 1
        if evicted:
            logger.info(f"Evicted {evicted} connection(s) of user {user_id} from {room}")
        return evicted

    def rooms_of(self, conn_id: str) -> FrozenSet[str]:
        conn = self._connections.get(conn_id)
        return frozenset(conn.rooms) if conn else frozenset()

    def members(self, room: str) -> FrozenSet[str]:
        return frozenset(self._rooms.get(room, ()))

    def __contains__(self, conn_id: str) -> bool:
        return conn_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    async def emit(self, room: str, payload: Dict[str, Any]) -> RoomDelivery:
        """
        Send ``payload`` to every current member of ``room``.

        A failing member is logged and counted; it does not stop delivery to
        the others.
        """
        result = RoomDelivery(room=room)
        for conn_id in list(self._rooms.get(room, ())):
            conn = self._connections.get(conn_id)
            if conn is None:
                continue
            try:
                await conn.sender.send_json(payload)
                result.delivered += 1
            except Exception as e:
                result.failed += 1
                logger.warning(f"Emit of {payload.get('type')} to {room} failed for {conn_id}: {e}")
        logger.debug(f"Emitted {payload.get('type')} to {room}: {result.delivered} delivered")
        return result

    def stats(self) -> Dict[str, int]:
        return {"connections": len(self._connections), "rooms": len(self._rooms)}
