"""Room naming for the live channel."""

from typing import Optional, Tuple

ROOM_USER = "user"
ROOM_CASE = "case"
ROOM_HEARING = "hearing"

_KINDS = (ROOM_USER, ROOM_CASE, ROOM_HEARING)


def user_room(user_id: str) -> str:
    return f"{ROOM_USER}_{user_id}"


def case_room(case_id: str) -> str:
    return f"{ROOM_CASE}_{case_id}"


def hearing_room(hearing_id: str) -> str:
    return f"{ROOM_HEARING}_{hearing_id}"


def parse_room(room: Optional[str]) -> Optional[Tuple[str, str]]:
    """Split ``kind_<id>`` into (kind, id); None for unknown shapes."""
    if not room or not isinstance(room, str):
        return None
    kind, sep, resource_id = room.partition("_")
    if not sep or kind not in _KINDS or not resource_id:
        return None
    return kind, resource_id
