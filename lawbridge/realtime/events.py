"""
Live Events
===========

An Event describes one committed mutation and the rooms it fans out to.
On the wire it is ``{"type", "resourceId", "resource"}``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Tuple

# Cases
CASE_NEW = "case:new"
CASE_UPDATED = "case:updated"
CASE_STATUS = "case:status"
CASE_SHARED = "case:shared"
CASE_UNSHARED = "case:unshared"
CASE_NOTE_ADDED = "case:noteAdded"
CASE_DELETED = "case:deleted"
CASE_RESTORED = "case:restored"

# Tasks
TASK_NEW = "task:new"
TASK_UPDATED = "task:updated"
TASK_COMPLETED = "task:completed"
TASK_DELETED = "task:deleted"
TASK_RESTORED = "task:restored"
TASK_OVERDUE = "task:overdue"

# Hearings
HEARING_NEW = "hearing:new"
HEARING_UPDATED = "hearing:updated"
HEARING_DELETED = "hearing:deleted"
HEARING_NOTE = "hearing:note"

# Notifications
NOTIFICATION_NEW = "notification:new"
NOTIFICATION_READ = "notification:read"
NOTIFICATION_READ_ALL = "notification:readAll"
NOTIFICATION_DELETED = "notification:deleted"
NOTIFICATION_CLEARED = "notification:cleared"


def _unique(rooms: Iterable[str]) -> Tuple[str, ...]:
    seen = []
    for room in rooms:
        if room and room not in seen:
            seen.append(room)
    return tuple(seen)


@dataclass(frozen=True)
class Event:
    type: str
    resource_id: str
    resource: Dict[str, Any] = field(default_factory=dict)
    rooms: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "rooms", _unique(self.rooms))

    def payload(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "resourceId": self.resource_id,
            "resource": self.resource,
        }
