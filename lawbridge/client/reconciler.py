"""
Client Reconciler
=================

Merges pushed live events into a locally cached, ordered list so a view
stays current without refetching.

Merge operations (all idempotent, keyed by ``id``):
- upsert_front: replace in place if present, otherwise prepend
- upsert_by_id: replace in place, no-op if absent
- remove_by_id: drop, no-op if absent
- mark_all_read: flag every item read (bulk, no id lookup)
- remove_listed: drop every item whose id is in ``resource["ids"]``

A LiveView subscribes to a fixed event -> operation table and discards
events whose resource lies outside its scope. Nothing is reconciled against
the server between explicit refetches (``replace``).
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)

Item = Dict[str, Any]


def upsert_front(items: List[Item], item: Item, key: str = "id") -> List[Item]:
    for index, existing in enumerate(items):
        if existing.get(key) == item.get(key):
            return items[:index] + [item] + items[index + 1:]
    return [item] + items


def upsert_by_id(items: List[Item], item: Item, key: str = "id") -> List[Item]:
    return [item if existing.get(key) == item.get(key) else existing for existing in items]


def remove_by_id(items: List[Item], item_id: Any, key: str = "id") -> List[Item]:
    return [existing for existing in items if existing.get(key) != item_id]


def mark_all_read(items: List[Item], flag: str = "is_read") -> List[Item]:
    return [existing if existing.get(flag) else {**existing, flag: True} for existing in items]


def remove_listed(items: List[Item], item_ids: Iterable[Any], key: str = "id") -> List[Item]:
    dropped = set(item_ids)
    return [existing for existing in items if existing.get(key) not in dropped]


class MergeOp(str, enum.Enum):
    UPSERT_FRONT = "upsert_front"
    UPSERT_BY_ID = "upsert_by_id"
    REMOVE_BY_ID = "remove_by_id"
    MARK_ALL_READ = "mark_all_read"
    REMOVE_LISTED = "remove_listed"


BULK_OPS = frozenset({MergeOp.MARK_ALL_READ, MergeOp.REMOVE_LISTED})


def _ref_id(value: Any) -> Any:
    """Accept either a bare id or an embedded ``{"id": ...}`` reference."""
    if isinstance(value, Mapping):
        return value.get("id")
    return value


@dataclass
class Scope:
    """Keep only resources whose ``field`` equals ``value``."""
    field: str
    value: Any

    def admits(self, resource: Mapping[str, Any], removal: bool = False) -> bool:
        if self.field not in resource:
            # a delete payload may carry only the id; dropping an absent item is a no-op
            return removal
        return _ref_id(resource[self.field]) == self.value


@dataclass
class LiveView:
    subscriptions: Dict[str, MergeOp]
    scope: Optional[Scope] = None
    key: str = "id"
    items: List[Item] = field(default_factory=list)

    def replace(self, items: List[Item]) -> None:
        """Explicit refetch result."""
        self.items = list(items)

    def apply(self, event: Mapping[str, Any]) -> bool:
        """
        Merge one pushed event. Returns True if the list changed.

        Accepts the wire shape ``{"type", "resourceId", "resource"}``.
        """
        op = self.subscriptions.get(event.get("type"))
        if op is None:
            return False

        resource = dict(event.get("resource") or {})
        resource_id = resource.get(self.key, event.get("resourceId"))
        if resource_id is None:
            logger.debug(f"Ignoring {event.get('type')} without a resource id")
            return False
        resource.setdefault(self.key, resource_id)

        # bulk events address the whole list, so scope does not apply
        scoped = self.scope is not None and op not in BULK_OPS
        if scoped and not self.scope.admits(resource, removal=op == MergeOp.REMOVE_BY_ID):
            return False

        if op == MergeOp.UPSERT_FRONT:
            merged = upsert_front(self.items, resource, self.key)
        elif op == MergeOp.UPSERT_BY_ID:
            merged = upsert_by_id(self.items, resource, self.key)
        elif op == MergeOp.REMOVE_BY_ID:
            merged = remove_by_id(self.items, resource_id, self.key)
        elif op == MergeOp.MARK_ALL_READ:
            merged = mark_all_read(self.items)
        else:
            merged = remove_listed(self.items, resource.get("ids") or (), self.key)

        changed = merged != self.items
        self.items = merged
        return changed

    def apply_all(self, events) -> int:
        return sum(1 for event in events if self.apply(event))


# =============================================================================
# VIEW PRESETS
# =============================================================================

TASK_EVENTS = {
    "task:new": MergeOp.UPSERT_FRONT,
    "task:updated": MergeOp.UPSERT_BY_ID,
    "task:completed": MergeOp.UPSERT_BY_ID,
    "task:overdue": MergeOp.UPSERT_BY_ID,
    "task:restored": MergeOp.UPSERT_FRONT,
    "task:deleted": MergeOp.REMOVE_BY_ID,
}

CASE_EVENTS = {
    "case:new": MergeOp.UPSERT_FRONT,
    "case:shared": MergeOp.UPSERT_FRONT,
    "case:restored": MergeOp.UPSERT_FRONT,
    "case:updated": MergeOp.UPSERT_BY_ID,
    "case:status": MergeOp.UPSERT_BY_ID,
    "case:unshared": MergeOp.REMOVE_BY_ID,
    "case:deleted": MergeOp.REMOVE_BY_ID,
}

HEARING_EVENTS = {
    "hearing:new": MergeOp.UPSERT_FRONT,
    "hearing:updated": MergeOp.UPSERT_BY_ID,
    "hearing:note": MergeOp.UPSERT_BY_ID,
    "hearing:deleted": MergeOp.REMOVE_BY_ID,
}

NOTIFICATION_EVENTS = {
    "notification:new": MergeOp.UPSERT_FRONT,
    "notification:read": MergeOp.UPSERT_BY_ID,
    "notification:deleted": MergeOp.REMOVE_BY_ID,
    "notification:readAll": MergeOp.MARK_ALL_READ,
    "notification:cleared": MergeOp.REMOVE_LISTED,
}


def task_view(case_id: Optional[str] = None, client_id: Optional[str] = None) -> LiveView:
    scope = None
    if case_id is not None:
        scope = Scope("case_id", case_id)
    elif client_id is not None:
        scope = Scope("client_id", client_id)
    return LiveView(dict(TASK_EVENTS), scope=scope)


def case_view() -> LiveView:
    return LiveView(dict(CASE_EVENTS))


def hearing_view(case_id: Optional[str] = None) -> LiveView:
    return LiveView(dict(HEARING_EVENTS), scope=Scope("case_id", case_id) if case_id is not None else None)


def notification_view() -> LiveView:
    return LiveView(dict(NOTIFICATION_EVENTS))

