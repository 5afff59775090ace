"""
Client-side helpers for live views: list reconciliation and reconnection.
"""

from .reconciler import (
    LiveView, MergeOp, Scope,
    upsert_front, upsert_by_id, remove_by_id, mark_all_read, remove_listed,
    task_view, case_view, hearing_view, notification_view,
)
from .reconnect import ReconnectPolicy, connect_with_retry

__all__ = [
    "LiveView", "MergeOp", "Scope",
    "upsert_front", "upsert_by_id", "remove_by_id", "mark_all_read", "remove_listed",
    "task_view", "case_view", "hearing_view", "notification_view",
    "ReconnectPolicy", "connect_with_retry",
]
