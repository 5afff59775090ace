"""
Live Sync Channel
=================

Room-based fan-out of mutation events to connected clients:
- rooms: room naming (user_<id>, case_<id>, hearing_<id>)
- events: event type names and the Event payload
- registry: connection -> rooms table and per-room emission
- outbox: commit-bound event staging and the dispatcher
- channel: the WebSocket endpoint
"""

from .events import Event
from .registry import ConnectionRegistry
from .outbox import EventOutbox, Dispatcher, DispatchResult

__all__ = ["Event", "ConnectionRegistry", "EventOutbox", "Dispatcher", "DispatchResult"]
