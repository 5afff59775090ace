"""
Event Outbox and Dispatcher
===========================

Write paths never emit directly. They stage an Event on their SQLAlchemy
session; the event enters the outbox queue only when that session commits
and is dropped if it rolls back. A single Dispatcher drains the queue and
fans each event out through the ConnectionRegistry.

Delivery is at most once and best effort: emission failures are logged and
reported in a DispatchResult, never retried, and never touch the write
that produced the event.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from sqlalchemy import event as sa_event
from sqlalchemy.orm import Session

from .events import Event
from .registry import ConnectionRegistry, RoomDelivery

logger = logging.getLogger(__name__)

_PENDING_KEY = "lawbridge.pending_events"
_HOOKED_KEY = "lawbridge.outbox_hooked"


@dataclass
class DispatchResult:
    event: Event
    deliveries: List[RoomDelivery] = field(default_factory=list)
    failed_rooms: List[str] = field(default_factory=list)

    @property
    def delivered(self) -> int:
        return sum(d.delivered for d in self.deliveries)

    @property
    def ok(self) -> bool:
        return not self.failed_rooms and all(d.failed == 0 for d in self.deliveries)


class EventOutbox:
    """Commit-bound queue of events awaiting dispatch."""

    def __init__(self, maxlen: int = 10000):
        self._queue = deque(maxlen=maxlen)
        self._waker: Optional[Callable[[], None]] = None
        self.stats: Dict[str, int] = {"staged": 0, "published": 0, "discarded": 0}

    # -- write side ---------------------------------------------------------

    def stage(self, db: Session, event: Event) -> None:
        """Hold ``event`` on the session until it commits."""
        if not db.info.get(_HOOKED_KEY):
            sa_event.listen(db, "after_commit", self._on_commit)
            sa_event.listen(db, "after_rollback", self._on_rollback)
            db.info[_HOOKED_KEY] = True
        # commit/rollback hooks only fire for an open transaction
        if not db.in_transaction():
            db.begin()
        db.info.setdefault(_PENDING_KEY, []).append(event)
        self.stats["staged"] += 1

    def _on_commit(self, session: Session):
        for staged in session.info.pop(_PENDING_KEY, []):
            self.publish(staged)

    def _on_rollback(self, session: Session):
        dropped = session.info.pop(_PENDING_KEY, [])
        if dropped:
            self.stats["discarded"] += len(dropped)
            logger.info(f"Discarded {len(dropped)} staged event(s) after rollback")

    def publish(self, event: Event) -> None:
        """Enqueue an event for dispatch (already committed)."""
        self._queue.append(event)
        self.stats["published"] += 1
        waker = self._waker
        if waker is not None:
            try:
                waker()
            except RuntimeError as e:
                logger.debug(f"Dispatcher wake-up skipped: {e}")

    # -- read side ----------------------------------------------------------

    def set_waker(self, waker: Optional[Callable[[], None]]) -> None:
        self._waker = waker

    def pending(self) -> List[Event]:
        return list(self._queue)

    def take_all(self) -> List[Event]:
        taken = []
        while True:
            try:
                taken.append(self._queue.popleft())
            except IndexError:
                return taken

    def clear(self) -> None:
        self._queue.clear()

    def __len__(self) -> int:
        return len(self._queue)


class Dispatcher:
    """Drains the outbox into the connection registry."""

    def __init__(self, outbox: EventOutbox, registry: ConnectionRegistry, poll_seconds: float = 0.5):
        self.outbox = outbox
        self.registry = registry
        self.poll_seconds = poll_seconds
        self.stats: Dict[str, int] = {"dispatched": 0, "delivered": 0, "failed": 0}
        self._task: Optional[asyncio.Task] = None

    async def dispatch(self, event: Event) -> DispatchResult:
        result = DispatchResult(event=event)
        payload = event.payload()
        for room in event.rooms:
            try:
                delivery = await self.registry.emit(room, payload)
            except Exception:
                logger.error(f"Dispatch of {event.type} to {room} failed", exc_info=True)
                result.failed_rooms.append(room)
                continue
            result.deliveries.append(delivery)

        self.stats["dispatched"] += 1
        self.stats["delivered"] += result.delivered
        if not result.ok:
            self.stats["failed"] += 1
            logger.warning(
                f"Event {event.type} for {event.resource_id} committed but not fully delivered"
            )
        return result

    async def drain(self) -> List[DispatchResult]:
        """Dispatch everything currently queued."""
        results = []
        for queued in self.outbox.take_all():
            results.append(await self.dispatch(queued))
        return results

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        wake = asyncio.Event()
        self.outbox.set_waker(lambda: loop.call_soon_threadsafe(wake.set))
        logger.info("Event dispatcher started")
        try:
            while True:
                await self.drain()
                try:
                    await asyncio.wait_for(wake.wait(), timeout=self.poll_seconds)
                except asyncio.TimeoutError:
                    pass
                wake.clear()
        finally:
            self.outbox.set_waker(None)
            logger.info("Event dispatcher stopped")

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
