"""
Connection Registry and Outbox Tests
====================================

Tests for:
- Room membership and per-room emission
- Commit-bound staging (rollback discards)
- Dispatcher results when delivery partly fails
"""

import asyncio

import pytest

from lawbridge.db.models import User
from lawbridge.db.session import get_db_session
from lawbridge.realtime import ConnectionRegistry, Dispatcher, Event, EventOutbox
from lawbridge.realtime.rooms import case_room, parse_room, user_room


class RecordingSender:
    def __init__(self):
        self.received = []

    async def send_json(self, payload):
        self.received.append(payload)


class BrokenSender:
    async def send_json(self, payload):
        raise ConnectionResetError("socket closed")


class TestRooms:

    def test_names(self):
        assert user_room("7") == "user_7"
        assert case_room("c1") == "case_c1"

    @pytest.mark.parametrize("room,expected", [
        ("user_7", ("user", "7")),
        ("case_abc-123", ("case", "abc-123")),
        ("hearing_h_1", ("hearing", "h_1")),
        ("user_", None),
        ("team_1", None),
        ("", None),
        (None, None),
    ])
    def test_parse(self, room, expected):
        assert parse_room(room) == expected


class TestConnectionRegistry:

    @pytest.mark.asyncio
    async def test_emit_reaches_only_members(self):
        registry = ConnectionRegistry()
        first, second, outsider = RecordingSender(), RecordingSender(), RecordingSender()
        a = registry.register(first)
        b = registry.register(second)
        registry.register(outsider)
        registry.join(a, "user_7")
        registry.join(b, "user_7")

        delivery = await registry.emit("user_7", {"type": "ping"})

        assert delivery.delivered == 2
        assert first.received == [{"type": "ping"}]
        assert second.received == [{"type": "ping"}]
        assert outsider.received == []

    @pytest.mark.asyncio
    async def test_emit_to_empty_room(self):
        delivery = await ConnectionRegistry().emit("case_none", {"type": "x"})
        assert (delivery.delivered, delivery.failed) == (0, 0)

    @pytest.mark.asyncio
    async def test_failing_member_does_not_block_others(self):
        registry = ConnectionRegistry()
        good = RecordingSender()
        registry.join(registry.register(BrokenSender()), "case_1")
        registry.join(registry.register(good), "case_1")

        delivery = await registry.emit("case_1", {"type": "case:updated"})

        assert delivery.delivered == 1
        assert delivery.failed == 1
        assert good.received

    def test_join_leave_disconnect(self):
        registry = ConnectionRegistry()
        conn = registry.register(RecordingSender(), user_id="u1")
        registry.join(conn, "case_1")
        registry.join(conn, "case_1")
        assert registry.rooms_of(conn) == frozenset({"case_1"})

        assert registry.leave(conn, "case_1") is True
        assert registry.leave(conn, "case_1") is False
        assert registry.members("case_1") == frozenset()

        registry.join(conn, "case_2")
        registry.disconnect(conn)
        assert conn not in registry
        assert registry.members("case_2") == frozenset()
        assert registry.stats() == {"connections": 0, "rooms": 0}

    def test_join_unknown_connection(self):
        assert ConnectionRegistry().join("nope", "case_1") is False

    def test_evict_user_only_touches_that_user(self):
        registry = ConnectionRegistry()
        phone = registry.register(RecordingSender(), user_id="u1")
        laptop = registry.register(RecordingSender(), user_id="u1")
        colleague = registry.register(RecordingSender(), user_id="u2")
        for conn in (phone, laptop, colleague):
            registry.join(conn, "case_1")
        registry.join(phone, "user_u1")

        assert registry.evict_user("u1", "case_1") == 2
        assert registry.members("case_1") == frozenset({colleague})
        assert registry.rooms_of(phone) == frozenset({"user_u1"})


class TestEvent:

    def test_rooms_deduplicated_in_order(self):
        event = Event("case:new", "c1", {"id": "c1"}, ("user_1", "case_c1", "user_1", ""))
        assert event.rooms == ("user_1", "case_c1")

    def test_wire_payload(self):
        event = Event("task:new", "t1", {"id": "t1", "title": "Draft"}, ("user_1",))
        assert event.payload() == {"type": "task:new", "resourceId": "t1", "resource": {"id": "t1", "title": "Draft"}}


class TestOutboxStaging:

    def test_commit_publishes(self, db_url):
        outbox = EventOutbox()
        with get_db_session() as db:
            db.add(User(name="A", email="a@example.com"))
            outbox.stage(db, Event("case:new", "c1", rooms=("case_c1",)))
            assert len(outbox) == 0

        assert [e.resource_id for e in outbox.pending()] == ["c1"]
        assert outbox.stats["published"] == 1

    def test_rollback_discards(self, db_url):
        outbox = EventOutbox()
        with pytest.raises(RuntimeError):
            with get_db_session() as db:
                outbox.stage(db, Event("case:new", "c1", rooms=("case_c1",)))
                raise RuntimeError("write failed")

        assert len(outbox) == 0
        assert outbox.stats["discarded"] == 1

    def test_events_from_one_session_do_not_leak_after_rollback(self, db_url):
        outbox = EventOutbox()
        with get_db_session() as db:
            outbox.stage(db, Event("case:new", "dropped"))
            db.rollback()
            outbox.stage(db, Event("case:new", "kept"))

        assert [e.resource_id for e in outbox.pending()] == ["kept"]

    def test_take_all_empties_queue(self):
        outbox = EventOutbox()
        outbox.publish(Event("a", "1"))
        outbox.publish(Event("b", "2"))
        assert [e.type for e in outbox.take_all()] == ["a", "b"]
        assert len(outbox) == 0


class TestDispatcher:

    @pytest.mark.asyncio
    async def test_drain_fans_out(self):
        registry, outbox = ConnectionRegistry(), EventOutbox()
        owner, watcher = RecordingSender(), RecordingSender()
        registry.join(registry.register(owner), "user_1")
        registry.join(registry.register(watcher), "case_c1")
        outbox.publish(Event("case:updated", "c1", {"id": "c1"}, ("user_1", "case_c1")))

        (result,) = await Dispatcher(outbox, registry).drain()

        assert result.ok
        assert result.delivered == 2
        assert owner.received[0]["resourceId"] == "c1"
        assert len(outbox) == 0

    @pytest.mark.asyncio
    async def test_partial_failure_is_reported(self):
        registry, outbox = ConnectionRegistry(), EventOutbox()
        registry.join(registry.register(BrokenSender()), "user_1")
        outbox.publish(Event("case:updated", "c1", rooms=("user_1",)))
        dispatcher = Dispatcher(outbox, registry)

        (result,) = await dispatcher.drain()

        assert not result.ok
        assert result.delivered == 0
        assert dispatcher.stats == {"dispatched": 1, "delivered": 0, "failed": 1}

    @pytest.mark.asyncio
    async def test_registry_error_marks_room_failed(self):
        class ExplodingRegistry(ConnectionRegistry):
            async def emit(self, room, payload):
                raise RuntimeError("registry down")

        outbox = EventOutbox()
        outbox.publish(Event("case:updated", "c1", rooms=("user_1", "case_c1")))

        (result,) = await Dispatcher(outbox, ExplodingRegistry()).drain()
        assert result.failed_rooms == ["user_1", "case_c1"]

    @pytest.mark.asyncio
    async def test_background_run_wakes_on_publish(self):
        registry, outbox = ConnectionRegistry(), EventOutbox()
        sink = RecordingSender()
        registry.join(registry.register(sink), "user_1")
        dispatcher = Dispatcher(outbox, registry, poll_seconds=5)

        dispatcher.start()
        try:
            await asyncio.sleep(0)
            outbox.publish(Event("notification:new", "n1", rooms=("user_1",)))
            for _ in range(50):
                if sink.received:
                    break
                await asyncio.sleep(0.01)
        finally:
            await dispatcher.stop()

        assert [p["type"] for p in sink.received] == ["notification:new"]
        assert not dispatcher.running
