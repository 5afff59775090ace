"""
Client Reconciler Tests
=======================

Tests for:
- Merge helpers (upsert_front, upsert_by_id, remove_by_id)
- Idempotent application of repeated events
- Scoped views ignore events for other resources
- Bounded reconnection
"""

import pytest

from lawbridge.client import (
    LiveView, MergeOp, ReconnectPolicy, Scope,
    case_view, connect_with_retry, hearing_view, notification_view, remove_by_id, task_view,
    mark_all_read, remove_listed, upsert_by_id, upsert_front,
)


def wire(event_type, resource, resource_id=None):
    return {"type": event_type, "resourceId": resource_id or resource.get("id"), "resource": resource}


class TestMergeHelpers:

    def test_upsert_front_prepends_new(self):
        assert upsert_front([{"id": 1}], {"id": 2}) == [{"id": 2}, {"id": 1}]

    def test_upsert_front_replaces_in_place(self):
        items = [{"id": 1, "v": "a"}, {"id": 2, "v": "b"}]
        assert upsert_front(items, {"id": 2, "v": "c"}) == [{"id": 1, "v": "a"}, {"id": 2, "v": "c"}]

    def test_upsert_by_id_ignores_absent(self):
        assert upsert_by_id([{"id": 1}], {"id": 9}) == [{"id": 1}]

    def test_remove_by_id(self):
        assert remove_by_id([{"id": 1}, {"id": 2}], 1) == [{"id": 2}]
        assert remove_by_id([{"id": 2}], 1) == [{"id": 2}]

    def test_inputs_not_mutated(self):
        items = [{"id": 1}]
        upsert_front(items, {"id": 2})
        remove_by_id(items, 1)
        assert items == [{"id": 1}]


class TestIdempotence:

    def test_repeated_update_event(self):
        view = task_view()
        view.replace([{"id": "t1", "title": "Draft"}, {"id": "t2", "title": "File"}])
        event = wire("task:updated", {"id": "t1", "title": "Draft plaint"})

        assert view.apply(event) is True
        once = list(view.items)
        assert view.apply(event) is False
        assert view.items == once

    def test_repeated_new_event(self):
        view = case_view()
        event = wire("case:new", {"id": "c1", "title": "Kamau v. Bank"})

        view.apply_all([event, event, event])
        assert view.items == [{"id": "c1", "title": "Kamau v. Bank"}]

    def test_delete_then_delete(self):
        view = notification_view()
        view.replace([{"id": "n1"}, {"id": "n2"}])
        event = wire("notification:deleted", {"id": "n1"})

        assert view.apply(event) is True
        assert view.apply(event) is False
        assert view.items == [{"id": "n2"}]


class TestBulkNotificationEvents:

    def test_read_all_marks_every_item(self):
        view = notification_view()
        view.replace([{"id": "n1", "is_read": False}, {"id": "n2", "is_read": True}])
        event = {"type": "notification:readAll", "resourceId": "u1", "resource": {"id": "u1", "count": 1}}

        assert view.apply(event) is True
        assert view.items == [{"id": "n1", "is_read": True}, {"id": "n2", "is_read": True}]
        assert view.apply(event) is False

    def test_cleared_removes_listed_ids(self):
        view = notification_view()
        view.replace([{"id": "n1", "is_read": True}, {"id": "n2", "is_read": False}])
        event = {"type": "notification:cleared", "resourceId": "u1", "resource": {"id": "u1", "ids": ["n1", "n9"]}}

        assert view.apply(event) is True
        assert view.items == [{"id": "n2", "is_read": False}]
        assert view.apply(event) is False

    def test_helpers_leave_input_alone(self):
        items = [{"id": "n1", "is_read": False}]
        assert mark_all_read(items) == [{"id": "n1", "is_read": True}]
        assert remove_listed(items, ["n1"]) == []
        assert items == [{"id": "n1", "is_read": False}]


class TestScoping:

    def test_task_for_other_case_is_ignored(self):
        view = task_view(case_id="C7")
        view.replace([{"id": "t1", "case_id": "C7"}])

        changed = view.apply(wire("task:new", {"id": "t9", "case_id": "C42", "title": "Elsewhere"}))

        assert changed is False
        assert view.items == [{"id": "t1", "case_id": "C7"}]

    def test_task_for_same_case_is_merged(self):
        view = task_view(case_id="C7")
        view.apply(wire("task:new", {"id": "t2", "case_id": "C7"}))
        assert [t["id"] for t in view.items] == ["t2"]

    def test_update_for_other_resource_leaves_list_alone(self):
        view = hearing_view(case_id="C7")
        view.replace([{"id": "h1", "case_id": "C7", "venue": "Court 1"}])

        view.apply(wire("hearing:updated", {"id": "h1", "case_id": "C42", "venue": "Moved"}))
        assert view.items[0]["venue"] == "Court 1"

    def test_client_scope(self):
        view = task_view(client_id="u5")
        view.apply(wire("task:new", {"id": "t1", "client_id": "u6"}))
        view.apply(wire("task:new", {"id": "t2", "client_id": "u5"}))
        assert [t["id"] for t in view.items] == ["t2"]

    def test_removal_without_scope_field_still_applies(self):
        view = task_view(case_id="C7")
        view.replace([{"id": "t1", "case_id": "C7"}])
        view.apply(wire("task:deleted", {"id": "t1"}))
        assert view.items == []

    def test_upsert_without_scope_field_is_ignored(self):
        view = task_view(case_id="C7")
        view.apply(wire("task:new", {"id": "t1"}))
        assert view.items == []

    def test_hearing_scope_keeps_falsy_case_id(self):
        view = hearing_view(case_id="")
        assert view.scope == Scope("case_id", "")
        view.apply(wire("hearing:new", {"id": "h1", "case_id": "C7"}))
        assert view.items == []

    def test_embedded_reference(self):
        assert Scope("case_id", "C7").admits({"case_id": {"id": "C7", "title": "X"}})

    def test_unsubscribed_event_ignored(self):
        view = case_view()
        assert view.apply(wire("task:new", {"id": "t1"})) is False

    def test_resource_id_from_envelope(self):
        view = LiveView({"case:deleted": MergeOp.REMOVE_BY_ID}, items=[{"id": "c1"}])
        assert view.apply({"type": "case:deleted", "resourceId": "c1", "resource": {}}) is True
        assert view.items == []


class TestReconnect:

    def test_policy_validation(self):
        with pytest.raises(ValueError):
            ReconnectPolicy(attempts=0)
        with pytest.raises(ValueError):
            ReconnectPolicy(delay_seconds=-1)

    def test_policy_from_settings(self):
        policy = ReconnectPolicy.from_settings()
        assert policy.attempts == 3
        assert policy.delay_seconds == 1.0

    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self):
        calls, sleeps = [], []

        async def connect():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionRefusedError("down")
            return "connected"

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        result = await connect_with_retry(connect, ReconnectPolicy(attempts=3, delay_seconds=1.0), sleep=fake_sleep)

        assert result == "connected"
        assert sleeps == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self):
        calls = []

        async def connect():
            calls.append(1)
            raise ConnectionRefusedError("down")

        async def fake_sleep(seconds):
            pass

        with pytest.raises(ConnectionRefusedError):
            await connect_with_retry(connect, ReconnectPolicy(attempts=3, delay_seconds=0), sleep=fake_sleep)
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_non_network_errors_propagate_immediately(self):
        calls = []

        async def connect():
            calls.append(1)
            raise ValueError("bad token")

        with pytest.raises(ValueError):
            await connect_with_retry(connect, ReconnectPolicy(attempts=3, delay_seconds=0))
        assert len(calls) == 1
