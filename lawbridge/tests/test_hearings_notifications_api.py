"""
Hearing and Notification API Tests
==================================
"""

from datetime import datetime, timedelta


def create_case(client, headers, **fields):
    response = client.post("/api/cases", json={"title": "Odhiambo v. County", **fields}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def hearing_body(case_id, days=3, **fields):
    start = datetime.utcnow() + timedelta(days=days)
    return {
        "case_id": case_id,
        "title": "Mention",
        "start": start.isoformat(),
        "end": (start + timedelta(hours=1)).isoformat(),
        **fields,
    }


class TestHearings:

    def test_schedule_defaults_venue(self, client, auth, users, outbox):
        case = create_case(client, auth("advocate"))
        outbox.clear()

        response = client.post(
            "/api/hearings",
            json=hearing_body(case["id"], participants={"respondent": [users["respondent"]]}),
            headers=auth("advocate"),
        )

        assert response.status_code == 201
        hearing = response.json()["data"]
        assert hearing["venue"] == "To be determined"
        assert hearing["participants"] == {"respondent": [users["respondent"]]}

        (event,) = outbox.pending()
        assert event.type == "hearing:new"
        assert f"hearing_{hearing['id']}" in event.rooms
        assert f"user_{users['respondent']}" in event.rooms
        assert f"case_{case['id']}" in event.rooms

    def test_end_before_start_rejected(self, client, auth):
        case = create_case(client, auth("advocate"))
        body = hearing_body(case["id"])
        body["end"], body["start"] = body["start"], body["end"]

        assert client.post("/api/hearings", json=body, headers=auth("advocate")).status_code == 422

    def test_schedule_requires_case_access(self, client, auth):
        case = create_case(client, auth("advocate"))
        response = client.post("/api/hearings", json=hearing_body(case["id"]), headers=auth("other_advocate"))
        assert response.status_code == 403

    def test_participant_can_view_and_note(self, client, auth, users):
        case = create_case(client, auth("advocate"))
        hearing = client.post(
            "/api/hearings",
            json=hearing_body(case["id"], participants={"client": [users["client"]]}),
            headers=auth("advocate"),
        ).json()["data"]
        url = f"/api/hearings/{hearing['id']}"

        assert client.get(url, headers=auth("client")).status_code == 200
        assert client.get(url, headers=auth("respondent")).status_code == 403

        noted = client.post(f"{url}/notes", json={"content": "Will attend"}, headers=auth("client"))
        assert noted.status_code == 201
        assert noted.json()["data"]["notes"][0]["content"] == "Will attend"

    def test_list_by_window(self, client, auth):
        case = create_case(client, auth("advocate"))
        soon = client.post("/api/hearings", json=hearing_body(case["id"], days=1), headers=auth("advocate")).json()
        client.post("/api/hearings", json=hearing_body(case["id"], days=30), headers=auth("advocate"))

        until = (datetime.utcnow() + timedelta(days=7)).isoformat()
        listed = client.get("/api/hearings", params={"to": until}, headers=auth("advocate")).json()
        assert [h["id"] for h in listed["data"]] == [soon["data"]["id"]]

        assert client.get("/api/hearings", headers=auth("other_advocate")).json()["count"] == 0

    def test_update_and_delete(self, client, auth, outbox):
        case = create_case(client, auth("advocate"))
        hearing = client.post("/api/hearings", json=hearing_body(case["id"]), headers=auth("advocate")).json()["data"]
        url = f"/api/hearings/{hearing['id']}"
        outbox.clear()

        updated = client.put(url, json={"venue": "Court 4", "status": "adjourned"}, headers=auth("advocate"))
        assert updated.json()["data"]["venue"] == "Court 4"
        assert updated.json()["data"]["status"] == "adjourned"

        assert client.delete(url, headers=auth("advocate")).status_code == 200
        assert client.get(url, headers=auth("advocate")).status_code == 404
        assert [e.type for e in outbox.pending()] == ["hearing:updated", "hearing:deleted"]

    def test_required_fields_cannot_be_cleared(self, client, auth):
        case = create_case(client, auth("advocate"))
        hearing = client.post("/api/hearings", json=hearing_body(case["id"]), headers=auth("advocate")).json()["data"]
        url = f"/api/hearings/{hearing['id']}"

        for field in ("title", "start", "status"):
            response = client.put(url, json={field: None}, headers=auth("advocate"))
            assert response.status_code == 422, field
            assert response.json()["error"]["code"] == "validation_error"

        assert client.put(url, json={"venue": None}, headers=auth("advocate")).json()["data"]["venue"] == "To be determined"

    def test_dropped_participant_leaves_hearing_room(self, client, auth, users, app):
        case = create_case(client, auth("advocate"), shared_with=[users["client"]])
        hearing = client.post(
            "/api/hearings",
            json=hearing_body(case["id"], participants={"respondent": [users["respondent"]], "client": [users["client"]]}),
            headers=auth("advocate"),
        ).json()["data"]
        room = f"hearing_{hearing['id']}"

        class Sink:
            async def send_json(self, payload):
                pass

        registry = app.state.registry
        respondent = registry.register(Sink(), user_id=users["respondent"])
        client_conn = registry.register(Sink(), user_id=users["client"])
        registry.join(respondent, room)
        registry.join(client_conn, room)
        try:
            response = client.put(
                f"/api/hearings/{hearing['id']}", json={"participants": {}}, headers=auth("advocate"),
            )
            assert response.status_code == 200
            # the client still has case access through the share
            assert registry.members(room) == frozenset({client_conn})
        finally:
            registry.disconnect(respondent)
            registry.disconnect(client_conn)

    def test_hearing_hidden_when_case_deleted(self, client, auth, users):
        case = create_case(client, auth("advocate"))
        hearing = client.post(
            "/api/hearings",
            json=hearing_body(case["id"], participants={"client": [users["client"]]}),
            headers=auth("advocate"),
        ).json()["data"]
        client.delete(f"/api/cases/{case['id']}", headers=auth("advocate"))

        assert client.get(f"/api/hearings/{hearing['id']}", headers=auth("client")).status_code == 404


class TestNotifications:

    def _send(self, client, auth, recipient, title="Reminder"):
        response = client.post(
            "/api/notifications",
            json={"recipient_id": recipient, "title": title, "message": "Filing due Friday"},
            headers=auth("advocate"),
        )
        assert response.status_code == 201, response.text
        return response.json()["data"]

    def test_send_and_read(self, client, auth, users, outbox):
        sent = self._send(client, auth, users["client"])

        assert outbox.pending()[-1].rooms == (f"user_{users['client']}",)

        listing = client.get("/api/notifications", headers=auth("client")).json()
        assert [n["id"] for n in listing["data"]] == [sent["id"]]
        assert client.get("/api/notifications/unread-count", headers=auth("client")).json()["data"]["unread"] == 1

        read = client.patch(f"/api/notifications/{sent['id']}/read", headers=auth("client"))
        assert read.json()["data"]["is_read"] is True
        assert client.get("/api/notifications/unread-count", headers=auth("client")).json()["data"]["unread"] == 0

    def test_clients_cannot_send(self, client, auth, users):
        response = client.post(
            "/api/notifications",
            json={"recipient_id": users["advocate"], "title": "Hi", "message": "Hello"},
            headers=auth("client"),
        )
        assert response.status_code == 403

    def test_other_users_notification_not_found(self, client, auth, users):
        sent = self._send(client, auth, users["client"])
        assert client.patch(f"/api/notifications/{sent['id']}/read", headers=auth("respondent")).status_code == 404

    def test_read_all_and_clear(self, client, auth, users, outbox):
        self._send(client, auth, users["client"], "One")
        self._send(client, auth, users["client"], "Two")
        outbox.clear()

        assert client.patch("/api/notifications/read-all", headers=auth("client")).json()["count"] == 2
        assert client.delete("/api/notifications/clear-read", headers=auth("client")).json()["count"] == 2
        assert client.get("/api/notifications", headers=auth("client")).json()["count"] == 0
        assert [e.type for e in outbox.pending()] == ["notification:readAll", "notification:cleared"]

    def test_delete(self, client, auth, users):
        sent = self._send(client, auth, users["client"])
        assert client.delete(f"/api/notifications/{sent['id']}", headers=auth("client")).status_code == 200
        assert client.get("/api/notifications", headers=auth("client")).json()["count"] == 0
