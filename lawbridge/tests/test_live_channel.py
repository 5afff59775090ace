"""
Live Channel Tests
==================

WebSocket endpoint end to end: authentication on connect, room joins
checked against case access, and a committed write reaching a joined
connection once the dispatcher drains the outbox.
"""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from lawbridge.auth import create_access_token
from lawbridge.db.models import Role


@pytest.fixture
def live_client(app):
    # lifespan runs; OUTBOX_AUTOSTART=false keeps the dispatcher idle so tests drain explicitly
    with TestClient(app) as c:
        yield c


def token_for(users, who, role):
    return create_access_token(users[who], role)


class TestConnect:

    def test_connect_joins_own_user_room(self, live_client, users):
        token = token_for(users, "client", Role.CLIENT)
        with live_client.websocket_connect(f"/ws?token={token}") as ws:
            hello = ws.receive_json()
            assert hello["type"] == "connected"
            assert hello["rooms"] == [f"user_{users['client']}"]

            ws.send_json({"action": "ping"})
            assert ws.receive_json() == {"type": "pong"}

    def test_anonymous_connection_has_no_rooms(self, live_client, db_url):
        with live_client.websocket_connect("/ws") as ws:
            assert ws.receive_json()["rooms"] == []
            ws.send_json({"action": "join", "room": "user_1"})
            assert ws.receive_json() == {"type": "room:denied", "room": "user_1"}

    def test_bad_token_closes_4001(self, live_client, db_url):
        with live_client.websocket_connect("/ws?token=garbage") as ws:
            assert ws.receive_json()["type"] == "error"
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_json()
        assert exc.value.code == 4001

    def test_invalid_frames(self, live_client, users):
        token = token_for(users, "client", Role.CLIENT)
        with live_client.websocket_connect(f"/ws?token={token}") as ws:
            ws.receive_json()
            ws.send_text("{not json")
            assert ws.receive_json() == {"type": "error", "message": "Invalid JSON"}
            ws.send_json({"action": "dance"})
            assert ws.receive_json()["type"] == "error"


class TestRoomsAndDelivery:

    def _create_case(self, live_client, users, **fields):
        headers = {"Authorization": f"Bearer {token_for(users, 'advocate', Role.ADVOCATE)}"}
        response = live_client.post("/api/cases", json={"title": "Njoroge v. Hospital", **fields}, headers=headers)
        assert response.status_code == 201
        return response.json()["data"], headers

    def test_join_denied_without_case_access(self, live_client, users, app):
        case, _ = self._create_case(live_client, users)
        token = token_for(users, "other_advocate", Role.ADVOCATE)

        with live_client.websocket_connect(f"/ws?token={token}") as ws:
            ws.receive_json()
            ws.send_json({"action": "join", "room": f"case_{case['id']}"})
            assert ws.receive_json()["type"] == "room:denied"
            assert app.state.registry.members(f"case_{case['id']}") == frozenset()

    def test_committed_update_reaches_case_room(self, live_client, users, app):
        case, headers = self._create_case(live_client, users, shared_with=[users["paralegal"]])
        app.state.outbox.clear()
        token = token_for(users, "paralegal", Role.PARALEGAL)

        with live_client.websocket_connect(f"/ws?token={token}") as ws:
            ws.receive_json()
            ws.send_json({"action": "join", "room": f"case_{case['id']}"})
            assert ws.receive_json() == {"type": "room:joined", "room": f"case_{case['id']}"}

            updated = live_client.put(f"/api/cases/{case['id']}", json={"court": "Milimani"}, headers=headers)
            assert updated.status_code == 200

            results = live_client.portal.call(app.state.dispatcher.drain)
            assert len(results) == 1
            # user room and case room both reach this connection
            assert results[0].delivered >= 1

            frame = ws.receive_json()
            assert frame["type"] == "case:updated"
            assert frame["resourceId"] == case["id"]
            assert frame["resource"]["court"] == "Milimani"

    def test_leave(self, live_client, users):
        case, _ = self._create_case(live_client, users)
        token = token_for(users, "advocate", Role.ADVOCATE)

        with live_client.websocket_connect(f"/ws?token={token}") as ws:
            ws.receive_json()
            room = f"case_{case['id']}"
            ws.send_json({"action": "join", "room": room})
            ws.receive_json()
            ws.send_json({"action": "leave", "room": room})
            assert ws.receive_json() == {"type": "room:left", "room": room, "left": True}

    def test_disconnect_cleans_registry(self, live_client, users, app):
        token = token_for(users, "client", Role.CLIENT)
        with live_client.websocket_connect(f"/ws?token={token}") as ws:
            conn_id = ws.receive_json()["connectionId"]
            assert conn_id in app.state.registry
            ws.send_json({"action": "ping"})
            ws.receive_json()
        assert conn_id not in app.state.registry

    def test_health_reports_live_stats(self, live_client):
        body = live_client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["live"]["dispatcher_running"] is False
        assert "connections" in body["live"]
