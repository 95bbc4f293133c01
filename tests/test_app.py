"""End-to-end tests through the WebSocket endpoint and HTTP router."""
import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, Mock

from app import app, websocket_endpoint


@pytest.fixture
def client():
    with TestClient(app) as client:
        yield client


def receive_event(websocket, event):
    """Read frames until ``event`` arrives, skipping user count broadcasts."""
    while True:
        frame = websocket.receive_json()
        if frame["event"] == event:
            return frame["data"]
        assert frame["event"] == "user_count", f"unexpected {frame}"


def pair(first, second):
    first.send_json({"event": "find_partner"})
    receive_event(first, "waiting")
    second.send_json({"event": "find_partner"})
    first_match = receive_event(first, "match_found")
    second_match = receive_event(second, "match_found")
    assert receive_event(first, "previous_messages") == []
    assert receive_event(second, "previous_messages") == []
    return first_match, second_match


def test_health(client):
    response = client.get("/")

    assert response.status_code == 200


def test_waiting_then_matched(client):
    with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
        a_match, b_match = pair(a, b)

        assert a_match["roomId"] == b_match["roomId"]
        assert a_match["initiator"] is True
        assert b_match["initiator"] is False


def test_message_reaches_peer_only(client):
    with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
        a_match, _ = pair(a, b)

        a.send_json({"event": "message", "data": {"roomId": a_match["roomId"], "text": "hi"}})
        message = receive_event(b, "message")

        assert message["text"] == "hi"
        assert message["type"] == "incoming"
        assert message["sender"] == "Stranger"

        # a gets nothing back: its next frame is the answer to this request
        a.send_json({"event": "request_user_count"})
        assert receive_event(a, "user_count") >= 2


def test_signaling_relay(client):
    with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
        a_match, _ = pair(a, b)
        room_id = a_match["roomId"]
        offer = {"type": "offer", "sdp": "v=0"}

        a.send_json({"event": "webrtc_offer", "data": {"roomId": room_id, "offer": offer}})
        assert receive_event(b, "webrtc_offer") == offer

        b.send_json({"event": "webrtc_answer", "data": {"roomId": room_id, "answer": {"type": "answer"}}})
        assert receive_event(a, "webrtc_answer") == {"type": "answer"}

        b.send_json({"event": "webrtc_ice_candidate", "data": {"roomId": room_id, "candidate": {"candidate": "c"}}})
        assert receive_event(a, "webrtc_ice_candidate") == {"candidate": "c"}


def test_leave_chat_notifies_partner(client):
    with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
        pair(a, b)

        b.send_json({"event": "leave_chat"})

        assert receive_event(a, "partner_disconnected") is None


def test_disconnect_notifies_partner(client):
    with client.websocket_connect("/ws") as a:
        with client.websocket_connect("/ws") as b:
            pair(a, b)

        assert receive_event(a, "partner_disconnected") is None
        assert app.state.chat.stats().paired_count == 1


def test_invalid_frames_are_ignored(client):
    with client.websocket_connect("/ws") as a:
        assert receive_event(a, "user_count") >= 1

        a.send_text("not json")
        a.send_json({"event": "shout"})
        a.send_json({"event": "message", "data": {"roomId": ["x"], "text": "hi"}})
        a.send_json({"event": "message", "data": {"text": "no room"}})
        a.send_json({"event": "request_user_count"})

        assert receive_event(a, "user_count") >= 1


def test_stats_reports_waiting_connection(client):
    with client.websocket_connect("/ws") as a:
        a.send_json({"event": "find_partner"})
        receive_event(a, "waiting")

        stats = client.get("/stats").json()

    assert stats["waiting_count"] == 1
    assert stats["online_users_count"] >= 1
    assert stats["paired_count"] == 0


@pytest.mark.asyncio
async def test_receive_error_still_cleans_up_and_closes():
    websocket = Mock()
    websocket.accept = AsyncMock()
    websocket.send_text = AsyncMock()
    websocket.close = AsyncMock()
    websocket.receive_text = AsyncMock(side_effect=RuntimeError("boom"))
    online_before = app.state.registry.count()

    await websocket_endpoint(websocket)

    websocket.close.assert_awaited_once()
    assert app.state.registry.count() == online_before
    assert app.state.chat.stats().waiting_count == 0


@pytest.mark.asyncio
async def test_close_failure_is_tolerated():
    websocket = Mock()
    websocket.accept = AsyncMock()
    websocket.send_text = AsyncMock()
    websocket.close = AsyncMock(side_effect=RuntimeError("already closed"))
    websocket.receive_text = AsyncMock(side_effect=RuntimeError("boom"))

    await websocket_endpoint(websocket)

    websocket.close.assert_awaited_once()
