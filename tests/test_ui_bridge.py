import logging

import pytest

from event_chat import events
from event_chat.storage import API_KEY, KeyValueStore
from event_chat.ui_bridge import UILogHandler, WebSocketBridge, format_structured_record

from .conftest import EventRecorder


class FakeWebSocket:
    def __init__(self):
        self.sent = []

    async def send_json(self, data):
        self.sent.append(data)


class ClosedWebSocket:
    async def send_json(self, data):
        raise RuntimeError("socket closed")


@pytest.fixture
def websocket():
    return FakeWebSocket()


@pytest.fixture
def bridge(bus, websocket, tmp_path):
    bridge = WebSocketBridge(bus, websocket, preferences=KeyValueStore(tmp_path / "prefs.json"))
    bridge.attach()
    yield bridge
    bridge.close()


class TestForwarding:
    @pytest.mark.asyncio
    async def test_outbound_events_reach_socket(self, bus, bridge, websocket):
        bus.publish(events.THEME_CHANGE, {"theme": "dark"})
        await bus.join()

        [frame] = websocket.sent
        assert frame["type"] == events.THEME_CHANGE
        assert frame["payload"] == {"theme": "dark"}
        assert isinstance(frame["timestamp"], int)

    @pytest.mark.asyncio
    async def test_inbound_only_events_are_not_forwarded(self, bus, bridge, websocket):
        bus.publish(events.AI_RESPONSE_REQUESTED, {"message": "hi"})
        await bus.join()

        assert websocket.sent == []

    @pytest.mark.asyncio
    async def test_close_stops_forwarding(self, bus, bridge, websocket):
        bridge.close()
        bus.publish(events.SIDEBAR_TOGGLE, {"is_open": True})
        await bus.join()

        assert websocket.sent == []
        assert bus.subscriber_count(events.SIDEBAR_TOGGLE) == 0

    @pytest.mark.asyncio
    async def test_closed_socket_is_tolerated(self, bus):
        bridge = WebSocketBridge(bus, ClosedWebSocket())
        bridge.attach()

        bus.publish(events.FORM_FILL, {"name": "Ada"})
        await bus.join()

        bridge.close()


class TestClientMessages:
    @pytest.mark.asyncio
    async def test_user_message_publishes_request(self, bus, bridge):
        recorder = EventRecorder(bus, events.USER_MESSAGE_SENT, events.AI_RESPONSE_REQUESTED)

        await bridge.handle_client_message({"type": "user_message", "content": "hi", "api_key": "sk-abcdefghij"})
        await bus.join()

        assert recorder.types() == [events.USER_MESSAGE_SENT, events.AI_RESPONSE_REQUESTED]
        request = recorder.payloads(events.AI_RESPONSE_REQUESTED)[0]
        assert request["message"] == "hi"
        assert request["api_key"] == "sk-abcdefghij"
        assert request["message_id"].startswith("ai-")
        assert recorder.payloads(events.USER_MESSAGE_SENT)[0]["message_id"].startswith("user-")

    @pytest.mark.asyncio
    async def test_api_key_set_and_clear(self, bridge, websocket):
        await bridge.handle_client_message({"type": "set_api_key", "api_key": "sk-stored-key"})
        assert bridge.preferences.get(API_KEY) == "sk-stored-key"

        await bridge.handle_client_message({"type": "clear_api_key"})
        assert bridge.preferences.get(API_KEY) is None
        assert [m["content"] for m in websocket.sent if m["type"] == "notice"] == ["API key saved", "API key cleared"]

    def test_request_response_falls_back_to_stored_key(self, bus, bridge):
        bridge.preferences.set(API_KEY, "sk-from-store")
        recorder = EventRecorder(bus, events.AI_RESPONSE_REQUESTED)

        response_id = bridge.request_response("hello", message_id="ai-fixed")

        assert response_id == "ai-fixed"
        assert recorder.payloads(events.AI_RESPONSE_REQUESTED) == [
            {"message": "hello", "message_id": "ai-fixed", "api_key": "sk-from-store"}
        ]

    @pytest.mark.asyncio
    async def test_unknown_type_is_logged(self, bridge, caplog):
        await bridge.handle_client_message({"type": "dance"})
        assert "Ignoring unknown client message type 'dance'" in caplog.text


class TestLogForwarding:
    @pytest.mark.asyncio
    async def test_handler_forwards_plain_and_structured_records(self, bridge, websocket):
        test_logger = logging.getLogger("event_chat.tests.ui")
        test_logger.setLevel(logging.DEBUG)
        handler = UILogHandler(bridge)
        test_logger.addHandler(handler)
        try:
            test_logger.debug("hidden")
            test_logger.info("Server ready")
            test_logger.info(
                "Tool call received",
                extra={"structured": {"log_type": "tool_call", "tool_name": "clear_chat", "arguments": "{}"}},
            )
            for task in list(bridge._tasks):
                await task
        finally:
            test_logger.removeHandler(handler)

        assert [(m["type"], m["content"]) for m in websocket.sent] == [
            ("log", "Server ready"),
            ("structured_log", "TOOL CALL: clear_chat({})"),
        ]


@pytest.mark.parametrize(
    "data, expected",
    [
        ({"log_type": "user_input", "content": "hello"}, "USER: hello"),
        ({"log_type": "tool_result", "tool_name": "fill_form", "result": {"success": True}}, "TOOL RESULT: fill_form -> {'success': True}"),
        ({"log_type": "request_error", "kind": "TransportFailure", "content": "API request failed"}, "REQUEST ERROR: TransportFailure - API request failed"),
        ({"log_type": "output_text", "content": "Done", "agent_id": "helper"}, "[helper] ASSISTANT: Done"),
        ({"log_type": "tool_call"}, "TOOL CALL: ?(?)"),
        ({"log_type": "other", "content": "raw"}, "raw"),
    ],
)
def test_format_structured_record(data, expected):
    assert format_structured_record(data) == expected
