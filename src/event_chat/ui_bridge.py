"""Websocket side of the bus: outbound events to the client, client messages onto the bus."""

import asyncio
import logging
import uuid
from typing import Optional

from fastapi import WebSocket

from . import events
from .event_bus import EventBus
from .storage import API_KEY

logger = logging.getLogger(__name__)


_STRUCTURED_TEMPLATES = {
    "user_input": "USER: {content}",
    "tool_call": "TOOL CALL: {tool_name}({arguments})",
    "tool_result": "TOOL RESULT: {tool_name} -> {result}",
    "output_text": "ASSISTANT: {content}",
    "request_error": "REQUEST ERROR: {kind} - {content}",
}


class _Missing(dict):
    def __missing__(self, key):
        return "?"


def format_structured_record(data: dict) -> str:
    """Render an ``extra={"structured": ...}`` payload as one display line."""
    template = _STRUCTURED_TEMPLATES.get(data.get("log_type"))
    if template is None:
        return str(data.get("content", data))

    line = template.format_map(_Missing(data))
    agent_id = data.get("agent_id", "main")
    if agent_id != "main":
        line = f"[{agent_id}] {line}"
    return line


class UILogHandler(logging.Handler):
    """Mirrors package log records (INFO and up) onto the client socket."""

    def __init__(self, bridge: "WebSocketBridge"):
        super().__init__(level=logging.INFO)
        self.bridge = bridge

    def emit(self, record: logging.LogRecord) -> None:
        structured = getattr(record, "structured", None)
        if isinstance(structured, dict):
            self.bridge.log(format_structured_record(structured), message_type="structured_log")
        else:
            self.bridge.log(self.format(record))


class WebSocketBridge:
    """Relays bus events to one websocket client and client messages onto the bus."""

    def __init__(self, bus: EventBus, websocket: Optional[WebSocket] = None, preferences=None):
        self.bus = bus
        self.websocket = websocket
        self.preferences = preferences
        self.status = "Connected"
        self.subscriptions = []
        self._tasks = set()

    def attach(self):
        """Subscribe to every outbound event type. Call close() to release."""
        if not self.subscriptions:
            self.subscriptions = [
                self.bus.subscribe(event_type, self._forward_event)
                for event_type in events.OUTBOUND_EVENT_TYPES
            ]
        return self.subscriptions

    def close(self) -> None:
        for subscription in self.subscriptions:
            subscription.unsubscribe()
        self.subscriptions = []
        self.websocket = None

    async def _forward_event(self, event: events.Event) -> None:
        await self._send_to_ui(event.to_dict())

    async def _send_to_ui(self, message: dict) -> None:
        """Write one JSON frame to the client; a closed socket drops it."""
        websocket = self.websocket
        if websocket is None:
            return
        try:
            await websocket.send_json(message)
        except Exception as e:
            # Debug level so the UI log handler does not echo it back
            logger.debug(f"SYSTEM: Dropped message for closed websocket: {e}")

    async def _send_state_update(self) -> None:
        await self._send_to_ui({"type": "state", "status": self.status})

    async def _send_internal_message(self, content: str, message_type: str = "log") -> None:
        """Frames outside the event stream: log lines and notices."""
        await self._send_to_ui(
            {"type": message_type, "content": content, "timestamp": events.now_ms()}
        )

    def _spawn(self, coro) -> None:
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            return
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def log(self, content: str, message_type: str = "log") -> None:
        """Queue a log line for the client without blocking the caller."""
        self._spawn(self._send_internal_message(content, message_type=message_type))

    # Client -> bus

    async def handle_client_message(self, message_data: dict) -> None:
        message_type = message_data.get("type", "user_message")

        if message_type == "user_message":
            self.request_response(
                message_data.get("content", ""),
                message_id=message_data.get("message_id"),
                api_key=message_data.get("api_key"),
            )
        elif message_type == "set_api_key":
            if self.preferences is not None:
                self.preferences.set(API_KEY, message_data.get("api_key", ""))
            await self._send_internal_message("API key saved", message_type="notice")
        elif message_type == "clear_api_key":
            if self.preferences is not None:
                self.preferences.clear(API_KEY)
            await self._send_internal_message("API key cleared", message_type="notice")
        elif message_type == "form_submit":
            self.bus.publish(
                events.FORM_SUBMIT,
                {
                    "form_data": message_data.get("form_data") or {},
                    "form_type": message_data.get("form_type", "contact"),
                },
            )
        elif message_type == "clear_chat":
            self.bus.publish(events.CLEAR_CHAT, {"confirm": True})
        else:
            logger.warning(f"SYSTEM: Ignoring unknown client message type {message_type!r}")

    def request_response(self, content: str, message_id: Optional[str] = None, api_key: Optional[str] = None) -> str:
        """Publish the user's message and a request for the model's reply.

        Returns the message id of the pending response.
        """
        if api_key is None and self.preferences is not None:
            api_key = self.preferences.get(API_KEY)

        self.bus.publish(
            events.USER_MESSAGE_SENT,
            {"message": content, "message_id": f"user-{uuid.uuid4().hex[:12]}"},
        )
        response_id = message_id or f"ai-{uuid.uuid4().hex[:12]}"
        self.bus.publish(
            events.AI_RESPONSE_REQUESTED,
            {"message": content, "message_id": response_id, "api_key": api_key or ""},
        )
        return response_id
