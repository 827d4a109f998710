"""Shared fixtures and stream builders."""

import asyncio
import json

import pytest

from event_chat.event_bus import EventBus

VALID_KEY = "sk-validkey123"


def sse(payload) -> str:
    """One ``data:`` record as the upstream frames it."""
    if isinstance(payload, str):
        return f"data: {payload}\n\n"
    return f"data: {json.dumps(payload)}\n\n"


def content_record(text: str) -> str:
    return sse({"choices": [{"index": 0, "delta": {"content": text}}]})


def tool_record(index: int, id=None, name=None, arguments=None) -> str:
    function = {}
    if name is not None:
        function["name"] = name
    if arguments is not None:
        function["arguments"] = arguments
    call = {"index": index, "function": function}
    if id is not None:
        call["id"] = id
        call["type"] = "function"
    return sse({"choices": [{"index": 0, "delta": {"tool_calls": [call]}}]})


DONE = sse("[DONE]")


class FakeUpstream:
    """Stands in for OpenRouterClient; each call replays the next script."""

    def __init__(self, *scripts, error=None):
        self.scripts = list(scripts)
        self.error = error
        self.calls = []

    async def stream_chat(self, api_key, messages, tools, **kwargs):
        self.calls.append({"api_key": api_key, "messages": list(messages), "tools": tools, **kwargs})
        chunks = self.scripts.pop(0) if self.scripts else []
        for chunk in chunks:
            await asyncio.sleep(0)
            yield chunk
        if self.error is not None:
            raise self.error


class EventRecorder:
    """Synchronous subscriber that keeps every event it sees, in order."""

    def __init__(self, bus, *event_types):
        self.events = []
        self.subscriptions = [bus.subscribe(t, self.events.append) for t in event_types]

    def types(self):
        return [e.type for e in self.events]

    def payloads(self, event_type):
        return [e.payload for e in self.events if e.type == event_type]

    def close(self):
        for subscription in self.subscriptions:
            subscription.unsubscribe()


@pytest.fixture
def bus():
    return EventBus()
