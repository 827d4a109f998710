"""Event value type and the event vocabulary shared by the agent and its collaborators."""

import time
from typing import Any, NamedTuple

# Conversation lifecycle
USER_MESSAGE_SENT = "USER_MESSAGE_SENT"
AI_RESPONSE_REQUESTED = "AI_RESPONSE_REQUESTED"
AI_RESPONSE_CHUNK = "AI_RESPONSE_CHUNK"
AI_RESPONSE_COMPLETE = "AI_RESPONSE_COMPLETE"
AI_RESPONSE_ERROR = "AI_RESPONSE_ERROR"
TOOL_CALL = "TOOL_CALL"

# Side effects requested by tools
SIDEBAR_TOGGLE = "SIDEBAR_TOGGLE"
SIDEBAR_RESIZE = "SIDEBAR_RESIZE"
THEME_CHANGE = "THEME_CHANGE"
PAGE_NAVIGATE = "PAGE_NAVIGATE"
SPLIT_VIEW_TOGGLE = "SPLIT_VIEW_TOGGLE"
FORM_FILL = "FORM_FILL"
CLEAR_CHAT = "CLEAR_CHAT"

# Originated by the host UI
FORM_SUBMIT = "FORM_SUBMIT"

# Everything the core publishes for UI/storage collaborators
OUTBOUND_EVENT_TYPES = (
    USER_MESSAGE_SENT,
    AI_RESPONSE_CHUNK,
    AI_RESPONSE_COMPLETE,
    AI_RESPONSE_ERROR,
    TOOL_CALL,
    SIDEBAR_TOGGLE,
    SIDEBAR_RESIZE,
    THEME_CHANGE,
    PAGE_NAVIGATE,
    SPLIT_VIEW_TOGGLE,
    FORM_FILL,
    CLEAR_CHAT,
)


class Event(NamedTuple):
    """An application-level occurrence. Never mutated after emission."""

    type: str
    payload: Any
    timestamp: int

    def to_dict(self) -> dict:
        return {"type": self.type, "payload": self.payload, "timestamp": self.timestamp}


def now_ms() -> int:
    return int(time.time() * 1000)


def make_event(event_type: str, payload: Any = None) -> Event:
    """Build an event stamped with the current time in milliseconds."""
    return Event(type=event_type, payload=payload if payload is not None else {}, timestamp=now_ms())
