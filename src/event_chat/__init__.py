"""
Event-Driven Chat - streaming chat completions with tools that drive a host UI.

The agent consumes the upstream SSE stream, reassembles tool calls and
publishes everything it does on an event bus.
"""

__version__ = "0.1.0"

from .agent import ChatAgent, Conversation, PendingRequest, RequestStatus
from .event_bus import EventBus, Subscription, get_event_bus
from .events import Event
from .stream_decoder import StreamFrameDecoder, decode_stream
from .tool_calls import ToolCall, ToolCallAccumulator
from .tool_registry import ToolDispatcher, ToolRegistry, callable_to_tool_schema
from .tools import build_default_registry
from .upstream import OpenRouterClient

__all__ = [
    "ChatAgent",
    "Conversation",
    "PendingRequest",
    "RequestStatus",
    "EventBus",
    "Subscription",
    "get_event_bus",
    "Event",
    "StreamFrameDecoder",
    "decode_stream",
    "ToolCall",
    "ToolCallAccumulator",
    "ToolDispatcher",
    "ToolRegistry",
    "callable_to_tool_schema",
    "build_default_registry",
    "OpenRouterClient",
]
