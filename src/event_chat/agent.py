import json
import logging
from contextlib import aclosing
from enum import Enum
from typing import Any, Dict, List, Optional

from . import events
from .errors import (
    ChatError,
    CredentialInvalid,
    ToolArgumentParseFailure,
    UpstreamError,
)
from .event_bus import EventBus, Subscription, get_event_bus
from .stream_decoder import decode_stream
from .tool_calls import ToolCall, ToolCallAccumulator
from .tool_registry import ToolContext, ToolDispatcher, ToolRegistry
from .upstream import DEFAULT_MODEL

logger = logging.getLogger(__name__)

MIN_API_KEY_LENGTH = 10
INVALID_API_KEY_MESSAGE = "Invalid API key. Please enter a valid OpenRouter API key."
FALLBACK_ACKNOWLEDGEMENT = "I wasn't able to complete that action."


class AgentLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that automatically injects agent_id into structured logs."""

    def __init__(self, logger, agent_id):
        self.agent_id = agent_id
        super().__init__(logger, {})

    def process(self, msg, kwargs):
        # Inject agent_id into structured logs
        if "extra" in kwargs and "structured" in kwargs["extra"]:
            kwargs["extra"]["structured"]["agent_id"] = self.agent_id
        return msg, kwargs


class RequestStatus(str, Enum):
    IDLE = "idle"
    REQUESTED = "requested"
    STREAMING = "streaming"
    TOOL_EXECUTING = "tool_executing"
    COMPLETED = "completed"
    ERRORED = "errored"


TERMINAL_STATUSES = {RequestStatus.COMPLETED, RequestStatus.ERRORED}


class PendingRequest:
    """Lifecycle of one request for a response, identified by its message id."""

    def __init__(self, message_id: str, api_key: Optional[str]):
        self.message_id = message_id
        self.api_key = api_key
        self.status = RequestStatus.IDLE
        self.response_text = ""
        self.tool_calls: List[ToolCall] = []
        self.error: Optional[str] = None

    @property
    def done(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self):
        return f"PendingRequest(message_id={self.message_id!r}, status={self.status.value})"


class Conversation:
    """Append-only message history shared by every request of one agent.

    Unbounded: nothing is evicted for the life of the process.
    """

    def __init__(self, messages: Optional[List[Dict[str, Any]]] = None):
        self.messages: List[Dict[str, Any]] = list(messages or [])

    def append(self, message: Dict[str, Any]) -> None:
        self.messages.append(message)

    def clear(self) -> None:
        self.messages = []

    def snapshot(self) -> List[Dict[str, Any]]:
        return list(self.messages)

    def __len__(self) -> int:
        return len(self.messages)

    def __iter__(self):
        return iter(self.messages)


def acknowledgement_for(phrases: List[str]) -> str:
    """Short sentence describing what the tools did, e.g. I've cleared the chat for you."""
    if not phrases:
        return FALLBACK_ACKNOWLEDGEMENT
    unique = list(dict.fromkeys(phrases))
    if len(unique) == 1:
        return f"I've {unique[0]} for you."
    return f"I've {', '.join(unique[:-1])} and {unique[-1]} for you."


class ChatAgent:
    """Streams responses from the upstream model and runs the tools it calls."""

    def __init__(
        self,
        upstream,
        registry: ToolRegistry,
        bus: Optional[EventBus] = None,
        conversation: Optional[Conversation] = None,
        preferences=None,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.7,
        max_tokens: int = 2048,
        agent_id: Optional[str] = None,
    ):
        self.upstream = upstream
        self.registry = registry
        self.dispatcher = ToolDispatcher(registry)
        self.bus = bus or get_event_bus()
        self.conversation = conversation if conversation is not None else Conversation()
        self.preferences = preferences
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.pending: Dict[str, PendingRequest] = {}
        self.subscriptions: List[Subscription] = []

        # Create agent-specific logger with automatic agent_id injection
        self.logger = AgentLoggerAdapter(logger, agent_id or "main")

    # Bus wiring

    def attach(self) -> List[Subscription]:
        """Listen for response requests and chat clears on the bus."""
        if not self.subscriptions:
            self.subscriptions = [
                self.bus.subscribe(events.AI_RESPONSE_REQUESTED, self._on_response_requested),
                self.bus.subscribe(events.CLEAR_CHAT, self._on_clear_chat),
            ]
        return self.subscriptions

    def close(self) -> None:
        for subscription in self.subscriptions:
            subscription.unsubscribe()
        self.subscriptions = []

    async def _on_response_requested(self, event: events.Event) -> None:
        payload = event.payload or {}
        await self.generate_response(
            payload.get("message", ""),
            payload.get("message_id", ""),
            payload.get("api_key"),
        )

    def _on_clear_chat(self, event: events.Event) -> None:
        if (event.payload or {}).get("confirm", True):
            self.clear_conversation()

    def log_item(self, item_type: str, extra: dict):
        structured = {"log_type": item_type, **extra}
        self.logger.info(
            f"{item_type.replace('_', ' ').title()} received", extra={"structured": structured}
        )

    def _transition(self, request: PendingRequest, status: RequestStatus) -> None:
        self.logger.debug(f"{request.message_id}: {request.status.value} -> {status.value}")
        request.status = status

    # Request lifecycle

    async def generate_response(self, message: str, message_id: str, api_key: Optional[str]) -> PendingRequest:
        """Run one request from user message to completion or error.

        Never raises for request failures; they are published as error events.
        """
        request = PendingRequest(message_id, api_key)
        if message_id in self.pending:
            self.logger.warning(f"Request {message_id} is already in flight")
        self.pending[message_id] = request

        try:
            self._transition(request, RequestStatus.REQUESTED)
            self.log_item("user_input", {"content": message, "message_id": message_id})
            self.conversation.append({"role": "user", "content": message})
            self._validate_api_key(api_key)

            self._transition(request, RequestStatus.STREAMING)
            accumulator = await self._stream_response(request)

            tool_calls = accumulator.complete()
            if tool_calls:
                await self._execute_tool_calls(request, tool_calls)

            self._complete(request)
        except ChatError as e:
            self._fail(request, e.message, e.kind)
        except Exception as e:
            self.logger.exception(f"Unexpected error handling request {message_id}")
            self._fail(request, str(e) or "Unknown error", "Unknown")
        finally:
            if self.pending.get(message_id) is request:
                del self.pending[message_id]

        return request

    def _validate_api_key(self, api_key: Optional[str]) -> None:
        if not api_key or len(api_key.strip()) < MIN_API_KEY_LENGTH:
            raise CredentialInvalid(INVALID_API_KEY_MESSAGE)

    async def _stream_response(self, request: PendingRequest) -> ToolCallAccumulator:
        """Feed the upstream body through the decoder, emitting text as it arrives."""
        accumulator = ToolCallAccumulator()
        chunks = self.upstream.stream_chat(
            request.api_key,
            self.conversation.snapshot(),
            self.registry.get_schemas(),
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

        async with aclosing(chunks), aclosing(decode_stream(chunks)) as frames:
            async for frame in frames:
                if frame.error:
                    raise UpstreamError(frame.error)

                if frame.content:
                    request.response_text += frame.content
                    self.bus.publish(
                        events.AI_RESPONSE_CHUNK,
                        {"chunk": frame.content, "message_id": request.message_id},
                    )

                if frame.tool_calls:
                    accumulator.add_all(frame.tool_calls)

        return accumulator

    def _parse_arguments(self, tool_call: ToolCall) -> Dict[str, Any]:
        text = tool_call.arguments.strip()
        if not text:
            return {}
        try:
            arguments = json.loads(text)
        except json.JSONDecodeError as e:
            raise ToolArgumentParseFailure(f"Error parsing arguments: {e}") from e
        if not isinstance(arguments, dict):
            raise ToolArgumentParseFailure("Error parsing arguments: expected a JSON object")
        return arguments

    async def _execute_tool_calls(self, request: PendingRequest, tool_calls: List[ToolCall]) -> None:
        request.tool_calls = tool_calls
        done_phrases = []

        for tool_call in tool_calls:
            self._transition(request, RequestStatus.TOOL_EXECUTING)
            name = tool_call.name

            try:
                arguments = self._parse_arguments(tool_call)
            except ToolArgumentParseFailure as e:
                self.logger.info(f"TOOL JSON ERROR: {name} - {e.message}")
                result = {"success": False, "error": e.message}
            else:
                self.log_item(
                    "tool_call",
                    {"tool_name": name, "arguments": tool_call.arguments, "call_id": tool_call.id},
                )
                self.bus.publish(
                    events.TOOL_CALL,
                    {"tool_name": name, "arguments": arguments, "message_id": request.message_id},
                )
                context = ToolContext(
                    self.bus,
                    message_id=request.message_id,
                    conversation=self.conversation,
                    preferences=self.preferences,
                )
                result = await self.dispatcher.dispatch(name, arguments, context)

            self.log_item("tool_result", {"tool_name": name, "result": result})
            if result.get("success"):
                done_phrases.append(self.registry.get(name).done_phrase)

            self.conversation.append(
                {"role": "assistant", "content": request.response_text, "tool_calls": [tool_call.to_dict()]}
            )
            self.conversation.append(
                {
                    "role": "tool",
                    "content": json.dumps(result, ensure_ascii=False),
                    "tool_call_id": tool_call.id,
                    "name": name,
                }
            )

        if not request.response_text:
            # Tool-only responses still need something in the transcript
            request.response_text = acknowledgement_for(done_phrases)
            self.bus.publish(
                events.AI_RESPONSE_CHUNK,
                {"chunk": request.response_text, "message_id": request.message_id},
            )

    def _complete(self, request: PendingRequest) -> None:
        self.conversation.append({"role": "assistant", "content": request.response_text})
        self._transition(request, RequestStatus.COMPLETED)
        self.log_item("output_text", {"content": request.response_text, "message_id": request.message_id})
        self.bus.publish(
            events.AI_RESPONSE_COMPLETE,
            {"full_response": request.response_text, "message_id": request.message_id},
        )

    def _fail(self, request: PendingRequest, message: str, kind: str) -> None:
        request.error = message
        self._transition(request, RequestStatus.ERRORED)
        self.logger.error(
            f"Request {request.message_id} failed: {message}",
            extra={"structured": {"log_type": "request_error", "kind": kind, "content": message}},
        )
        self.bus.publish(
            events.AI_RESPONSE_ERROR,
            {"error": message, "kind": kind, "message_id": request.message_id},
        )

    # Conversation helpers

    def get_conversation_context(self):
        """Export current conversation history."""
        return self.conversation.snapshot()

    def set_conversation_context(self, context: list):
        """Import conversation history, replacing the current one.

        Parameters
        ----------
        context : list
            The conversation messages to import
        """
        self.conversation.messages = list(context)
        self.logger.info(f"Imported conversation context with {len(context)} items")

    def clear_conversation(self) -> None:
        self.conversation.clear()
        self.logger.info("Conversation cleared")
