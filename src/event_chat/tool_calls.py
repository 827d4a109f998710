"""Reassembly of tool calls streamed as fragments."""

import uuid
from typing import Any, Dict, Iterable, List, Optional

from .stream_decoder import ToolCallDelta


class ToolCall:
    """A function call requested by the model.

    ``arguments`` is JSON text. While streaming it may be incomplete; it is only
    meant to parse once the response has ended.
    """

    type = "function"

    def __init__(self, id: Optional[str], name: str = "", arguments: str = ""):
        self.id = id
        self.name = name
        self.arguments = arguments

    def to_dict(self) -> Dict[str, Any]:
        """Chat-completions shape, as stored in conversation history."""
        return {
            "id": self.id,
            "type": self.type,
            "function": {"name": self.name, "arguments": self.arguments},
        }

    def __eq__(self, other):
        if not isinstance(other, ToolCall):
            return NotImplemented
        return (self.id, self.name, self.arguments) == (other.id, other.name, other.arguments)

    def __repr__(self):
        return f"ToolCall(id={self.id!r}, name={self.name!r}, arguments={self.arguments!r})"


class ToolCallAccumulator:
    """Collects tool-call deltas for a single response, keyed by upstream index.

    Never share an instance between requests.
    """

    def __init__(self):
        self.slots: Dict[int, ToolCall] = {}

    def add(self, delta: ToolCallDelta) -> ToolCall:
        slot = self.slots.get(delta.index)
        if slot is None:
            # Allocate even without a name so upstream cardinality is preserved
            slot = ToolCall(delta.id, delta.name or "", delta.arguments or "")
            self.slots[delta.index] = slot
            return slot

        if delta.id and not slot.id:
            slot.id = delta.id
        if delta.name and not slot.name:
            # Some providers repeat the full name on every delta
            slot.name = delta.name
        if delta.arguments:
            slot.arguments += delta.arguments
        return slot

    def add_all(self, deltas: Iterable[ToolCallDelta]) -> None:
        for delta in deltas:
            self.add(delta)

    def indices(self) -> List[int]:
        return sorted(self.slots)

    def complete(self) -> List[ToolCall]:
        """Return the accumulated calls in ascending index order."""
        calls = []
        for index in self.indices():
            call = self.slots[index]
            if not call.id:
                call.id = f"call_{uuid.uuid4().hex[:24]}"
            calls.append(call)
        return calls

    def __len__(self) -> int:
        return len(self.slots)
