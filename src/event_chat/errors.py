"""Error kinds raised and reported by the chat core."""


class ChatError(Exception):
    """Base class for failures surfaced by the chat core."""

    kind = "ChatError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# Fatal to a request: drive it to the errored state


class CredentialInvalid(ChatError):
    kind = "CredentialInvalid"


class TransportFailure(ChatError):
    """Non-success status, connection failure or missing body."""

    kind = "TransportFailure"


class UpstreamError(ChatError):
    """Structured error reported by the upstream service."""

    kind = "UpstreamError"


# Local to one tool call: folded into history as a failure result


class ToolArgumentParseFailure(ChatError):
    kind = "ToolArgumentParseFailure"


class ToolExecutionFailure(ChatError):
    kind = "ToolExecutionFailure"


class UnknownTool(ChatError):
    kind = "UnknownTool"


class ToolRegistryError(ValueError):
    """Raised when the tool catalogue is malformed."""
