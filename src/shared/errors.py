"""Error taxonomy for the AI Chat orchestrator.

All errors are recoverable by the caller, who may retry the whole
message exchange. The taxonomy is flat: each kind carries a readable
message, and gateway failures name the operation that failed.
"""

from typing import Optional


class AIChatError(Exception):
    """Base exception for all AI Chat errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def add_context(self, prefix: str) -> "AIChatError":
        """Prefix the message while keeping the error kind."""
        self.message = f"{prefix}: {self.message}"
        self.args = (self.message,)
        return self


class ConfigurationError(AIChatError):
    """Unsupported or missing provider, model, credential or assistant."""
    pass


class GatewayError(AIChatError):
    """A single remote API call failed."""

    def __init__(self, operation: str, cause: Optional[BaseException | str] = None) -> None:
        self.operation = operation
        self.cause = cause
        detail = str(cause) if cause is not None else "unknown failure"
        super().__init__(f"Error in {operation}: {detail}")


class RunFailed(AIChatError):
    """The remote run ended in the failed state."""

    def __init__(self, detail: Optional[str] = None) -> None:
        self.detail = detail or "Unknown error"
        super().__init__(f"Run failed: {self.detail}")


class RunCancelled(AIChatError):
    """The remote run was cancelled."""

    def __init__(self) -> None:
        super().__init__("Run was cancelled")


class RunExpired(AIChatError):
    """The remote run expired before completing."""

    def __init__(self) -> None:
        super().__init__("Run expired")


class RunRequiresAction(AIChatError):
    """The remote run asked for tool execution, which is not supported."""

    def __init__(self) -> None:
        super().__init__("Run requires action: function calling not implemented")


class RunTimeout(AIChatError):
    """Polling ran out of attempts before the run reached a terminal state."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"Run timed out after {attempts} attempts")


class EmptyResponse(AIChatError):
    """The run completed but the thread holds no message to return."""

    def __init__(self) -> None:
        super().__init__("No response received from assistant")


class ChatOffline(AIChatError):
    """The chat object is switched off and accepts no messages."""

    def __init__(self, object_id: int) -> None:
        self.object_id = object_id
        super().__init__(f"Chat {object_id} is offline")


class MessageTooLong(AIChatError):
    """The user message exceeds the character limit of the chat object."""

    def __init__(self, length: int, limit: int) -> None:
        self.length = length
        self.limit = limit
        super().__init__(f"Message has {length} characters, the limit is {limit}")


class StoreError(AIChatError):
    """Conversation records could not be read or written."""
    pass
