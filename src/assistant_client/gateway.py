"""Conversation gateway interface.

A gateway wraps the primitive operations of a remote thread-based
assistant service. Gateways hold no conversation state beyond their
connection credentials, never retry, and report every failure as a
GatewayError naming the failed operation.
"""

import itertools
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import Any, Optional

from shared.config import LLMSettings
from shared.errors import ConfigurationError, GatewayError
from shared.logging import get_logger
from shared.models import ChatMessage, RunState, RunStatus, utcnow

logger = get_logger(__name__)

UNKNOWN_ERROR = "Unknown error"

# Provider that drives conversations through asynchronous runs
ASSISTANTS_PROVIDER = "openai"
# In-process provider simulating asynchronous runs
MOCK_PROVIDER = "mock"
# Synchronous HTTP completion provider, not usable for threaded conversations
COMPLETION_PROVIDER = "custom"

RUN_PROVIDERS = frozenset({ASSISTANTS_PROVIDER, MOCK_PROVIDER})


class ConversationGateway(ABC):
    """
    Abstract base class for remote conversation gateways.

    Gateway rules:
    - Every call either returns a value or fails once with GatewayError
    - No retries; retry and backoff belong to the caller
    - No state shared between calls
    """

    @abstractmethod
    async def create_thread(self, seed_messages: Sequence[ChatMessage] = ()) -> str:
        """
        Create a remote conversation thread.

        Args:
            seed_messages: Optional messages to start the thread with

        Returns:
            The new thread handle
        """
        pass

    @abstractmethod
    async def delete_thread(self, thread_id: str) -> bool:
        """Delete a remote thread, returning whether it was deleted."""
        pass

    @abstractmethod
    async def post_message(self, thread_id: str, content: str, role: str = "user") -> str:
        """
        Append a message to a thread.

        Returns:
            The remote message identifier
        """
        pass

    @abstractmethod
    async def start_run(
        self,
        thread_id: str,
        assistant_id: str,
        last_messages: Optional[int] = None
    ) -> str:
        """
        Start an asynchronous run of an assistant over a thread.

        Args:
            thread_id: Thread handle
            assistant_id: Remote assistant to run
            last_messages: Only the newest messages the assistant sees; None means all

        Returns:
            The run handle, valid only within this thread
        """
        pass

    @abstractmethod
    async def fetch_run(self, thread_id: str, run_id: str) -> RunState:
        """
        Fetch the current status of a run.

        The returned last_error is set only for failure terminals.
        """
        pass

    @abstractmethod
    async def list_latest_message(self, thread_id: str) -> Optional[ChatMessage]:
        """Return the newest message of a thread, or None for an empty thread."""
        pass

    @abstractmethod
    async def list_messages(
        self,
        thread_id: str,
        limit: Optional[int] = None,
        ascending: bool = True
    ) -> list[ChatMessage]:
        """
        List the messages of a thread.

        Args:
            thread_id: Thread handle
            limit: Maximum number of messages; None or 0 means all
            ascending: Oldest first when True, newest first otherwise
        """
        pass

    async def close(self) -> None:
        """Release network resources held by the gateway."""
        return None

    async def __aenter__(self) -> "ConversationGateway":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def failure_detail(status: str, last_error: Optional[dict[str, Any]]) -> Optional[str]:
    """Error detail reported alongside a run status."""
    if status not in {s.value for s in RunStatus.failures()}:
        return None
    if last_error and last_error.get("message"):
        return str(last_error["message"])
    return UNKNOWN_ERROR


class MockConversationGateway(ConversationGateway):
    """
    In-process gateway for testing without API calls.

    Run statuses are served from a script: each fetch_run pops the next
    status, and the last status repeats once the script is exhausted.
    """

    def __init__(
        self,
        statuses: Optional[Iterable[str]] = None,
        reply: Optional[str] = "This is a mock response.",
        last_error: Optional[str] = None,
        thread_prefix: str = "thread_mock"
    ) -> None:
        self._statuses = list(statuses or [RunStatus.COMPLETED.value])
        self._reply = reply
        self._last_error = last_error
        self._thread_prefix = thread_prefix
        self._ids = itertools.count(1)

        self.threads: dict[str, list[ChatMessage]] = {}
        self.call_history: list[tuple[str, dict[str, Any]]] = []
        self.fail_on: dict[str, Exception] = {}

    def script_statuses(self, statuses: Iterable[str]) -> None:
        """Replace the run status script."""
        self._statuses = list(statuses)

    def set_reply(self, reply: Optional[str]) -> None:
        """Set the assistant reply added when a run completes; None adds nothing."""
        self._reply = reply

    def calls(self, operation: str) -> list[dict[str, Any]]:
        """Recorded arguments of every call to one operation."""
        return [args for name, args in self.call_history if name == operation]

    def _record(self, operation: str, **arguments: Any) -> None:
        self.call_history.append((operation, arguments))
        if operation in self.fail_on:
            raise GatewayError(operation, self.fail_on[operation])

    def _thread(self, operation: str, thread_id: str) -> list[ChatMessage]:
        if thread_id not in self.threads:
            raise GatewayError(operation, f"No thread found with id '{thread_id}'")
        return self.threads[thread_id]

    async def create_thread(self, seed_messages: Sequence[ChatMessage] = ()) -> str:
        self._record("create_thread", seed_messages=list(seed_messages))
        thread_id = f"{self._thread_prefix}_{next(self._ids)}"
        self.threads[thread_id] = list(seed_messages)
        return thread_id

    async def delete_thread(self, thread_id: str) -> bool:
        self._record("delete_thread", thread_id=thread_id)
        return self.threads.pop(thread_id, None) is not None

    async def post_message(self, thread_id: str, content: str, role: str = "user") -> str:
        self._record("post_message", thread_id=thread_id, content=content, role=role)
        message_id = f"msg_{next(self._ids)}"
        self._thread("post_message", thread_id).append(ChatMessage(
            role=role,
            content=content,
            id=message_id,
            created_at=utcnow()
        ))
        return message_id

    async def start_run(
        self,
        thread_id: str,
        assistant_id: str,
        last_messages: Optional[int] = None
    ) -> str:
        self._record(
            "start_run",
            thread_id=thread_id,
            assistant_id=assistant_id,
            last_messages=last_messages
        )
        self._thread("start_run", thread_id)
        return f"run_{next(self._ids)}"

    async def fetch_run(self, thread_id: str, run_id: str) -> RunState:
        self._record("fetch_run", thread_id=thread_id, run_id=run_id)
        status = self._statuses.pop(0) if len(self._statuses) > 1 else self._statuses[0]

        if status == RunStatus.COMPLETED.value and self._reply is not None:
            messages = self._thread("fetch_run", thread_id)
            if not messages or messages[-1].role != "assistant":
                messages.append(ChatMessage(
                    role="assistant",
                    content=self._reply,
                    id=f"msg_{next(self._ids)}",
                    created_at=utcnow()
                ))

        last_error = {"message": self._last_error} if self._last_error else None
        return RunState(
            run_id=run_id,
            thread_id=thread_id,
            status=status,
            last_error=failure_detail(status, last_error)
        )

    async def list_latest_message(self, thread_id: str) -> Optional[ChatMessage]:
        self._record("list_latest_message", thread_id=thread_id)
        messages = self._thread("list_latest_message", thread_id)
        return messages[-1] if messages else None

    async def list_messages(
        self,
        thread_id: str,
        limit: Optional[int] = None,
        ascending: bool = True
    ) -> list[ChatMessage]:
        self._record("list_messages", thread_id=thread_id, limit=limit, ascending=ascending)
        messages = list(self._thread("list_messages", thread_id))
        if not ascending:
            messages.reverse()
        return messages[:limit] if limit else messages


def create_gateway(settings: LLMSettings) -> ConversationGateway:
    """
    Factory function to create the gateway for the configured provider.

    Supports:
    - openai: OpenAI Assistants API (asynchronous runs)
    - mock: In-process gateway for testing

    Args:
        settings: Provider configuration settings

    Returns:
        Configured conversation gateway

    Raises:
        ConfigurationError: If the provider is not supported or incomplete
    """
    if not settings.provider or not settings.model:
        raise ConfigurationError("LLM provider or model not found in config")

    if settings.provider == ASSISTANTS_PROVIDER:
        if not settings.api_key:
            raise ConfigurationError("API key is required for the openai provider")

        from assistant_client.client import AssistantsClient

        logger.info("Creating conversation gateway", provider=settings.provider, model=settings.model)
        return AssistantsClient(
            api_key=settings.api_key,
            base_url=settings.api_base,
            beta_header=settings.beta_header,
            timeout=settings.request_timeout
        )

    if settings.provider == MOCK_PROVIDER:
        logger.info("Creating conversation gateway", provider=settings.provider)
        return MockConversationGateway()

    if settings.provider == COMPLETION_PROVIDER:
        raise ConfigurationError(
            f"Provider '{settings.provider}' does not support threaded conversations. "
            f"Only the {ASSISTANTS_PROVIDER} provider is supported for now"
        )

    raise ConfigurationError(
        f"Unsupported LLM provider: {settings.provider}. "
        f"Supported: {sorted(RUN_PROVIDERS)}"
    )
