"""HTTP client for the OpenAI Assistants API.

Implements the conversation gateway over the thread/message/run
endpoints. Handles authentication, request formatting, response
parsing and error wrapping.
"""

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ValidationError

from shared.errors import GatewayError
from shared.logging import get_logger
from shared.models import ChatMessage, RunState
from assistant_client.gateway import ConversationGateway, failure_detail

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
BETA_HEADER = "OpenAI-Beta"
# Largest page the messages endpoint accepts
MAX_PAGE_SIZE = 100


class _IdObject(BaseModel):
    id: str


class _RunObject(BaseModel):
    id: str
    thread_id: str
    status: str
    last_error: Optional[dict[str, Any]] = None


class _MessageObject(BaseModel):
    id: str
    role: str
    content: list[dict[str, Any]] = []
    created_at: Optional[int] = None

    def to_chat_message(self) -> ChatMessage:
        return ChatMessage(
            role=self.role,
            content=self.text(),
            id=self.id,
            created_at=(
                datetime.fromtimestamp(self.created_at, tz=timezone.utc)
                if self.created_at is not None else None
            )
        )

    def text(self) -> str:
        """Value of the first text content block."""
        for block in self.content:
            if block.get("type", "text") == "text" and "text" in block:
                text = block["text"]
                return text.get("value", "") if isinstance(text, dict) else str(text)
        return ""


class _MessagePage(BaseModel):
    data: list[_MessageObject] = []
    has_more: bool = False
    last_id: Optional[str] = None


class AssistantsClient(ConversationGateway):
    """
    Gateway backed by the OpenAI Assistants API.

    The client is configured once with endpoint, credential and the
    beta header; it keeps no conversation state and is safe to share
    between concurrent conversations.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        beta_header: str = "assistants=v2",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        """
        Initialize the Assistants client.

        Args:
            api_key: Bearer credential
            base_url: API base URL
            beta_header: Value sent in the OpenAI-Beta header
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.beta_header = beta_header
        self.timeout = timeout
        self._api_key = api_key
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_headers(self) -> dict[str, str]:
        """Get request headers including authentication."""
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
            BETA_HEADER: self.beta_header,
        }

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self._get_headers(),
                transport=self._transport
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        **kwargs: Any
    ) -> dict[str, Any]:
        """Send one request and return its JSON body, wrapping every failure."""
        try:
            client = await self._get_client()
            response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error("Assistants API request failed", operation=operation, error=str(e))
            raise GatewayError(operation, e) from e

        if response.status_code >= 400:
            detail = _error_message(response)
            logger.error(
                "Assistants API returned an error",
                operation=operation,
                status_code=response.status_code,
                error=detail
            )
            raise GatewayError(operation, f"HTTP {response.status_code}: {detail}")

        try:
            data = response.json()
        except ValueError as e:
            raise GatewayError(operation, f"Invalid JSON response: {e}") from e

        if not isinstance(data, dict):
            raise GatewayError(operation, "Unexpected response payload")
        return data

    async def create_thread(self, seed_messages: Sequence[ChatMessage] = ()) -> str:
        payload: dict[str, Any] = {}
        if seed_messages:
            payload["messages"] = [
                {"role": m.role, "content": m.content} for m in seed_messages
            ]

        data = await self._request("create_thread", "POST", "/threads", json=payload)
        thread_id = _parse("create_thread", _IdObject, data).id
        logger.info("Thread created", thread_id=thread_id)
        return thread_id

    async def delete_thread(self, thread_id: str) -> bool:
        data = await self._request("delete_thread", "DELETE", f"/threads/{thread_id}")
        return bool(data.get("deleted", False))

    async def post_message(self, thread_id: str, content: str, role: str = "user") -> str:
        data = await self._request(
            "post_message",
            "POST",
            f"/threads/{thread_id}/messages",
            json={"role": role, "content": content}
        )
        message_id = _parse("post_message", _IdObject, data).id
        logger.debug("Message posted", thread_id=thread_id, message_id=message_id)
        return message_id

    async def start_run(
        self,
        thread_id: str,
        assistant_id: str,
        last_messages: Optional[int] = None
    ) -> str:
        payload: dict[str, Any] = {"assistant_id": assistant_id}
        if last_messages:
            payload["truncation_strategy"] = {
                "type": "last_messages",
                "last_messages": last_messages,
            }

        data = await self._request(
            "start_run",
            "POST",
            f"/threads/{thread_id}/runs",
            json=payload
        )
        run_id = _parse("start_run", _IdObject, data).id
        logger.info("Run started", thread_id=thread_id, run_id=run_id)
        return run_id

    async def fetch_run(self, thread_id: str, run_id: str) -> RunState:
        data = await self._request(
            "fetch_run", "GET", f"/threads/{thread_id}/runs/{run_id}"
        )
        run = _parse("fetch_run", _RunObject, data)
        return RunState(
            run_id=run.id,
            thread_id=run.thread_id,
            status=run.status,
            last_error=failure_detail(run.status, run.last_error)
        )

    async def list_latest_message(self, thread_id: str) -> Optional[ChatMessage]:
        page = await self._list_page(
            "list_latest_message", thread_id, {"limit": 1, "order": "desc"}
        )
        if not page.data:
            return None
        return page.data[0].to_chat_message()

    async def list_messages(
        self,
        thread_id: str,
        limit: Optional[int] = None,
        ascending: bool = True
    ) -> list[ChatMessage]:
        """List thread messages, following pagination when unbounded."""
        params: dict[str, Any] = {"order": "asc" if ascending else "desc"}
        messages: list[ChatMessage] = []

        while True:
            remaining = limit - len(messages) if limit else MAX_PAGE_SIZE
            params["limit"] = min(remaining, MAX_PAGE_SIZE)

            page = await self._list_page("list_messages", thread_id, params)
            messages.extend(m.to_chat_message() for m in page.data)

            if limit and len(messages) >= limit:
                return messages[:limit]
            if not page.has_more or not page.data:
                return messages
            params["after"] = page.last_id or page.data[-1].id

    async def _list_page(
        self,
        operation: str,
        thread_id: str,
        params: dict[str, Any]
    ) -> _MessagePage:
        data = await self._request(
            operation, "GET", f"/threads/{thread_id}/messages", params=params
        )
        return _parse(operation, _MessagePage, data)


def _parse(operation: str, model: type[BaseModel], data: dict[str, Any]) -> Any:
    """Validate a response payload, reporting shape errors as gateway failures."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise GatewayError(operation, f"Unexpected response payload: {e}") from e


def _error_message(response: httpx.Response) -> str:
    """Extract the remote error message from an error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return response.text or response.reason_phrase
