"""Orchestrator - FastAPI Application.

The Orchestrator exposes:
- Chat API driving assistant runs
- Conversation listing, history and deletion
- Health check
"""

from contextlib import asynccontextmanager
from typing import Any, Literal, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, status
from pydantic import BaseModel, Field

from shared.config import Settings, get_settings
from shared.errors import (
    AIChatError,
    ChatOffline,
    ConfigurationError,
    MessageTooLong,
    RunTimeout,
    StoreError,
)
from shared.logging import get_logger, setup_logging
from shared.models import UserContext
from assistant_client.gateway import ConversationGateway, create_gateway
from orchestrator.conversation import ConversationOrchestrator
from orchestrator.store import create_store
from orchestrator.waiter import RunCompletionWaiter

logger = get_logger(__name__)


# Request/Response Models
class ChatRequest(BaseModel):
    """Chat request from frontend."""
    message: str = Field(..., min_length=1, description="User message")
    conversation_id: Optional[int] = Field(default=None, description="Existing conversation ID")


class ChatResponse(BaseModel):
    """Assistant reply to frontend."""
    conversation_id: int
    role: str
    content: str


class ConversationListResponse(BaseModel):
    """List of conversations."""
    conversations: list[dict[str, Any]]


class MessagesResponse(BaseModel):
    """Messages of one conversation."""
    conversation_id: int
    messages: list[dict[str, Any]]


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    provider: str
    object_id: int


class ChatConfigResponse(BaseModel):
    """Settings of the chat object shown to users."""
    object_id: int
    online: bool
    char_limit: int
    disclaimer: str


# Global instances
_settings: Optional[Settings] = None
_gateway: Optional[ConversationGateway] = None
_orchestrator: Optional[ConversationOrchestrator] = None


def build_orchestrator(settings: Settings, gateway: ConversationGateway) -> ConversationOrchestrator:
    """Wire an orchestrator from settings around an existing gateway."""
    waiter = RunCompletionWaiter(
        gateway,
        max_attempts=settings.polling.max_attempts,
        interval=settings.polling.interval_seconds
    )
    return ConversationOrchestrator(
        gateway=gateway,
        store=create_store(settings.store),
        assistant_id=settings.llm.assistant_id,
        object_id=settings.server.object_id,
        provider=settings.llm.provider,
        waiter=waiter,
        chat=settings.chat
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    global _settings, _gateway, _orchestrator

    _settings = get_settings()
    setup_logging(_settings.log_level, json_output=_settings.environment == "production")

    logger.info("Starting Orchestrator", provider=_settings.llm.provider)

    _gateway = create_gateway(_settings.llm)
    _orchestrator = build_orchestrator(_settings, _gateway)

    logger.info("Orchestrator started", object_id=_settings.server.object_id)

    yield

    logger.info("Shutting down Orchestrator")
    await _gateway.close()
    _gateway = None
    _orchestrator = None


# Create FastAPI app
app = FastAPI(
    title="AI Chat Orchestrator",
    description="Conversations with a remote assistant driven through asynchronous runs",
    version="0.1.0",
    lifespan=lifespan
)


def get_app_settings() -> Settings:
    """Dependency returning the active settings."""
    return _settings or get_settings()


def get_orchestrator() -> ConversationOrchestrator:
    """Dependency returning the initialized orchestrator."""
    if _orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Orchestrator not initialized"
        )
    return _orchestrator


async def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_app_settings)
) -> UserContext:
    """Dependency building the caller identity supplied by the host application."""
    if x_user_id:
        return UserContext(user_id=x_user_id, username=x_user_name or x_user_id)

    if settings.server.allow_anonymous:
        return UserContext(user_id="anonymous", username="anonymous")

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="User identity required"
    )


def _http_error(error: AIChatError) -> HTTPException:
    """Map an orchestration error to an HTTP error."""
    if isinstance(error, (ConfigurationError, StoreError)):
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    elif isinstance(error, ChatOffline):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(error, MessageTooLong):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(error, RunTimeout):
        code = status.HTTP_504_GATEWAY_TIMEOUT
    else:
        code = status.HTTP_502_BAD_GATEWAY

    return HTTPException(status_code=code, detail=error.message)


async def _load_owned(
    orchestrator: ConversationOrchestrator,
    conversation_id: int,
    user: UserContext
):
    try:
        record = await orchestrator.get_conversation(conversation_id, user)
    except StoreError as e:
        raise _http_error(e)

    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Conversation not found"
        )
    return record


@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator)
):
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        provider=orchestrator.provider,
        object_id=orchestrator.object_id
    )


@app.get("/config", response_model=ChatConfigResponse, tags=["Chat"])
async def chat_config(
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator)
):
    """Availability, message limit and disclaimer of the chat."""
    return ChatConfigResponse(
        object_id=orchestrator.object_id,
        online=orchestrator.chat.online,
        char_limit=orchestrator.chat.char_limit,
        disclaimer=orchestrator.chat.disclaimer
    )


@app.post("/chat", response_model=ChatResponse, tags=["Chat"])
async def chat(
    request: ChatRequest,
    user: UserContext = Depends(get_current_user),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator)
):
    """
    Process a chat message.

    Without a conversation_id a new conversation is started and its id
    is returned once the first exchange succeeds.
    """
    if request.conversation_id is not None:
        record = await _load_owned(orchestrator, request.conversation_id, user)
    else:
        record = orchestrator.new_conversation(user)

    try:
        reply = await orchestrator.process_message(request.message, user, record)
    except AIChatError as e:
        logger.error("Chat processing failed", error=e.message)
        raise _http_error(e)

    return ChatResponse(
        conversation_id=record.id,
        role=reply.role,
        content=reply.content
    )


@app.get("/conversations", response_model=ConversationListResponse, tags=["Conversations"])
async def list_conversations(
    user: UserContext = Depends(get_current_user),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator)
):
    """List user's conversations."""
    try:
        records = await orchestrator.list_conversations(user)
    except StoreError as e:
        raise _http_error(e)

    return ConversationListResponse(conversations=[r.to_summary() for r in records])


@app.get(
    "/conversations/{conversation_id}/messages",
    response_model=MessagesResponse,
    tags=["Conversations"]
)
async def get_conversation_messages(
    conversation_id: int,
    limit: int = Query(default=0, ge=0),
    order: Literal["asc", "desc"] = Query(default="asc"),
    user: UserContext = Depends(get_current_user),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator)
):
    """Get conversation history ordered by creation time."""
    record = await _load_owned(orchestrator, conversation_id, user)

    try:
        messages = await orchestrator.get_messages(
            record, limit=limit or None, ascending=order == "asc"
        )
    except AIChatError as e:
        raise _http_error(e)

    return MessagesResponse(
        conversation_id=conversation_id,
        messages=[m.to_dict() for m in messages]
    )


@app.delete("/conversations/{conversation_id}", tags=["Conversations"])
async def delete_conversation(
    conversation_id: int,
    user: UserContext = Depends(get_current_user),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator)
):
    """Delete a conversation and its remote thread."""
    record = await _load_owned(orchestrator, conversation_id, user)

    try:
        await orchestrator.delete_conversation(record)
    except AIChatError as e:
        raise _http_error(e)

    return {"status": "deleted"}


def main():
    """Run the Orchestrator server."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "orchestrator.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.environment == "development"
    )


if __name__ == "__main__":
    main()
