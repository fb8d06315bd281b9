"""Conversation orchestrator.

Turns a user message into a completed assistant reply:
- Ensures a remote thread exists for the conversation
- Posts the message and starts a run
- Waits for the run through RunCompletionWaiter
- Reads the reply and persists new conversation records
"""

import uuid
from typing import Optional

from shared.config import ChatObjectSettings
from shared.errors import (
    AIChatError,
    ChatOffline,
    ConfigurationError,
    EmptyResponse,
    GatewayError,
    MessageTooLong,
)
from shared.logging import get_logger
from shared.models import ChatMessage, ConversationRecord, UserContext
from assistant_client.gateway import ASSISTANTS_PROVIDER, RUN_PROVIDERS, ConversationGateway
from orchestrator.store import ConversationStore
from orchestrator.waiter import RunCompletionWaiter

logger = get_logger(__name__)

PROCESSING_ERROR = "Error processing message"


class ConversationOrchestrator:
    """
    Message-processing use case for one chat object.

    Per processed message the orchestrator creates at most one remote
    thread, posts exactly one message, starts exactly one run and saves
    the record at most once, however many polls the run needs.
    """

    def __init__(
        self,
        gateway: ConversationGateway,
        store: ConversationStore,
        assistant_id: Optional[str],
        object_id: int,
        provider: str = ASSISTANTS_PROVIDER,
        waiter: Optional[RunCompletionWaiter] = None,
        chat: Optional[ChatObjectSettings] = None
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            gateway: Remote conversation gateway
            store: Conversation record store
            assistant_id: Remote assistant that answers the messages
            object_id: Chat object the conversations belong to
            provider: Configured provider name
            waiter: Optional run waiter; defaults to 60 attempts, 1s apart
            chat: Settings of the chat object (availability, limits, disclaimer)
        """
        self.gateway = gateway
        self.store = store
        self.assistant_id = assistant_id
        self.object_id = object_id
        self.provider = provider
        self.waiter = waiter or RunCompletionWaiter(gateway)
        self.chat = chat or ChatObjectSettings()

    def new_conversation(self, user: UserContext) -> ConversationRecord:
        """Create an unpersisted record owned by the user; no remote call."""
        return ConversationRecord(object_id=self.object_id, owner_id=user.user_id)

    async def process_message(
        self,
        user_message: str,
        user: UserContext,
        record: Optional[ConversationRecord] = None
    ) -> ChatMessage:
        """
        Process a user message and return the assistant reply.

        This is the main entry point for chat interactions.

        Args:
            user_message: User's input message
            user: Caller identity
            record: Existing conversation, or None to start a new one

        Returns:
            The assistant reply with role "assistant"

        Raises:
            ConfigurationError: If the provider cannot run conversations
            ChatOffline: If the chat object is switched off
            MessageTooLong: If the message exceeds the character limit
            GatewayError: If a remote call fails
            RunFailed, RunCancelled, RunExpired, RunRequiresAction, RunTimeout:
                If the run does not complete
            EmptyResponse: If the completed run left no message
        """
        if self.provider not in RUN_PROVIDERS:
            raise ConfigurationError(
                f"Only the {ASSISTANTS_PROVIDER} provider is supported for now "
                f"(configured: {self.provider or 'none'})"
            )
        if not self.assistant_id:
            raise ConfigurationError("No assistant configured")
        if not self.chat.online:
            raise ChatOffline(self.object_id)
        if self.chat.char_limit and len(user_message) > self.chat.char_limit:
            raise MessageTooLong(len(user_message), self.chat.char_limit)

        request_id = str(uuid.uuid4())
        if record is None:
            record = self.new_conversation(user)

        log = logger.bind(request_id=request_id, user=user.user_id, record_id=record.id)
        log.info("Processing message")

        try:
            if not record.thread_id:
                record.thread_id = await self.gateway.create_thread([])
                log.info("Remote thread attached", thread_id=record.thread_id)

            reply = await self._exchange(record.thread_id, user_message)
        except AIChatError as e:
            log.error("Message processing failed", error_type=type(e).__name__, error=e.message)
            e.add_context(PROCESSING_ERROR)
            raise

        if not record.is_persisted:
            record.set_title_from_message(user_message)
            await self.store.save(record)
            log.info("Conversation record persisted", record_id=record.id, thread_id=record.thread_id)

        return reply

    async def _exchange(self, thread_id: str, user_message: str) -> ChatMessage:
        """Post the message, run the assistant and read its reply."""
        await self.gateway.post_message(thread_id, user_message)
        run_id = await self.gateway.start_run(
            thread_id,
            self.assistant_id,
            last_messages=self.chat.max_memory_messages or None
        )

        await self.waiter.wait_for_completion(thread_id, run_id)

        latest = await self.gateway.list_latest_message(thread_id)
        if latest is None:
            raise EmptyResponse()

        return ChatMessage(role="assistant", content=latest.content)

    async def get_conversation(
        self,
        record_id: int,
        user: UserContext
    ) -> Optional[ConversationRecord]:
        """
        Load a conversation of this chat object owned by the user.

        Returns:
            The record, or None if missing or owned by someone else
        """
        record = await self.store.load_by_id(record_id)
        if record is None or record.object_id != self.object_id or record.owner_id != user.user_id:
            return None
        return record

    async def list_conversations(self, user: UserContext) -> list[ConversationRecord]:
        """List the user's conversations of this chat object, newest first."""
        return await self.store.list_by_owner(user.user_id, self.object_id)

    async def get_messages(
        self,
        record: ConversationRecord,
        limit: Optional[int] = None,
        ascending: bool = True
    ) -> list[ChatMessage]:
        """
        List the messages of a conversation ordered by creation time.

        Args:
            record: Conversation to read
            limit: Maximum number of messages; None or 0 means all
            ascending: Oldest first when True
        """
        if not record.thread_id:
            return []
        return await self.gateway.list_messages(record.thread_id, limit=limit, ascending=ascending)

    async def delete_conversation(self, record: ConversationRecord) -> bool:
        """
        Delete the remote thread, then the local record.

        The local record is deleted even when the remote delete fails, so
        that threads expired or removed upstream do not pin the record.
        """
        if record.thread_id:
            try:
                await self.gateway.delete_thread(record.thread_id)
                logger.info("Remote thread deleted", thread_id=record.thread_id)
            except GatewayError as e:
                logger.warning(
                    "Remote thread delete failed, deleting local record",
                    thread_id=record.thread_id,
                    error=e.message
                )

        if record.id is None:
            return False
        deleted = await self.store.delete(record.id)
        logger.info("Conversation deleted", record_id=record.id, deleted=deleted)
        return deleted

    async def delete_all_conversations(self) -> int:
        """Delete every conversation of this chat object, returning how many were deleted."""
        records = await self.store.list_by_owner(None, self.object_id)
        deleted = 0
        for record in records:
            if await self.delete_conversation(record):
                deleted += 1

        logger.info("Chat conversations deleted", object_id=self.object_id, deleted=deleted)
        return deleted
