"""Core data models for the AI Chat orchestrator.

This module defines the shared data structures passed between the
remote assistants gateway, the run waiter and the conversation
orchestrator.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

TITLE_MAX_LENGTH = 100
TITLE_ELLIPSIS = "..."
DEFAULT_TITLE = "New chat"


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class RunStatus(str, Enum):
    """Status of an asynchronous run as reported by the remote service."""
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    REQUIRES_ACTION = "requires_action"

    @classmethod
    def pending(cls) -> frozenset["RunStatus"]:
        return frozenset({cls.QUEUED, cls.IN_PROGRESS})

    @classmethod
    def failures(cls) -> frozenset["RunStatus"]:
        return frozenset({cls.FAILED, cls.CANCELLED, cls.EXPIRED, cls.REQUIRES_ACTION})


class RunState(BaseModel):
    """
    Snapshot of a run returned by a single status fetch.

    The status is kept as the raw remote string so that transitional
    states unknown to RunStatus (e.g. "cancelling") keep the waiter polling.
    """
    run_id: str
    thread_id: str
    status: str
    last_error: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        return self.status == RunStatus.COMPLETED.value

    @property
    def is_failed(self) -> bool:
        return self.status in {s.value for s in RunStatus.failures()}

    @property
    def is_terminal(self) -> bool:
        return self.is_completed or self.is_failed


class ChatMessage(BaseModel):
    """A single message in a conversation thread."""
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"] = Field(..., description="Message role")
    content: str
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        """Shape used by the HTTP surface for chat history."""
        return {
            "role": self.role,
            "content": self.content,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class UserContext(BaseModel):
    """Caller identity, passed explicitly into every use case."""
    user_id: str
    username: str
    email: Optional[str] = None
    roles: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ConversationRecord(BaseModel):
    """
    Local record of a remote conversation thread.

    A record starts unpersisted (id is None) without a thread handle.
    The handle is attached before the first exchange and the record is
    saved once that exchange succeeds; neither is reset afterwards.
    """
    id: Optional[int] = None
    object_id: int
    owner_id: str
    title: str = DEFAULT_TITLE
    created_at: datetime = Field(default_factory=utcnow)
    thread_id: Optional[str] = None

    @property
    def is_persisted(self) -> bool:
        return self.id is not None

    def set_title_from_message(self, message: str) -> None:
        """Derive the display title from the first user message."""
        if len(message) > TITLE_MAX_LENGTH:
            message = message[:TITLE_MAX_LENGTH] + TITLE_ELLIPSIS
        self.title = message

    def to_summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "created_at": self.created_at.isoformat(),
            "thread_id": self.thread_id,
        }
