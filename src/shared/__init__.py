"""Shared models, errors, configuration and logging for AI Chat."""

from shared.models import (
    ChatMessage,
    ConversationRecord,
    RunState,
    RunStatus,
    UserContext,
)
from shared.errors import (
    AIChatError,
    ChatOffline,
    ConfigurationError,
    EmptyResponse,
    GatewayError,
    MessageTooLong,
    RunCancelled,
    RunExpired,
    RunFailed,
    RunRequiresAction,
    RunTimeout,
    StoreError,
)
from shared.config import Settings, get_settings
from shared.logging import get_logger, setup_logging

__all__ = [
    "ChatMessage",
    "ConversationRecord",
    "RunState",
    "RunStatus",
    "UserContext",
    "AIChatError",
    "ChatOffline",
    "MessageTooLong",
    "StoreError",
    "ConfigurationError",
    "EmptyResponse",
    "GatewayError",
    "RunCancelled",
    "RunExpired",
    "RunFailed",
    "RunRequiresAction",
    "RunTimeout",
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
]
