"""Assistant Client - Remote conversation gateway.

Wraps the thread, message and run primitives of a remote assistant
service. The client is stateless and reusable by the orchestrator,
the HTTP API and tests.
"""

from assistant_client.gateway import (
    ConversationGateway,
    MockConversationGateway,
    create_gateway,
)
from assistant_client.client import AssistantsClient

__all__ = [
    "ConversationGateway",
    "MockConversationGateway",
    "create_gateway",
    "AssistantsClient",
]
