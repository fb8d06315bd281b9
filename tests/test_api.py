"""Tests for the chat HTTP API."""

import pytest
from fastapi.testclient import TestClient

from shared.config import ChatObjectSettings, ServerSettings, Settings


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def gateway():
    """In-process gateway shared by the orchestrator under test."""
    from assistant_client.gateway import MockConversationGateway

    return MockConversationGateway(reply="Hi there")


@pytest.fixture
def orchestrator(gateway):
    """Orchestrator wired to the mock gateway."""
    from orchestrator.conversation import ConversationOrchestrator
    from orchestrator.store import InMemoryConversationStore
    from orchestrator.waiter import RunCompletionWaiter

    return ConversationOrchestrator(
        gateway=gateway,
        store=InMemoryConversationStore(),
        assistant_id="asst_test",
        object_id=1,
        provider="mock",
        waiter=RunCompletionWaiter(gateway, max_attempts=3, sleep=no_sleep),
        chat=ChatObjectSettings(char_limit=100, disclaimer="Answers may be wrong")
    )


@pytest.fixture
def client(orchestrator):
    """Test client serving the orchestrator."""
    from orchestrator.main import app, get_app_settings, get_orchestrator

    settings = Settings(server=ServerSettings(allow_anonymous=False))

    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_app_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


USER = {"X-User-Id": "user1", "X-User-Name": "Test User"}


class TestChatAPI:
    """Tests for the chat endpoints."""

    def test_health(self, client):
        """Test the health endpoint."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "provider": "mock", "object_id": 1}

    def test_chat_new_conversation(self, client):
        """Test that a first message creates a conversation."""
        response = client.post("/chat", json={"message": "Hello"}, headers=USER)

        assert response.status_code == 200
        data = response.json()
        assert data == {"conversation_id": 1, "role": "assistant", "content": "Hi there"}

        listing = client.get("/conversations", headers=USER).json()
        assert [c["title"] for c in listing["conversations"]] == ["Hello"]

    def test_chat_continues_conversation(self, client, gateway):
        """Test follow-up messages on an existing conversation."""
        first = client.post("/chat", json={"message": "Hello"}, headers=USER).json()

        response = client.post(
            "/chat",
            json={"message": "And again", "conversation_id": first["conversation_id"]},
            headers=USER
        )

        assert response.status_code == 200
        assert response.json()["conversation_id"] == first["conversation_id"]
        assert len(gateway.calls("create_thread")) == 1

    def test_chat_requires_identity(self, client):
        """Test that anonymous callers are rejected by default."""
        response = client.post("/chat", json={"message": "Hello"})

        assert response.status_code == 401

    def test_chat_rejects_empty_message(self, client):
        """Test request validation."""
        response = client.post("/chat", json={"message": ""}, headers=USER)

        assert response.status_code == 422

    def test_chat_unknown_conversation(self, client):
        """Test posting to a conversation that does not exist."""
        response = client.post(
            "/chat", json={"message": "Hello", "conversation_id": 99}, headers=USER
        )

        assert response.status_code == 404

    def test_chat_foreign_conversation(self, client):
        """Test that conversations of other users are hidden."""
        first = client.post("/chat", json={"message": "Mine"}, headers=USER).json()

        response = client.post(
            "/chat",
            json={"message": "Theirs", "conversation_id": first["conversation_id"]},
            headers={"X-User-Id": "user2"}
        )

        assert response.status_code == 404

    def test_chat_run_failure(self, client, gateway):
        """Test that a failed run maps to a bad gateway response."""
        gateway.script_statuses(["requires_action"])

        response = client.post("/chat", json={"message": "Use a tool"}, headers=USER)

        assert response.status_code == 502
        assert response.json()["detail"] == (
            "Error processing message: Run requires action: function calling not implemented"
        )
        assert client.get("/conversations", headers=USER).json()["conversations"] == []

    def test_chat_run_timeout(self, client, gateway):
        """Test that a timed out run maps to a gateway timeout."""
        gateway.script_statuses(["in_progress"])

        response = client.post("/chat", json={"message": "Slow"}, headers=USER)

        assert response.status_code == 504
        assert "timed out after 3 attempts" in response.json()["detail"]

    def test_conversation_messages(self, client):
        """Test reading the history of a conversation."""
        first = client.post("/chat", json={"message": "Hello"}, headers=USER).json()
        url = f"/conversations/{first['conversation_id']}/messages"

        history = client.get(url, headers=USER).json()
        latest = client.get(url, params={"limit": 1, "order": "desc"}, headers=USER).json()

        assert [(m["role"], m["content"]) for m in history["messages"]] == [
            ("user", "Hello"),
            ("assistant", "Hi there"),
        ]
        assert [m["content"] for m in latest["messages"]] == ["Hi there"]

    def test_delete_conversation(self, client, gateway):
        """Test deleting a conversation and its thread."""
        first = client.post("/chat", json={"message": "Hello"}, headers=USER).json()
        conversation_id = first["conversation_id"]

        response = client.delete(f"/conversations/{conversation_id}", headers=USER)

        assert response.status_code == 200
        assert gateway.threads == {}
        assert client.delete(f"/conversations/{conversation_id}", headers=USER).status_code == 404

    def test_anonymous_allowed(self, client):
        """Test the anonymous identity when enabled."""
        from orchestrator.main import app, get_app_settings

        settings = Settings(server=ServerSettings(allow_anonymous=True))
        app.dependency_overrides[get_app_settings] = lambda: settings

        response = client.post("/chat", json={"message": "Hello"})

        assert response.status_code == 200

    def test_chat_config(self, client):
        """Test that the chat settings shown to users are exposed."""
        response = client.get("/config")

        assert response.status_code == 200
        assert response.json() == {
            "object_id": 1,
            "online": True,
            "char_limit": 100,
            "disclaimer": "Answers may be wrong",
        }

    def test_chat_offline(self, client, orchestrator, gateway):
        """Test that a switched off chat is forbidden."""
        orchestrator.chat = ChatObjectSettings(online=False)

        response = client.post("/chat", json={"message": "Hello"}, headers=USER)

        assert response.status_code == 403
        assert response.json()["detail"] == "Chat 1 is offline"
        assert gateway.call_history == []
        assert client.get("/config").json()["online"] is False

    def test_chat_message_too_long(self, client, gateway):
        """Test that messages over the character limit are rejected."""
        response = client.post("/chat", json={"message": "x" * 101}, headers=USER)

        assert response.status_code == 422
        assert "limit is 100" in response.json()["detail"]
        assert gateway.call_history == []

    def test_delete_conversation_remote_already_gone(self, client, gateway):
        """Test that a conversation whose thread expired upstream can be deleted."""
        first = client.post("/chat", json={"message": "Hello"}, headers=USER).json()
        gateway.fail_on["delete_thread"] = Exception("HTTP 404: No thread found")

        response = client.delete(f"/conversations/{first['conversation_id']}", headers=USER)

        assert response.status_code == 200
        assert client.get("/conversations", headers=USER).json()["conversations"] == []

    def test_store_failure(self, client, orchestrator):
        """Test that an unreadable store is reported as a server error."""
        from unittest.mock import AsyncMock

        from shared.errors import StoreError

        orchestrator.store.list_by_owner = AsyncMock(side_effect=StoreError("store is unreadable"))
        orchestrator.store.save = AsyncMock(side_effect=StoreError("store is unreadable"))

        listing = client.get("/conversations", headers=USER)
        chat = client.post("/chat", json={"message": "Hello"}, headers=USER)

        assert listing.status_code == 500
        assert chat.status_code == 500
        assert chat.json()["detail"] == "store is unreadable"
