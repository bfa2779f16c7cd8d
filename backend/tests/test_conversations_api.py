"""
Integration tests for the conversation, chat and tool endpoints.
"""
import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services.ai.orchestration import ChatOrchestrationService, get_chat_orchestration_service
from app.services.ai.providers.base import ProviderAdapter
from app.services.ai.providers.registry import ProviderRegistry
from app.services.ai.schema import ProviderError, ProviderErrorCode, ProviderKind, ProviderResponse
from app.services.conversations.factory import get_conversation_store
from app.services.conversations.memory import InMemoryConversationStore
from app.services.credits import InMemoryCreditLedger


class StubProvider(ProviderAdapter):
    def __init__(self, kind, text, error=None):
        super().__init__(client=None, api_key="test-key", model=f"{kind.value}-model")
        self.kind = kind
        self.text = text
        self.error = error

    async def generate(self, query, history, decision):
        if self.error is not None:
            raise self.error
        return ProviderResponse(text=self.text, provider_id=self.kind)


@pytest.fixture
def providers():
    return {
        ProviderKind.FAST: StubProvider(ProviderKind.FAST, "Hi there!"),
        ProviderKind.RESEARCH: StubProvider(ProviderKind.RESEARCH, "<h1>Trends</h1><p>Data.</p>"),
        ProviderKind.COMPLEX: StubProvider(ProviderKind.COMPLEX, "<h1>Guide</h1><p>Content.</p>"),
    }


@pytest.fixture
def ledger():
    return InMemoryCreditLedger(default_credits=1)


@pytest.fixture
def client(providers, ledger):
    store = InMemoryConversationStore()
    service = ChatOrchestrationService(store=store, registry=ProviderRegistry(providers), credit_ledger=ledger)
    app.dependency_overrides[get_conversation_store] = lambda: store
    app.dependency_overrides[get_chat_orchestration_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create(client, **kwargs):
    response = client.post("/api/conversations", **kwargs)
    assert response.status_code == 201
    return response.json()["id"]


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------


def test_create_and_get_conversation(client):
    conversation_id = _create(client, json={"title": "Launch plan"})

    response = client.get(f"/api/conversations/{conversation_id}")

    assert response.status_code == 200
    assert response.json()["title"] == "Launch plan"


def test_create_conversation_without_body(client):
    conversation_id = _create(client)

    assert client.get(f"/api/conversations/{conversation_id}").json()["title"] is None


def test_list_conversations_by_account(client):
    mine = _create(client, headers={"X-User-ID": "acct-1"})
    _create(client, headers={"X-User-ID": "acct-2"})

    response = client.get("/api/conversations", headers={"X-User-ID": "acct-1"})

    assert [c["id"] for c in response.json()] == [mine]


def test_delete_conversation(client):
    conversation_id = _create(client)

    assert client.delete(f"/api/conversations/{conversation_id}").status_code == 204
    assert client.get(f"/api/conversations/{conversation_id}").status_code == 404
    assert client.delete(f"/api/conversations/{conversation_id}").status_code == 404


def test_unknown_conversation_returns_404(client):
    assert client.get("/api/conversations/missing").status_code == 404
    assert client.get("/api/conversations/missing/messages").status_code == 404


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


def test_send_message_returns_both_messages(client):
    conversation_id = _create(client)

    response = client.post(f"/api/conversations/{conversation_id}/messages", json={"content": "hello"})

    assert response.status_code == 200
    data = response.json()
    assert data["user_message"]["content"] == "hello"
    assert data["assistant_message"]["content"] == "Hi there!"
    assert data["assistant_message"]["provider"] == "fast"
    assert data["assistant_message"]["post_process_steps"] == []
    assert data["decision"]["matched_rule"] == "simple"
    assert "X-Trace-ID" in response.headers

    history = client.get(f"/api/conversations/{conversation_id}/messages").json()
    assert [m["role"] for m in history] == ["user", "assistant"]
    assert client.get(f"/api/conversations/{conversation_id}").json()["title"] == "hello"


def test_send_blank_message_returns_400(client):
    conversation_id = _create(client)

    response = client.post(f"/api/conversations/{conversation_id}/messages", json={"content": "   "})

    assert response.status_code == 400


def test_send_message_without_content_returns_422(client):
    conversation_id = _create(client)

    response = client.post(f"/api/conversations/{conversation_id}/messages", json={})

    assert response.status_code == 422


def test_send_message_to_unknown_conversation_returns_404(client):
    response = client.post("/api/conversations/missing/messages", json={"content": "hello"})

    assert response.status_code == 404


def test_provider_failure_returns_502_and_keeps_user_message(client, providers):
    providers[ProviderKind.FAST].error = ProviderError(
        ProviderErrorCode.NOT_FOUND, "fast provider error 404", http_status=404
    )
    conversation_id = _create(client)

    response = client.post(f"/api/conversations/{conversation_id}/messages", json={"content": "hello"})

    assert response.status_code == 502
    assert response.json()["detail"] == "Failed to process message"
    history = client.get(f"/api/conversations/{conversation_id}/messages").json()
    assert [m["role"] for m in history] == ["user"]


def test_exhausted_credits_return_402(client):
    headers = {"X-User-ID": "acct-1"}
    conversation_id = _create(client, headers=headers)
    url = f"/api/conversations/{conversation_id}/messages"

    assert client.post(url, json={"content": "hello"}, headers=headers).status_code == 200
    response = client.post(url, json={"content": "hello again"}, headers=headers)

    assert response.status_code == 402
    assert response.json()["detail"] == "Insufficient credits"


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


def test_keyword_research_endpoint(client):
    response = client.post("/api/keywords/research", json={"topic": "roof repair", "target_region": "UK"})

    assert response.status_code == 200
    data = response.json()
    assert data["target_region"] == "uk"
    assert 0 < len(data["keywords"]) <= 10
    assert "volume_label" in data["keywords"][0]


def test_craft_endpoint_returns_five_steps(client):
    response = client.post(
        "/api/content/craft",
        json={"content": "<p>It is important to note that this is really simple.</p>"},
    )

    assert response.status_code == 200
    data = response.json()
    assert [s["name"] for s in data["steps"]] == ["cut", "review", "add", "fact-check", "trust-build"]
    assert "really" not in data["text"]


def test_classify_endpoint(client):
    response = client.post("/api/routing/classify", json={"query": "research current SEO trends in the USA"})

    assert response.status_code == 200
    assert response.json()["provider"] == "research"


@pytest.mark.parametrize(
    "path,body",
    [
        ("/api/keywords/research", {"topic": " "}),
        ("/api/content/craft", {"content": ""}),
        ("/api/routing/classify", {"query": "  "}),
    ],
)
def test_tools_reject_blank_input(client, path, body):
    assert client.post(path, json=body).status_code == 400
