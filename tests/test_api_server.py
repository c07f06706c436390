import httpx
import pytest
from fastapi.testclient import TestClient

from catgpt.application.api import api_server
from catgpt.domain.models.conversation import ConversationTurn
from tests.conftest import refuse


@pytest.fixture
def client(monkeypatch):
    def tags(request):
        return httpx.Response(200, json={"models": [{"name": "mistral:latest"}]})

    monkeypatch.setattr(
        api_server.ollama_client,
        "http_client",
        httpx.AsyncClient(transport=httpx.MockTransport(tags))
    )
    yield TestClient(api_server.app)
    api_server.context_store.close()


def test_health(client):
    api_server.context_store.append(1, ConversationTurn.user("hi"))

    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["ollama_reachable"] is True
    assert body["active_conversations"] == 1
    assert body["bot_running"] is False
    assert body["model"] == api_server.settings.ollama_model


def test_models(client):
    response = client.get("/models")

    assert response.status_code == 200
    assert response.json()["available"] == ["mistral:latest"]


def test_models_when_ollama_is_down(monkeypatch, client):
    monkeypatch.setattr(
        api_server.ollama_client,
        "http_client",
        httpx.AsyncClient(transport=httpx.MockTransport(refuse))
    )

    response = client.get("/models")

    assert response.status_code == 503
    assert response.json()["kind"] == "unavailable"

    health = client.get("/health").json()
    assert health["ollama_reachable"] is False
