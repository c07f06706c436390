import asyncio

import httpx
import pytest

from catgpt.domain.inference.errors import (
    EndpointError, InferenceErrorKind, InferenceTimeoutError,
    InferenceUnavailableError, InvalidResponseError
)
from catgpt.domain.models.conversation import ConversationTurn
from tests.conftest import OLLAMA_URL, hang, ollama_reply, refuse, request_body


async def test_complete_sends_history_and_stores_reply(make_client, context_store):
    seen = []

    def handler(request):
        seen.append(request)
        return ollama_reply("hi there")(request)

    client = make_client(handler)
    reply = await client.complete(1, "hello")

    assert reply == "hi there"
    assert str(seen[0].url) == f"{OLLAMA_URL}/api/chat"
    assert seen[0].method == "POST"
    assert request_body(seen[0]) == {
        "model": "mistral",
        "messages": [{"role": "user", "content": "hello"}],
        "stream": False,
    }
    assert context_store.get(1) == [
        ConversationTurn.user("hello"),
        ConversationTurn.assistant("hi there"),
    ]


async def test_second_call_includes_previous_exchange(make_client):
    bodies = []

    def handler(request):
        bodies.append(request_body(request))
        return ollama_reply(f"reply {len(bodies)}")(request)

    client = make_client(handler)
    await client.complete(1, "first")
    await client.complete(1, "second")

    assert [m["content"] for m in bodies[1]["messages"]] == ["first", "reply 1", "second"]


async def test_context_window_is_capped(make_client, context_store):
    bodies = []

    def handler(request):
        bodies.append(request_body(request))
        return ollama_reply("ok")(request)

    client = make_client(handler)
    for i in range(8):
        await client.complete(1, f"q{i}")

    assert all(len(b["messages"]) <= 10 for b in bodies)
    assert bodies[-1]["messages"][-1] == {"role": "user", "content": "q7"}
    assert len(context_store.get(1)) == 10
    assert context_store.get(1)[-1] == ConversationTurn.assistant("ok")


async def test_non_success_status(make_client):
    client = make_client(lambda request: httpx.Response(500, text="model not found"))

    with pytest.raises(EndpointError) as excinfo:
        await client.complete(1, "hello")

    assert excinfo.value.status_code == 500
    assert excinfo.value.kind == InferenceErrorKind.ENDPOINT
    assert excinfo.value.message == "Ollama error: 500"


async def test_timeout(make_client):
    client = make_client(hang, timeout=0.05)

    with pytest.raises(InferenceTimeoutError) as excinfo:
        await client.complete(1, "write a novel")

    assert excinfo.value.kind == InferenceErrorKind.TIMEOUT


async def test_transport_timeout_is_a_timeout(make_client):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = make_client(handler)
    with pytest.raises(InferenceTimeoutError):
        await client.complete(1, "hello")


async def test_connection_refused(make_client):
    client = make_client(refuse)

    with pytest.raises(InferenceUnavailableError) as excinfo:
        await client.complete(1, "hello")

    assert excinfo.value.kind == InferenceErrorKind.UNAVAILABLE


@pytest.mark.parametrize("body", [{"message": {}}, {"error": "oops"}, ["not", "a", "dict"]])
async def test_malformed_body(make_client, body):
    client = make_client(lambda request: httpx.Response(200, json=body))

    with pytest.raises(InvalidResponseError):
        await client.complete(1, "hello")


async def test_non_json_body(make_client):
    client = make_client(lambda request: httpx.Response(200, text="<html>"))

    with pytest.raises(InvalidResponseError):
        await client.complete(1, "hello")


async def test_failure_keeps_user_turn_only(make_client, context_store):
    client = make_client(refuse)

    with pytest.raises(InferenceUnavailableError):
        await client.complete(1, "hello")

    assert context_store.get(1) == [ConversationTurn.user("hello")]


async def test_same_user_requests_do_not_interleave(make_client, context_store):
    bodies = []

    async def handler(request):
        body = request_body(request)
        bodies.append(body)
        await asyncio.sleep(0.01)
        return ollama_reply(f"answer to {body['messages'][-1]['content']}")(request)

    client = make_client(handler)
    await asyncio.gather(client.complete(1, "a"), client.complete(1, "b"))

    # The second request sees the first exchange in full
    assert [m["content"] for m in bodies[1]["messages"]] == ["a", "answer to a", "b"]
    assert [t.content for t in context_store.get(1)] == ["a", "answer to a", "b", "answer to b"]


async def test_different_users_run_concurrently(make_client):
    in_flight = 0
    peak = 0

    async def handler(request):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.02)
        in_flight -= 1
        return ollama_reply("ok")(request)

    client = make_client(handler)
    await asyncio.gather(*(client.complete(user, "hi") for user in range(3)))

    assert peak == 3


async def test_list_models_and_ping(make_client):
    def handler(request):
        assert request.url.path == "/api/tags"
        return httpx.Response(200, json={"models": [{"name": "mistral:latest"}, {"name": "llama3"}]})

    client = make_client(handler)
    assert await client.list_models() == ["mistral:latest", "llama3"]
    assert await client.ping() is True


async def test_ping_unreachable(make_client):
    assert await make_client(refuse).ping() is False
