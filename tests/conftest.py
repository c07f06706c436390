import asyncio
import json
from typing import Callable, List, Tuple

import httpx
import pytest

from catgpt.domain.models.channel import BaseChannel, ChannelSendError
from catgpt.domain.context.memory.context_store import ContextStore
from catgpt.domain.inference.ollama_client import OllamaClient
from catgpt.infrastructure.observability.logging import metrics

OLLAMA_URL = "http://ollama.test:11434"


class RecordingChannel(BaseChannel):
    """In-memory channel that records everything sent to it"""

    def __init__(self, fail_text_after: int = -1, fail_typing: bool = False):
        self.sent: List[Tuple[object, str]] = []
        self.typing: List[object] = []
        self.fail_text_after = fail_text_after
        self.fail_typing = fail_typing

    async def send_text(self, target, text):
        if 0 <= self.fail_text_after <= len(self.sent):
            raise ChannelSendError("send failed")
        self.sent.append((target, text))

    async def send_typing(self, target):
        if self.fail_typing:
            raise ChannelSendError("typing failed")
        self.typing.append(target)

    @property
    def texts(self) -> List[str]:
        return [text for _, text in self.sent]


def ollama_reply(content: str) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"model": "mistral", "message": {"role": "assistant", "content": content}, "done": True}
        )
    return handler


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def context_store():
    return ContextStore()


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def make_client(context_store):

    def factory(handler, timeout: float = 120.0) -> OllamaClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = OllamaClient(
            context_store=context_store,
            base_url=OLLAMA_URL,
            model="mistral",
            timeout=timeout,
            http_client=http_client
        )
        return client

    return factory


def request_body(request: httpx.Request) -> dict:
    return json.loads(request.content)


async def hang(request: httpx.Request) -> httpx.Response:
    await asyncio.sleep(10)
    return httpx.Response(200, json={"message": {"content": "too late"}})


def refuse(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("[Errno 111] Connection refused", request=request)
