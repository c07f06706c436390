from typing import Any, Dict, List, Optional
import asyncio
import time

import httpx
import structlog
from pydantic import ValidationError

from catgpt.domain.context.memory.context_store import ContextStore, UserId
from catgpt.domain.models.conversation import (
    ConversationTurn, InferenceRequest, InferenceResponse
)
from catgpt.infrastructure.observability.logging import relay_logger, metrics
from .errors import (
    InferenceError, InferenceTimeoutError, InferenceUnavailableError,
    EndpointError, InvalidResponseError
)

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0


class OllamaClient:
    """Single-shot chat completions against an Ollama server"""

    def __init__(
        self,
        context_store: ContextStore,
        base_url: str,
        model: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.context_store = context_store
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout)
        )

    async def complete(self, user_id: UserId, text: str) -> str:
        """Send the user's message with its history and return the reply.

        The user turn is stored before the request goes out; the assistant
        turn only on success. Same-user calls are serialized.

        Raises:
            InferenceTimeoutError: no answer within ``self.timeout`` seconds
            InferenceUnavailableError: the endpoint could not be reached
            EndpointError: the endpoint answered with a non-2xx status
            InvalidResponseError: the body has no ``message.content``
        """

        async with self.context_store.exclusive(user_id):
            self.context_store.append(user_id, ConversationTurn.user(text))

            request = InferenceRequest(
                model=self.model,
                messages=self.context_store.get(user_id)
            )

            started = time.monotonic()
            try:
                content = await self._chat(request)
            except InferenceError as e:
                duration_ms = (time.monotonic() - started) * 1000
                relay_logger.log_inference_call(
                    user_id, self.model, len(request.messages),
                    duration_ms=duration_ms, success=False, error=e.message
                )
                raise

            duration_ms = (time.monotonic() - started) * 1000
            metrics.record_inference_latency(duration_ms, self.model)
            relay_logger.log_inference_call(
                user_id, self.model, len(request.messages), duration_ms=duration_ms
            )

            self.context_store.append(user_id, ConversationTurn.assistant(content))
            return content

    async def _chat(self, request: InferenceRequest) -> str:
        """POST the request and map transport failures onto InferenceError"""

        try:
            response = await asyncio.wait_for(
                self.http_client.post(
                    f"{self.base_url}/api/chat",
                    json=request.model_dump(mode="json")
                ),
                timeout=self.timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise InferenceTimeoutError(self.timeout)
        except httpx.ConnectError as e:
            logger.warning("Ollama connection failed", host=self.base_url, error=str(e))
            raise InferenceUnavailableError(
                "Ollama service is not available. Please try again later."
            ) from e
        except httpx.TransportError as e:
            raise InferenceUnavailableError(f"Ollama transport error: {e}") from e

        if not response.is_success:
            raise EndpointError(response.status_code, detail=response.text[:500])

        try:
            parsed = InferenceResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise InvalidResponseError("Ollama returned an unexpected response.") from e

        return parsed.content

    async def list_models(self) -> List[str]:
        """Names of the models the server has pulled"""

        try:
            response = await self.http_client.get(f"{self.base_url}/api/tags", timeout=5.0)
        except httpx.TimeoutException:
            raise InferenceTimeoutError(5.0)
        except httpx.TransportError as e:
            raise InferenceUnavailableError(str(e)) from e

        if not response.is_success:
            raise EndpointError(response.status_code)

        try:
            data: Dict[str, Any] = response.json()
            return [m.get("name", "") for m in data.get("models", [])]
        except (ValueError, AttributeError) as e:
            raise InvalidResponseError("Ollama returned an unexpected model list.") from e

    async def ping(self) -> bool:
        """Whether the server currently answers /api/tags"""

        try:
            await self.list_models()
            return True
        except InferenceError:
            return False

    async def close(self):
        if self._owns_client:
            await self.http_client.aclose()
