from typing import Optional
import structlog

from catgpt.domain.models.channel import BaseChannel, ChannelTarget
from catgpt.domain.models import replies
from catgpt.domain.context.memory.context_store import ContextStore, UserId
from catgpt.domain.inference.errors import InferenceError, InferenceErrorKind
from catgpt.domain.inference.ollama_client import OllamaClient
from catgpt.domain.models.conversation import InboundTextEvent, RelayState
from catgpt.domain.streaming.delivery import DeliveryError, ResponseDelivery
from catgpt.domain.streaming.liveness import LivenessSignaler, DEFAULT_TYPING_INTERVAL
from catgpt.infrastructure.observability.logging import relay_logger, metrics

logger = structlog.get_logger(__name__)


def classify_error(error: BaseException) -> str:
    """User-facing explanation for a failed relay"""

    if isinstance(error, InferenceError):
        if error.kind == InferenceErrorKind.TIMEOUT:
            return replies.TIMEOUT_EXPLANATION
        elif error.kind == InferenceErrorKind.UNAVAILABLE:
            return replies.UNAVAILABLE_EXPLANATION
        elif error.kind == InferenceErrorKind.INVALID_RESPONSE:
            return replies.INVALID_RESPONSE_EXPLANATION
        return error.message
    if isinstance(error, DeliveryError):
        return replies.DELIVERY_EXPLANATION
    return str(error) or type(error).__name__


def failure_tag(error: BaseException) -> str:
    if isinstance(error, InferenceError):
        return error.kind.value
    if isinstance(error, DeliveryError):
        return "delivery"
    return "unexpected"


class RelayOrchestrator:
    """Turns one inbound text message into one model reply"""

    def __init__(
        self,
        channel: BaseChannel,
        context_store: ContextStore,
        inference_client: OllamaClient,
        delivery: Optional[ResponseDelivery] = None,
        typing_interval: float = DEFAULT_TYPING_INTERVAL
    ):
        self.channel = channel
        self.context_store = context_store
        self.inference_client = inference_client
        self.delivery = delivery or ResponseDelivery(channel)
        self.typing_interval = typing_interval

    async def handle_text(self, event: InboundTextEvent) -> RelayState:
        """Run one message through signaling, completion and delivery.

        Returns DONE when the reply was delivered and FAILED when an
        apology was sent instead. Never raises for relay failures.
        """

        with structlog.contextvars.bound_contextvars(user_id=event.user_id, chat_id=event.chat_id):
            state = RelayState.IDLE
            signaler = LivenessSignaler(self.channel, event.chat_id, self.typing_interval)

            try:
                state = self._transition(event.user_id, state, RelayState.SIGNALING)
                await signaler.arm()

                state = self._transition(event.user_id, state, RelayState.COMPLETING)
                reply = await self.inference_client.complete(event.user_id, event.text)

                await signaler.disarm()
                state = self._transition(event.user_id, state, RelayState.DELIVERING)
                text = reply if reply.strip() else replies.EMPTY_REPLY_TEXT
                await self.delivery.deliver(event.chat_id, text)

            except (InferenceError, DeliveryError) as e:
                await signaler.disarm()
                self._transition(event.user_id, state, RelayState.FAILED, reason=failure_tag(e))
                logger.error("Error generating response", error=str(e), kind=failure_tag(e))
                await self._send_apology(event.chat_id, replies.apology(classify_error(e)))
                metrics.record_failure(failure_tag(e))
                self._transition(event.user_id, RelayState.FAILED, RelayState.DONE)
                return RelayState.FAILED

            except Exception as e:
                await signaler.disarm()
                self._transition(event.user_id, state, RelayState.FAILED, reason="unexpected")
                logger.exception("Unexpected relay error", error=str(e))
                await self._send_apology(event.chat_id, replies.UNEXPECTED_ERROR_TEXT)
                metrics.record_failure("unexpected")
                self._transition(event.user_id, RelayState.FAILED, RelayState.DONE)
                return RelayState.FAILED

            finally:
                # Covers cancellation, which the handlers above do not catch
                await signaler.disarm()

            self._transition(event.user_id, state, RelayState.DONE)
            metrics.record_delivered()
            return RelayState.DONE

    async def clear_history(self, user_id: UserId, target: ChannelTarget):
        """Reset command: forget the user's history and confirm.

        Waits for the user's in-flight request so its reply cannot land
        in the cleared history.
        """

        await self.context_store.reset(user_id)
        await self.channel.send_text(target, replies.CLEAR_TEXT)

    async def send_help(self, target: ChannelTarget):
        await self.channel.send_text(target, replies.HELP_TEXT)

    async def send_welcome(self, target: ChannelTarget):
        await self.channel.send_text(target, replies.START_TEXT)

    async def _send_apology(self, target: ChannelTarget, text: str):
        try:
            await self.channel.send_text(target, text)
        except Exception as e:
            logger.warning("Failed to send apology", target=target, error=str(e))

    def _transition(
        self,
        user_id: UserId,
        from_state: RelayState,
        to_state: RelayState,
        reason: Optional[str] = None
    ) -> RelayState:
        relay_logger.log_relay_transition(user_id, from_state.value, to_state.value, reason)
        return to_state
