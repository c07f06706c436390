from typing import Optional
import structlog

from telegram import Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from catgpt.application.channel.telegram_channel import TelegramChannel
from catgpt.config.settings import Settings
from catgpt.domain.models import replies
from catgpt.domain.models.channel import BaseChannel
from catgpt.domain.context.memory.context_store import ContextStore
from catgpt.domain.inference.ollama_client import OllamaClient
from catgpt.domain.models.conversation import InboundTextEvent
from catgpt.domain.orchestration.relay_orchestrator import RelayOrchestrator
from catgpt.domain.streaming.delivery import ResponseDelivery

logger = structlog.get_logger(__name__)


class TelegramBotServer:
    """Binds Telegram updates to the relay orchestrator"""

    def __init__(
        self,
        settings: Settings,
        context_store: ContextStore,
        inference_client: OllamaClient,
        channel: Optional[BaseChannel] = None
    ):
        if not settings.bot_token:
            raise ValueError("BOT_TOKEN is not set")

        self.settings = settings
        # Each update runs in its own task so slow replies do not block other users
        self.application: Application = (
            ApplicationBuilder()
            .token(settings.bot_token)
            .concurrent_updates(True)
            .build()
        )
        self.channel = channel or TelegramChannel(self.application.bot)
        self.orchestrator = RelayOrchestrator(
            channel=self.channel,
            context_store=context_store,
            inference_client=inference_client,
            delivery=ResponseDelivery(self.channel, settings.max_message_length),
            typing_interval=settings.typing_interval_seconds
        )
        self._register_handlers()

    def _register_handlers(self):
        self.application.add_handler(CommandHandler("start", self.on_start))
        self.application.add_handler(CommandHandler("help", self.on_help))
        self.application.add_handler(CommandHandler("clear", self.on_clear))
        self.application.add_handler(
            MessageHandler(filters.TEXT & ~filters.COMMAND, self.on_text)
        )
        self.application.add_error_handler(self.on_error)

    async def start(self):
        """Start long polling in the running event loop"""

        await self.application.initialize()
        await self.application.start()
        await self.application.updater.start_polling()
        logger.info(
            "CatGPT is running",
            ollama_host=self.settings.ollama_host,
            model=self.settings.ollama_model
        )

    async def stop(self):
        if self.application.updater and self.application.updater.running:
            await self.application.updater.stop()
        if self.application.running:
            await self.application.stop()
        await self.application.shutdown()
        logger.info("CatGPT stopped")

    async def on_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await self.orchestrator.send_welcome(update.effective_chat.id)

    async def on_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await self.orchestrator.send_help(update.effective_chat.id)

    async def on_clear(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await self.orchestrator.clear_history(update.effective_user.id, update.effective_chat.id)

    async def on_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Relay a plain text message to the model"""

        message = update.effective_message
        if message is None or not message.text or update.effective_user is None:
            return

        event = InboundTextEvent(
            user_id=update.effective_user.id,
            chat_id=update.effective_chat.id,
            text=message.text
        )
        await self.orchestrator.handle_text(event)

    async def on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE):
        """Last-resort handler for anything a handler let escape"""

        logger.error("Bot error", error=str(context.error), exc_info=context.error)

        chat = getattr(update, "effective_chat", None)
        if chat is None:
            return
        try:
            await self.channel.send_text(chat.id, replies.UNEXPECTED_ERROR_TEXT)
        except Exception as e:
            logger.warning("Failed to send error reply", chat_id=chat.id, error=str(e))
