import structlog

from telegram import Bot
from telegram.constants import ChatAction
from telegram.error import TelegramError

from catgpt.domain.models.channel import BaseChannel, ChannelSendError, ChannelTarget

logger = structlog.get_logger(__name__)


class TelegramChannel(BaseChannel):
    """Sends replies and typing signals through the Telegram Bot API"""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send_text(self, target: ChannelTarget, text: str) -> None:
        """Send a plain text message to a chat"""

        try:
            await self.bot.send_message(chat_id=target, text=text)
        except TelegramError as e:
            logger.error("Failed to send message", chat_id=target, error=str(e))
            raise ChannelSendError(str(e)) from e

    async def send_typing(self, target: ChannelTarget) -> None:
        """Show the typing indicator, which Telegram clears after ~5s"""

        try:
            await self.bot.send_chat_action(chat_id=target, action=ChatAction.TYPING)
        except TelegramError as e:
            raise ChannelSendError(str(e)) from e
