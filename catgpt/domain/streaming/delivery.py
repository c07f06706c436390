from typing import List, Optional
import structlog

from catgpt.domain.models.channel import BaseChannel, ChannelTarget

logger = structlog.get_logger(__name__)

# Telegram rejects messages over 4096 UTF-16 code units
DEFAULT_MAX_MESSAGE_LENGTH = 4000


class DeliveryError(Exception):
    """A reply could not be fully sent to the channel"""

    def __init__(self, sent_chunks: int, total_chunks: int, cause: Optional[BaseException] = None):
        super().__init__(f"Delivery failed after {sent_chunks}/{total_chunks} chunks: {cause}")
        self.sent_chunks = sent_chunks
        self.total_chunks = total_chunks
        self.cause = cause


def utf16_length(text: str) -> int:
    """Length as Telegram counts it, in UTF-16 code units"""

    return len(text.encode("utf-16-le", "surrogatepass")) // 2


def chunk_text(text: str, limit: int = DEFAULT_MAX_MESSAGE_LENGTH) -> List[str]:
    """Split text into ordered pieces of at most ``limit`` UTF-16 units.

    Joining the pieces gives back ``text`` exactly. Characters outside the
    BMP count as two units and are never split. Text within the limit,
    including the empty string, is a single piece.
    """

    # An astral character needs two units
    if limit < 2:
        raise ValueError("limit must be at least 2")
    if utf16_length(text) <= limit:
        return [text]

    chunks = []
    start = 0
    units = 0
    for i, char in enumerate(text):
        width = 2 if ord(char) > 0xFFFF else 1
        if units + width > limit:
            chunks.append(text[start:i])
            start = i
            units = 0
        units += width
    chunks.append(text[start:])
    return chunks


class ResponseDelivery:
    """Sends replies to the channel, chunked to the transport limit"""

    def __init__(self, channel: BaseChannel, max_length: int = DEFAULT_MAX_MESSAGE_LENGTH):
        self.channel = channel
        self.max_length = max_length

    async def deliver(self, target: ChannelTarget, text: str) -> int:
        """Send ``text`` in order and return the number of messages sent.

        Chunks already sent stay sent if a later one fails.
        """

        chunks = chunk_text(text, self.max_length)
        sent = 0
        for chunk in chunks:
            try:
                await self.channel.send_text(target, chunk)
            except Exception as e:
                logger.error(
                    "Failed to send chunk",
                    target=target,
                    sent_chunks=sent,
                    total_chunks=len(chunks),
                    error=str(e)
                )
                raise DeliveryError(sent, len(chunks), e) from e
            sent += 1

        if len(chunks) > 1:
            logger.info("Long reply split", target=target, chunks=len(chunks), length=len(text))
        return sent
