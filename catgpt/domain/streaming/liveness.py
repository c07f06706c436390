from typing import Optional
import asyncio
import structlog

from catgpt.domain.models.channel import BaseChannel, ChannelTarget

logger = structlog.get_logger(__name__)

DEFAULT_TYPING_INTERVAL = 5.0


class LivenessSignaler:
    """Keeps a typing indicator alive while a reply is being generated.

    Use as an async context manager: the first signal goes out on entry,
    then one every ``interval`` seconds until the block exits, on every
    exit path. Signal failures are logged and ignored.
    """

    def __init__(
        self,
        channel: BaseChannel,
        target: ChannelTarget,
        interval: float = DEFAULT_TYPING_INTERVAL
    ):
        self.channel = channel
        self.target = target
        self.interval = interval
        self.signals_sent = 0
        self.disarm_count = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def armed(self) -> bool:
        return self._task is not None

    async def arm(self):
        """Send the first signal and start the repeating task"""

        if self._task is not None:
            return

        await self._signal()
        self._task = asyncio.create_task(self._run())

    async def disarm(self):
        """Stop the repeating task. Safe to call more than once."""

        task, self._task = self._task, None
        if task is None:
            return

        task.cancel()
        self.disarm_count += 1
        try:
            await task
        except asyncio.CancelledError:
            # The outer task may itself be cancelled while we wait
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
        logger.debug("Liveness disarmed", target=self.target, signals_sent=self.signals_sent)

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            await self._signal()

    async def _signal(self):
        try:
            await self.channel.send_typing(self.target)
            self.signals_sent += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug("Typing signal failed", target=self.target, error=str(e))

    async def __aenter__(self) -> "LivenessSignaler":
        await self.arm()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.disarm()
        return False
