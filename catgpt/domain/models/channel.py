from abc import ABC, abstractmethod
from typing import Union

ChannelTarget = Union[int, str]


class ChannelSendError(Exception):
    """The channel rejected or failed an outbound send"""


class BaseChannel(ABC):
    """Outbound side of a messaging channel"""

    @abstractmethod
    async def send_text(self, target: ChannelTarget, text: str) -> None:
        """Send one plain text message, raising ChannelSendError on failure"""
        pass

    @abstractmethod
    async def send_typing(self, target: ChannelTarget) -> None:
        """Show a transient typing indication"""
        pass
