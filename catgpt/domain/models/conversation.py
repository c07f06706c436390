from typing import List, Union
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum


class Role(str, Enum):
    """Author of a conversation turn"""
    USER = "user"
    ASSISTANT = "assistant"


class RelayState(str, Enum):
    """Lifecycle of a single inbound message"""
    IDLE = "idle"
    SIGNALING = "signaling"
    COMPLETING = "completing"
    DELIVERING = "delivering"
    DONE = "done"
    FAILED = "failed"


class ConversationTurn(BaseModel):
    """One message exchanged in a conversation"""
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    role: Role
    content: str

    @classmethod
    def user(cls, content: str) -> "ConversationTurn":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "ConversationTurn":
        return cls(role=Role.ASSISTANT, content=content)


class InferenceRequest(BaseModel):
    """Body of a POST to the Ollama /api/chat endpoint"""
    model: str = Field(description="Model identifier")
    messages: List[ConversationTurn] = Field(default_factory=list)
    stream: bool = Field(default=False, description="Always false, replies are single-shot")


class ResponseMessage(BaseModel):
    role: str = Role.ASSISTANT.value
    content: str


class InferenceResponse(BaseModel):
    """Subset of the /api/chat response the relay reads"""
    model_config = ConfigDict(extra="ignore")

    message: ResponseMessage

    @property
    def content(self) -> str:
        return self.message.content


class InboundTextEvent(BaseModel):
    """A text message received from the channel"""
    user_id: Union[int, str]
    chat_id: Union[int, str] = Field(description="Target for replies and typing signals")
    text: str
