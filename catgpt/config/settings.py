from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


load_dotenv()


class Settings(BaseModel):
    """Service settings loaded from environment variables.

    Read once at startup; there is no hot reload.
    """

    bot_token: Optional[str] = Field(default=None, description="Telegram bot token")
    ollama_host: str = Field(default="http://ollama:11434")
    ollama_model: str = Field(default="mistral")
    inference_timeout_seconds: float = Field(default=120.0, gt=0)
    typing_interval_seconds: float = Field(default=5.0, gt=0)
    max_history_turns: int = Field(default=10, ge=1)
    max_message_length: int = Field(default=4000, ge=1)
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            bot_token=os.getenv("BOT_TOKEN") or None,
            ollama_host=os.getenv("OLLAMA_HOST", "http://ollama:11434").rstrip("/"),
            ollama_model=os.getenv("OLLAMA_MODEL", "mistral"),
            inference_timeout_seconds=float(os.getenv("INFERENCE_TIMEOUT_SECONDS", "120")),
            typing_interval_seconds=float(os.getenv("TYPING_INTERVAL_SECONDS", "5")),
            max_history_turns=int(os.getenv("MAX_HISTORY_TURNS", "10")),
            max_message_length=int(os.getenv("MAX_MESSAGE_LENGTH", "4000")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
