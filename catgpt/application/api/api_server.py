from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from typing import Optional
from datetime import datetime, timezone
import structlog

from catgpt.application.telegram.bot_server import TelegramBotServer
from catgpt.config.settings import get_settings
from catgpt.domain.context.memory.context_store import ContextStore
from catgpt.domain.inference.errors import InferenceError
from catgpt.domain.inference.ollama_client import OllamaClient
from catgpt.infrastructure.observability.logging import setup_logging, metrics

settings = get_settings()

setup_logging(log_level=settings.log_level, log_format=settings.log_format)
logger = structlog.get_logger(__name__)

app = FastAPI(title="CatGPT Relay")

# Owned here, constructed at import and torn down on shutdown
context_store = ContextStore(max_turns=settings.max_history_turns)
ollama_client = OllamaClient(
    context_store=context_store,
    base_url=settings.ollama_host,
    model=settings.ollama_model,
    timeout=settings.inference_timeout_seconds
)

# Created on startup, once a token is known to exist
bot_server: Optional[TelegramBotServer] = None


@app.on_event("startup")
async def startup_event():
    """Start Telegram polling alongside the HTTP server"""
    global bot_server

    bot_server = TelegramBotServer(settings, context_store, ollama_client)
    await bot_server.start()

    if not await ollama_client.ping():
        logger.warning("Ollama is not reachable yet", ollama_host=settings.ollama_host)


@app.on_event("shutdown")
async def shutdown_event():
    """Stop polling and release every resource"""
    global bot_server

    if bot_server is not None:
        await bot_server.stop()
        bot_server = None

    await ollama_client.close()
    context_store.close()

    logger.info("Relay server shutdown")


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "bot_running": bot_server is not None,
        "model": ollama_client.model,
        "ollama_host": ollama_client.base_url,
        "ollama_reachable": await ollama_client.ping(),
        "active_conversations": context_store.active_users(),
        "metrics": metrics.summary(),
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@app.get("/models")
async def list_models():
    """Models pulled on the Ollama server"""
    return {
        "configured": ollama_client.model,
        "available": await ollama_client.list_models()
    }


@app.exception_handler(InferenceError)
async def inference_error_handler(request: Request, exc: InferenceError):
    return JSONResponse(
        status_code=503,
        content={"error": exc.message, "kind": exc.kind.value}
    )
