"""CatGPT: a Telegram relay for a locally hosted Ollama model."""

__version__ = "0.1.0"
