"""User-facing reply texts"""

START_TEXT = (
    "🐱 Meow! I'm CatGPT!\n\n"
    "I'm an AI assistant. "
    "Just send me a message and I'll respond!\n\n"
    "Commands:\n"
    "/start - Show this message\n"
    "/help - Get help\n"
    "/clear - Clear conversation history"
)

HELP_TEXT = (
    "🐱 CatGPT Help\n\n"
    "Just send me any message and I'll respond using AI!\n\n"
    "Tips:\n"
    "• I remember our conversation context\n"
    "• Use /clear to start fresh\n"
    "• Be patient - responses may take a moment"
)

CLEAR_TEXT = "🧹 Conversation history cleared!"

EMPTY_REPLY_TEXT = "🐱 ...I have nothing to say to that. Try rephrasing?"

TIMEOUT_EXPLANATION = "Response took too long. Please try a shorter message."
UNAVAILABLE_EXPLANATION = "Ollama service is not available. Please try again later."
INVALID_RESPONSE_EXPLANATION = "Ollama returned an unexpected response."
DELIVERY_EXPLANATION = "I couldn't send the whole reply."

UNEXPECTED_ERROR_TEXT = "😿 An unexpected error occurred. Please try again."


def apology(explanation: str) -> str:
    return (
        f"😿 Sorry, I encountered an error: {explanation}\n\n"
        "Please try again or use /clear to reset."
    )
