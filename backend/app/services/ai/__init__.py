"""
AI services module.
OpenRouter writes the narrative part of outbound insight messages.
"""

from app.services.ai.openrouter_service import (
    message_writer,
    OpenRouterClient,
    InsightMessageWriter,
)

__all__ = [
    "message_writer",
    "OpenRouterClient",
    "InsightMessageWriter",
]
