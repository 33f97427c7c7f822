"""Chat service with its components."""

from ragchat.src.services.chat.chat_service import (
    ChatService,
    ExchangeLockMode,
    ExchangeResult,
    StreamingExchange,
)

__all__ = ["ChatService", "ExchangeLockMode", "ExchangeResult", "StreamingExchange"]
