"""Services package for the chat core.

This package contains all service components for business logic.
"""

from .chat import ChatService, ExchangeLockMode, ExchangeResult, StreamingExchange
from .factory import (
    create_cache_backend,
    create_chat_service,
    create_completion_engine,
    create_conversation_store,
    create_prompt_assembler,
    create_token_counter,
)
from .llm import (
    BaseCompletionEngine,
    GeminiCompletionEngine,
    OpenAICompletionEngine,
    VLLMCompletionEngine,
)
from .retrieval import BaseChunkSource
from .store import ConversationStore

__all__ = [
    # Completion engines
    "BaseCompletionEngine",
    "OpenAICompletionEngine",
    "GeminiCompletionEngine",
    "VLLMCompletionEngine",
    # Other Services
    "ChatService",
    "ExchangeLockMode",
    "ExchangeResult",
    "StreamingExchange",
    "ConversationStore",
    "BaseChunkSource",
    # Factory Functions
    "create_completion_engine",
    "create_token_counter",
    "create_cache_backend",
    "create_conversation_store",
    "create_prompt_assembler",
    "create_chat_service",
]
