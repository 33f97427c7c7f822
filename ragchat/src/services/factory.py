"""Service factory module for centralized service instantiation.

This module provides factory methods for creating service instances,
keeping service initialization logic in one place. Every factory reads its
defaults from Config; nothing is cached, each call builds a new object.
"""

import logging
from typing import Optional

from ragchat.conf.config import Config
from ragchat.src.services.chat import ChatService, ExchangeLockMode
from ragchat.src.services.chat.components import PromptAssembler
from ragchat.src.services.llm import (
    ApproximateTokenCounter,
    BaseCompletionEngine,
    BaseTokenCounter,
    GeminiCompletionEngine,
    HuggingFaceTokenCounter,
    OpenAICompletionEngine,
    VLLMCompletionEngine,
)
from ragchat.src.services.retrieval import BaseChunkSource
from ragchat.src.services.store import (
    BaseCacheBackend,
    ConversationStore,
    ExpirationMode,
    InMemoryCacheBackend,
    JsonFileCacheBackend,
)

logger = logging.getLogger(__name__)


def create_completion_engine() -> BaseCompletionEngine:
    """Create and initialize the completion engine based on configuration."""
    try:
        if Config.LLM_SERVICE in ("openai", "deepseek"):
            return OpenAICompletionEngine(
                model_name=Config.LLM_MODEL_NAME,
                api_key=Config.LLM_API_KEY,
                base_url=Config.LLM_BASE_URL,
                temperature=Config.LLM_TEMPERATURE,
                default_max_tokens=Config.MAX_OUTPUT_TOKENS,
            )
        elif Config.LLM_SERVICE == "vllm":
            return VLLMCompletionEngine(
                api_base_url=Config.LLM_BASE_URL,
                model_name=Config.LLM_MODEL_NAME,
                temperature=Config.LLM_TEMPERATURE,
                default_max_tokens=Config.MAX_OUTPUT_TOKENS,
                max_wait_time=Config.VLLM_HEALTH_TIMEOUT,
            )
        elif Config.LLM_SERVICE == "gemini":
            return GeminiCompletionEngine(
                model_name=Config.LLM_MODEL_NAME,
                api_key=Config.LLM_API_KEY,
                temperature=Config.LLM_TEMPERATURE,
                default_max_tokens=Config.MAX_OUTPUT_TOKENS,
            )
        else:
            raise ValueError(f"Unsupported LLM service: {Config.LLM_SERVICE}")
    except Exception as e:
        logger.error(f"Failed to create {Config.LLM_SERVICE} completion engine: {e}")
        raise e


def create_token_counter() -> BaseTokenCounter:
    """Create the token counter selected by Config.TOKEN_COUNTER."""
    if Config.TOKEN_COUNTER == "approximate":
        logger.warning(
            "Using approximate token counting, budgets are estimates and may be exceeded"
        )
        return ApproximateTokenCounter(Config.APPROXIMATE_CHARS_PER_TOKEN)

    logger.info(f"Loading tokenizer: {Config.TOKENIZER_MODEL_NAME}")
    return HuggingFaceTokenCounter(Config.TOKENIZER_MODEL_NAME)


def create_cache_backend() -> BaseCacheBackend:
    """Create the cache backend selected by Config.CACHE_BACKEND."""
    if Config.CACHE_BACKEND == "json":
        logger.info(f"Using JSON file cache in {Config.CONVERSATION_CACHE_DIR}")
        return JsonFileCacheBackend(Config.CONVERSATION_CACHE_DIR)
    return InMemoryCacheBackend()


def create_conversation_store(
    backend: Optional[BaseCacheBackend] = None,
) -> ConversationStore:
    """Create and configure a ConversationStore instance.

    Args:
        backend: Cache backend to use, created from configuration if None

    Returns:
        Configured ConversationStore instance
    """
    if backend is None:
        backend = create_cache_backend()

    return ConversationStore(
        backend=backend,
        max_messages=Config.MESSAGE_LIMIT,
        expiration_seconds=Config.CONVERSATION_EXPIRATION_SECONDS,
        expiration_mode=ExpirationMode(Config.EXPIRATION_MODE),
    )


def create_prompt_assembler(
    token_counter: Optional[BaseTokenCounter] = None,
) -> PromptAssembler:
    """Create a PromptAssembler using the configured token limits."""
    if token_counter is None:
        token_counter = create_token_counter()

    return PromptAssembler(
        token_counter=token_counter,
        max_input_tokens=Config.MAX_INPUT_TOKENS,
        max_output_tokens=Config.MAX_OUTPUT_TOKENS,
        history_max_tokens=Config.HISTORY_MAX_TOKENS,
    )


def create_chat_service(
    chunk_source: BaseChunkSource,
    completion_engine: Optional[BaseCompletionEngine] = None,
    conversation_store: Optional[ConversationStore] = None,
    prompt_assembler: Optional[PromptAssembler] = None,
) -> ChatService:
    """Create and configure a ChatService instance.

    Args:
        chunk_source: Retrieval collaborator supplying candidate chunks
        completion_engine: Engine for model calls
        conversation_store: Store for the conversation histories
        prompt_assembler: Builder of the token-budgeted prompts

    Returns:
        Configured ChatService instance
    """
    # Create services if not provided
    if completion_engine is None:
        logger.info("No completion engine provided, creating new one")
        completion_engine = create_completion_engine()

    if conversation_store is None:
        logger.info("No conversation store provided, creating new one")
        conversation_store = create_conversation_store()

    if prompt_assembler is None:
        logger.info("No prompt assembler provided, creating new one")
        prompt_assembler = create_prompt_assembler()

    return ChatService(
        completion_engine=completion_engine,
        conversation_store=conversation_store,
        chunk_source=chunk_source,
        prompt_assembler=prompt_assembler,
        lock_mode=ExchangeLockMode(Config.EXCHANGE_LOCK_MODE),
        lock_timeout=Config.EXCHANGE_LOCK_TIMEOUT,
        max_output_tokens=Config.MAX_OUTPUT_TOKENS,
    )
