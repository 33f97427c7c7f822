"""LLM service package."""

from .llm_service import (
    BaseCompletionEngine,
    GeminiCompletionEngine,
    OpenAICompletionEngine,
)
from .token_counter import (
    ApproximateTokenCounter,
    BaseTokenCounter,
    HuggingFaceTokenCounter,
)
from .vllm_client_service import VLLMCompletionEngine

__all__ = [
    "BaseCompletionEngine",
    "OpenAICompletionEngine",
    "GeminiCompletionEngine",
    "VLLMCompletionEngine",
    "BaseTokenCounter",
    "HuggingFaceTokenCounter",
    "ApproximateTokenCounter",
]
