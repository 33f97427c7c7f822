"""Configuration module for the chat core."""

import os
from pathlib import Path
from typing import List, Optional


class ConfigMeta(type):
    """Metaclass to prevent direct instantiation and enforce singleton attributes."""

    def __call__(cls, *args: object, **kwargs: object) -> None:
        """Prevent direct instantiation."""
        raise TypeError("Config cannot be instantiated directly. Use class attributes.")


def _optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value else None


class Config(metaclass=ConfigMeta):
    """Singleton configuration class. Access attributes directly via the class.

    Only default values live here. Stores, engines and services are built
    explicitly by ``ragchat.src.services.factory``.
    """

    # =========================================================================
    # Path Configuration
    # =========================================================================
    BASE_DIR: Path = Path(__file__).parent.parent.parent
    CACHE_DIR: Path = BASE_DIR / "cache"
    CONVERSATION_CACHE_DIR: Path = Path(
        os.getenv("CONVERSATION_CACHE_DIR", str(CACHE_DIR / "conversations"))
    )
    # Directory for per-stage LLM debug dumps, disabled when unset
    LLM_DEBUG_DIR: Optional[str] = os.getenv("LLM_DEBUG_DIR")

    # =========================================================================
    # Conversation Store Configuration
    # =========================================================================
    MESSAGE_LIMIT: int = int(os.getenv("MESSAGE_LIMIT", "20"))
    CONVERSATION_EXPIRATION_SECONDS: float = float(
        os.getenv("CONVERSATION_EXPIRATION_SECONDS", "3600")
    )
    EXPIRATION_MODE: str = os.getenv("EXPIRATION_MODE", "sliding")
    VALID_EXPIRATION_MODES: List[str] = ["sliding", "absolute"]
    CACHE_BACKEND: str = os.getenv("CACHE_BACKEND", "memory")
    VALID_CACHE_BACKENDS: List[str] = ["memory", "json"]

    # =========================================================================
    # Exchange Concurrency Configuration
    # =========================================================================
    EXCHANGE_LOCK_MODE: str = os.getenv("EXCHANGE_LOCK_MODE", "queue")
    VALID_EXCHANGE_LOCK_MODES: List[str] = ["queue", "reject"]
    EXCHANGE_LOCK_TIMEOUT: Optional[float] = (
        float(os.environ["EXCHANGE_LOCK_TIMEOUT"])
        if os.getenv("EXCHANGE_LOCK_TIMEOUT")
        else None
    )

    # =========================================================================
    # Token Budget Configuration
    # =========================================================================
    MAX_INPUT_TOKENS: int = int(os.getenv("MAX_INPUT_TOKENS", "16385"))
    MAX_OUTPUT_TOKENS: int = int(os.getenv("MAX_OUTPUT_TOKENS", "800"))
    # Upper bound for history replayed into the reformulation prompt, None = all
    HISTORY_MAX_TOKENS: Optional[int] = _optional_int("HISTORY_MAX_TOKENS")

    # Tokenizer
    TOKEN_COUNTER: str = os.getenv("TOKEN_COUNTER", "huggingface")
    VALID_TOKEN_COUNTERS: List[str] = ["huggingface", "approximate"]
    TOKENIZER_MODEL_NAME: str = os.getenv("TOKENIZER_MODEL_NAME", "Xenova/gpt-4o")
    APPROXIMATE_CHARS_PER_TOKEN: float = 4.0

    # =========================================================================
    # LLM Configuration
    # =========================================================================
    # Service selection
    LLM_SERVICE: str = os.getenv(
        "LLM_SERVICE", "openai"
    )  # Options: openai, deepseek, vllm, gemini
    VALID_LLM_SERVICES: List[str] = ["openai", "deepseek", "vllm", "gemini"]

    # OpenAI configuration
    OPENAI_MODEL_NAME: str = os.getenv("OPENAI_MODEL_NAME", "gpt-4o-mini")
    OPENAI_TEMPERATURE: float = 0.0
    OPENAI_API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")
    OPENAI_BASE_URL: Optional[str] = os.getenv("OPENAI_BASE_URL")

    # DeepSeek configuration
    DEEPSEEK_MODEL_NAME: str = "deepseek-chat"
    DEEPSEEK_TEMPERATURE: float = 0.0  # Completely deterministic
    DEEPSEEK_API_KEY: Optional[str] = os.getenv("DEEPSEEK_API_KEY")
    DEEPSEEK_BASE_URL: str = "https://api.deepseek.com/v1"

    # vLLM server configuration (OpenAI-compatible API)
    VLLM_MODEL_NAME: str = os.getenv(
        "VLLM_MODEL_NAME", "mistralai/Mistral-Small-24B-Instruct-2501"
    )
    VLLM_HOST: str = os.getenv("VLLM_HOST", "localhost")
    VLLM_PORT: int = int(os.getenv("VLLM_PORT", "8001"))
    VLLM_TEMPERATURE: float = 0.3
    VLLM_HEALTH_TIMEOUT: float = 300.0

    # Gemini configuration
    GEMINI_MODEL_NAME: str = "gemini-2.0-flash"
    GEMINI_TEMPERATURE: float = 0.0
    GEMINI_API_KEY: Optional[str] = os.getenv("GEMINI_API_KEY")

    # =========================================================================
    # Validation
    # =========================================================================
    if LLM_SERVICE not in VALID_LLM_SERVICES:
        raise ValueError(
            f"Invalid LLM service: {LLM_SERVICE}. Must be one of {VALID_LLM_SERVICES}"
        )
    if EXPIRATION_MODE not in VALID_EXPIRATION_MODES:
        raise ValueError(
            f"Invalid expiration mode: {EXPIRATION_MODE}. "
            f"Must be one of {VALID_EXPIRATION_MODES}"
        )
    if CACHE_BACKEND not in VALID_CACHE_BACKENDS:
        raise ValueError(
            f"Invalid cache backend: {CACHE_BACKEND}. Must be one of {VALID_CACHE_BACKENDS}"
        )
    if EXCHANGE_LOCK_MODE not in VALID_EXCHANGE_LOCK_MODES:
        raise ValueError(
            f"Invalid exchange lock mode: {EXCHANGE_LOCK_MODE}. "
            f"Must be one of {VALID_EXCHANGE_LOCK_MODES}"
        )
    if TOKEN_COUNTER not in VALID_TOKEN_COUNTERS:
        raise ValueError(
            f"Invalid token counter: {TOKEN_COUNTER}. Must be one of {VALID_TOKEN_COUNTERS}"
        )

    # Active LLM settings, populated below based on the selected service
    LLM_MODEL_NAME: str
    LLM_TEMPERATURE: float
    LLM_API_KEY: Optional[str] = None
    LLM_BASE_URL: Optional[str] = None


# Configure active LLM settings based on the selected service
# This avoids redefinition errors by setting attributes after class definition
if Config.LLM_SERVICE == "openai":
    Config.LLM_MODEL_NAME = Config.OPENAI_MODEL_NAME
    Config.LLM_TEMPERATURE = Config.OPENAI_TEMPERATURE
    Config.LLM_API_KEY = Config.OPENAI_API_KEY
    Config.LLM_BASE_URL = Config.OPENAI_BASE_URL
elif Config.LLM_SERVICE == "deepseek":
    Config.LLM_MODEL_NAME = Config.DEEPSEEK_MODEL_NAME
    Config.LLM_TEMPERATURE = Config.DEEPSEEK_TEMPERATURE
    Config.LLM_API_KEY = Config.DEEPSEEK_API_KEY
    Config.LLM_BASE_URL = Config.DEEPSEEK_BASE_URL
elif Config.LLM_SERVICE == "vllm":
    Config.LLM_MODEL_NAME = Config.VLLM_MODEL_NAME
    Config.LLM_TEMPERATURE = Config.VLLM_TEMPERATURE
    Config.LLM_BASE_URL = f"http://{Config.VLLM_HOST}:{Config.VLLM_PORT}"
elif Config.LLM_SERVICE == "gemini":
    Config.LLM_MODEL_NAME = Config.GEMINI_MODEL_NAME
    Config.LLM_TEMPERATURE = Config.GEMINI_TEMPERATURE
    Config.LLM_API_KEY = Config.GEMINI_API_KEY
