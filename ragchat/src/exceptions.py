"""Custom exception types for the chat services.

Every failure of an exchange surfaces as one of these classes so callers can
tell engine failures, empty completions, cache failures, cancellation and
lock contention apart.
"""

from typing import Any, Dict, List, Optional, Union


class ChatServiceError(Exception):
    """Base class for all chat service errors."""

    error_code = "chat_service_error"
    default_message = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Union[str, List[Dict[str, Any]]]] = None,
    ):
        """Initialize the error.

        Args:
            message: Custom error message (uses default_message if None)
            details: Additional error details
        """
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a serializable dictionary."""
        return {
            "error": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class CompletionEngineError(ChatServiceError):
    """Error raised by the completion engine or its network layer."""

    error_code = "completion_engine_failure"
    default_message = "The completion engine failed"


class EmptyCompletionError(ChatServiceError):
    """The completion engine returned no usable content."""

    error_code = "empty_completion"
    default_message = "The completion engine returned no content"


class CacheUnavailableError(ChatServiceError):
    """Reading from or writing to the cache backend failed."""

    error_code = "cache_unavailable"
    default_message = "The conversation cache is unavailable"


class ExchangeCancelledError(ChatServiceError):
    """An in-flight exchange was cancelled before completing."""

    error_code = "exchange_cancelled"
    default_message = "The exchange was cancelled"


class ConversationBusyError(ChatServiceError):
    """Another exchange for the same conversation is still in flight."""

    error_code = "conversation_busy"
    default_message = "Another exchange for this conversation is in progress"
