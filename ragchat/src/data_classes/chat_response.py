"""Data classes exchanged with the completion engine and returned to callers."""

from dataclasses import dataclass
from typing import Optional

from ragchat.src.data_classes.message import TokenUsage


@dataclass(frozen=True)
class Completion:
    """Non-streaming completion result.

    Attributes:
        text: Generated text, None or empty when the engine produced nothing
        usage: Token usage reported by the engine
    """

    text: Optional[str]
    usage: Optional[TokenUsage] = None


@dataclass(frozen=True)
class CompletionFragment:
    """One element of a streaming completion.

    A stream is a finite sequence of fragments with text, closed by exactly
    one terminal fragment whose text is None and which carries the usage.
    """

    text: Optional[str]
    usage: Optional[TokenUsage] = None

    @property
    def is_terminal(self) -> bool:
        return self.text is None


@dataclass(frozen=True)
class ChatResponse:
    """Text and/or token usage surfaced to the caller.

    Batch calls return text and usage together. Streaming calls surface one
    response per text fragment (usage None) followed by a single usage-only
    response (text None).
    """

    text: Optional[str]
    usage: Optional[TokenUsage] = None

    @property
    def is_usage_only(self) -> bool:
        return self.text is None and self.usage is not None
