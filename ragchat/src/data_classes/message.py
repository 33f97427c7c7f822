"""Chat message and token usage data classes."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class Role(str, Enum):
    """Author of a chat message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported by the completion engine for one call.

    Attributes:
        input_tokens: Tokens consumed by the prompt
        output_tokens: Tokens produced by the model
    """

    input_tokens: int
    output_tokens: int

    def __post_init__(self) -> None:
        for name in ("input_tokens", "output_tokens"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}")

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        if not isinstance(other, TokenUsage):
            return NotImplemented
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> Dict[str, int]:
        return {"input_tokens": self.input_tokens, "output_tokens": self.output_tokens}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenUsage":
        return cls(
            input_tokens=int(data["input_tokens"]),
            output_tokens=int(data["output_tokens"]),
        )


@dataclass(frozen=True)
class Message:
    """A single message of a conversation.

    Messages are immutable once created; history is only ever extended with
    new instances.

    Attributes:
        role: Who wrote the message
        content: Text content
        usage: Token usage of the completion that produced the message, if any
    """

    role: Role
    content: str
    usage: Optional[TokenUsage] = None

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(Role.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(Role.USER, content)

    @classmethod
    def assistant(cls, content: str, usage: Optional[TokenUsage] = None) -> "Message":
        return cls(Role.ASSISTANT, content, usage)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the message to its persisted dictionary shape.

        Returns:
            Dictionary with the role tag, content and optional usage
        """
        return {
            "role": self.role.value,
            "content": self.content,
            "usage": self.usage.to_dict() if self.usage else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        """Create a Message from its persisted dictionary shape.

        Args:
            data: Dictionary produced by ``to_dict``
        """
        usage = data.get("usage")
        return cls(
            role=Role(data["role"]),
            content=data["content"],
            usage=TokenUsage.from_dict(usage) if usage else None,
        )
