"""Persisted shape of a conversation.

One record is stored per conversation id. Records are validated with pydantic
when read back from the cache backend so that a malformed entry is reported
instead of silently producing a broken history.
"""

from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, NonNegativeInt

from ragchat.src.data_classes.message import Message, Role


class StoredUsage(BaseModel):
    """Token usage attached to a stored message."""

    input_tokens: NonNegativeInt = Field(..., description="Prompt tokens")
    output_tokens: NonNegativeInt = Field(..., description="Completion tokens")


class StoredMessage(BaseModel):
    """A message as written to the cache backend."""

    role: Role = Field(..., description="Message author")
    content: str = Field(..., description="Message text")
    usage: Optional[StoredUsage] = Field(None, description="Token usage, if any")

    @classmethod
    def from_message(cls, message: Message) -> "StoredMessage":
        return cls.model_validate(message.to_dict())

    def to_message(self) -> Message:
        return Message.from_dict(self.model_dump())


class ConversationRecord(BaseModel):
    """Conversation history entry stored under the conversation id."""

    conversation_id: str = Field(..., description="Opaque conversation id")
    created_at: float = Field(..., description="Creation time (epoch seconds)")
    updated_at: float = Field(..., description="Last write time (epoch seconds)")
    messages: List[StoredMessage] = Field(
        default_factory=list, description="Chronological message history"
    )

    @classmethod
    def create(
        cls,
        conversation_id: str,
        created_at: float,
        messages: Sequence[Message] = (),
    ) -> "ConversationRecord":
        return cls(
            conversation_id=conversation_id,
            created_at=created_at,
            updated_at=created_at,
            messages=[StoredMessage.from_message(m) for m in messages],
        )

    def to_messages(self) -> List[Message]:
        return [m.to_message() for m in self.messages]

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
