"""Data classes module for conversations, chunks and completions.

This module provides the core data structures shared by the chat services:

Classes:
    - Message: Immutable chat message with optional token usage
    - TokenUsage: Input/output token counts of a completion
    - Chunk: Unit of retrieved reference text
    - PromptPlan: Chunks selected for a prompt under a token budget
    - Completion / CompletionFragment: Results of the completion engine
    - ChatResponse: Text and/or usage surfaced to callers
    - ConversationRecord: Persisted shape of a conversation
Types:
    - Role: Author of a chat message
"""

from ragchat.src.data_classes.chat_response import (
    ChatResponse,
    Completion,
    CompletionFragment,
)
from ragchat.src.data_classes.chunk import Chunk
from ragchat.src.data_classes.conversation import (
    ConversationRecord,
    StoredMessage,
    StoredUsage,
)
from ragchat.src.data_classes.message import Message, Role, TokenUsage
from ragchat.src.data_classes.prompt_plan import PromptPlan

__all__ = [
    "Role",
    "TokenUsage",
    "Message",
    "Chunk",
    "PromptPlan",
    "Completion",
    "CompletionFragment",
    "ChatResponse",
    "ConversationRecord",
    "StoredMessage",
    "StoredUsage",
]
