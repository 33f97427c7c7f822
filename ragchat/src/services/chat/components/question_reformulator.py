"""Component for rewriting a follow-up question into a standalone query.

The rewritten question is used for retrieval. The question and its rewrite
are committed to the conversation history like any other exchange, so a
later reformulation sees how earlier questions were interpreted.
"""

import logging
from typing import List, Optional

from ragchat.src.data_classes import ChatResponse, Message
from ragchat.src.exceptions import (
    ChatServiceError,
    CompletionEngineError,
    EmptyCompletionError,
)
from ragchat.src.services.chat.components.prompt_assembler import PromptAssembler
from ragchat.src.services.chat.utils import log_llm_interaction
from ragchat.src.services.llm import BaseCompletionEngine
from ragchat.src.services.store import ConversationStore

logger = logging.getLogger(__name__)


class QuestionReformulator:
    """Rewrites questions using the conversation history.

    Attributes:
        completion_engine: Engine used for the non-streaming rewrite call
        conversation_store: Store holding the conversation histories
        prompt_assembler: Builds the reformulation prompt
        max_output_tokens: Output limit for the rewrite, engine default if None
    """

    def __init__(
        self,
        completion_engine: BaseCompletionEngine,
        conversation_store: ConversationStore,
        prompt_assembler: PromptAssembler,
        max_output_tokens: Optional[int] = None,
    ) -> None:
        assert completion_engine is not None, "Completion engine must be provided"
        assert conversation_store is not None, "Conversation store must be provided"
        assert prompt_assembler is not None, "Prompt assembler must be provided"

        self.completion_engine = completion_engine
        self.conversation_store = conversation_store
        self.prompt_assembler = prompt_assembler
        self.max_output_tokens = max_output_tokens
        logger.info("QuestionReformulator initialized")

    @staticmethod
    def exchange_messages(question: str, reformulation: ChatResponse) -> List[Message]:
        """The question and its rewrite as they are stored in the history."""
        return [
            Message.user(question),
            Message.assistant(reformulation.text or "", reformulation.usage),
        ]

    def reformulate(
        self, conversation_id: str, question: str, commit: bool = True
    ) -> ChatResponse:
        """Rewrite a question into a standalone, context-aware query.

        Args:
            conversation_id: Conversation the question belongs to
            question: Raw user question
            commit: Append the question and its rewrite to the history. When
                False the caller commits them, see ``exchange_messages``

        Returns:
            ChatResponse with the rewritten question and the token usage

        Raises:
            EmptyCompletionError: If the engine returned no usable text; the
                history is left untouched
            CompletionEngineError: If the engine call failed
            CacheUnavailableError: If the history could not be read or written
        """
        history = self.conversation_store.get(conversation_id)
        messages = self.prompt_assembler.build_reformulation_prompt(history, question)

        try:
            completion = self.completion_engine.complete(
                messages, max_tokens=self.max_output_tokens
            )
        except ChatServiceError:
            raise
        except Exception as e:
            logger.error(f"Reformulation failed for conversation '{conversation_id}': {e}")
            raise CompletionEngineError(f"Reformulation failed: {str(e)}") from e

        text = completion.text
        if text is None or not text.strip():
            logger.warning(
                f"Empty reformulation for conversation '{conversation_id}', history unchanged"
            )
            raise EmptyCompletionError("The reformulation returned no content")

        response = ChatResponse(text=text, usage=completion.usage)
        if commit:
            self.conversation_store.append_exchange(
                conversation_id, self.exchange_messages(question, response)
            )
        log_llm_interaction(
            stage="reformulation",
            messages=messages,
            response=text,
            usage=completion.usage,
        )

        logger.info(f"Reformulated question: '{question}' -> '{text}'")
        return response
