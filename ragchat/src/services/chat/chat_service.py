"""Chat service running a complete question/answer exchange.

An exchange consists of:
1. Rewriting the question into a standalone query using the history
2. Retrieving candidate chunks for the rewritten query
3. Generating the answer from the chunks that fit the token budget

The whole exchange is one critical section per conversation id and is
committed to the history in one write once the answer is complete: the
rewrite and the answer are both stored, or neither is. A second
exchange for the same id either waits for the first one or is rejected,
depending on the lock mode; exchanges of different conversations never wait
for each other.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ragchat.src.data_classes import ChatResponse, PromptPlan, TokenUsage
from ragchat.src.exceptions import ConversationBusyError
from ragchat.src.services.chat.components import (
    AnswerGenerator,
    AnswerStream,
    PromptAssembler,
    QuestionReformulator,
)
from ragchat.src.services.llm import BaseCompletionEngine
from ragchat.src.services.retrieval import BaseChunkSource
from ragchat.src.services.store import ConversationStore, KeyedLock

logger = logging.getLogger(__name__)


class ExchangeLockMode(str, Enum):
    """What happens to an exchange when its conversation is busy."""

    QUEUE = "queue"
    REJECT = "reject"


@dataclass(frozen=True)
class ExchangeResult:
    """Result of a batch exchange.

    Attributes:
        question: Question as asked by the user
        reformulated_question: Standalone query used for retrieval
        answer: Answer text and usage of the answer call
        plan: Chunks selected for the answer prompt
        usage: Combined usage of the reformulation and answer calls
    """

    question: str
    reformulated_question: str
    answer: ChatResponse
    plan: PromptPlan
    usage: Optional[TokenUsage]


@dataclass(frozen=True)
class StreamingExchange:
    """A streaming exchange whose answer is still to be consumed.

    The conversation stays locked until ``stream`` completes, fails, is
    cancelled or closed.
    """

    question: str
    reformulated_question: str
    reformulation_usage: Optional[TokenUsage]
    plan: PromptPlan
    stream: AnswerStream


def _sum_usage(*usages: Optional[TokenUsage]) -> Optional[TokenUsage]:
    present = [u for u in usages if u is not None]
    if not present:
        return None
    total = present[0]
    for usage in present[1:]:
        total = total + usage
    return total


class ChatService:
    """Runs question/answer exchanges on conversations.

    Attributes:
        conversation_store: Store holding the conversation histories
        chunk_source: Retrieval collaborator supplying candidate chunks
        reformulator: Component rewriting the questions
        answer_generator: Component generating the answers
        lock_mode: Behaviour when a conversation already has an exchange in flight
        lock_timeout: Maximum wait in queue mode, None waits forever
    """

    def __init__(
        self,
        completion_engine: BaseCompletionEngine,
        conversation_store: ConversationStore,
        chunk_source: BaseChunkSource,
        prompt_assembler: PromptAssembler,
        lock_mode: ExchangeLockMode = ExchangeLockMode.QUEUE,
        lock_timeout: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
    ) -> None:
        assert completion_engine is not None, "Completion engine is required"
        assert conversation_store is not None, "Conversation store is required"
        assert chunk_source is not None, "Chunk source is required"
        assert prompt_assembler is not None, "Prompt assembler is required"

        self.conversation_store = conversation_store
        self.chunk_source = chunk_source
        self.lock_mode = ExchangeLockMode(lock_mode)
        self.lock_timeout = lock_timeout
        self._exchange_locks = KeyedLock()

        self.reformulator = QuestionReformulator(
            completion_engine, conversation_store, prompt_assembler
        )
        self.answer_generator = AnswerGenerator(
            completion_engine,
            conversation_store,
            prompt_assembler,
            max_output_tokens=max_output_tokens,
        )

        logger.info(f"ChatService initialized (lock_mode={self.lock_mode.value})")

    def is_busy(self, conversation_id: str) -> bool:
        """Whether an exchange for the conversation is in flight."""
        return self._exchange_locks.locked(conversation_id)

    def ask(self, conversation_id: str, question: str) -> ExchangeResult:
        """Run a batch exchange.

        Args:
            conversation_id: Conversation to continue (created if missing)
            question: User question

        Returns:
            ExchangeResult with the answer and the combined usage

        Raises:
            ConversationBusyError: If the conversation lock was not obtained
            ChatServiceError: Any failure of the exchange; nothing of the
                exchange has been committed
        """
        self._acquire(conversation_id)
        try:
            reformulation = self.reformulator.reformulate(
                conversation_id, question, commit=False
            )
            chunks = self.chunk_source.retrieve(reformulation.text)
            logger.info(f"Retrieved {len(chunks)} candidate chunks")

            answer, plan = self.answer_generator.generate_with_plan(
                conversation_id,
                question,
                chunks,
                preceding_messages=self.reformulator.exchange_messages(
                    question, reformulation
                ),
            )
        finally:
            self._release(conversation_id)

        return ExchangeResult(
            question=question,
            reformulated_question=reformulation.text,
            answer=answer,
            plan=plan,
            usage=_sum_usage(reformulation.usage, answer.usage),
        )

    def ask_streaming(
        self,
        conversation_id: str,
        question: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> StreamingExchange:
        """Start a streaming exchange.

        The reformulation and retrieval run immediately; the answer is
        produced while the returned stream is consumed. The conversation lock
        is released when the stream finishes in any way: exhausted, failed,
        cancelled, closed or dropped. The rewrite and the answer are committed
        together only when the stream completes.

        Args:
            conversation_id: Conversation to continue (created if missing)
            question: User question
            cancel_event: Event that cancels the answer stream when set

        Returns:
            StreamingExchange holding the answer stream

        Raises:
            ConversationBusyError: If the conversation lock was not obtained
            ChatServiceError: If reformulation failed; the lock is released
        """
        self._acquire(conversation_id)
        try:
            reformulation = self.reformulator.reformulate(
                conversation_id, question, commit=False
            )
            chunks = self.chunk_source.retrieve(reformulation.text)
            logger.info(f"Retrieved {len(chunks)} candidate chunks")

            stream = self.answer_generator.generate_streaming(
                conversation_id,
                question,
                chunks,
                cancel_event=cancel_event,
                on_finish=lambda: self._release(conversation_id),
                preceding_messages=self.reformulator.exchange_messages(
                    question, reformulation
                ),
            )
        except BaseException:
            self._release(conversation_id)
            raise

        return StreamingExchange(
            question=question,
            reformulated_question=reformulation.text,
            reformulation_usage=reformulation.usage,
            plan=stream.plan,
            stream=stream,
        )

    def _acquire(self, conversation_id: str) -> None:
        if self.lock_mode is ExchangeLockMode.REJECT:
            acquired = self._exchange_locks.acquire(conversation_id, blocking=False)
        else:
            acquired = self._exchange_locks.acquire(
                conversation_id, timeout=self.lock_timeout
            )

        if not acquired:
            logger.warning(f"Conversation '{conversation_id}' is busy")
            raise ConversationBusyError(
                f"Another exchange for conversation '{conversation_id}' is in progress"
            )

    def _release(self, conversation_id: str) -> None:
        self._exchange_locks.release(conversation_id)
        logger.debug(f"Released exchange lock for conversation '{conversation_id}'")
