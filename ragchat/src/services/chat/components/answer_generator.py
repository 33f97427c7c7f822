"""Component for generating answers from the retrieved chunks.

Answers are generated either in one call or as a stream of fragments. In both
modes the question and answer are committed to the conversation history only
after the completion finished successfully, and exactly once.
"""

import logging
import threading
import weakref
from enum import Enum
from typing import Callable, Iterator, List, NoReturn, Optional, Sequence, Tuple

from ragchat.src.data_classes import (
    ChatResponse,
    Chunk,
    CompletionFragment,
    Message,
    PromptPlan,
    TokenUsage,
)
from ragchat.src.exceptions import (
    ChatServiceError,
    CompletionEngineError,
    EmptyCompletionError,
    ExchangeCancelledError,
)
from ragchat.src.services.chat.components.prompt_assembler import PromptAssembler
from ragchat.src.services.chat.utils import log_llm_interaction
from ragchat.src.services.llm import BaseCompletionEngine
from ragchat.src.services.store import ConversationStore

logger = logging.getLogger(__name__)

CommitFunction = Callable[[str, Optional[TokenUsage]], None]


class StreamState(str, Enum):
    """Lifecycle of an answer stream."""

    IDLE = "idle"
    SENT_PROMPT = "sent_prompt"
    RECEIVING_FRAGMENTS = "receiving_fragments"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


_FINISHED_STATES = (StreamState.COMPLETED, StreamState.CANCELLED, StreamState.FAILED)


class _StreamFinisher:
    """Closes the engine stream and runs the finish callback, once.

    Kept apart from the stream so it can also run when an abandoned stream is
    garbage collected.
    """

    def __init__(self, on_finish: Optional[Callable[[], None]]) -> None:
        self.on_finish = on_finish
        self.fragments: Optional[Iterator[CompletionFragment]] = None
        self._lock = threading.Lock()
        self.finished = False

    def __call__(self) -> None:
        with self._lock:
            if self.finished:
                return
            self.finished = True

        try:
            close = getattr(self.fragments, "close", None)
            if close is not None:
                close()
        finally:
            if self.on_finish is not None:
                self.on_finish()


def _finish_abandoned(finisher: _StreamFinisher) -> None:
    if not finisher.finished:
        logger.warning("Answer stream was abandoned before it finished, closing it")
    finisher()


class AnswerStream:
    """Cancellable, finite, non-restartable sequence of answer events.

    Iterating yields a ChatResponse per non-empty text fragment and, when the
    engine reports usage, one final usage-only ChatResponse. The engine is
    only called on the first iteration. The answer is committed right before
    the usage-only event is produced (or the iteration ends), so once the
    consumer has seen the end of the stream the history is up to date.

    ``cancel()`` may be called from any thread. When no consumer is waiting
    on the engine the stream is shut down right away; otherwise the consumer
    stops at the next fragment boundary. Either way the consumer then gets
    ExchangeCancelledError once. ``close()`` is for the consumer itself and
    stops the stream silently. Neither commits anything. A stream that is
    garbage collected before it finished is closed as well.

    Attributes:
        plan: Plan that selected the chunks of the prompt
    """

    def __init__(
        self,
        open_stream: Callable[[], Iterator[CompletionFragment]],
        commit: CommitFunction,
        plan: PromptPlan,
        cancel_event: Optional[threading.Event] = None,
        on_finish: Optional[Callable[[], None]] = None,
        on_complete: Optional[CommitFunction] = None,
    ) -> None:
        self.plan = plan
        self._open_stream = open_stream
        self._commit = commit
        self._on_complete = on_complete
        self._cancel_event = cancel_event or threading.Event()
        # Held while a consumer drives the engine stream
        self._consumer_lock = threading.Lock()
        self._cancel_pending = False
        self._finisher = _StreamFinisher(on_finish)
        weakref.finalize(self, _finish_abandoned, self._finisher)
        self._buffer: List[str] = []
        self._usage: Optional[TokenUsage] = None
        self._state = StreamState.IDLE

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def text(self) -> str:
        """Answer text received so far."""
        return "".join(self._buffer)

    @property
    def usage(self) -> Optional[TokenUsage]:
        """Usage reported by the terminal fragment, None before it arrived."""
        return self._usage

    def cancel(self) -> None:
        """Request cancellation of the stream."""
        self._cancel_event.set()
        if not self._consumer_lock.acquire(blocking=False):
            return
        try:
            if self._state not in _FINISHED_STATES:
                logger.info(f"Answer stream cancelled in state '{self._state.value}'")
                self._state = StreamState.CANCELLED
                self._cancel_pending = True
                self._shutdown()
        finally:
            self._consumer_lock.release()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def close(self) -> None:
        """Stop the stream without committing anything and without raising."""
        if self._state in _FINISHED_STATES:
            return
        logger.info(f"Answer stream closed by the consumer in state '{self._state.value}'")
        self._state = StreamState.CANCELLED
        self._shutdown()

    def __enter__(self) -> "AnswerStream":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def __iter__(self) -> "AnswerStream":
        return self

    def __next__(self) -> ChatResponse:
        with self._consumer_lock:
            return self._advance()

    def _advance(self) -> ChatResponse:
        while True:
            if self._state in _FINISHED_STATES:
                if self._cancel_pending:
                    self._cancel_pending = False
                    raise ExchangeCancelledError()
                raise StopIteration
            self._check_cancelled()

            if self._state is StreamState.IDLE:
                self._start()

            fragment = self._next_fragment()
            self._check_cancelled()

            if fragment.is_terminal:
                self._complete(fragment.usage)
                if fragment.usage is None:
                    raise StopIteration
                return ChatResponse(text=None, usage=fragment.usage)

            self._state = StreamState.RECEIVING_FRAGMENTS
            if fragment.text:
                self._buffer.append(fragment.text)
                return ChatResponse(text=fragment.text)

    def _start(self) -> None:
        try:
            self._finisher.fragments = self._open_stream()
        except ChatServiceError as e:
            self._fail(e)
        except Exception as e:
            self._fail(CompletionEngineError(f"Failed to start stream: {str(e)}"), e)
        self._state = StreamState.SENT_PROMPT

    def _next_fragment(self) -> CompletionFragment:
        fragments = self._finisher.fragments
        assert fragments is not None, "Stream must be started"
        try:
            return next(fragments)
        except StopIteration:
            self._fail(
                CompletionEngineError("Stream ended without a terminal fragment")
            )
        except ChatServiceError as e:
            self._fail(e)
        except Exception as e:
            self._fail(CompletionEngineError(f"Stream failed: {str(e)}"), e)

    def _check_cancelled(self) -> None:
        if not self._cancel_event.is_set():
            return
        logger.info(f"Answer stream cancelled in state '{self._state.value}'")
        self._state = StreamState.CANCELLED
        self._shutdown()
        raise ExchangeCancelledError()

    def _complete(self, usage: Optional[TokenUsage]) -> None:
        self._usage = usage
        answer = self.text
        if not answer.strip():
            self._fail(EmptyCompletionError("The answer stream returned no content"))

        try:
            self._commit(answer, usage)
        except Exception:
            self._state = StreamState.FAILED
            self._shutdown()
            raise

        self._state = StreamState.COMPLETED
        self._shutdown()
        if self._on_complete is not None:
            self._on_complete(answer, usage)

    def _fail(
        self, error: ChatServiceError, cause: Optional[BaseException] = None
    ) -> NoReturn:
        logger.error(f"Answer stream failed in state '{self._state.value}': {error.message}")
        self._state = StreamState.FAILED
        self._shutdown()
        if cause is None:
            raise error
        raise error from cause

    def _shutdown(self) -> None:
        self._finisher()


class AnswerGenerator:
    """Generates answers to questions using the supplied chunks as context.

    Attributes:
        completion_engine: Engine producing the answer
        conversation_store: Store the question and answer are committed to
        prompt_assembler: Builds the token-budgeted answer prompt
        max_output_tokens: Output limit for the answer, engine default if None
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
        logger.info("AnswerGenerator initialized")

    def generate(
        self,
        conversation_id: str,
        question: str,
        chunks: Sequence[Chunk],
        preceding_messages: Sequence[Message] = (),
    ) -> ChatResponse:
        """Generate an answer in a single completion call.

        Args:
            conversation_id: Conversation the exchange belongs to
            question: Question to answer
            chunks: Candidate chunks, most relevant first
            preceding_messages: Messages of the same exchange committed
                together with the answer, before the question

        Returns:
            ChatResponse with the full answer and its token usage

        Raises:
            CompletionEngineError: If the engine call failed
            EmptyCompletionError: If the engine returned no content
            CacheUnavailableError: If the exchange could not be committed
        """
        response, _ = self.generate_with_plan(
            conversation_id, question, chunks, preceding_messages
        )
        return response

    def generate_with_plan(
        self,
        conversation_id: str,
        question: str,
        chunks: Sequence[Chunk],
        preceding_messages: Sequence[Message] = (),
    ) -> Tuple[ChatResponse, PromptPlan]:
        """Same as ``generate`` but also return the plan used for the prompt."""
        prompt = self.prompt_assembler.build_answer_prompt(question, chunks)

        try:
            completion = self.completion_engine.complete(
                prompt.messages, max_tokens=self.max_output_tokens
            )
        except ChatServiceError:
            raise
        except Exception as e:
            logger.error(f"Answer generation failed for conversation '{conversation_id}': {e}")
            raise CompletionEngineError(f"Answer generation failed: {str(e)}") from e

        text = completion.text
        if text is None or not text.strip():
            logger.warning(f"Empty answer for conversation '{conversation_id}'")
            raise EmptyCompletionError("The answer returned no content")

        self._commit(conversation_id, question, text, completion.usage, preceding_messages)
        log_llm_interaction(
            stage="answer",
            messages=prompt.messages,
            response=text,
            usage=completion.usage,
        )
        return ChatResponse(text=text, usage=completion.usage), prompt.plan

    def generate_streaming(
        self,
        conversation_id: str,
        question: str,
        chunks: Sequence[Chunk],
        cancel_event: Optional[threading.Event] = None,
        on_finish: Optional[Callable[[], None]] = None,
        preceding_messages: Sequence[Message] = (),
    ) -> AnswerStream:
        """Prepare a streaming answer.

        The prompt is assembled immediately; the engine is called when the
        returned stream is first iterated.

        Args:
            conversation_id: Conversation the exchange belongs to
            question: Question to answer
            chunks: Candidate chunks, most relevant first
            cancel_event: Event that cancels the stream when set
            on_finish: Called once when the stream completes, fails, is
                cancelled or closed
            preceding_messages: Messages of the same exchange committed
                together with the answer, before the question

        Returns:
            AnswerStream producing the answer events
        """
        prompt = self.prompt_assembler.build_answer_prompt(question, chunks)
        preceding = list(preceding_messages)

        def open_stream() -> Iterator[CompletionFragment]:
            return self.completion_engine.stream(
                prompt.messages, max_tokens=self.max_output_tokens
            )

        def commit(text: str, usage: Optional[TokenUsage]) -> None:
            self._commit(conversation_id, question, text, usage, preceding)

        def log_answer(text: str, usage: Optional[TokenUsage]) -> None:
            log_llm_interaction(
                stage="answer", messages=prompt.messages, response=text, usage=usage
            )

        return AnswerStream(
            open_stream=open_stream,
            commit=commit,
            plan=prompt.plan,
            cancel_event=cancel_event,
            on_finish=on_finish,
            on_complete=log_answer,
        )

    def _commit(
        self,
        conversation_id: str,
        question: str,
        answer: str,
        usage: Optional[TokenUsage],
        preceding_messages: Sequence[Message] = (),
    ) -> None:
        self.conversation_store.append_exchange(
            conversation_id,
            [
                *preceding_messages,
                Message.user(question),
                Message.assistant(answer, usage),
            ],
        )
        logger.info(f"Committed answer for conversation '{conversation_id}'")
