"""Service for storing per-conversation message history in a cache backend.

History is kept per conversation id, bounded to a maximum number of messages
and expired by the backend. Appending an exchange is a single read-modify-write
performed under a per-conversation lock, so concurrent commits to the same
conversation never lose updates while different conversations never wait for
each other.
"""

import logging
import time
from enum import Enum
from typing import List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from ragchat.src.data_classes import ConversationRecord, Message, StoredMessage
from ragchat.src.exceptions import CacheUnavailableError
from ragchat.src.services.store.cache_backend import BaseCacheBackend, Clock
from ragchat.src.services.store.keyed_lock import KeyedLock

logger = logging.getLogger(__name__)


class ExpirationMode(str, Enum):
    """How the lifetime of a conversation is measured.

    SLIDING: lifetime restarts on every read and write
    ABSOLUTE: lifetime is measured from the creation of the conversation
    """

    SLIDING = "sliding"
    ABSOLUTE = "absolute"


class ConversationStore:
    """Keyed, expiring storage for conversation history.

    Attributes:
        backend: Cache backend holding one record per conversation
        max_messages: Maximum number of messages kept per conversation
        expiration_seconds: Lifetime of a conversation
        expiration_mode: Whether the lifetime is sliding or absolute
        clock: Time source returning epoch seconds
    """

    def __init__(
        self,
        backend: BaseCacheBackend,
        max_messages: int,
        expiration_seconds: float,
        expiration_mode: ExpirationMode = ExpirationMode.SLIDING,
        clock: Clock = time.time,
    ) -> None:
        """Initialize the store.

        Args:
            backend: Cache backend to store records in
            max_messages: Maximum number of messages kept per conversation
            expiration_seconds: Lifetime of a conversation in seconds
            expiration_mode: Sliding or absolute expiration
            clock: Time source, should match the backend's clock

        Raises:
            ValueError: If max_messages or expiration_seconds is not positive
        """
        if max_messages < 1:
            raise ValueError(f"max_messages must be at least 1, got {max_messages}")
        if expiration_seconds <= 0:
            raise ValueError(
                f"expiration_seconds must be positive, got {expiration_seconds}"
            )

        self.backend = backend
        self.max_messages = max_messages
        self.expiration_seconds = expiration_seconds
        self.expiration_mode = ExpirationMode(expiration_mode)
        self.clock = clock
        self._locks = KeyedLock()
        logger.info(
            f"ConversationStore initialized (max_messages={max_messages}, "
            f"expiration={expiration_seconds}s {self.expiration_mode.value})"
        )

    def get(self, conversation_id: str) -> List[Message]:
        """Return the history of a conversation.

        A conversation that does not exist (or has expired) has an empty
        history; this is never an error. In sliding mode a successful read
        restarts the conversation lifetime.

        Args:
            conversation_id: Conversation to read

        Returns:
            Chronologically ordered list of messages

        Raises:
            CacheUnavailableError: If the backend could not be read
        """
        with self._locks.hold(conversation_id):
            record = self._load(conversation_id)
            if record is None:
                return []
            if self.expiration_mode is ExpirationMode.SLIDING:
                self.backend.touch(conversation_id, self.expiration_seconds)
            return record.to_messages()

    def append_exchange(
        self, conversation_id: str, new_messages: Sequence[Message]
    ) -> List[Message]:
        """Atomically append messages to a conversation.

        Reads the current history, appends ``new_messages``, drops the oldest
        messages beyond ``max_messages`` and writes the result back, all while
        holding the conversation's lock.

        Args:
            conversation_id: Conversation to update
            new_messages: Messages to append, in order

        Returns:
            The history as stored after the append

        Raises:
            CacheUnavailableError: If the backend could not be read or written;
                in that case nothing has been committed
        """
        with self._locks.hold(conversation_id):
            now = self.clock()
            record = self._load(conversation_id)
            if record is not None and self._ttl_for(record, now) <= 0:
                # Absolute lifetime used up before the backend evicted the entry
                record = None
            if record is None:
                record = ConversationRecord.create(conversation_id, created_at=now)

            messages = record.messages + [
                StoredMessage.from_message(m) for m in new_messages
            ]
            dropped = max(0, len(messages) - self.max_messages)
            if dropped:
                messages = messages[dropped:]
                logger.debug(
                    f"Dropped {dropped} oldest messages from conversation '{conversation_id}'"
                )

            updated = record.model_copy(update={"messages": messages, "updated_at": now})
            self.backend.set(conversation_id, updated.to_dict(), self._ttl_for(updated, now))
            logger.debug(
                f"Committed {len(new_messages)} messages to conversation "
                f"'{conversation_id}' ({len(messages)} stored)"
            )
            return updated.to_messages()

    def _ttl_for(self, record: ConversationRecord, now: float) -> float:
        if self.expiration_mode is ExpirationMode.SLIDING:
            return self.expiration_seconds
        return record.created_at + self.expiration_seconds - now

    def _load(self, conversation_id: str) -> Optional[ConversationRecord]:
        data = self.backend.get(conversation_id)
        if data is None:
            return None
        try:
            return ConversationRecord.model_validate(data)
        except PydanticValidationError as e:
            logger.error(f"Invalid conversation record for '{conversation_id}': {e}")
            raise CacheUnavailableError(
                "Stored conversation record is malformed", details=str(e)
            ) from e
