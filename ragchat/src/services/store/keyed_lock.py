"""Per-key mutual exclusion.

Each key gets its own ``threading.Lock`` so that operations on one
conversation are serialized while operations on different conversations run
independently. Locks are reference counted and dropped once no thread holds
or waits for them.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

logger = logging.getLogger(__name__)


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class KeyedLock:
    """Registry of locks keyed by string.

    Attributes:
        _guard: Protects the registry itself, held only for bookkeeping
        _entries: Key -> lock entry with its reference count
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: Dict[str, _LockEntry] = {}

    def acquire(
        self, key: str, blocking: bool = True, timeout: Optional[float] = None
    ) -> bool:
        """Acquire the lock for ``key``.

        Args:
            key: Key to lock
            blocking: Wait for the lock when it is held elsewhere
            timeout: Maximum seconds to wait when blocking, None waits forever

        Returns:
            True if the lock was acquired
        """
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _LockEntry()
                self._entries[key] = entry
            entry.users += 1

        if not blocking:
            acquired = entry.lock.acquire(blocking=False)
        else:
            acquired = entry.lock.acquire(timeout=-1 if timeout is None else timeout)

        if not acquired:
            self._drop_user(key, entry)
            logger.debug(f"Could not acquire lock for key '{key}'")
        return acquired

    def release(self, key: str) -> None:
        """Release the lock for ``key``.

        Raises:
            RuntimeError: If the key is not locked
        """
        with self._guard:
            entry = self._entries.get(key)
        if entry is None or not entry.lock.locked():
            raise RuntimeError(f"Lock for key '{key}' is not held")
        entry.lock.release()
        self._drop_user(key, entry)

    def locked(self, key: str) -> bool:
        with self._guard:
            entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        self.acquire(key)
        try:
            yield
        finally:
            self.release(key)

    def _drop_user(self, key: str, entry: _LockEntry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(key) is entry:
                del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
