"""Key-value cache backends with per-entry expiration.

Backends store JSON-compatible dictionaries. They know nothing about
conversations; ``ConversationStore`` is their only client.

- InMemoryCacheBackend: process-local dictionary guarded by a thread lock
- JsonFileCacheBackend: one JSON file per key, replaced atomically on write
"""

import abc
import copy
import hashlib
import json
import logging
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from ragchat.src.exceptions import CacheUnavailableError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class BaseCacheBackend(abc.ABC):
    """Base class for cache backends.

    Attributes:
        clock: Time source returning epoch seconds
    """

    def __init__(self, clock: Clock = time.time) -> None:
        self.clock = clock

    @abc.abstractmethod
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the value stored under ``key``.

        Returns:
            The stored value, or None if absent or expired

        Raises:
            CacheUnavailableError: If the backend cannot be read
        """

    @abc.abstractmethod
    def set(self, key: str, value: Dict[str, Any], ttl_seconds: float) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``.

        Raises:
            CacheUnavailableError: If the value could not be written
        """

    @abc.abstractmethod
    def touch(self, key: str, ttl_seconds: float) -> bool:
        """Reset the expiration of an existing entry.

        Returns:
            True if the entry existed and was updated

        Raises:
            CacheUnavailableError: If the backend cannot be updated
        """


class InMemoryCacheBackend(BaseCacheBackend):
    """Process-local cache with lazy expiration.

    Values are deep-copied on the way in and out so callers never share
    mutable state with the cache.
    """

    def __init__(self, clock: Clock = time.time) -> None:
        super().__init__(clock)
        self._lock = threading.Lock()
        # key -> {"value": dict, "expires_at": float}
        self._items: Dict[str, Dict[str, Any]] = {}

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        now = self.clock()
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            if item["expires_at"] <= now:
                del self._items[key]
                return None
            return copy.deepcopy(item["value"])

    def set(self, key: str, value: Dict[str, Any], ttl_seconds: float) -> None:
        expires_at = self.clock() + ttl_seconds
        with self._lock:
            self._items[key] = {"value": copy.deepcopy(value), "expires_at": expires_at}

    def touch(self, key: str, ttl_seconds: float) -> bool:
        now = self.clock()
        with self._lock:
            item = self._items.get(key)
            if item is None or item["expires_at"] <= now:
                return False
            item["expires_at"] = now + ttl_seconds
            return True

    def sweep_expired(self) -> int:
        """Delete expired entries.

        Returns:
            Number of entries removed
        """
        now = self.clock()
        with self._lock:
            expired = [k for k, v in self._items.items() if v["expires_at"] <= now]
            for key in expired:
                del self._items[key]
        if expired:
            logger.debug(f"Swept {len(expired)} expired cache entries")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class JsonFileCacheBackend(BaseCacheBackend):
    """Cache storing each entry as a JSON file in a directory.

    File names are the SHA-256 of the key, so arbitrary keys map to safe
    paths. Writes go to a temporary file that replaces the entry atomically,
    so readers never observe a half-written entry.

    Attributes:
        directory: Directory holding the entry files
    """

    def __init__(self, directory: Union[str, Path], clock: Clock = time.time) -> None:
        super().__init__(clock)
        self.directory = Path(directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheUnavailableError(
                f"Could not create cache directory {self.directory}", details=str(e)
            ) from e
        logger.info(f"JSON cache backend initialized at {self.directory}")

    def _path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.directory / f"{digest}.json"

    def _read(self, path: Path) -> Optional[Dict[str, Any]]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                envelope = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error reading cache entry {path}: {str(e)}")
            raise CacheUnavailableError(
                "Could not read conversation cache entry", details=str(e)
            ) from e

        if not isinstance(envelope, dict) or not isinstance(
            envelope.get("expires_at"), (int, float)
        ):
            logger.error(f"Malformed cache entry {path}")
            raise CacheUnavailableError(
                "Could not read conversation cache entry",
                details=f"Malformed envelope in {path.name}",
            )
        return envelope

    def _write(self, path: Path, envelope: Dict[str, Any]) -> None:
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=self.directory, prefix=".tmp-", suffix=".json"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(envelope, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Error writing cache entry {path}: {str(e)}")
            if tmp_name and os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise CacheUnavailableError(
                "Could not write conversation cache entry", details=str(e)
            ) from e

    def _remove_expired(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            # Entry is already treated as absent, a stale file only costs disk space
            logger.warning(f"Could not remove expired cache entry {path}: {str(e)}")

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._path(key)
        envelope = self._read(path)
        if envelope is None:
            return None
        if envelope.get("expires_at", 0) <= self.clock():
            self._remove_expired(path)
            return None
        return envelope.get("value")

    def set(self, key: str, value: Dict[str, Any], ttl_seconds: float) -> None:
        envelope = {"expires_at": self.clock() + ttl_seconds, "value": value}
        self._write(self._path(key), envelope)

    def touch(self, key: str, ttl_seconds: float) -> bool:
        path = self._path(key)
        envelope = self._read(path)
        now = self.clock()
        if envelope is None or envelope.get("expires_at", 0) <= now:
            return False
        envelope["expires_at"] = now + ttl_seconds
        self._write(path, envelope)
        return True
