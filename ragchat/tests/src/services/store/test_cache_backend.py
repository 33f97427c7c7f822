"""Unit tests for the cache backends."""

import json
import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

from ragchat.src.exceptions import CacheUnavailableError
from ragchat.src.services.store import InMemoryCacheBackend, JsonFileCacheBackend


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


class TestInMemoryCacheBackend(unittest.TestCase):
    """Test cases for the InMemoryCacheBackend."""

    def setUp(self) -> None:
        """Set up test fixtures before each test method."""
        self.clock = FakeClock()
        self.backend = InMemoryCacheBackend(clock=self.clock)

    def test_get_missing_key(self) -> None:
        self.assertIsNone(self.backend.get("missing"))

    def test_set_and_get(self) -> None:
        """Test a stored value is returned until it expires."""
        self.backend.set("key", {"a": 1}, ttl_seconds=10)
        self.assertEqual(self.backend.get("key"), {"a": 1})

        self.clock.now += 10
        self.assertIsNone(self.backend.get("key"))
        self.assertEqual(len(self.backend), 0)

    def test_values_are_copied(self) -> None:
        """Test callers cannot mutate cached values in place."""
        value = {"items": [1]}
        self.backend.set("key", value, ttl_seconds=10)
        value["items"].append(2)
        self.backend.get("key")["items"].append(3)

        self.assertEqual(self.backend.get("key"), {"items": [1]})

    def test_touch(self) -> None:
        """Test touch extends live entries only."""
        self.backend.set("key", {"a": 1}, ttl_seconds=10)
        self.clock.now += 5
        self.assertTrue(self.backend.touch("key", 10))
        self.clock.now += 9
        self.assertEqual(self.backend.get("key"), {"a": 1})

        self.assertFalse(self.backend.touch("missing", 10))
        self.clock.now += 100
        self.assertFalse(self.backend.touch("key", 10))

    def test_sweep_expired(self) -> None:
        """Test sweeping removes only expired entries."""
        self.backend.set("short", {}, ttl_seconds=1)
        self.backend.set("long", {}, ttl_seconds=100)
        self.clock.now += 2

        self.assertEqual(self.backend.sweep_expired(), 1)
        self.assertEqual(len(self.backend), 1)


class TestJsonFileCacheBackend(unittest.TestCase):
    """Test cases for the JsonFileCacheBackend."""

    def setUp(self) -> None:
        """Set up test fixtures before each test method."""
        self.directory = tempfile.mkdtemp(prefix="conversation_cache_")
        self.clock = FakeClock()
        self.backend = JsonFileCacheBackend(self.directory, clock=self.clock)

    def tearDown(self) -> None:
        """Clean up after each test method."""
        shutil.rmtree(self.directory, ignore_errors=True)

    def entry_files(self):
        return [f for f in os.listdir(self.directory) if f.endswith(".json")]

    def test_set_and_get(self) -> None:
        """Test values survive a new backend instance on the same directory."""
        self.backend.set("conv/1", {"messages": ["hi"]}, ttl_seconds=10)

        reopened = JsonFileCacheBackend(self.directory, clock=self.clock)
        self.assertEqual(reopened.get("conv/1"), {"messages": ["hi"]})
        self.assertEqual(len(self.entry_files()), 1)
        self.assertFalse(any(f.startswith(".tmp-") for f in os.listdir(self.directory)))

    def test_envelope_format(self) -> None:
        """Test entries are stored with their expiration time."""
        self.backend.set("key", {"a": 1}, ttl_seconds=10)

        with open(os.path.join(self.directory, self.entry_files()[0]), encoding="utf-8") as f:
            envelope = json.load(f)
        self.assertEqual(envelope, {"expires_at": 1010.0, "value": {"a": 1}})

    def test_expired_entry_is_removed(self) -> None:
        """Test an expired entry reads as missing and its file is deleted."""
        self.backend.set("key", {"a": 1}, ttl_seconds=10)
        self.clock.now += 11

        self.assertIsNone(self.backend.get("key"))
        self.assertEqual(self.entry_files(), [])

    def test_touch(self) -> None:
        self.backend.set("key", {"a": 1}, ttl_seconds=10)
        self.clock.now += 8
        self.assertTrue(self.backend.touch("key", 10))
        self.clock.now += 8
        self.assertEqual(self.backend.get("key"), {"a": 1})
        self.assertFalse(self.backend.touch("missing", 10))

    def test_corrupt_file_raises(self) -> None:
        """Test unreadable entries surface as CacheUnavailableError."""
        self.backend.set("key", {"a": 1}, ttl_seconds=10)
        with open(os.path.join(self.directory, self.entry_files()[0]), "w") as f:
            f.write("{broken")

        with self.assertRaises(CacheUnavailableError):
            self.backend.get("key")

    def test_non_envelope_json_raises(self) -> None:
        """Test valid JSON that is not an entry envelope is reported as unreadable."""
        self.backend.set("key", {"a": 1}, ttl_seconds=10)
        path = os.path.join(self.directory, self.entry_files()[0])

        for content in ("[1, 2]", '"text"', '{"value": {}}'):
            with open(path, "w") as f:
                f.write(content)
            with self.assertRaises(CacheUnavailableError):
                self.backend.get("key")
            with self.assertRaises(CacheUnavailableError):
                self.backend.touch("key", ttl_seconds=10)

    def test_failed_write_raises_and_leaves_no_temp_file(self) -> None:
        """Test a failing atomic replace is reported."""
        with patch(
            "ragchat.src.services.store.cache_backend.os.replace",
            side_effect=OSError("no space left"),
        ):
            with self.assertRaises(CacheUnavailableError):
                self.backend.set("key", {"a": 1}, ttl_seconds=10)

        self.assertEqual(os.listdir(self.directory), [])
        self.assertIsNone(self.backend.get("key"))


if __name__ == "__main__":
    unittest.main()
