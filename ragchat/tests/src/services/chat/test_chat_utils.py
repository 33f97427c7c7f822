"""Unit tests for chat service utility functions."""

import json
import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

from ragchat.src.data_classes import Message, TokenUsage
from ragchat.src.services.chat.utils import log_llm_interaction


class TestLogLLMInteraction(unittest.TestCase):
    """Test cases for the LLM interaction debug log."""

    def setUp(self) -> None:
        """Set up test fixtures before each test method."""
        self.test_debug_dir = tempfile.mkdtemp(prefix="llm_debug_")
        self.messages = [
            Message.system("Answer from context only."),
            Message.user("What is RAG?"),
        ]

    def tearDown(self) -> None:
        """Clean up after each test method."""
        shutil.rmtree(self.test_debug_dir, ignore_errors=True)

    def read_stage_file(self, stage: str):
        path = os.path.join(self.test_debug_dir, f"llm_{stage}_debug.json")
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def test_appends_interactions_per_stage(self) -> None:
        """Test interactions are appended to one file per stage."""
        usage = TokenUsage(input_tokens=10, output_tokens=3)
        log_llm_interaction(
            "answer", self.messages, "First", usage=usage, debug_dir=self.test_debug_dir
        )
        log_llm_interaction(
            "answer", self.messages, "Second", debug_dir=self.test_debug_dir
        )
        log_llm_interaction(
            "reformulation", self.messages, "Rewritten", debug_dir=self.test_debug_dir
        )

        answers = self.read_stage_file("answer")
        self.assertEqual([a["response"] for a in answers], ["First", "Second"])
        self.assertEqual(answers[0]["usage"], {"input_tokens": 10, "output_tokens": 3})
        self.assertIsNone(answers[1]["usage"])
        self.assertEqual(answers[0]["messages"][1]["content"], "What is RAG?")
        self.assertEqual(answers[0]["stage"], "answer")
        self.assertEqual(len(self.read_stage_file("reformulation")), 1)

    def test_invalid_existing_file_is_replaced(self) -> None:
        """Test a corrupt debug file is started fresh."""
        path = os.path.join(self.test_debug_dir, "llm_answer_debug.json")
        with open(path, "w", encoding="utf-8") as f:
            f.write("{not json")

        log_llm_interaction("answer", self.messages, "Ok", debug_dir=self.test_debug_dir)

        self.assertEqual(len(self.read_stage_file("answer")), 1)

    def test_existing_file_without_list_is_replaced(self) -> None:
        """Test a debug file holding a JSON object is started fresh."""
        path = os.path.join(self.test_debug_dir, "llm_answer_debug.json")
        with open(path, "w", encoding="utf-8") as f:
            f.write("{}")

        log_llm_interaction("answer", self.messages, "Ok", debug_dir=self.test_debug_dir)

        self.assertEqual([a["response"] for a in self.read_stage_file("answer")], ["Ok"])

    def test_unexpected_errors_are_logged(self) -> None:
        """Test errors other than file system errors never escape the debug log."""
        with patch(
            "ragchat.src.services.chat.utils.json.dump",
            side_effect=TypeError("not serializable"),
        ):
            with self.assertLogs("ragchat.src.services.chat.utils", level="ERROR"):
                log_llm_interaction(
                    "answer", self.messages, "Ok", debug_dir=self.test_debug_dir
                )

    @patch("ragchat.src.services.chat.utils.Config")
    def test_no_debug_dir_writes_nothing(self, mock_config) -> None:
        """Test nothing is written when no debug directory is configured."""
        mock_config.LLM_DEBUG_DIR = None

        with patch("ragchat.src.services.chat.utils.os.makedirs") as mock_makedirs:
            log_llm_interaction("answer", self.messages, "Ok")

        mock_makedirs.assert_not_called()

    def test_write_errors_are_logged(self) -> None:
        """Test file system errors never escape the debug log."""
        with patch(
            "ragchat.src.services.chat.utils.open",
            side_effect=OSError("read-only"),
            create=True,
        ):
            with self.assertLogs("ragchat.src.services.chat.utils", level="ERROR"):
                log_llm_interaction(
                    "answer", self.messages, "Ok", debug_dir=self.test_debug_dir
                )


if __name__ == "__main__":
    unittest.main()
