"""Unit tests for the PromptAssembler component."""

import unittest
from unittest.mock import Mock

from ragchat.conf.prompts import (
    ANSWER_SYSTEM_PROMPT,
    ANSWER_USER_TEMPLATE,
    CHUNK_SEPARATOR,
    REFORMULATION_SYSTEM_PROMPT,
)
from ragchat.src.data_classes import Chunk, Message, Role
from ragchat.src.services.chat.components.prompt_assembler import PromptAssembler
from ragchat.src.services.chat.components.token_budget import TokenBudgetPlanner
from ragchat.src.services.llm import BaseTokenCounter


class TestPromptAssembler(unittest.TestCase):
    """Test cases for the PromptAssembler component."""

    def setUp(self) -> None:
        """Set up test fixtures before each test method."""
        # One token per character keeps the arithmetic readable
        self.token_counter = Mock(spec=BaseTokenCounter)
        self.token_counter.count.side_effect = len

        self.question = "What is RAG?"
        self.header = ANSWER_USER_TEMPLATE.format(question=self.question)
        self.max_output_tokens = 50
        self.reserved = len(ANSWER_SYSTEM_PROMPT) + len(self.header) + 50

        self.chunks = [
            Chunk(content="a" * 16, rank=0),  # costs 4 + 16 + 1 = 21
            Chunk(content="b" * 26, rank=1),  # costs 31
            Chunk(content="c" * 6, rank=2),  # costs 11
        ]

    def make_assembler(self, available: int, **kwargs) -> PromptAssembler:
        return PromptAssembler(
            token_counter=self.token_counter,
            max_input_tokens=self.reserved + available,
            max_output_tokens=self.max_output_tokens,
            **kwargs,
        )

    def test_reserved_tokens(self) -> None:
        """Test system prompt, header and output are reserved."""
        assembler = self.make_assembler(available=100)

        self.assertEqual(assembler.reserved_tokens(self.question), self.reserved)

    def test_chunk_cost_includes_separator(self) -> None:
        """Test the chunk cost covers the separator and trailing newline."""
        assembler = self.make_assembler(available=100)

        self.assertEqual(assembler.chunk_cost(self.chunks[0]), 21)
        self.assertEqual(
            PromptAssembler.format_chunk(self.chunks[0]),
            f"{CHUNK_SEPARATOR}{'a' * 16}\n",
        )

    def test_answer_prompt_with_all_chunks(self) -> None:
        """Test the answer prompt layout when every chunk fits."""
        assembler = self.make_assembler(available=100)

        prompt = assembler.build_answer_prompt(self.question, self.chunks)

        self.assertEqual(len(prompt.messages), 2)
        self.assertEqual(prompt.messages[0], Message.system(ANSWER_SYSTEM_PROMPT))
        self.assertEqual(prompt.messages[1].role, Role.USER)
        expected = (
            self.header
            + f"---\n{'a' * 16}\n"
            + f"---\n{'b' * 26}\n"
            + f"---\n{'c' * 6}\n"
        )
        self.assertEqual(prompt.messages[1].content, expected)
        self.assertEqual(prompt.plan.included, tuple(self.chunks))
        self.assertEqual(prompt.plan.remaining, 100 - 63)
        self.assertFalse(prompt.plan.truncated)

    def test_answer_prompt_respects_budget(self) -> None:
        """Test the assembled prompt never exceeds the input ceiling."""
        assembler = self.make_assembler(available=55)

        prompt = assembler.build_answer_prompt(self.question, self.chunks)

        self.assertEqual(prompt.plan.included, tuple(self.chunks[:2]))
        self.assertTrue(prompt.plan.truncated)
        prompt_tokens = sum(len(m.content) for m in prompt.messages)
        self.assertLessEqual(
            prompt_tokens + self.max_output_tokens, assembler.max_input_tokens
        )
        self.assertNotIn("c" * 6, prompt.messages[1].content)

    def test_answer_prompt_budget_degraded(self) -> None:
        """Test an empty-context prompt is built when no chunk fits."""
        assembler = self.make_assembler(available=5)

        with self.assertLogs(
            "ragchat.src.services.chat.components.prompt_assembler", level="WARNING"
        ):
            prompt = assembler.build_answer_prompt(self.question, self.chunks)

        self.assertTrue(prompt.plan.budget_degraded)
        self.assertEqual(prompt.messages[1].content, self.header)

    def test_answer_prompt_uses_injected_planner(self) -> None:
        """Test the planner receives the ceiling and reserved tokens."""
        planner = Mock(spec=TokenBudgetPlanner)
        planner.plan.return_value = TokenBudgetPlanner().plan([], 10, 0, len)
        assembler = self.make_assembler(available=100, planner=planner)

        assembler.build_answer_prompt(self.question, self.chunks)

        kwargs = planner.plan.call_args.kwargs
        self.assertEqual(kwargs["candidates"], self.chunks)
        self.assertEqual(kwargs["ceiling"], self.reserved + 100)
        self.assertEqual(kwargs["reserved"], self.reserved)

    def test_reformulation_prompt_layout(self) -> None:
        """Test instruction, history and wrapped question order."""
        assembler = self.make_assembler(available=100)
        history = [Message.user("Who wrote it?"), Message.assistant("Nobody knows.")]

        messages = assembler.build_reformulation_prompt(history, "And when?")

        self.assertEqual(messages[0], Message.system(REFORMULATION_SYSTEM_PROMPT))
        self.assertEqual(messages[1:3], history)
        self.assertEqual(messages[3].role, Role.USER)
        self.assertIn("---\nAnd when?\n---", messages[3].content)
        self.assertIn("same language", messages[3].content)

    def test_reformulation_prompt_empty_history(self) -> None:
        """Test a first question only carries the instruction and question."""
        assembler = self.make_assembler(available=100)

        messages = assembler.build_reformulation_prompt([], "Hello?")

        self.assertEqual(len(messages), 2)

    def test_reformulation_history_limited_to_recent_messages(self) -> None:
        """Test the oldest history is dropped first when limited."""
        assembler = self.make_assembler(available=100, history_max_tokens=10)
        history = [
            Message.user("x" * 8),
            Message.assistant("y" * 5),
            Message.user("z" * 3),
            Message.assistant("w" * 3),
        ]

        messages = assembler.build_reformulation_prompt(history, "Q")

        self.assertEqual(messages[1:-1], history[2:])


if __name__ == "__main__":
    unittest.main()
