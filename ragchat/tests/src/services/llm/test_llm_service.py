"""Unit tests for the completion engines."""

import unittest
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from ragchat.src.data_classes import CompletionFragment, Message, TokenUsage
from ragchat.src.exceptions import CompletionEngineError
from ragchat.src.services.llm.llm_service import (
    GeminiCompletionEngine,
    OpenAICompletionEngine,
)


def openai_chunk(content=None, usage=None):
    choices = [] if content is None else [SimpleNamespace(delta=SimpleNamespace(content=content))]
    return SimpleNamespace(choices=choices, usage=usage)


class FakeOpenAIStream:
    """Iterable standing in for the SDK's streaming response."""

    def __init__(self, chunks, error=None):
        self.chunks = chunks
        self.error = error
        self.closed = False

    def __iter__(self):
        yield from self.chunks
        if self.error is not None:
            raise self.error

    def close(self):
        self.closed = True


class TestOpenAICompletionEngine(unittest.TestCase):
    """Test cases for the OpenAICompletionEngine."""

    def setUp(self) -> None:
        """Set up test fixtures before each test method."""
        self.mock_client = MagicMock()
        self.engine = OpenAICompletionEngine(
            model_name="gpt-test",
            temperature=0.0,
            default_max_tokens=800,
            client=self.mock_client,
        )
        self.messages = [Message.system("Be brief."), Message.user("Hi")]
        self.api_usage = SimpleNamespace(prompt_tokens=12, completion_tokens=3)

    def test_complete(self) -> None:
        """Test a batch completion maps text, usage and request arguments."""
        self.mock_client.chat.completions.create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="Hello!"))],
            usage=self.api_usage,
        )

        completion = self.engine.complete(self.messages, max_tokens=50)

        self.assertEqual(completion.text, "Hello!")
        self.assertEqual(completion.usage, TokenUsage(input_tokens=12, output_tokens=3))
        kwargs = self.mock_client.chat.completions.create.call_args.kwargs
        self.assertEqual(kwargs["model"], "gpt-test")
        self.assertEqual(kwargs["max_tokens"], 50)
        self.assertEqual(
            kwargs["messages"],
            [{"role": "system", "content": "Be brief."}, {"role": "user", "content": "Hi"}],
        )

    def test_complete_uses_default_max_tokens(self) -> None:
        self.mock_client.chat.completions.create.return_value = SimpleNamespace(
            choices=[], usage=None
        )

        completion = self.engine.complete(self.messages)

        self.assertIsNone(completion.text)
        kwargs = self.mock_client.chat.completions.create.call_args.kwargs
        self.assertEqual(kwargs["max_tokens"], 800)

    def test_complete_wraps_sdk_errors(self) -> None:
        self.mock_client.chat.completions.create.side_effect = RuntimeError("502")

        with self.assertRaises(CompletionEngineError):
            self.engine.complete(self.messages)

    def test_stream_yields_fragments_and_terminal_usage(self) -> None:
        """Test the usage-only last chunk becomes the terminal fragment."""
        response = FakeOpenAIStream(
            [
                openai_chunk("Hel"),
                openai_chunk(""),
                openai_chunk("lo"),
                openai_chunk(None, usage=self.api_usage),
            ]
        )
        self.mock_client.chat.completions.create.return_value = response

        fragments = list(self.engine.stream(self.messages))

        self.assertEqual(
            fragments,
            [
                CompletionFragment(text="Hel"),
                CompletionFragment(text="lo"),
                CompletionFragment(text=None, usage=TokenUsage(12, 3)),
            ],
        )
        self.assertTrue(response.closed)
        kwargs = self.mock_client.chat.completions.create.call_args.kwargs
        self.assertTrue(kwargs["stream"])
        self.assertEqual(kwargs["stream_options"], {"include_usage": True})

    def test_stream_close_releases_response(self) -> None:
        """Test closing the fragment iterator closes the HTTP response."""
        response = FakeOpenAIStream([openai_chunk("a"), openai_chunk("b")])
        self.mock_client.chat.completions.create.return_value = response

        fragments = self.engine.stream(self.messages)
        next(fragments)
        fragments.close()

        self.assertTrue(response.closed)

    def test_stream_error_is_wrapped(self) -> None:
        response = FakeOpenAIStream([openai_chunk("a")], error=ConnectionError("reset"))
        self.mock_client.chat.completions.create.return_value = response

        fragments = self.engine.stream(self.messages)
        self.assertEqual(next(fragments).text, "a")
        with self.assertRaises(CompletionEngineError):
            next(fragments)
        self.assertTrue(response.closed)

    def test_stream_start_error_is_wrapped(self) -> None:
        self.mock_client.chat.completions.create.side_effect = RuntimeError("401")

        with self.assertRaises(CompletionEngineError):
            list(self.engine.stream(self.messages))


class TestGeminiCompletionEngine(unittest.TestCase):
    """Test cases for the GeminiCompletionEngine."""

    def setUp(self) -> None:
        """Set up test fixtures before each test method."""
        configure_patcher = patch("ragchat.src.services.llm.llm_service.genai.configure")
        model_patcher = patch("ragchat.src.services.llm.llm_service.GenerativeModel")
        self.mock_configure = configure_patcher.start()
        self.mock_model_cls = model_patcher.start()
        self.addCleanup(configure_patcher.stop)
        self.addCleanup(model_patcher.stop)

        self.mock_model = self.mock_model_cls.return_value
        self.engine = GeminiCompletionEngine(model_name="gemini-test", api_key="key")

    @staticmethod
    def response(text, prompt_tokens=10, output_tokens=4):
        return SimpleNamespace(
            parts=[text] if text else [],
            text=text,
            usage_metadata=SimpleNamespace(
                prompt_token_count=prompt_tokens,
                candidates_token_count=output_tokens,
            ),
        )

    def test_missing_api_key(self) -> None:
        with self.assertRaises(ValueError):
            GeminiCompletionEngine(model_name="gemini-test", api_key=None)

    def test_configures_sdk(self) -> None:
        self.mock_configure.assert_called_once_with(api_key="key")

    def test_to_contents(self) -> None:
        """Test the system text is folded into the first user turn."""
        contents = GeminiCompletionEngine._to_contents(
            [
                Message.system("Rules."),
                Message.user("Q1"),
                Message.assistant("A1"),
                Message.user("Q2"),
                Message.user("Q2 again"),
            ]
        )

        self.assertEqual(
            contents,
            [
                {"role": "user", "parts": [{"text": "Rules.\n\nQ1"}]},
                {"role": "model", "parts": [{"text": "A1"}]},
                {"role": "user", "parts": [{"text": "Q2"}, {"text": "Q2 again"}]},
            ],
        )

    def test_complete(self) -> None:
        self.mock_model.generate_content.return_value = self.response("Answer")

        completion = self.engine.complete([Message.user("Q")])

        self.assertEqual(completion.text, "Answer")
        self.assertEqual(completion.usage, TokenUsage(10, 4))

    def test_complete_blocked_response_has_no_text(self) -> None:
        self.mock_model.generate_content.return_value = self.response(None)

        self.assertIsNone(self.engine.complete([Message.user("Q")]).text)

    def test_complete_wraps_errors(self) -> None:
        self.mock_model.generate_content.side_effect = RuntimeError("quota")

        with self.assertRaises(CompletionEngineError):
            self.engine.complete([Message.user("Q")])

    def test_stream(self) -> None:
        """Test streamed chunks end with a terminal fragment carrying the last usage."""
        self.mock_model.generate_content.return_value = iter(
            [self.response("Hel", 10, 1), self.response("lo", 10, 2)]
        )

        fragments = list(self.engine.stream([Message.user("Q")]))

        self.assertEqual(
            fragments,
            [
                CompletionFragment(text="Hel"),
                CompletionFragment(text="lo"),
                CompletionFragment(text=None, usage=TokenUsage(10, 2)),
            ],
        )
        self.assertTrue(self.mock_model.generate_content.call_args.kwargs["stream"])

    def test_stream_close_resolves_response(self) -> None:
        """Test closing the fragment iterator early drains the streaming response."""
        response = MagicMock()
        response.__iter__.return_value = iter(
            [self.response("a", 10, 1), self.response("b", 10, 2)]
        )
        self.mock_model.generate_content.return_value = response

        fragments = self.engine.stream([Message.user("Q")])
        self.assertEqual(next(fragments), CompletionFragment(text="a"))
        fragments.close()

        response.resolve.assert_called_once_with()

    def test_stream_consumed_to_the_end_is_not_resolved(self) -> None:
        response = MagicMock()
        response.__iter__.return_value = iter([self.response("a", 10, 1)])
        self.mock_model.generate_content.return_value = response

        list(self.engine.stream([Message.user("Q")]))

        response.resolve.assert_not_called()


if __name__ == "__main__":
    unittest.main()
