"""Service module for interacting with large language models.

This module provides a completion-engine interface over various LLM providers:
- OpenAI: OpenAI's API and any OpenAI-compatible endpoint (via OpenAI SDK)
- DeepSeek: DeepSeek's API (via OpenAI SDK with DeepSeek's base URL)
- Gemini: Google's Gemini API

Every engine offers a batch call returning one completion with token usage,
and a streaming call yielding text fragments closed by a terminal fragment
that carries the token usage.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional, Sequence

import google.generativeai as genai
from google.generativeai.generative_models import GenerativeModel
from google.generativeai.types import GenerationConfig
from openai import OpenAI

from ragchat.src.data_classes import (
    Completion,
    CompletionFragment,
    Message,
    Role,
    TokenUsage,
)
from ragchat.src.exceptions import CompletionEngineError

logger = logging.getLogger(__name__)


class BaseCompletionEngine(ABC):
    """Base class for completion engines.

    This abstract class defines the interface that all engines must implement.
    """

    @abstractmethod
    def complete(
        self, messages: Sequence[Message], max_tokens: Optional[int] = None
    ) -> Completion:
        """Generate a full completion for a message sequence.

        Args:
            messages: Ordered prompt messages
            max_tokens: Maximum number of tokens to generate, engine default if None

        Returns:
            Completion with the generated text and token usage

        Raises:
            CompletionEngineError: If generation fails
        """

    @abstractmethod
    def stream(
        self, messages: Sequence[Message], max_tokens: Optional[int] = None
    ) -> Iterator[CompletionFragment]:
        """Stream a completion for a message sequence.

        The returned iterator yields fragments with text and ends with exactly
        one terminal fragment (text None) carrying the token usage. Closing the
        iterator early must release the underlying request.

        Args:
            messages: Ordered prompt messages
            max_tokens: Maximum number of tokens to generate, engine default if None

        Raises:
            CompletionEngineError: If generation fails
        """


class OpenAICompletionEngine(BaseCompletionEngine):
    """Engine for OpenAI's chat completions API and compatible servers.

    Attributes:
        model_name: Model to request
        temperature: Sampling temperature
        default_max_tokens: Used when a call does not pass max_tokens
        client: OpenAI SDK client
    """

    def __init__(
        self,
        model_name: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = 0.0,
        default_max_tokens: Optional[int] = None,
        client: Optional[OpenAI] = None,
    ) -> None:
        """Initialize the engine.

        Args:
            model_name: Model to request
            api_key: API key, the SDK reads OPENAI_API_KEY when None
            base_url: Endpoint of an OpenAI-compatible server, OpenAI when None
            temperature: Sampling temperature
            default_max_tokens: Used when a call does not pass max_tokens
            client: Pre-built SDK client, created from api_key/base_url when None
        """
        self.model_name = model_name
        self.temperature = temperature
        self.default_max_tokens = default_max_tokens
        self.client = client or OpenAI(api_key=api_key, base_url=base_url)
        logger.info(f"Initialized OpenAI-compatible engine with model: {model_name}")

    @staticmethod
    def _to_api_messages(messages: Sequence[Message]) -> List[Dict[str, str]]:
        return [{"role": m.role.value, "content": m.content} for m in messages]

    @staticmethod
    def _to_usage(usage: Any) -> Optional[TokenUsage]:
        if usage is None:
            return None
        return TokenUsage(
            input_tokens=usage.prompt_tokens or 0,
            output_tokens=usage.completion_tokens or 0,
        )

    def _request_args(
        self, messages: Sequence[Message], max_tokens: Optional[int]
    ) -> Dict[str, Any]:
        return {
            "model": self.model_name,
            "messages": self._to_api_messages(messages),
            "max_tokens": max_tokens or self.default_max_tokens,
            "temperature": self.temperature,
        }

    def complete(
        self, messages: Sequence[Message], max_tokens: Optional[int] = None
    ) -> Completion:
        try:
            response = self.client.chat.completions.create(
                **self._request_args(messages, max_tokens)
            )
        except Exception as e:
            logger.error(f"Error generating completion from {self.model_name}: {str(e)}")
            raise CompletionEngineError(
                f"Failed to generate completion: {str(e)}"
            ) from e

        text = response.choices[0].message.content if response.choices else None
        return Completion(text=text, usage=self._to_usage(response.usage))

    def stream(
        self, messages: Sequence[Message], max_tokens: Optional[int] = None
    ) -> Iterator[CompletionFragment]:
        try:
            response = self.client.chat.completions.create(
                **self._request_args(messages, max_tokens),
                stream=True,
                # The last chunk then has no choices and carries the usage
                stream_options={"include_usage": True},
            )
        except Exception as e:
            logger.error(f"Error starting stream from {self.model_name}: {str(e)}")
            raise CompletionEngineError(f"Failed to start stream: {str(e)}") from e

        usage: Optional[TokenUsage] = None
        try:
            for chunk in response:
                if chunk.usage is not None:
                    usage = self._to_usage(chunk.usage)
                if chunk.choices:
                    content = chunk.choices[0].delta.content
                    if content:
                        yield CompletionFragment(text=content)
        except Exception as e:
            logger.error(f"Error while streaming from {self.model_name}: {str(e)}")
            raise CompletionEngineError(f"Stream failed: {str(e)}") from e
        finally:
            response.close()

        yield CompletionFragment(text=None, usage=usage)


class GeminiCompletionEngine(BaseCompletionEngine):
    """Engine for Google's Gemini API."""

    def __init__(
        self,
        model_name: str,
        api_key: Optional[str],
        temperature: float = 0.0,
        default_max_tokens: Optional[int] = None,
    ) -> None:
        """Initialize the Gemini engine.

        Raises:
            ValueError: If no API key is configured
        """
        if not api_key:
            raise ValueError(
                "Gemini API key not found. Please set the GEMINI_API_KEY environment variable."
            )
        genai.configure(api_key=api_key)  # type: ignore

        self.model_name = model_name
        self.default_max_tokens = default_max_tokens
        self.client = GenerativeModel(
            model_name=model_name,
            generation_config=GenerationConfig(temperature=temperature),
        )
        logger.info(f"Initialized Gemini engine with model: {model_name}")

    @staticmethod
    def _to_contents(messages: Sequence[Message]) -> List[Dict[str, Any]]:
        """Convert messages to Gemini contents.

        Gemini has no system role here: system text is prepended to the first
        user turn, assistant turns become "model" turns and consecutive turns
        of the same role are merged.
        """
        system_text = "\n\n".join(m.content for m in messages if m.role is Role.SYSTEM)
        contents: List[Dict[str, Any]] = []
        for message in messages:
            if message.role is Role.SYSTEM:
                continue
            role = "model" if message.role is Role.ASSISTANT else "user"
            text = message.content
            if system_text and role == "user":
                text = f"{system_text}\n\n{text}"
                system_text = ""
            if contents and contents[-1]["role"] == role:
                contents[-1]["parts"].append({"text": text})
            else:
                contents.append({"role": role, "parts": [{"text": text}]})
        if system_text:
            contents.insert(0, {"role": "user", "parts": [{"text": system_text}]})
        return contents

    @staticmethod
    def _to_usage(response: Any) -> Optional[TokenUsage]:
        metadata = getattr(response, "usage_metadata", None)
        if not metadata:
            return None
        return TokenUsage(
            input_tokens=metadata.prompt_token_count or 0,
            output_tokens=metadata.candidates_token_count or 0,
        )

    @staticmethod
    def _text_of(response: Any) -> Optional[str]:
        # response.text raises when the candidate has no parts (e.g. blocked)
        if not response.parts:
            return None
        return response.text

    def _generation_config(self, max_tokens: Optional[int]) -> Optional[GenerationConfig]:
        max_tokens = max_tokens or self.default_max_tokens
        if max_tokens is None:
            return None
        return GenerationConfig(max_output_tokens=max_tokens)

    def complete(
        self, messages: Sequence[Message], max_tokens: Optional[int] = None
    ) -> Completion:
        try:
            response = self.client.generate_content(  # type: ignore
                self._to_contents(messages),
                generation_config=self._generation_config(max_tokens),
            )
            return Completion(text=self._text_of(response), usage=self._to_usage(response))
        except Exception as e:
            logger.error(f"Error generating response from Gemini: {str(e)}")
            raise CompletionEngineError(f"Failed to generate response: {str(e)}") from e

    def stream(
        self, messages: Sequence[Message], max_tokens: Optional[int] = None
    ) -> Iterator[CompletionFragment]:
        usage: Optional[TokenUsage] = None
        try:
            response = self.client.generate_content(  # type: ignore
                self._to_contents(messages),
                generation_config=self._generation_config(max_tokens),
                stream=True,
            )
            for chunk in response:
                usage = self._to_usage(chunk) or usage
                text = self._text_of(chunk)
                if text:
                    yield CompletionFragment(text=text)
        except GeneratorExit:
            self._release_stream(response)
            raise
        except Exception as e:
            logger.error(f"Error while streaming from Gemini: {str(e)}")
            raise CompletionEngineError(f"Stream failed: {str(e)}") from e

        yield CompletionFragment(text=None, usage=usage)

    @staticmethod
    def _release_stream(response: Any) -> None:
        """Drain a streaming response the consumer stopped reading.

        The SDK has no close for streaming responses; resolving reads the rest
        of the stream so the underlying connection is released.
        """
        resolve = getattr(response, "resolve", None)
        if resolve is None:
            return
        try:
            resolve()
        except Exception as e:
            logger.warning(f"Could not release Gemini stream: {str(e)}")
