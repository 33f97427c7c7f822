"""Token counter module.

This module provides token counters used to budget prompts.
The module includes an abstract base class, a HuggingFace tokenizer based
implementation and a character-based approximation.
"""

import abc
import logging
import math
from typing import Any

from transformers import AutoTokenizer  # type: ignore

logger = logging.getLogger(__name__)


class BaseTokenCounter(abc.ABC):
    """Base class for token counters.

    A counter must agree with the completion engine's own tokenization,
    otherwise prompt budgets are computed against the wrong numbers.
    """

    @abc.abstractmethod
    def count(self, text: str) -> int:
        """Count the tokens of a text.

        Args:
            text: Text to count

        Returns:
            Non-negative number of tokens
        """


class HuggingFaceTokenCounter(BaseTokenCounter):
    """Token counter backed by a HuggingFace tokenizer.

    Attributes:
        model_name: HuggingFace model name or path the tokenizer was loaded from
        tokenizer: The underlying HuggingFace tokenizer
    """

    def __init__(self, model_name: str, tokenizer: Any = None) -> None:
        """Initialize the counter.

        Args:
            model_name: HuggingFace model name or path
            tokenizer: Already loaded tokenizer, loaded from model_name when None
        """
        self.model_name = model_name
        if tokenizer is None:
            logger.info(f"Initializing tokenizer with model {model_name}")
            tokenizer = AutoTokenizer.from_pretrained(model_name, use_fast=True)  # type: ignore
        self.tokenizer = tokenizer

    def count(self, text: str) -> int:
        if not text:
            return 0
        tokens = self.tokenizer.encode(text, add_special_tokens=False)  # type: ignore
        return len(tokens)


class ApproximateTokenCounter(BaseTokenCounter):
    """Character-based token estimate, roughly four characters per token."""

    def __init__(self, chars_per_token: float = 4.0) -> None:
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive")
        self.chars_per_token = chars_per_token

    def count(self, text: str) -> int:
        if not text:
            return 0
        return max(1, math.ceil(len(text) / self.chars_per_token))
