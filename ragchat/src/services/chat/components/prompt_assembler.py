"""Component for building the prompts sent to the completion engine.

Two prompts are assembled:
1. The reformulation prompt: instruction, prior history and the wrapped question
2. The answer prompt: context-only system instruction and one user message
   holding the question followed by the chunks that fit the token budget
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ragchat.conf.prompts import (
    ANSWER_SYSTEM_PROMPT,
    ANSWER_USER_TEMPLATE,
    CHUNK_SEPARATOR,
    REFORMULATION_SYSTEM_PROMPT,
    REFORMULATION_USER_TEMPLATE,
)
from ragchat.src.data_classes import Chunk, Message, PromptPlan
from ragchat.src.services.chat.components.token_budget import TokenBudgetPlanner
from ragchat.src.services.llm import BaseTokenCounter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnswerPrompt:
    """Assembled answer prompt and the plan that selected its chunks."""

    messages: List[Message]
    plan: PromptPlan


class PromptAssembler:
    """Builds reformulation and answer prompts within the token limits.

    Attributes:
        token_counter: Counts tokens consistently with the completion engine
        planner: Packs chunks into the remaining budget
        max_input_tokens: Token ceiling of a prompt
        max_output_tokens: Tokens reserved for the model's answer
        history_max_tokens: Limit for history replayed in the reformulation
            prompt, None keeps all of it
    """

    def __init__(
        self,
        token_counter: BaseTokenCounter,
        max_input_tokens: int,
        max_output_tokens: int,
        planner: Optional[TokenBudgetPlanner] = None,
        history_max_tokens: Optional[int] = None,
    ) -> None:
        assert token_counter is not None, "Token counter must be provided"
        assert max_input_tokens > 0, "max_input_tokens must be positive"
        assert max_output_tokens >= 0, "max_output_tokens must not be negative"

        self.token_counter = token_counter
        self.planner = planner or TokenBudgetPlanner()
        self.max_input_tokens = max_input_tokens
        self.max_output_tokens = max_output_tokens
        self.history_max_tokens = history_max_tokens

    # Reformulation prompt
    def build_reformulation_prompt(
        self, history: Sequence[Message], question: str
    ) -> List[Message]:
        """Build the prompt asking the model to rewrite the question.

        Args:
            history: Prior conversation messages, oldest first
            question: Raw user question

        Returns:
            Instruction message, the (possibly limited) history and the
            wrapped question
        """
        return [
            Message.system(REFORMULATION_SYSTEM_PROMPT),
            *self._limit_history(history),
            Message.user(REFORMULATION_USER_TEMPLATE.format(question=question)),
        ]

    def _limit_history(self, history: Sequence[Message]) -> List[Message]:
        """Keep the most recent messages whose token count fits the history limit."""
        if self.history_max_tokens is None:
            return list(history)

        budget = self.history_max_tokens
        kept = 0
        for message in reversed(history):
            cost = self.token_counter.count(message.content)
            if cost > budget:
                break
            budget -= cost
            kept += 1

        if kept < len(history):
            logger.debug(
                f"Reformulation history limited to {kept}/{len(history)} messages"
            )
        return list(history[len(history) - kept :])

    # Answer prompt
    @staticmethod
    def format_chunk(chunk: Chunk) -> str:
        """Format a chunk exactly as it is written into the answer prompt."""
        return f"{CHUNK_SEPARATOR}{chunk.content}\n"

    def chunk_cost(self, chunk: Chunk) -> int:
        """Marginal token cost of adding a chunk to the answer prompt."""
        return self.token_counter.count(self.format_chunk(chunk))

    def reserved_tokens(self, question: str) -> int:
        """Tokens unavailable for chunks: system prompt, user header and output."""
        return (
            self.token_counter.count(ANSWER_SYSTEM_PROMPT)
            + self.token_counter.count(ANSWER_USER_TEMPLATE.format(question=question))
            + self.max_output_tokens
        )

    def build_answer_prompt(self, question: str, chunks: Sequence[Chunk]) -> AnswerPrompt:
        """Build the answer prompt with as many chunks as the budget allows.

        When no chunk fits, the prompt is still built with an empty context;
        the plan reports the condition through ``budget_degraded``.

        Args:
            question: The question to answer
            chunks: Candidate chunks, most relevant first

        Returns:
            AnswerPrompt with the messages and the plan used
        """
        header = ANSWER_USER_TEMPLATE.format(question=question)
        plan = self.planner.plan(
            candidates=chunks,
            ceiling=self.max_input_tokens,
            reserved=self.reserved_tokens(question),
            cost_fn=self.chunk_cost,
        )

        if plan.budget_degraded:
            logger.warning(
                f"None of the {plan.candidate_count} chunks fit the token budget, "
                "answering with an empty context"
            )
        elif plan.truncated:
            logger.info(
                f"Token budget reached: using {len(plan.included)}/{plan.candidate_count} chunks"
            )

        user_content = header + "".join(self.format_chunk(c) for c in plan.included)
        messages = [Message.system(ANSWER_SYSTEM_PROMPT), Message.user(user_content)]
        return AnswerPrompt(messages=messages, plan=plan)
