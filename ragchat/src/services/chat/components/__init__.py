"""Components of the chat service."""

from ragchat.src.services.chat.components.answer_generator import (
    AnswerGenerator,
    AnswerStream,
    StreamState,
)
from ragchat.src.services.chat.components.prompt_assembler import (
    AnswerPrompt,
    PromptAssembler,
)
from ragchat.src.services.chat.components.question_reformulator import (
    QuestionReformulator,
)
from ragchat.src.services.chat.components.token_budget import TokenBudgetPlanner

__all__ = [
    "TokenBudgetPlanner",
    "PromptAssembler",
    "AnswerPrompt",
    "QuestionReformulator",
    "AnswerGenerator",
    "AnswerStream",
    "StreamState",
]
