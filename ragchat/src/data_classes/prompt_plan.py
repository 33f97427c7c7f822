"""Result of packing candidate chunks into a token budget."""

from dataclasses import dataclass
from typing import Tuple

from ragchat.src.data_classes.chunk import Chunk


@dataclass(frozen=True)
class PromptPlan:
    """Chunks selected for a prompt and the budget left afterwards.

    Attributes:
        included: Prefix of the candidate list that fits the budget, in order
        remaining: Token budget left after the included chunks
        truncated: True if scanning stopped before the candidate list was exhausted
        candidate_count: Number of candidates offered to the planner
    """

    included: Tuple[Chunk, ...]
    remaining: int
    truncated: bool
    candidate_count: int = 0

    @property
    def budget_degraded(self) -> bool:
        """True when candidates existed but none of them fit the budget."""
        return self.candidate_count > 0 and not self.included
