"""Component for packing candidate chunks into a token budget.

The planner is a deterministic, single-pass greedy packer. Candidates are
scanned in relevance order and included whole until the first one that does
not fit; nothing further down the list is considered after that, so the
result is always a prefix of the candidates.
"""

import logging
from typing import Callable, List, Sequence

from ragchat.src.data_classes import Chunk, PromptPlan

logger = logging.getLogger(__name__)

CostFunction = Callable[[Chunk], int]


class TokenBudgetPlanner:
    """Selects which candidate chunks fit a token ceiling."""

    def plan(
        self,
        candidates: Sequence[Chunk],
        ceiling: int,
        reserved: int,
        cost_fn: CostFunction,
    ) -> PromptPlan:
        """Pack candidates into the budget left after the reserved tokens.

        Args:
            candidates: Chunks ordered most relevant first
            ceiling: Total token ceiling of the prompt
            reserved: Tokens already spoken for (system prompt, templates, output)
            cost_fn: Exact marginal token cost of inserting a chunk, separators included

        Returns:
            PromptPlan with the included prefix, the remaining budget and
            whether any candidate was left out

        Raises:
            ValueError: If cost_fn returns a negative cost
        """
        remaining = ceiling - reserved
        if remaining <= 0:
            logger.warning(
                f"Reserved tokens ({reserved}) leave no room under the ceiling ({ceiling})"
            )
            return PromptPlan(
                included=(),
                remaining=remaining,
                truncated=True,
                candidate_count=len(candidates),
            )

        included: List[Chunk] = []
        for chunk in candidates:
            cost = cost_fn(chunk)
            if cost < 0:
                raise ValueError(f"Token cost must be non-negative, got {cost}")
            if cost > remaining:
                break

            included.append(chunk)
            remaining -= cost
            if remaining <= 0:
                break

        truncated = len(included) < len(candidates)

        # Invariant: never negative after a chunk has been included
        assert remaining >= 0 or not included, "Budget overrun after inclusion"

        logger.debug(
            f"Planned {len(included)}/{len(candidates)} chunks, "
            f"{remaining} tokens remaining, truncated={truncated}"
        )
        return PromptPlan(
            included=tuple(included),
            remaining=remaining,
            truncated=truncated,
            candidate_count=len(candidates),
        )
