"""
Daily budget enforcement.

Decides what happens to a non-cached call once the day's spend has reached the
configured ceiling. Budget checks only run on cache misses; a cache hit is free.

Actions, in order of severity:
1. ALLOW - proceed silently
2. WARN - log and proceed
3. DOWNGRADE - proceed on the next cheaper model in the fallback chain
4. BLOCK - refuse the call
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional

import structlog

from .errors import BudgetExceededError

logger = structlog.get_logger(__name__)


class BudgetAction(Enum):
    """Available actions on budget breach in order of severity."""
    ALLOW = "allow"
    WARN = "warn"
    DOWNGRADE = "downgrade"
    BLOCK = "block"


# Each model falls back to the next cheaper one of its family
MODEL_FALLBACK: Dict[str, str] = {
    "o1": "gpt-4o",
    "gpt-4o": "gpt-4o-mini",
    "gpt-4.1": "gpt-4.1-mini",
    "gpt-4.1-mini": "gpt-4.1-nano",
}


@dataclass(frozen=True)
class BudgetState:
    """Budget position for a single day."""
    amount_used: Decimal
    daily_budget: Optional[Decimal]

    @property
    def amount_remaining(self) -> Optional[Decimal]:
        if self.daily_budget is None:
            return None
        return self.daily_budget - self.amount_used

    @property
    def exhausted(self) -> bool:
        remaining = self.amount_remaining
        return remaining is not None and remaining <= 0


def enforce_budget(
    model: str,
    state: BudgetState,
    action: BudgetAction,
    fallback: Optional[Dict[str, str]] = None
) -> str:
    """Apply the breach action and return the model the call should use.

    Args:
        model: Model the caller asked for
        state: Current budget state for today
        action: Action to take when the budget is exhausted
        fallback: Model fallback chain (defaults to MODEL_FALLBACK)

    Returns:
        The model to call, which differs from ``model`` only on DOWNGRADE

    Raises:
        BudgetExceededError: If the budget is exhausted and action is BLOCK
    """
    if not state.exhausted or action == BudgetAction.ALLOW:
        return model

    if action == BudgetAction.BLOCK:
        raise BudgetExceededError(state.amount_used, state.daily_budget)

    if action == BudgetAction.DOWNGRADE:
        chain = MODEL_FALLBACK if fallback is None else fallback
        downgraded = chain.get(model)
        if downgraded:
            logger.warning(
                "budget_model_fallback",
                requested_model=model,
                model=downgraded,
                spent=str(state.amount_used),
                budget=str(state.daily_budget),
            )
            return downgraded

    logger.warning(
        "daily_budget_exceeded",
        model=model,
        spent=str(state.amount_used),
        budget=str(state.daily_budget),
        action=action.value,
    )
    return model
