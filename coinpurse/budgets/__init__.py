"""Budget evaluation."""

from coinpurse.budgets.evaluator import (
    BudgetEvaluator,
    default_recipient,
    sum_expenses_usd,
)

__all__ = [
    "BudgetEvaluator",
    "default_recipient",
    "sum_expenses_usd",
]
