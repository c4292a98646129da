"""
Dashboard and Report Builder

DESIGN DECISION: One snapshot per report. The converter is taken from
the oracle once, at the start of a report, and used for every amount in
it, so a refresh landing mid-report cannot mix two prices in one view.

Reports only read storage. Output amounts are rounded half-up for
display: fiat to cents, SATS to whole satoshis. Sums are taken before
rounding.
"""

from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

import structlog

from coinpurse.config import get_settings
from coinpurse.models.ledger import (
    BudgetProgress,
    CategoryTotal,
    CurrencyCode,
    DashboardSummary,
    TransactionType,
    TypeTotal,
    parse_currency,
)
from coinpurse.pricing import CurrencyConverter, PriceOracle
from coinpurse.budgets.evaluator import sum_expenses_usd
from coinpurse.services.storage import LedgerStorageInterface


logger = structlog.get_logger(__name__)


_CENT = Decimal("0.01")
_WHOLE = Decimal("1")


def quantize_amount(amount: Decimal, currency: CurrencyCode) -> Decimal:
    """Round an amount for display in `currency`."""
    exponent = _WHOLE if currency == CurrencyCode.SATS else _CENT
    return amount.quantize(exponent, rounding=ROUND_HALF_UP)


class ReportBuilder:
    """
    Builds read-only views over a user's ledger.

    GUARANTEES:
    - Only stored transactions are counted
    - All amounts in one report share a single rate snapshot
    - Unknown display currencies are rejected, never replaced
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        oracle: PriceOracle,
    ):
        self._storage = storage
        self._oracle = oracle

    async def build_dashboard(
        self,
        user_id: str,
        display_currency: Optional[Union[str, CurrencyCode]] = None,
    ) -> DashboardSummary:
        """
        Income/expense totals and the expense breakdown per category.

        Raises:
            InvalidCurrencyError: If display_currency is not supported
        """
        if display_currency is None:
            display_currency = get_settings().app.default_display_currency
        target = parse_currency(display_currency)

        snapshot = self._oracle.get_current_rates()
        converter = CurrencyConverter(snapshot.rates, fallback=self._oracle.fallback_rates)

        transactions = await self._storage.list_transactions(user_id=user_id)

        type_sums: dict[TransactionType, Decimal] = defaultdict(Decimal)
        type_counts: dict[TransactionType, int] = defaultdict(int)
        category_sums: dict[str, Decimal] = defaultdict(Decimal)
        category_counts: dict[str, int] = defaultdict(int)

        for tx in transactions:
            amount = Decimal(converter.convert(tx.amount, tx.currency, target))
            type_sums[tx.type] += amount
            type_counts[tx.type] += 1
            if tx.type == TransactionType.EXPENSE:
                category_sums[tx.category] += amount
                category_counts[tx.category] += 1

        totals = [
            TypeTotal(
                type=tx_type,
                total=quantize_amount(type_sums[tx_type], target),
                count=type_counts[tx_type],
            )
            for tx_type in TransactionType
        ]

        categories = [
            CategoryTotal(
                category=category,
                total=quantize_amount(total, target),
                count=category_counts[category],
            )
            for category, total in sorted(
                category_sums.items(), key=lambda item: (-item[1], item[0])
            )
        ]

        net = type_sums[TransactionType.INCOME] - type_sums[TransactionType.EXPENSE]

        logger.debug(
            "dashboard_built",
            user_id=user_id,
            currency=target.value,
            transactions=len(transactions),
            rate_source=snapshot.source,
        )

        return DashboardSummary(
            user_id=user_id,
            display_currency=target,
            totals=totals,
            categories=categories,
            net_balance=quantize_amount(net, target),
            btc_price_usd=snapshot.btc_price_usd,
            rate_source=snapshot.source,
            rates_live=snapshot.is_live,
        )

    async def budget_progress(self, user_id: str) -> list[BudgetProgress]:
        """How much of each of the user's budgets has been used, in USD."""
        converter = self._oracle.converter()
        budgets = await self._storage.list_budgets(user_id)

        progress = []
        for budget in budgets:
            expenses = await self._storage.list_transactions(
                user_id=user_id,
                category=budget.category,
                tx_type=TransactionType.EXPENSE,
            )
            spent = sum_expenses_usd(expenses, converter)
            percent = float(spent / budget.limit_usd * 100)
            progress.append(BudgetProgress(
                category=budget.category,
                limit_usd=budget.limit_usd,
                spent_usd=quantize_amount(spent, CurrencyCode.USD),
                remaining_usd=quantize_amount(budget.limit_usd - spent, CurrencyCode.USD),
                percent_used=round(percent, 2),
                exceeded=spent > budget.limit_usd,
            ))

        return progress
