"""
Currency Conversion

Pure arithmetic over a RateTable. Nothing here touches the network or
shared state, so a converter built from one snapshot gives the same
answers for as long as it is used.

Every conversion goes through USD:

    fiat -> USD   : amount / factor   (factor = units per USD)
    SATS -> USD   : amount * factor   (factor = USD per sat)
    USD  -> fiat  : amount * factor
    USD  -> SATS  : amount / factor

A zero factor means "not known yet" and is replaced by the matching
factor of the fallback table instead of dividing by zero.
"""

from decimal import Decimal
from typing import Optional, Union

from coinpurse.models.ledger import (
    SATS_PER_BTC,
    CurrencyCode,
    InvalidCurrencyError,
    RateTable,
    parse_currency,
)


Amount = Union[Decimal, int, float, str]

# Used when no table-specific fallback is supplied
DEFAULT_FALLBACK_RATES = RateTable.build(
    sats_usd=Decimal("60000") / SATS_PER_BTC,
    inr_per_usd=Decimal("83.0"),
    eur_per_usd=Decimal("0.92"),
)

# Currencies whose factor is "USD per unit" rather than "units per USD"
_MULTIPLICATIVE_LEGS = frozenset({CurrencyCode.SATS})


def _as_decimal(amount: Amount) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    if isinstance(amount, bool):
        raise TypeError("Amount must be a number, not bool")
    return Decimal(str(amount))


class CurrencyConverter:
    """
    Converts amounts between supported currencies using a fixed RateTable.
    """

    def __init__(
        self,
        rates: RateTable,
        fallback: Optional[RateTable] = None,
    ):
        self._rates = rates
        self._fallback = fallback or DEFAULT_FALLBACK_RATES
        if any(factor <= 0 for factor in self._fallback.factors.values()):
            raise ValueError("Fallback rates must all be positive")

    @property
    def rates(self) -> RateTable:
        return self._rates

    def factor(self, code: CurrencyCode) -> Decimal:
        """Factor for a currency, falling back when the table has none."""
        factor = self._rates[code]
        if factor == 0:
            return self._fallback[code]
        return factor

    def to_usd(self, amount: Amount, code: Union[str, CurrencyCode]) -> Decimal:
        """Express an amount of `code` in USD."""
        code = parse_currency(code)
        value = _as_decimal(amount)
        if code == CurrencyCode.USD:
            return value
        if code in _MULTIPLICATIVE_LEGS:
            return value * self.factor(code)
        return value / self.factor(code)

    def from_usd(self, amount: Amount, code: Union[str, CurrencyCode]) -> Decimal:
        """Express a USD amount in `code`."""
        code = parse_currency(code)
        value = _as_decimal(amount)
        if code == CurrencyCode.USD:
            return value
        if code in _MULTIPLICATIVE_LEGS:
            return value / self.factor(code)
        return value * self.factor(code)

    def convert(
        self,
        amount: Amount,
        from_code: Union[str, CurrencyCode],
        to_code: Union[str, CurrencyCode],
    ) -> Amount:
        """
        Convert `amount` from one currency to another.

        Converting a currency to itself returns `amount` untouched.

        Raises:
            InvalidCurrencyError: If either code is not supported
        """
        source = parse_currency(from_code)
        target = parse_currency(to_code)
        if source == target:
            return amount
        return self.from_usd(self.to_usd(amount, source), target)


def convert(
    amount: Amount,
    from_code: Union[str, CurrencyCode],
    to_code: Union[str, CurrencyCode],
    rates: RateTable,
    fallback: Optional[RateTable] = None,
) -> Amount:
    """Functional form of CurrencyConverter.convert."""
    return CurrencyConverter(rates, fallback=fallback).convert(amount, from_code, to_code)


__all__ = [
    "DEFAULT_FALLBACK_RATES",
    "CurrencyConverter",
    "InvalidCurrencyError",
    "convert",
]
