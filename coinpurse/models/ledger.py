"""
Core Data Models for Coinpurse

These models define the strict schemas for everything the tracker moves
around: transactions, budgets, rate tables and price quotes.

DESIGN DECISION: Money is always Decimal. Rates are Decimal too, so a
conversion never mixes binary floats into stored amounts.

DESIGN DECISION: Rate data is immutable. A RateTable or RateSnapshot is
never edited in place; the oracle builds a new one and swaps it in.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


SATS_PER_BTC = Decimal("100000000")


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class CurrencyCode(str, Enum):
    """
    Supported currency codes.

    DESIGN DECISION: The set is closed. Adding a currency means adding a
    RateTable entry AND deciding which conversion leg it uses
    (see pricing/converter.py).
    """
    USD = "USD"
    INR = "INR"
    EUR = "EUR"
    SATS = "SATS"


class TransactionType(str, Enum):
    """Direction of a transaction."""
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class InvalidCurrencyError(ValueError):
    """A currency code outside the supported set was requested."""

    def __init__(self, code: object):
        self.code = code
        supported = ", ".join(c.value for c in CurrencyCode)
        super().__init__(f"Unsupported currency: {code!r}. Supported: {supported}")


def parse_currency(value: Union[str, CurrencyCode]) -> CurrencyCode:
    """
    Parse a currency code.

    Whitespace and case are normalised ("usd " -> USD). Anything else
    that is not a supported code raises InvalidCurrencyError; nothing is
    ever substituted silently.
    """
    if isinstance(value, CurrencyCode):
        return value
    if not isinstance(value, str):
        raise InvalidCurrencyError(value)
    try:
        return CurrencyCode(value.strip().upper())
    except ValueError:
        raise InvalidCurrencyError(value) from None


# =============================================================================
# LEDGER MODELS
# =============================================================================

class Transaction(BaseModel):
    """
    A single income or expense entry.

    Each transaction carries exactly one currency tag. Amounts are stored
    as entered and converted on read, never on write.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique transaction ID"
    )
    user_id: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Owning user"
    )
    category: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Category name (e.g., 'groceries')"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Amount in the transaction's own currency"
    )
    currency: CurrencyCode = Field(
        default=CurrencyCode.USD,
        description="Currency the amount is denominated in"
    )
    type: TransactionType = Field(
        ...,
        description="INCOME or EXPENSE"
    )
    description: Optional[str] = Field(
        default=None,
        max_length=500,
    )
    occurred_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the money moved"
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the transaction was recorded"
    )

    @field_validator('currency', mode='before')
    @classmethod
    def validate_currency(cls, v):
        return parse_currency(v)

    @field_validator('category')
    @classmethod
    def normalise_category(cls, v: str) -> str:
        """Categories compare case-insensitively."""
        return v.lower()


class Budget(BaseModel):
    """
    Spending limit for one (user, category) pair.

    The limit is always stored in USD.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(..., min_length=1, max_length=100)
    category: str = Field(..., min_length=1, max_length=100)
    limit_usd: Decimal = Field(
        ...,
        gt=0,
        description="Budget limit in USD"
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator('category')
    @classmethod
    def normalise_category(cls, v: str) -> str:
        return v.lower()


# =============================================================================
# PRICE & RATE MODELS
# =============================================================================

class RateTable(BaseModel):
    """
    Conversion factors relative to USD.

    Fiat factors are "units of currency per one USD" (INR = 83 means
    1 USD buys 83 INR). The SATS factor is the other way around: the USD
    value of one satoshi. The converter relies on that asymmetry.

    A factor of 0 means "unknown".
    """
    model_config = ConfigDict(frozen=True)

    factors: dict[CurrencyCode, Decimal]

    @model_validator(mode='after')
    def validate_factors(self) -> 'RateTable':
        missing = [c.value for c in CurrencyCode if c not in self.factors]
        if missing:
            raise ValueError(f"Rate table is missing currencies: {missing}")
        if self.factors[CurrencyCode.USD] != Decimal(1):
            raise ValueError("USD factor must be exactly 1")
        # Zero marks a factor as unknown; the converter substitutes its fallback
        for code, factor in self.factors.items():
            if not factor.is_finite() or factor < 0:
                raise ValueError(f"Factor for {code.value} must be a non-negative number")
        return self

    def __getitem__(self, code: CurrencyCode) -> Decimal:
        return self.factors[code]

    @classmethod
    def build(
        cls,
        sats_usd: Decimal,
        inr_per_usd: Decimal,
        eur_per_usd: Decimal,
    ) -> 'RateTable':
        """Build a table from its variable parts. USD is always 1."""
        return cls(factors={
            CurrencyCode.USD: Decimal(1),
            CurrencyCode.INR: Decimal(str(inr_per_usd)),
            CurrencyCode.EUR: Decimal(str(eur_per_usd)),
            CurrencyCode.SATS: Decimal(str(sats_usd)),
        })

    def with_btc_price(self, btc_price_usd: Decimal) -> 'RateTable':
        """Return a copy whose SATS factor is derived from a BTC/USD price."""
        factors = dict(self.factors)
        factors[CurrencyCode.SATS] = Decimal(str(btc_price_usd)) / SATS_PER_BTC
        return RateTable(factors=factors)


class RateSnapshot(BaseModel):
    """
    Everything a reader needs from the oracle, published as one object.

    btc_price_usd is 0 until the first successful refresh.
    """
    model_config = ConfigDict(frozen=True)

    rates: RateTable
    btc_price_usd: Decimal = Field(default=Decimal(0), ge=0)
    source: Optional[str] = None
    refreshed_at: Optional[datetime] = None

    @property
    def is_live(self) -> bool:
        """True once a provider has supplied a real price."""
        return self.btc_price_usd > 0


class PriceQuote(BaseModel):
    """
    One provider's answer to "what is BTC worth in USD?".

    price_usd is None when the provider was unavailable; error says why.
    """
    model_config = ConfigDict(frozen=True)

    source: str
    price_usd: Optional[Decimal] = Field(default=None, gt=0)
    fetched_at: datetime = Field(default_factory=datetime.utcnow)
    error: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.price_usd is not None


class AddressBalance(BaseModel):
    """On-chain balance of a Bitcoin address, in satoshis."""
    model_config = ConfigDict(frozen=True)

    address: str
    confirmed_funded: int = Field(default=0, ge=0)
    confirmed_spent: int = Field(default=0, ge=0)
    mempool_funded: int = Field(default=0, ge=0)
    mempool_spent: int = Field(default=0, ge=0)
    fetched_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def confirmed_sats(self) -> int:
        return self.confirmed_funded - self.confirmed_spent

    @property
    def mempool_sats(self) -> int:
        return self.mempool_funded - self.mempool_spent

    @property
    def balance_sats(self) -> int:
        """Confirmed plus unconfirmed balance."""
        return self.confirmed_sats + self.mempool_sats


# =============================================================================
# BUDGET & REPORT MODELS
# =============================================================================

class BudgetStatus(BaseModel):
    """Outcome of one budget evaluation."""

    budget: Budget
    spent_usd: Decimal
    exceeded: bool
    notified: bool = False
    evaluated_at: datetime = Field(default_factory=datetime.utcnow)


class TypeTotal(BaseModel):
    """Sum of one transaction type in the display currency."""

    type: TransactionType
    total: Decimal
    count: int = Field(ge=0)


class CategoryTotal(BaseModel):
    """Sum of expenses in one category in the display currency."""

    category: str
    total: Decimal
    count: int = Field(ge=0)


class BudgetProgress(BaseModel):
    """How far a budget has been used."""

    category: str
    limit_usd: Decimal
    spent_usd: Decimal
    remaining_usd: Decimal
    percent_used: float
    exceeded: bool


class DashboardSummary(BaseModel):
    """
    Everything the dashboard shows for one user.

    All totals are expressed in display_currency and were converted with
    the single rate snapshot described by btc_price_usd/rate_source.
    """

    user_id: str
    display_currency: CurrencyCode
    generated_at: datetime = Field(default_factory=datetime.utcnow)
    totals: list[TypeTotal] = Field(default_factory=list)
    categories: list[CategoryTotal] = Field(default_factory=list)
    net_balance: Decimal = Decimal(0)
    btc_price_usd: Decimal = Decimal(0)
    rate_source: Optional[str] = None
    rates_live: bool = False

    def total_for(self, tx_type: TransactionType) -> Decimal:
        for item in self.totals:
            if item.type == tx_type:
                return item.total
        return Decimal(0)
