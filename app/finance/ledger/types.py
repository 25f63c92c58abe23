"""
Data types for ledger operations.

Types:
    Money: A monetary amount in cents with currency
    EntrySpec: One signed line of a transaction before it is written
    PaymentPosting: Result of recording a processor payment
    RefundPosting: Result of recording a refund
    LedgerBalanceReport: Result of a whole-ledger balance check

Usage:
    from finance.ledger.types import EntrySpec, Money

    amount = Money(cents=7500)
    print(amount)  # "$75.00 USD"

    entries = [
        EntrySpec(account="cash", amount_cents=7500),
        EntrySpec(account="event_revenue", amount_cents=-7500),
    ]
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from finance.ledger.models import LedgerTransaction
    from finance.models import Payment, Refund


@dataclass(frozen=True)
class Money:
    """
    Represents a monetary amount.

    Amounts are integer cents to avoid floating-point error. The ledger
    is single-currency; the currency field exists so amounts print and
    serialize unambiguously.

    Example:
        fee = Money(cents=247)
        print(fee)  # "$2.47 USD"
    """

    cents: int
    currency: str = "usd"

    def __str__(self) -> str:
        """Format as currency string (e.g., '$50.00 USD')."""
        sign = "-" if self.cents < 0 else ""
        whole, frac = divmod(abs(self.cents), 100)
        return f"{sign}${whole}.{frac:02d} {self.currency.upper()}"

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot add Money with different currencies: "
                f"{self.currency} and {other.currency}"
            )
        return Money(cents=self.cents + other.cents, currency=self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot subtract Money with different currencies: "
                f"{self.currency} and {other.currency}"
            )
        return Money(cents=self.cents - other.cents, currency=self.currency)

    def __neg__(self) -> Money:
        return Money(cents=-self.cents, currency=self.currency)

    @classmethod
    def zero(cls, currency: str = "usd") -> Money:
        return cls(cents=0, currency=currency)

    def to_dict(self) -> dict:
        return {"cents": self.cents, "currency": self.currency}


@dataclass(frozen=True)
class EntrySpec:
    """
    One line of a transaction before it is written.

    Attributes:
        account: Chart account name (see AccountName)
        amount_cents: Signed amount, positive = debit, negative = credit
        description: Optional line description
    """

    account: str
    amount_cents: int
    description: str = ""

    @classmethod
    def debit(cls, account: str, cents: int, description: str = "") -> EntrySpec:
        return cls(account=account, amount_cents=cents, description=description)

    @classmethod
    def credit(cls, account: str, cents: int, description: str = "") -> EntrySpec:
        return cls(account=account, amount_cents=-cents, description=description)


@dataclass
class PaymentPosting:
    """Payment and the ledger transaction that recorded it."""

    payment: Payment
    transaction: LedgerTransaction


@dataclass
class RefundPosting:
    """
    Refund and the ledger transaction that recorded it.

    `created` is False when the external refund id had already been
    recorded and the existing refund is being returned.
    """

    refund: Refund
    transaction: LedgerTransaction
    created: bool = True


@dataclass
class LedgerBalanceReport:
    """Outcome of checking that the whole ledger nets to zero."""

    total_cents: int
    entry_count: int
    imbalanced_transaction_ids: list[uuid.UUID] = field(default_factory=list)

    @property
    def is_balanced(self) -> bool:
        return self.total_cents == 0 and not self.imbalanced_transaction_ids
