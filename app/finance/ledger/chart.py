"""
Chart of accounts for the organization's ledger.

The chart is a fixed table of (kind, name) pairs. It is defined once here,
seeded into the Account table by a data migration and handed to the
LedgerService at construction time. Nothing mutates it at runtime.

Revenue routing is an explicit table from EntityType to revenue account.
The module refuses to import if an EntityType has no revenue account, so
adding a new kind of sellable thing without deciding where its revenue
lands fails at startup rather than on the first payment.

Usage:
    from finance.ledger.chart import DEFAULT_CHART, AccountName, EntityType

    spec = DEFAULT_CHART.get(AccountName.CASH)
    revenue = DEFAULT_CHART.revenue_account_for(EntityType.EVENT)
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING

from django.core.exceptions import ImproperlyConfigured
from django.db import models

from finance.ledger.exceptions import AccountNotFound, UnknownEntityTypeError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping


class AccountKind(models.TextChoices):
    """Top-level account classification."""

    ASSET = "asset", "Asset"
    LIABILITY = "liability", "Liability"
    REVENUE = "revenue", "Revenue"
    EXPENSE = "expense", "Expense"
    EQUITY = "equity", "Equity"


class AccountName(models.TextChoices):
    """Every account the ledger posts to."""

    CASH = "cash", "Cash"
    ACCOUNTS_RECEIVABLE = "accounts_receivable", "Accounts Receivable"
    ACCOUNTS_PAYABLE = "accounts_payable", "Accounts Payable"
    DEFERRED_REVENUE = "deferred_revenue", "Deferred Revenue"
    REFUND_LIABILITY = "refund_liability", "Refund Liability"
    SUBSCRIPTION_REVENUE = "subscription_revenue", "Subscription Revenue"
    EVENT_REVENUE = "event_revenue", "Event Revenue"
    BOOKING_REVENUE = "booking_revenue", "Booking Revenue"
    DONATION_REVENUE = "donation_revenue", "Donation Revenue"
    PROCESSOR_FEES = "processor_fees", "Processor Fees"
    REFUND_EXPENSE = "refund_expense", "Refund Expense"
    OPERATING_EXPENSES = "operating_expenses", "Operating Expenses"
    RETAINED_EARNINGS = "retained_earnings", "Retained Earnings"


class EntityType(models.TextChoices):
    """Business entities a payment can be for."""

    MEMBERSHIP = "membership", "Membership"
    EVENT = "event", "Event"
    BOOKING = "booking", "Booking"
    DONATION = "donation", "Donation"


@dataclass(frozen=True)
class AccountSpec:
    """One row of the chart of accounts."""

    kind: str
    name: str
    description: str = ""

    @property
    def is_debit_normal(self) -> bool:
        """Assets and expenses grow with debits; the rest grow with credits."""
        return self.kind in (AccountKind.ASSET, AccountKind.EXPENSE)


CHART_OF_ACCOUNTS: tuple[AccountSpec, ...] = (
    AccountSpec(AccountKind.ASSET, AccountName.CASH, "Cash held with the processor and bank"),
    AccountSpec(
        AccountKind.ASSET,
        AccountName.ACCOUNTS_RECEIVABLE,
        "Amounts owed to the organization, including member credits",
    ),
    AccountSpec(AccountKind.LIABILITY, AccountName.ACCOUNTS_PAYABLE, "Amounts owed to vendors"),
    AccountSpec(
        AccountKind.LIABILITY,
        AccountName.DEFERRED_REVENUE,
        "Payments received for services not yet delivered",
    ),
    AccountSpec(
        AccountKind.LIABILITY,
        AccountName.REFUND_LIABILITY,
        "Refunds approved but not yet paid out",
    ),
    AccountSpec(AccountKind.REVENUE, AccountName.SUBSCRIPTION_REVENUE, "Membership dues"),
    AccountSpec(AccountKind.REVENUE, AccountName.EVENT_REVENUE, "Event ticket sales"),
    AccountSpec(AccountKind.REVENUE, AccountName.BOOKING_REVENUE, "Facility bookings"),
    AccountSpec(AccountKind.REVENUE, AccountName.DONATION_REVENUE, "Donations"),
    AccountSpec(AccountKind.EXPENSE, AccountName.PROCESSOR_FEES, "Payment processor fees"),
    AccountSpec(AccountKind.EXPENSE, AccountName.REFUND_EXPENSE, "Refunds issued to members"),
    AccountSpec(AccountKind.EXPENSE, AccountName.OPERATING_EXPENSES, "General operating costs"),
    AccountSpec(AccountKind.EQUITY, AccountName.RETAINED_EARNINGS, "Accumulated surplus"),
)

REVENUE_ACCOUNT_BY_ENTITY_TYPE: Mapping[str, str] = MappingProxyType(
    {
        EntityType.MEMBERSHIP: AccountName.SUBSCRIPTION_REVENUE,
        EntityType.EVENT: AccountName.EVENT_REVENUE,
        EntityType.BOOKING: AccountName.BOOKING_REVENUE,
        EntityType.DONATION: AccountName.DONATION_REVENUE,
    }
)


class ChartOfAccounts:
    """
    Immutable lookup over a set of account specs and a revenue routing table.

    Construction validates the table: names must be unique, every entity
    type must route to a revenue account that exists in the chart.
    """

    def __init__(
        self,
        accounts: Iterable[AccountSpec],
        revenue_routing: Mapping[str, str],
    ):
        by_name: dict[str, AccountSpec] = {}
        for spec in accounts:
            if spec.name in by_name:
                raise ImproperlyConfigured(f"Duplicate account in chart: {spec.name}")
            by_name[spec.name] = spec
        self._by_name = MappingProxyType(by_name)

        missing = [et for et in EntityType.values if et not in revenue_routing]
        if missing:
            raise ImproperlyConfigured(
                f"Entity types without a revenue account: {', '.join(missing)}"
            )
        for entity_type, account_name in revenue_routing.items():
            spec = by_name.get(account_name)
            if spec is None or spec.kind != AccountKind.REVENUE:
                raise ImproperlyConfigured(
                    f"Entity type {entity_type} routes to {account_name}, "
                    "which is not a revenue account in the chart"
                )
        self._revenue_routing = MappingProxyType(dict(revenue_routing))

    def __iter__(self) -> Iterator[AccountSpec]:
        return iter(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def get(self, name: str) -> AccountSpec:
        """Return the spec for `name` or raise AccountNotFound."""
        try:
            return self._by_name[name]
        except KeyError:
            raise AccountNotFound(
                f"Account {name} is not in the chart of accounts",
                details={"account": str(name)},
            )

    def revenue_account_for(self, entity_type: str) -> AccountSpec:
        """
        Return the revenue account that payments for `entity_type` credit.

        Raises:
            UnknownEntityTypeError: If the entity type is not routed
        """
        try:
            return self._by_name[self._revenue_routing[entity_type]]
        except KeyError:
            raise UnknownEntityTypeError(
                f"Unknown entity type: {entity_type}",
                details={
                    "entity_type": str(entity_type),
                    "known": sorted(self._revenue_routing),
                },
            )


DEFAULT_CHART = ChartOfAccounts(CHART_OF_ACCOUNTS, REVENUE_ACCOUNT_BY_ENTITY_TYPE)
