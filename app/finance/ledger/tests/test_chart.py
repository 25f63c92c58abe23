"""
Tests for the chart of accounts.

The chart is plain data validated at construction; none of these tests
touch the database.
"""

import pytest
from django.core.exceptions import ImproperlyConfigured

from finance.ledger import AccountNotFound, UnknownEntityTypeError
from finance.ledger.chart import (
    CHART_OF_ACCOUNTS,
    DEFAULT_CHART,
    REVENUE_ACCOUNT_BY_ENTITY_TYPE,
    AccountKind,
    AccountName,
    AccountSpec,
    ChartOfAccounts,
    EntityType,
)


class TestDefaultChart:
    """Tests for the default chart contents."""

    def test_contains_every_account_name(self):
        for name in AccountName.values:
            assert name in DEFAULT_CHART

    def test_length_matches_account_table(self):
        assert len(DEFAULT_CHART) == len(CHART_OF_ACCOUNTS)

    @pytest.mark.parametrize(
        "entity_type,account",
        [
            (EntityType.MEMBERSHIP, AccountName.SUBSCRIPTION_REVENUE),
            (EntityType.EVENT, AccountName.EVENT_REVENUE),
            (EntityType.BOOKING, AccountName.BOOKING_REVENUE),
            (EntityType.DONATION, AccountName.DONATION_REVENUE),
        ],
    )
    def test_revenue_routing(self, entity_type, account):
        spec = DEFAULT_CHART.revenue_account_for(entity_type)
        assert spec.name == account
        assert spec.kind == AccountKind.REVENUE

    def test_unknown_entity_type_raises(self):
        with pytest.raises(UnknownEntityTypeError) as exc_info:
            DEFAULT_CHART.revenue_account_for("raffle")

        assert exc_info.value.details["entity_type"] == "raffle"
        assert "donation" in exc_info.value.details["known"]

    def test_unknown_account_raises(self):
        with pytest.raises(AccountNotFound):
            DEFAULT_CHART.get("petty_cash")


class TestAccountSpec:
    """Tests for normal balance direction."""

    @pytest.mark.parametrize(
        "kind,debit_normal",
        [
            (AccountKind.ASSET, True),
            (AccountKind.EXPENSE, True),
            (AccountKind.LIABILITY, False),
            (AccountKind.REVENUE, False),
            (AccountKind.EQUITY, False),
        ],
    )
    def test_is_debit_normal(self, kind, debit_normal):
        assert AccountSpec(kind, "x").is_debit_normal is debit_normal


class TestChartValidation:
    """A misconfigured chart fails at construction, not at posting time."""

    def test_duplicate_account_rejected(self):
        accounts = CHART_OF_ACCOUNTS + (AccountSpec(AccountKind.ASSET, AccountName.CASH),)
        with pytest.raises(ImproperlyConfigured, match="Duplicate"):
            ChartOfAccounts(accounts, REVENUE_ACCOUNT_BY_ENTITY_TYPE)

    def test_missing_entity_route_rejected(self):
        routing = dict(REVENUE_ACCOUNT_BY_ENTITY_TYPE)
        del routing[EntityType.BOOKING]
        with pytest.raises(ImproperlyConfigured, match="booking"):
            ChartOfAccounts(CHART_OF_ACCOUNTS, routing)

    def test_route_to_non_revenue_account_rejected(self):
        routing = dict(REVENUE_ACCOUNT_BY_ENTITY_TYPE)
        routing[EntityType.DONATION] = AccountName.CASH
        with pytest.raises(ImproperlyConfigured, match="not a revenue account"):
            ChartOfAccounts(CHART_OF_ACCOUNTS, routing)
