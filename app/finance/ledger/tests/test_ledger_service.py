"""
Tests for LedgerService, the transaction builder.

Each business operation is checked for the exact entries it writes, that
the entries net to zero, and that a rejected operation writes nothing.
"""

import uuid

import pytest

from finance.ledger import (
    AccountName,
    DuplicateExternalPayment,
    EntrySpec,
    InvalidAmountError,
    Money,
    RefundExceedsPayment,
    UnbalancedTransactionError,
    UnknownEntityTypeError,
)
from finance.ledger.models import LedgerEntry, LedgerTransaction
from finance.models import Payment, Refund
from finance.state_machines import PaymentStatus, TransactionKind


def entry_map(service, transaction_id):
    """{account name: signed cents} for a transaction, summing repeated accounts."""
    totals = {}
    for entry in service.get_transaction_entries(transaction_id):
        totals[entry.account.name] = totals.get(entry.account.name, 0) + entry.amount_cents
    return totals


# ==========================================================================
# post_transaction
# ==========================================================================


class TestPostTransaction:
    """Tests for the low-level builder."""

    def test_balanced_transaction_is_written(self, ledger_service):
        txn = ledger_service.post_transaction(
            TransactionKind.ADJUSTMENT,
            [EntrySpec.debit("cash", 1000), EntrySpec.credit("retained_earnings", 1000)],
            description="Opening balance",
        )

        assert txn.entries.count() == 2
        assert txn.entries_total_cents() == 0

    def test_unbalanced_rejected(self, ledger_service):
        with pytest.raises(UnbalancedTransactionError) as exc_info:
            ledger_service.post_transaction(
                TransactionKind.ADJUSTMENT,
                [EntrySpec.debit("cash", 1000), EntrySpec.credit("retained_earnings", 900)],
            )

        assert exc_info.value.details["sum_cents"] == 100
        assert LedgerTransaction.objects.count() == 0
        assert LedgerEntry.objects.count() == 0

    def test_single_entry_rejected(self, ledger_service):
        with pytest.raises(UnbalancedTransactionError):
            ledger_service.post_transaction(
                TransactionKind.ADJUSTMENT, [EntrySpec.debit("cash", 1000)]
            )

        assert LedgerTransaction.objects.count() == 0

    def test_zero_entry_rejected(self, ledger_service):
        with pytest.raises(UnbalancedTransactionError, match="cannot be zero"):
            ledger_service.post_transaction(
                TransactionKind.ADJUSTMENT,
                [
                    EntrySpec.debit("cash", 1000),
                    EntrySpec.credit("retained_earnings", 1000),
                    EntrySpec.debit("processor_fees", 0),
                ],
            )

        assert LedgerEntry.objects.count() == 0


# ==========================================================================
# process_payment
# ==========================================================================


class TestProcessPayment:
    """Tests for recording processor payments."""

    def test_payment_with_fee_writes_four_entries(self, ledger_service, event_payment):
        entries = ledger_service.get_transaction_entries(event_payment.transaction.id)

        assert len(entries) == 4
        assert sum(e.amount_cents for e in entries) == 0
        assert entry_map(ledger_service, event_payment.transaction.id) == {
            AccountName.CASH: 7500 - 247,
            AccountName.EVENT_REVENUE: -7500,
            AccountName.PROCESSOR_FEES: 247,
        }

    def test_payment_row(self, event_payment, user_id):
        payment = event_payment.payment

        assert payment.status == PaymentStatus.SUCCEEDED
        assert payment.amount_cents == 7500
        assert payment.processor_fee_cents == 247
        assert payment.net_cents == 7253
        assert payment.user_id == user_id
        assert payment.entity_type == "event"
        assert payment.reference_id.startswith("PAY-")
        assert event_payment.transaction.kind == TransactionKind.PAYMENT
        assert event_payment.transaction.payment_id == payment.id

    def test_payment_without_fee_writes_two_entries(self, ledger_service, donation_payment):
        assert entry_map(ledger_service, donation_payment.transaction.id) == {
            AccountName.CASH: 5000,
            AccountName.DONATION_REVENUE: -5000,
        }

    def test_entries_carry_entity_reference(self, ledger_service, event_payment):
        for entry in ledger_service.get_transaction_entries(event_payment.transaction.id):
            assert entry.related_entity_type == "event"
            assert entry.related_entity_id == "evt-2024-gala"
            assert entry.payment_id == event_payment.payment.id

    def test_duplicate_external_id_rejected(self, ledger_service, event_payment):
        with pytest.raises(DuplicateExternalPayment) as exc_info:
            ledger_service.process_payment(
                user_id=None,
                amount=Money(7500),
                entity_type="event",
                entity_id="evt-2024-gala",
                external_payment_id="pi_event_1",
            )

        assert exc_info.value.existing_payment_id == event_payment.payment.id
        assert Payment.objects.count() == 1
        assert LedgerTransaction.objects.count() == 1

    def test_unknown_entity_type_writes_nothing(self, ledger_service):
        with pytest.raises(UnknownEntityTypeError):
            ledger_service.process_payment(
                user_id=None,
                amount=Money(1000),
                entity_type="raffle",
                entity_id="r-1",
                external_payment_id="pi_raffle",
            )

        assert Payment.objects.count() == 0
        assert LedgerEntry.objects.count() == 0

    @pytest.mark.parametrize("cents", [0, -100])
    def test_non_positive_amount_rejected(self, ledger_service, cents):
        with pytest.raises(InvalidAmountError):
            ledger_service.process_payment(
                user_id=None,
                amount=Money(cents),
                entity_type="donation",
                entity_id="d-1",
                external_payment_id="pi_zero",
            )

    def test_negative_fee_rejected(self, ledger_service):
        with pytest.raises(InvalidAmountError):
            ledger_service.process_payment(
                user_id=None,
                amount=Money(1000),
                entity_type="donation",
                entity_id="d-1",
                external_payment_id="pi_neg_fee",
                processor_fee=Money(-1),
            )


# ==========================================================================
# process_refund
# ==========================================================================


class TestProcessRefund:
    """Tests for refunds against recorded payments."""

    def test_partial_refund(self, ledger_service, event_payment):
        posting = ledger_service.process_refund(
            event_payment.payment.id, Money(3750), "requested_by_customer", "re_1"
        )

        assert posting.created is True
        assert posting.refund.amount_cents == 3750
        assert posting.transaction.kind == TransactionKind.REFUND
        assert entry_map(ledger_service, posting.transaction.id) == {
            AccountName.REFUND_EXPENSE: 3750,
            AccountName.CASH: -3750,
        }

        event_payment.payment.refresh_from_db()
        assert event_payment.payment.status == PaymentStatus.PARTIALLY_REFUNDED
        assert ledger_service.get_payment_refunded_total(event_payment.payment) == Money(3750)

    def test_full_refund_in_two_steps(self, ledger_service, event_payment):
        payment_id = event_payment.payment.id
        ledger_service.process_refund(payment_id, Money(3750), "", "re_1")
        ledger_service.process_refund(payment_id, Money(3750), "", "re_2")

        payment = Payment.objects.get(id=payment_id)
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.refundable_cents() == 0

    def test_over_refund_rejected(self, ledger_service, event_payment):
        payment_id = event_payment.payment.id
        ledger_service.process_refund(payment_id, Money(5000), "", "re_1")

        with pytest.raises(RefundExceedsPayment) as exc_info:
            ledger_service.process_refund(payment_id, Money(3000), "", "re_2")

        assert exc_info.value.available_cents == 2500
        assert exc_info.value.requested_cents == 3000
        assert Refund.objects.count() == 1
        assert Payment.objects.get(id=payment_id).status == PaymentStatus.PARTIALLY_REFUNDED

    def test_same_refund_id_returns_existing(self, ledger_service, event_payment):
        payment_id = event_payment.payment.id
        first = ledger_service.process_refund(payment_id, Money(1000), "", "re_1")
        second = ledger_service.process_refund(payment_id, Money(1000), "", "re_1")

        assert second.created is False
        assert second.refund.id == first.refund.id
        assert Refund.objects.count() == 1
        assert ledger_service.get_payment_refunded_total(event_payment.payment) == Money(1000)

    def test_unknown_payment_raises(self, ledger_service):
        with pytest.raises(Payment.DoesNotExist):
            ledger_service.process_refund(uuid.uuid4(), Money(100), "", "re_x")


# ==========================================================================
# add_credit
# ==========================================================================


class TestAddCredit:
    def test_credit_entries(self, ledger_service, user_id):
        txn = ledger_service.add_credit(user_id, Money(500), reason="goodwill")

        assert txn.kind == TransactionKind.ADJUSTMENT
        assert txn.description == "Credit: goodwill"
        assert entry_map(ledger_service, txn.id) == {
            AccountName.ACCOUNTS_RECEIVABLE: 500,
            AccountName.CASH: -500,
        }

    def test_zero_credit_rejected(self, ledger_service, user_id):
        with pytest.raises(InvalidAmountError):
            ledger_service.add_credit(user_id, Money(0), reason="nothing")


# ==========================================================================
# Balances
# ==========================================================================


class TestBalances:
    """Tests for account balances and the whole-ledger check."""

    def test_account_balances_in_normal_direction(self, ledger_service, event_payment):
        ledger_service.process_refund(event_payment.payment.id, Money(3750), "", "re_1")

        assert ledger_service.get_account_balance("cash") == Money(7500 - 247 - 3750)
        assert ledger_service.get_account_balance("event_revenue") == Money(7500)
        assert ledger_service.get_account_balance("processor_fees") == Money(247)
        assert ledger_service.get_account_balance("refund_expense") == Money(3750)

    def test_empty_ledger_is_balanced(self, ledger_service):
        report = ledger_service.verify_ledger_balance()

        assert report.is_balanced
        assert report.entry_count == 0

    def test_ledger_balanced_after_mixed_activity(
        self, ledger_service, event_payment, donation_payment, user_id
    ):
        ledger_service.process_refund(event_payment.payment.id, Money(1000), "", "re_1")
        ledger_service.add_credit(user_id, Money(500), reason="goodwill")

        report = ledger_service.verify_ledger_balance()

        assert report.is_balanced
        assert report.total_cents == 0
        assert report.entry_count == 4 + 2 + 2 + 2

    def test_imbalanced_transaction_reported(self, ledger_service, event_payment):
        from finance.ledger.tests.factories import LedgerEntryFactory

        cash = ledger_service.get_account("cash")
        stray = LedgerEntryFactory(account=cash, amount_cents=100)

        report = ledger_service.verify_ledger_balance()

        assert not report.is_balanced
        assert report.total_cents == 100
        assert report.imbalanced_transaction_ids == [stray.transaction_id]
