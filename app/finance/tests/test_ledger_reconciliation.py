"""
Tests for the ledger integrity check.
"""

from unittest.mock import patch

import pytest

from finance.ledger import ledger
from finance.ledger.tests.factories import LedgerEntryFactory
from finance.models import DiscrepancyType, LedgerDiscrepancy, ReconciliationRunStatus
from finance.services import LedgerReconciliationService
from finance.tests.factories import PaymentFactory, RefundFactory


class TestLedgerReconciliationService:
    def test_clean_ledger(self, recorded_payment, recorded_refund):
        run = LedgerReconciliationService.run()

        assert run.status == ReconciliationRunStatus.COMPLETED
        assert run.is_clean
        assert run.ledger_total_cents == 0
        assert run.transactions_checked == 2
        assert run.entries_checked > 0
        assert run.payments_checked == 1
        assert run.duration_seconds is not None

    def test_empty_ledger(self, db):
        run = LedgerReconciliationService.run()

        assert run.is_clean
        assert run.entries_checked == 0

    def test_imbalanced_transaction(self, recorded_payment):
        stray = LedgerEntryFactory(account=ledger.get_account("cash"), amount_cents=100)

        run = LedgerReconciliationService.run()

        assert run.discrepancies_found == 2
        found = {d.discrepancy_type: d for d in run.discrepancies.all()}
        assert found[DiscrepancyType.LEDGER_IMBALANCE].amount_cents == 100
        txn = found[DiscrepancyType.TRANSACTION_IMBALANCE]
        assert txn.entity_id == str(stray.transaction_id)
        assert txn.amount_cents == 100

    def test_payment_without_transaction(self, db):
        payment = PaymentFactory(external_payment_id="pi_orphan")

        run = LedgerReconciliationService.run()

        discrepancy = run.discrepancies.get()
        assert discrepancy.discrepancy_type == DiscrepancyType.PAYMENT_WITHOUT_TRANSACTION
        assert discrepancy.entity_id == str(payment.id)
        assert discrepancy.amount_cents == 7500
        assert discrepancy.details == {"external_payment_id": "pi_orphan"}

    def test_refunds_over_payment(self, recorded_payment):
        RefundFactory(payment=recorded_payment, amount_cents=5000)
        RefundFactory(payment=recorded_payment, amount_cents=5000)

        run = LedgerReconciliationService.run()

        discrepancy = run.discrepancies.get(discrepancy_type=DiscrepancyType.REFUND_OVER_PAYMENT)
        assert discrepancy.amount_cents == 2500
        assert discrepancy.details == {"payment_cents": 7500, "refunded_cents": 10000}

    def test_discrepancies_start_unreviewed(self, db):
        PaymentFactory()

        LedgerReconciliationService.run()

        assert LedgerDiscrepancy.objects.filter(reviewed=False).count() == 1

    def test_failure_recorded_and_raised(self, db):
        with patch(
            "finance.services.ledger_reconciliation_service.ledger.verify_ledger_balance",
            side_effect=RuntimeError("connection lost"),
        ):
            with pytest.raises(RuntimeError):
                LedgerReconciliationService.run()

        from finance.models import LedgerReconciliationRun

        run = LedgerReconciliationRun.objects.get()
        assert run.status == ReconciliationRunStatus.FAILED
        assert "connection lost" in run.error_message
        assert run.completed_at is not None
