"""
Tests for django-fsm transitions on finance models.

Valid transitions are exercised for each model, and a sample of invalid
ones is checked to raise TransitionNotAllowed.
"""

import pytest
from django_fsm import TransitionNotAllowed, can_proceed

from finance.state_machines import (
    ExpenseReportStatus,
    PaymentStatus,
    PayoutStatus,
    SyncStatus,
)
from finance.tests.factories import ExpenseReportFactory, PaymentFactory, PayoutFactory


# =============================================================================
# Payment
# =============================================================================


class TestPaymentTransitions:
    """Payment status only moves forward."""

    def test_pending_to_succeeded(self, db):
        payment = PaymentFactory(status=PaymentStatus.PENDING)
        payment.succeed()
        assert payment.status == PaymentStatus.SUCCEEDED

    def test_pending_to_failed(self, db):
        payment = PaymentFactory(status=PaymentStatus.PENDING)
        payment.fail()
        assert payment.status == PaymentStatus.FAILED

    def test_partial_then_full_refund(self, db):
        payment = PaymentFactory()
        payment.mark_partially_refunded()
        payment.mark_partially_refunded()
        payment.mark_refunded()
        assert payment.status == PaymentStatus.REFUNDED

    def test_refunded_cannot_go_back(self, db):
        payment = PaymentFactory(status=PaymentStatus.REFUNDED)
        assert not can_proceed(payment.mark_partially_refunded)
        with pytest.raises(TransitionNotAllowed):
            payment.mark_partially_refunded()

    def test_failed_cannot_be_refunded(self, db):
        payment = PaymentFactory(status=PaymentStatus.FAILED)
        with pytest.raises(TransitionNotAllowed):
            payment.mark_refunded()


# =============================================================================
# Payout
# =============================================================================


class TestPayoutTransitions:
    def test_pending_to_in_transit_to_paid(self, db):
        payout = PayoutFactory()
        payout.mark_in_transit()
        payout.mark_paid()

        assert payout.status == PayoutStatus.PAID
        assert payout.arrival_date is not None

    def test_paid_keeps_known_arrival_date(self, db):
        payout = PayoutFactory()
        arrival = payout.created_at
        payout.arrival_date = arrival
        payout.mark_paid()
        assert payout.arrival_date == arrival

    @pytest.mark.parametrize("transition", ["mark_failed", "cancel"])
    def test_terminal_from_pending(self, db, transition):
        payout = PayoutFactory()
        getattr(payout, transition)()
        assert payout.status in (PayoutStatus.FAILED, PayoutStatus.CANCELED)

    def test_paid_is_terminal(self, db):
        payout = PayoutFactory(status=PayoutStatus.PAID)
        with pytest.raises(TransitionNotAllowed):
            payout.mark_failed()


# =============================================================================
# ExpenseReport
# =============================================================================


class TestExpenseReportTransitions:
    def test_approval_path(self, db):
        report = ExpenseReportFactory(status=ExpenseReportStatus.DRAFT)
        assert not report.is_syncable

        report.submit()
        report.approve()
        assert report.is_syncable

        report.mark_paid()
        assert report.status == ExpenseReportStatus.PAID
        assert report.is_syncable

    def test_rejected_is_not_syncable(self, db):
        report = ExpenseReportFactory(status=ExpenseReportStatus.SUBMITTED)
        report.reject()
        assert not report.is_syncable

    def test_cannot_approve_draft(self, db):
        report = ExpenseReportFactory(status=ExpenseReportStatus.DRAFT)
        with pytest.raises(TransitionNotAllowed):
            report.approve()


# =============================================================================
# Accounting Sync State
# =============================================================================


class TestAccountingSyncTransitions:
    """The sync state machine shared by every synced record."""

    def test_successful_sync(self, db):
        payment = PaymentFactory()
        payment.begin_sync()
        assert payment.sync_status == SyncStatus.SYNCING
        assert payment.sync_last_attempt_at is not None

        payment.mark_synced("qb-42")
        assert payment.is_synced
        assert payment.external_accounting_id == "qb-42"
        assert payment.synced_at is not None

    def test_deferred_sync_returns_to_pending(self, db):
        payment = PaymentFactory()
        payment.begin_sync()
        payment.defer_sync("QuickBooks server error (503)")

        assert payment.sync_status == SyncStatus.PENDING
        assert payment.sync_error == "QuickBooks server error (503)"

    def test_failed_sync_requeue(self, db):
        payment = PaymentFactory()
        payment.begin_sync()
        payment.fail_sync("rejected")
        assert payment.sync_status == SyncStatus.FAILED

        payment.requeue_sync()
        assert payment.sync_status == SyncStatus.PENDING
        assert payment.sync_error == ""

    def test_cannot_mark_synced_without_attempt(self, db):
        payment = PaymentFactory()
        with pytest.raises(TransitionNotAllowed):
            payment.mark_synced("qb-1")

    def test_synced_is_terminal(self, db):
        payment = PaymentFactory()
        payment.begin_sync()
        payment.mark_synced("qb-1")
        assert not can_proceed(payment.begin_sync)
