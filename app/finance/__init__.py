"""
Finance app: ledger, reconciliation and accounting sync.

This app handles:
- Double-entry ledger for payments, refunds and credits
- Idempotent Stripe webhook ingestion
- Payout-to-transaction reconciliation
- Retryable sync of settled records to QuickBooks
- Operator tooling for re-driving failed work

Usage:
    from finance.ledger import Money, ledger

    # Record a payment
    posting = ledger.process_payment(user_id, Money(7500), "event", event_id, "pi_123")

    # Reconcile a payout
    from finance.services import PayoutReconciliationService
    PayoutReconciliationService.reconcile_payout("po_123")
"""
