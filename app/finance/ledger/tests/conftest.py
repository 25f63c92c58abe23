"""
Pytest fixtures for ledger tests.

Sections:
    - Service Fixtures: LedgerService bound to the default chart
    - Posting Fixtures: Payments already recorded in the ledger
    - Test Data Fixtures: UUIDs and amounts
"""

import uuid

import pytest

from finance.ledger import LedgerService, Money


# ==========================================================================
# Service Fixtures
# ==========================================================================


@pytest.fixture
def ledger_service(db):
    """
    LedgerService over the default chart.

    Accounts are seeded by migration, so every chart account exists.
    """
    return LedgerService()


# ==========================================================================
# Posting Fixtures
# ==========================================================================


@pytest.fixture
def event_payment(ledger_service, user_id):
    """A $75.00 event ticket payment with a $2.47 processor fee."""
    return ledger_service.process_payment(
        user_id=user_id,
        amount=Money(7500),
        entity_type="event",
        entity_id="evt-2024-gala",
        external_payment_id="pi_event_1",
        processor_fee=Money(247),
    )


@pytest.fixture
def donation_payment(ledger_service):
    """A $50.00 donation with no fee and no known member."""
    return ledger_service.process_payment(
        user_id=None,
        amount=Money(5000),
        entity_type="donation",
        entity_id="campaign-2024",
        external_payment_id="pi_donation_1",
    )


# ==========================================================================
# Test Data Fixtures
# ==========================================================================


@pytest.fixture
def user_id():
    return uuid.uuid4()
