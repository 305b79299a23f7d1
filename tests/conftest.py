"""
Shared fixtures.

Every fixture is backed by in-memory storage, so no test touches the network.
"""

from decimal import Decimal

import pytest

from splitledger.audit import AuditLogger
from splitledger.config import LedgerSettings
from splitledger.models.ledger import Transaction
from splitledger.orchestrator import LedgerService
from splitledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryIdentityDirectory,
    InMemoryObligationStorage,
    InMemoryTransactionStorage,
)


def _build_tx(payer, payee, amount, **kwargs) -> Transaction:
    return Transaction(
        payer_username=payer,
        payee_username=payee,
        amount=Decimal(str(amount)),
        **kwargs,
    )


@pytest.fixture
def make_tx():
    """Build a transaction without going through the service."""
    return _build_tx


@pytest.fixture
def ledger_settings():
    return LedgerSettings(admin_username="root", currency_symbol="$", history_limit=500)


@pytest.fixture
def transaction_storage():
    return InMemoryTransactionStorage()


@pytest.fixture
def obligation_storage():
    return InMemoryObligationStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def directory():
    return InMemoryIdentityDirectory({
        "alice": "+1 (555) 010-0001",
        "bob": "555.010.0002",
        "carol": None,
    })


@pytest.fixture
def service(transaction_storage, obligation_storage, audit_storage, directory, ledger_settings):
    return LedgerService(
        transaction_storage=transaction_storage,
        obligation_storage=obligation_storage,
        audit_logger=AuditLogger(audit_storage),
        directory=directory,
        settings=ledger_settings,
    )
