"""
Unit tests for the billing reconciliation engine.

The engine is driven directly inside store transactions, without the
orchestrator.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from service_billing.core.adapters import EchoAdapter
from service_billing.core.billing import BillingReconciliationEngine
from service_billing.core.errors import (
    AccountNotFound,
    InsufficientFunds,
    InvalidUsage,
    LedgerEntryCollision,
)
from service_billing.storage.paths import KeyPaths
from service_billing.storage.repository import AccountRepository

FIXED_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _engine(**kwargs):
    kwargs.setdefault("clock", lambda: FIXED_TIME)
    return BillingReconciliationEngine(**kwargs)


class TestReconcile:
    """Test charge-and-record behavior."""

    def test_charges_and_records_entry(self, store):
        """Verify balance drops by cost and one entry is appended."""
        repo = AccountRepository(store)
        repo.create_account("u1", 100)
        adapter = EchoAdapter(id="svc", unit_price=10)
        engine = _engine(id_factory=lambda: "entry-1")

        new_balance = store.run_transaction(
            lambda tx: engine.reconcile("u1", adapter, 3, tx)
        )

        assert new_balance == 70
        assert repo.get_account("u1").balance == 70
        entries = repo.list_ledger_entries("u1")
        assert len(entries) == 1
        entry = entries[0]
        assert entry.entry_id == "entry-1"
        assert entry.service_id == "svc"
        assert entry.units_used == 3
        assert entry.cost == 30
        assert entry.resulting_balance == 70
        assert entry.timestamp == FIXED_TIME

    def test_initial_balance_untouched(self, store):
        """Verify only the balance field is updated."""
        repo = AccountRepository(store)
        repo.create_account("u1", 100)
        engine = _engine()
        store.run_transaction(
            lambda tx: engine.reconcile("u1", EchoAdapter(id="svc", unit_price=10), 1, tx)
        )
        assert repo.get_account("u1").initial_balance == 100

    def test_exact_balance_reaches_zero(self, store):
        """Verify a charge equal to the balance is allowed."""
        repo = AccountRepository(store)
        repo.create_account("u1", 30)
        engine = _engine()
        new_balance = store.run_transaction(
            lambda tx: engine.reconcile("u1", EchoAdapter(id="svc", unit_price=10), 3, tx)
        )
        assert new_balance == 0

    def test_insufficient_funds_writes_nothing(self, store):
        """Verify an overdraft leaves account and ledger unchanged."""
        repo = AccountRepository(store)
        repo.create_account("u1", 20)
        engine = _engine()

        with pytest.raises(InsufficientFunds) as exc_info:
            store.run_transaction(
                lambda tx: engine.reconcile("u1", EchoAdapter(id="svc", unit_price=10), 3, tx)
            )

        assert exc_info.value.balance == 20
        assert exc_info.value.cost == 30
        assert exc_info.value.account_id == "u1"
        assert repo.get_account("u1").balance == 20
        assert repo.list_ledger_entries("u1") == []

    def test_missing_account(self, store):
        """Verify billing an unknown account fails without creating it."""
        engine = _engine()
        with pytest.raises(AccountNotFound) as exc_info:
            store.run_transaction(
                lambda tx: engine.reconcile("ghost", EchoAdapter(id="svc", unit_price=10), 1, tx)
            )
        assert exc_info.value.account_id == "ghost"
        assert not store.get_doc("users/ghost").exists

    def test_negative_units_rejected(self, store):
        AccountRepository(store).create_account("u1", 100)
        engine = _engine()
        with pytest.raises(InvalidUsage):
            store.run_transaction(
                lambda tx: engine.reconcile("u1", EchoAdapter(id="svc", unit_price=10), -1, tx)
            )
        assert AccountRepository(store).get_account("u1").balance == 100

    def test_fractional_units_recorded_exactly(self, store):
        """Verify Decimal units survive the round trip and cost rounds up."""
        repo = AccountRepository(store)
        repo.create_account("u1", 100)
        engine = _engine()
        store.run_transaction(
            lambda tx: engine.reconcile("u1", EchoAdapter(id="svc", unit_price=3), Decimal("0.5"), tx)
        )
        entry = repo.list_ledger_entries("u1")[0]
        assert entry.units_used == Decimal("0.5")
        assert entry.cost == 2
        assert repo.get_account("u1").balance == 98

    def test_entry_id_collision_is_an_error(self, store):
        """Verify an existing entry is never overwritten."""
        repo = AccountRepository(store)
        repo.create_account("u1", 100)
        engine = _engine(id_factory=lambda: "dup")
        adapter = EchoAdapter(id="svc", unit_price=10)

        store.run_transaction(lambda tx: engine.reconcile("u1", adapter, 1, tx))
        with pytest.raises(LedgerEntryCollision):
            store.run_transaction(lambda tx: engine.reconcile("u1", adapter, 1, tx))

        assert repo.get_account("u1").balance == 90
        assert len(repo.list_ledger_entries("u1")) == 1

    def test_namespaced_paths(self, store):
        """Verify the engine honours a path namespace."""
        paths = KeyPaths("artifacts/default-app-id")
        repo = AccountRepository(store, paths)
        repo.create_account("u1", 100)
        engine = _engine(paths=paths)

        store.run_transaction(
            lambda tx: engine.reconcile("u1", EchoAdapter(id="svc", unit_price=10), 1, tx)
        )

        assert store.get_doc("artifacts/default-app-id/users/u1").data["balance"] == 90
        assert not store.get_doc("users/u1").exists

    def test_does_not_commit_on_its_own(self, store):
        """Verify writes vanish if the surrounding scope fails afterwards."""
        repo = AccountRepository(store)
        repo.create_account("u1", 100)
        engine = _engine()

        def work(tx):
            engine.reconcile("u1", EchoAdapter(id="svc", unit_price=10), 1, tx)
            raise RuntimeError("later failure")

        with pytest.raises(RuntimeError):
            store.run_transaction(work)

        assert repo.get_account("u1").balance == 100
        assert repo.list_ledger_entries("u1") == []
