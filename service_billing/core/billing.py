"""
Billing reconciliation.

Charges an account for one adapter execution and records the charge in
the account's append-only billing history. Runs entirely inside the
caller's transaction scope and never commits on its own; the store
decides commit or abort.
"""

import uuid
from datetime import datetime
from typing import Callable, Optional

import structlog

from ..storage.models import LedgerEntry, utcnow
from ..storage.paths import KeyPaths
from ..storage.store import TransactionHandle
from .adapters import ServiceAdapter
from .errors import AccountNotFound, InsufficientFunds, LedgerEntryCollision
from .pricing import Units, calculate_cost, normalize_units

log = structlog.get_logger(__name__)


def new_entry_id() -> str:
    return uuid.uuid4().hex


class BillingReconciliationEngine:
    """Charge-and-record step of a service request.

    Order of operations:
    1. Compute cost from the adapter's unit price
    2. Read the account (must exist)
    3. Reject if the balance would go negative
    4. Write the new balance and append a ledger entry
    """

    def __init__(
        self,
        paths: Optional[KeyPaths] = None,
        id_factory: Callable[[], str] = new_entry_id,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.paths = paths or KeyPaths()
        self._new_id = id_factory
        self._clock = clock

    def reconcile(
        self,
        account_id: str,
        adapter: ServiceAdapter,
        units_used: Units,
        tx: TransactionHandle,
    ) -> int:
        """Deduct the cost of units_used from the account within tx.

        Args:
            account_id: Account to charge
            adapter: Adapter whose unit price applies
            units_used: Units consumed by the request
            tx: Open transaction handle

        Returns:
            The account balance after the charge, in minor units

        Raises:
            InvalidUsage: If units or price are negative
            AccountNotFound: If the account document is absent
            InsufficientFunds: If cost exceeds the current balance
            LedgerEntryCollision: If the generated entry id is taken
        """
        units_used = normalize_units(units_used)
        cost = calculate_cost(adapter.get_cost_per_unit(), units_used)
        account_ref = self.paths.account(account_id)

        account = tx.get(account_ref)
        if not account.exists:
            raise AccountNotFound(account_id)

        balance = int((account.data or {}).get("balance", 0))
        new_balance = balance - cost
        if new_balance < 0:
            log.info(
                "billing_rejected",
                account_id=account_id,
                service_id=adapter.id,
                balance=balance,
                cost=cost,
            )
            raise InsufficientFunds(account_id, balance, cost)

        entry = LedgerEntry(
            entry_id=self._new_id(),
            timestamp=self._clock(),
            service_id=adapter.id,
            units_used=units_used,
            cost=cost,
            resulting_balance=new_balance,
        )
        entry_ref = self.paths.ledger_entry(account_id, entry.entry_id)
        # Reading the entry path also makes a concurrent writer of the same id conflict
        if tx.get(entry_ref).exists:
            raise LedgerEntryCollision(entry_ref)

        tx.update(account_ref, {"balance": new_balance})
        tx.set(entry_ref, entry.to_document())

        log.info(
            "billing_reconciled",
            account_id=account_id,
            service_id=adapter.id,
            units_used=str(units_used),
            cost=cost,
            balance=new_balance,
            entry_id=entry.entry_id,
        )
        return new_balance
