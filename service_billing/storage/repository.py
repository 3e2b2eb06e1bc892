"""
Repository pattern for account and ledger access.

Handles account provisioning and the read side of the billing history.
Charges themselves only happen through the reconciliation engine.
"""

from typing import List, Optional

from ..core.errors import AccountExists, AccountNotFound, InvalidUsage
from .models import Account, LedgerEntry, ReconciliationReport
from .paths import KeyPaths
from .store import BaseDocumentStore, TransactionHandle


class AccountRepository:
    """Repository for accounts and their billing history.

    This class provides a higher-level interface over the document store,
    making it easier to work with accounts and ledger entries in a
    type-safe manner.
    """

    def __init__(self, store: BaseDocumentStore, paths: Optional[KeyPaths] = None):
        """Initialize the repository.

        Args:
            store: Document store holding accounts and ledgers
            paths: Path layout, defaults to no namespace
        """
        self.store = store
        self.paths = paths or KeyPaths()

    def create_account(self, account_id: str, initial_balance: int) -> Account:
        """Provision a new account with a starting balance.

        Args:
            account_id: New account id
            initial_balance: Starting balance in minor units

        Returns:
            The created account

        Raises:
            InvalidUsage: If initial_balance is negative or not an integer
            AccountExists: If the id is already taken
        """
        if isinstance(initial_balance, bool) or not isinstance(initial_balance, int):
            raise InvalidUsage("initial_balance must be an integer number of minor units")
        if initial_balance < 0:
            raise InvalidUsage("initial_balance must be >= 0")

        ref = self.paths.account(account_id)

        def create(tx: TransactionHandle) -> None:
            if tx.get(ref).exists:
                raise AccountExists(account_id)
            tx.set(ref, {"balance": initial_balance, "initial_balance": initial_balance})

        self.store.run_transaction(create)
        return Account(id=account_id, balance=initial_balance, initial_balance=initial_balance)

    def get_account(self, account_id: str) -> Account:
        """Get the committed state of an account.

        Raises:
            AccountNotFound: If the account does not exist
        """
        doc = self.store.get_doc(self.paths.account(account_id))
        if not doc.exists:
            raise AccountNotFound(account_id)
        return Account.from_document(account_id, doc.data)

    def list_ledger_entries(self, account_id: str, limit: Optional[int] = None) -> List[LedgerEntry]:
        """Get an account's billing history.

        Args:
            account_id: Account whose ledger to read
            limit: Optional maximum number of most recent entries

        Returns:
            Ledger entries ordered by timestamp (oldest first)

        Raises:
            AccountNotFound: If the account does not exist
        """
        self.get_account(account_id)
        documents = self.store.list_documents(self.paths.billing_history(account_id))
        entries = sorted(
            (LedgerEntry.from_document(data) for _, data in documents),
            key=lambda entry: (entry.timestamp, entry.entry_id),
        )
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return entries

    def verify_account(self, account_id: str) -> ReconciliationReport:
        """Check that balance == initial_balance - sum(cost) for an account.

        Raises:
            AccountNotFound: If the account does not exist
        """
        account = self.get_account(account_id)
        entries = self.list_ledger_entries(account_id)
        return ReconciliationReport(
            account_id=account_id,
            initial_balance=account.initial_balance,
            balance=account.balance,
            total_cost=sum(entry.cost for entry in entries),
            entry_count=len(entries),
        )
