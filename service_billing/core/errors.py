"""
Billing error taxonomy.

Every failure surfaced by the engine is a BillingError subclass carrying
enough detail for callers to tell causes apart without parsing messages.
"""

from typing import Optional


class BillingError(Exception):
    """Base class for all billing and reconciliation failures."""


class AdapterNotFound(BillingError):
    """Raised when no adapter is registered for a service id."""
    def __init__(self, service_id: str):
        super().__init__(f"Service adapter '{service_id}' not found.")
        self.service_id = service_id


class AccountNotFound(BillingError):
    """Raised when the account document is absent at reconciliation time."""
    def __init__(self, account_id: str):
        super().__init__(f"Account '{account_id}' not found for billing.")
        self.account_id = account_id


class AccountExists(BillingError):
    """Raised when provisioning an account id that is already taken."""
    def __init__(self, account_id: str):
        super().__init__(f"Account '{account_id}' already exists.")
        self.account_id = account_id


class InsufficientFunds(BillingError):
    """Raised when a charge would take the balance below zero."""
    def __init__(self, account_id: str, balance: int, cost: int):
        super().__init__(
            f"Insufficient funds for account '{account_id}': "
            f"cost {cost} exceeds balance {balance}. Billing halted."
        )
        self.account_id = account_id
        self.balance = balance
        self.cost = cost


class AdapterExecutionFailure(BillingError):
    """Raised when an adapter's execute call fails.

    The adapter's own exception is chained as ``__cause__``.
    """
    def __init__(self, service_id: str, reason: Optional[str] = None):
        message = f"Service adapter '{service_id}' failed"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.service_id = service_id


class InvalidUsage(BillingError):
    """Raised for negative unit counts or prices."""


class LedgerEntryCollision(BillingError):
    """Raised when a freshly generated ledger entry id is already taken."""
    def __init__(self, entry_ref: str):
        super().__init__(f"Ledger entry '{entry_ref}' already exists.")
        self.entry_ref = entry_ref


class TransactionConflict(BillingError):
    """Raised when the store gives up after repeated write conflicts."""
    def __init__(self, attempts: int):
        super().__init__(f"Transaction aborted after {attempts} conflicting attempts.")
        self.attempts = attempts
