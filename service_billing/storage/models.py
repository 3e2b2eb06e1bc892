"""
Data models for storage layer.

Defines document snapshots, accounts and ledger entries.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class DocumentSnapshot:
    """Result of reading one document path."""
    exists: bool
    data: Optional[Dict[str, Any]] = None
    version: int = 0


@dataclass(frozen=True)
class Account:
    """Billable account holder. Balance is in minor units and never negative."""
    id: str
    balance: int
    initial_balance: int

    @classmethod
    def from_document(cls, account_id: str, data: Dict[str, Any]) -> "Account":
        balance = int(data.get("balance", 0))
        return cls(
            id=account_id,
            balance=balance,
            initial_balance=int(data.get("initial_balance", balance)),
        )


@dataclass(frozen=True)
class LedgerEntry:
    """Immutable record of one billing event.

    Append-only entries that form an auditable history of charges.
    Once written, these records must never be modified.
    """
    entry_id: str
    timestamp: datetime
    service_id: str
    units_used: Union[int, Decimal]
    cost: int
    resulting_balance: int

    def to_document(self) -> Dict[str, Any]:
        units = self.units_used
        return {
            "entry_id": self.entry_id,
            "timestamp": self.timestamp.isoformat(),
            "service_id": self.service_id,
            # Decimal units are stored as strings to keep them exact in JSON
            "units_used": units if isinstance(units, int) else str(units),
            "cost": self.cost,
            "resulting_balance": self.resulting_balance,
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "LedgerEntry":
        units = data["units_used"]
        return cls(
            entry_id=data["entry_id"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            service_id=data["service_id"],
            units_used=units if isinstance(units, int) else Decimal(units),
            cost=int(data["cost"]),
            resulting_balance=int(data["resulting_balance"]),
        )


@dataclass(frozen=True)
class ReconciliationReport:
    """Outcome of checking balance == initial_balance - sum(cost)."""
    account_id: str
    initial_balance: int
    balance: int
    total_cost: int
    entry_count: int

    @property
    def expected_balance(self) -> int:
        return self.initial_balance - self.total_cost

    @property
    def consistent(self) -> bool:
        return self.balance == self.expected_balance and self.balance >= 0


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
