"""
Request orchestration.

Entry point for billed service requests: resolves the adapter, opens a
transaction, runs the adapter, reconciles billing and returns the result
together with the new balance.

Request lifecycle:
    RECEIVED -> ADAPTER_EXECUTING -> BILLING_RECONCILING -> COMMITTED
Any failure moves the request to ABORTED. Nothing between RECEIVED and
COMMITTED is ever visible in the store.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import structlog

from ..storage.paths import KeyPaths
from ..storage.store import DocumentStore, TransactionHandle
from .adapters import AdapterRegistry, AdapterResult, ServiceAdapter
from .billing import BillingReconciliationEngine
from .errors import AdapterExecutionFailure, AdapterNotFound, BillingError
from .pricing import DEFAULT_UNITS

log = structlog.get_logger(__name__)

NO_SECURE_CONFIG = {"message": "No secure configuration found."}


class RequestState(Enum):
    """Lifecycle states of a single service request."""
    RECEIVED = "received"
    ADAPTER_EXECUTING = "adapter_executing"
    BILLING_RECONCILING = "billing_reconciling"
    COMMITTED = "committed"
    ABORTED = "aborted"

    @property
    def terminal(self) -> bool:
        return self in (RequestState.COMMITTED, RequestState.ABORTED)


@dataclass(frozen=True)
class RequestReceipt:
    """Result of a committed request."""
    result: Any
    balance: int


class _RequestTrace:
    """Tracks and logs the lifecycle of one request."""

    def __init__(self, account_id: str, service_id: str):
        self.log = log.bind(account_id=account_id, service_id=service_id)
        self.state = RequestState.RECEIVED
        self.log.debug("request_state", state=self.state.value)

    def advance(self, state: RequestState) -> None:
        if self.state.terminal:
            raise RuntimeError(f"Request already {self.state.value}")
        self.state = state
        self.log.debug("request_state", state=state.value)

    def abort(self, error: Exception) -> None:
        failed_in = self.state
        self.state = RequestState.ABORTED
        self.log.warning(
            "request_aborted",
            failed_in=failed_in.value,
            error=type(error).__name__,
            reason=str(error),
        )


class RequestOrchestrator:
    """Runs service adapters against accounts and bills for them atomically.

    The orchestrator owns its adapter registry; two orchestrators never
    share adapters unless the same registry is passed to both.
    """

    def __init__(
        self,
        store: DocumentStore,
        registry: Optional[AdapterRegistry] = None,
        engine: Optional[BillingReconciliationEngine] = None,
        paths: Optional[KeyPaths] = None,
    ):
        self.store = store
        self.registry = registry if registry is not None else AdapterRegistry()
        self.paths = paths or (engine.paths if engine else KeyPaths())
        self.engine = engine or BillingReconciliationEngine(self.paths)

    def register_adapter(self, adapter: ServiceAdapter) -> None:
        self.registry.register(adapter)

    def get_secure_config(self, account_id: str) -> Dict[str, Any]:
        """Read an account's private settings outside any transaction.

        Returns the stored config, or a message dict if none exists.
        """
        doc = self.store.get_doc(self.paths.secure_config(account_id))
        if not doc.exists:
            return dict(NO_SECURE_CONFIG)
        return doc.data

    def put_secure_config(self, account_id: str, config: Dict[str, Any]) -> None:
        self.store.set_doc(self.paths.secure_config(account_id), config)

    def process_request(self, account_id: str, service_id: str, payload: Any) -> RequestReceipt:
        """Execute a service for an account and bill it in one transaction.

        Args:
            account_id: Account to charge
            service_id: Registered adapter id
            payload: Opaque input handed to the adapter

        Returns:
            RequestReceipt with the adapter's data and the new balance

        Raises:
            AdapterNotFound: If service_id is not registered (no transaction is opened)
            AdapterExecutionFailure: If the adapter raises or returns something other
                than an AdapterResult
            AccountNotFound, InsufficientFunds, InvalidUsage,
            LedgerEntryCollision, TransactionConflict: From billing or the store
        """
        trace = _RequestTrace(account_id, service_id)

        adapter = self.registry.lookup(service_id)
        if adapter is None:
            error = AdapterNotFound(service_id)
            trace.abort(error)
            raise error

        def work(tx: TransactionHandle) -> RequestReceipt:
            # The store may re-run this on conflict; restart the trace each time
            trace.state = RequestState.RECEIVED
            trace.advance(RequestState.ADAPTER_EXECUTING)
            try:
                execution = adapter.execute(payload, tx)
            except BillingError:
                raise
            except Exception as e:
                raise AdapterExecutionFailure(service_id, str(e)) from e
            if not isinstance(execution, AdapterResult):
                raise AdapterExecutionFailure(
                    service_id,
                    f"adapter returned {type(execution).__name__}, expected AdapterResult",
                )

            units = execution.estimated_units
            if units is None:
                units = DEFAULT_UNITS

            trace.advance(RequestState.BILLING_RECONCILING)
            balance = self.engine.reconcile(account_id, adapter, units, tx)
            return RequestReceipt(result=execution.data, balance=balance)

        try:
            receipt = self.store.run_transaction(work)
        except Exception as e:
            trace.abort(e)
            raise

        trace.advance(RequestState.COMMITTED)
        trace.log.info("request_committed", balance=receipt.balance)
        return receipt
