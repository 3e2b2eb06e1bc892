"""
Service adapters and the adapter registry.

An adapter is any object with an ``id``, a ``name``, a fixed per-unit price
and an ``execute`` method. Adapters are looked up at request time through
an AdapterRegistry owned by the orchestrator.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol

from ..storage.store import TransactionHandle
from .errors import InvalidUsage
from .pricing import Units


@dataclass(frozen=True)
class AdapterResult:
    """Output of one adapter execution.

    estimated_units may be omitted, in which case one unit is billed.
    """
    data: Any
    estimated_units: Optional[Units] = None


class ServiceAdapter(Protocol):
    """Pluggable unit of work with a fixed per-unit cost."""
    id: str
    name: str

    def get_cost_per_unit(self) -> int: ...

    def execute(self, payload: Any, tx: Optional[TransactionHandle] = None) -> AdapterResult: ...


class AdapterRegistry:
    """Maps service ids to adapters. One registry per orchestrator."""

    def __init__(self, adapters: Optional[List[ServiceAdapter]] = None):
        self._adapters: Dict[str, ServiceAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: ServiceAdapter) -> None:
        """Store the adapter under its id, replacing any previous one."""
        self._adapters[adapter.id] = adapter

    def lookup(self, service_id: str) -> Optional[ServiceAdapter]:
        return self._adapters.get(service_id)

    def ids(self) -> List[str]:
        return sorted(self._adapters)

    def __contains__(self, service_id: str) -> bool:
        return service_id in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)


class _PricedAdapter:
    """Shared id/name/price handling for the bundled adapters."""

    def __init__(self, id: str, name: str, unit_price: int):
        if not id or not id.strip():
            raise ValueError("id is required and cannot be empty")
        if isinstance(unit_price, bool) or not isinstance(unit_price, int) or unit_price < 0:
            raise InvalidUsage(f"unit_price for '{id}' must be a non-negative integer")
        self.id = id
        self.name = name or id
        self._unit_price = unit_price

    def get_cost_per_unit(self) -> int:
        return self._unit_price

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, unit_price={self._unit_price})"


class EchoAdapter(_PricedAdapter):
    """Returns the payload unchanged under an ``echo`` key."""

    def __init__(self, id: str = "echo", name: str = "Echo", unit_price: int = 1,
                 units: Optional[Units] = None):
        super().__init__(id, name, unit_price)
        self.units = units

    def execute(self, payload: Any, tx: Optional[TransactionHandle] = None) -> AdapterResult:
        return AdapterResult(data={"echo": payload}, estimated_units=self.units)


class CallableAdapter(_PricedAdapter):
    """Wraps a plain function ``fn(payload, tx) -> AdapterResult``."""

    def __init__(self, id: str, fn: Callable[[Any, Optional[TransactionHandle]], AdapterResult],
                 unit_price: int, name: Optional[str] = None):
        super().__init__(id, name or id, unit_price)
        self._fn = fn

    def execute(self, payload: Any, tx: Optional[TransactionHandle] = None) -> AdapterResult:
        return self._fn(payload, tx)
