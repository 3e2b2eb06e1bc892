"""
Unit tests for service adapters and the adapter registry.
"""

from decimal import Decimal

import pytest

from service_billing.core.adapters import (
    AdapterRegistry,
    AdapterResult,
    CallableAdapter,
    EchoAdapter,
)
from service_billing.core.errors import InvalidUsage


class TestAdapterRegistry:
    """Test adapter registration and lookup."""

    def test_lookup_registered_adapter(self):
        registry = AdapterRegistry()
        adapter = EchoAdapter(id="echo", unit_price=10)
        registry.register(adapter)
        assert registry.lookup("echo") is adapter
        assert "echo" in registry
        assert len(registry) == 1

    def test_lookup_missing_returns_none(self):
        assert AdapterRegistry().lookup("missing") is None

    def test_register_overwrites_same_id(self):
        """Verify re-registering replaces the previous adapter."""
        registry = AdapterRegistry()
        first = EchoAdapter(id="echo", unit_price=10)
        second = EchoAdapter(id="echo", unit_price=20)
        registry.register(first)
        registry.register(second)
        assert registry.lookup("echo") is second
        assert len(registry) == 1

    def test_register_is_idempotent(self):
        registry = AdapterRegistry()
        adapter = EchoAdapter(id="echo", unit_price=10)
        registry.register(adapter)
        registry.register(adapter)
        assert registry.ids() == ["echo"]

    def test_registries_are_independent(self):
        """Verify two registries never share adapters."""
        a = AdapterRegistry([EchoAdapter(id="echo", unit_price=1)])
        b = AdapterRegistry()
        assert "echo" in a
        assert "echo" not in b

    def test_ids_sorted(self):
        registry = AdapterRegistry([
            EchoAdapter(id="zeta", unit_price=1),
            EchoAdapter(id="alpha", unit_price=1),
        ])
        assert registry.ids() == ["alpha", "zeta"]


class TestEchoAdapter:
    """Test the bundled echo adapter."""

    def test_echoes_payload(self):
        adapter = EchoAdapter(id="echo", unit_price=10, units=3)
        result = adapter.execute({"x": 1})
        assert result == AdapterResult(data={"echo": {"x": 1}}, estimated_units=3)

    def test_units_optional(self):
        result = EchoAdapter(id="echo", unit_price=10).execute("hi")
        assert result.estimated_units is None

    def test_cost_per_unit(self):
        assert EchoAdapter(id="echo", unit_price=7).get_cost_per_unit() == 7

    def test_negative_price_rejected(self):
        with pytest.raises(InvalidUsage):
            EchoAdapter(id="echo", unit_price=-1)

    def test_empty_id_rejected(self):
        with pytest.raises(ValueError, match="id is required"):
            EchoAdapter(id="  ", unit_price=1)


class TestCallableAdapter:
    """Test wrapping plain functions as adapters."""

    def test_passes_payload_and_transaction(self):
        seen = []

        def fn(payload, tx):
            seen.append((payload, tx))
            return AdapterResult(data="ok", estimated_units=Decimal("1.5"))

        adapter = CallableAdapter("fn", fn, unit_price=2)
        sentinel = object()
        result = adapter.execute({"a": 1}, sentinel)

        assert result.data == "ok"
        assert seen == [({"a": 1}, sentinel)]
        assert adapter.name == "fn"
