"""
Configuration management and loading.

Handles store, logging and adapter settings from a YAML file.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from ..core.adapters import AdapterRegistry, EchoAdapter
from ..sdk.openai_client import OpenAIChatAdapter
from ..storage.paths import KeyPaths
from ..storage.store import (
    DEFAULT_MAX_ATTEMPTS,
    BaseDocumentStore,
    InMemoryDocumentStore,
    SQLiteDocumentStore,
)


class StoreBackend(Enum):
    """Supported document store backends."""
    SQLITE = "sqlite"
    MEMORY = "memory"


class AdapterKind(Enum):
    """Adapters that can be declared in configuration."""
    ECHO = "echo"
    OPENAI_CHAT = "openai_chat"


@dataclass(frozen=True)
class StoreConfig:
    """Where documents live and how hard to retry conflicts."""
    backend: StoreBackend = StoreBackend.SQLITE
    path: str = "service_billing.db"
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    def __post_init__(self):
        """Validate retry budget is positive."""
        if self.max_attempts < 1:
            raise ValueError("store.max_attempts must be >= 1")


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    json: bool = False


@dataclass(frozen=True)
class AdapterConfig:
    """One configured service adapter."""
    kind: AdapterKind
    unit_price: int
    name: Optional[str] = None
    units: Optional[Union[int, Decimal]] = None
    model: Optional[str] = None

    def __post_init__(self):
        """Validate adapter values."""
        if self.unit_price < 0:
            raise ValueError("unit_price must be >= 0")
        if self.kind == AdapterKind.OPENAI_CHAT and not self.model:
            raise ValueError("openai_chat adapters require a model")


@dataclass(frozen=True)
class BillingConfig:
    """Complete service billing configuration."""
    store: StoreConfig = field(default_factory=StoreConfig)
    namespace: str = ""
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    adapters: Dict[str, AdapterConfig] = field(default_factory=dict)

    @property
    def paths(self) -> KeyPaths:
        return KeyPaths(self.namespace)


_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def load_billing_config(path: str) -> BillingConfig:
    """Load and validate billing configuration from YAML file.

    Strict validation ensures no silent misconfigurations such as a typo'd
    price key that would bill every request at zero.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated BillingConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Billing config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a mapping")

    allowed_top_keys = {'store', 'namespace', 'logging', 'adapters'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    namespace = raw_config.get('namespace') or ""
    if not isinstance(namespace, str):
        raise ValueError("'namespace' must be a string")

    adapters_data = raw_config.get('adapters') or {}
    if not isinstance(adapters_data, dict):
        raise ValueError("'adapters' must be a dictionary")

    adapters = {}
    for adapter_id, adapter_data in adapters_data.items():
        if not isinstance(adapter_data, dict):
            raise ValueError(f"Adapter '{adapter_id}' must be a dictionary")
        adapters[str(adapter_id)] = _parse_adapter_config(adapter_data, f"adapters.{adapter_id}")

    return BillingConfig(
        store=_parse_store_config(raw_config.get('store') or {}),
        namespace=namespace,
        logging=_parse_logging_config(raw_config.get('logging') or {}),
        adapters=adapters,
    )


def _check_keys(data: Any, allowed: set, path: str) -> None:
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _parse_store_config(data: Dict) -> StoreConfig:
    _check_keys(data, {'backend', 'path', 'max_attempts'}, "store")

    backend_str = data.get('backend', StoreBackend.SQLITE.value)
    try:
        backend = StoreBackend(str(backend_str).lower())
    except ValueError:
        valid = [b.value for b in StoreBackend]
        raise ValueError(f"'store.backend' must be one of: {valid}")

    db_path = data.get('path', StoreConfig.path)
    if not isinstance(db_path, str) or not db_path.strip():
        raise ValueError("'store.path' must be a non-empty string")

    max_attempts = data.get('max_attempts', DEFAULT_MAX_ATTEMPTS)
    if isinstance(max_attempts, bool) or not isinstance(max_attempts, int):
        raise ValueError("'store.max_attempts' must be an integer")

    return StoreConfig(backend=backend, path=db_path, max_attempts=max_attempts)


def _parse_logging_config(data: Dict) -> LoggingConfig:
    _check_keys(data, {'level', 'json'}, "logging")

    level = str(data.get('level', 'INFO')).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"'logging.level' must be one of: {sorted(_LOG_LEVELS)}")

    as_json = data.get('json', False)
    if not isinstance(as_json, bool):
        raise ValueError("'logging.json' must be true or false")

    return LoggingConfig(level=level, json=as_json)


def _parse_adapter_config(data: Dict, path: str) -> AdapterConfig:
    """Parse and validate one adapter entry.

    Args:
        data: Adapter configuration data
        path: Path for error messages

    Returns:
        Validated AdapterConfig

    Raises:
        ValueError: If configuration is invalid
    """
    _check_keys(data, {'kind', 'name', 'unit_price', 'units', 'model'}, path)

    if 'kind' not in data:
        raise ValueError(f"Missing required 'kind' in {path}")
    try:
        kind = AdapterKind(str(data['kind']).lower())
    except ValueError:
        valid_kinds = [k.value for k in AdapterKind]
        raise ValueError(f"'kind' in {path} must be one of: {valid_kinds}")

    if 'unit_price' not in data:
        raise ValueError(f"Missing required 'unit_price' in {path}")
    unit_price = data['unit_price']
    # Prices are whole minor units
    if isinstance(unit_price, bool) or not isinstance(unit_price, int) or unit_price < 0:
        raise ValueError(f"'unit_price' in {path} must be a non-negative integer (minor units)")

    units = data.get('units')
    if units is not None:
        if isinstance(units, bool) or not isinstance(units, (int, float, str)):
            raise ValueError(f"'units' in {path} must be a number")
        if not isinstance(units, int):
            try:
                units = Decimal(str(units))
            except ArithmeticError:
                raise ValueError(f"'units' in {path} must be a number")
            if not units.is_finite():
                raise ValueError(f"'units' in {path} must be finite")
        if not (units >= 0):
            raise ValueError(f"'units' in {path} must be >= 0")

    name = data.get('name')
    if name is not None and not isinstance(name, str):
        raise ValueError(f"'name' in {path} must be a string")

    model = data.get('model')
    if kind == AdapterKind.OPENAI_CHAT and (not isinstance(model, str) or not model.strip()):
        raise ValueError(f"Missing required 'model' in {path}")

    return AdapterConfig(kind=kind, unit_price=unit_price, name=name, units=units, model=model)


def build_store(config: BillingConfig) -> BaseDocumentStore:
    """Create the document store described by config."""
    if config.store.backend == StoreBackend.MEMORY:
        return InMemoryDocumentStore(max_attempts=config.store.max_attempts)
    return SQLiteDocumentStore(config.store.path, max_attempts=config.store.max_attempts)


def build_registry(config: BillingConfig) -> AdapterRegistry:
    """Instantiate every configured adapter into a fresh registry."""
    registry = AdapterRegistry()
    for adapter_id, adapter_config in config.adapters.items():
        if adapter_config.kind == AdapterKind.OPENAI_CHAT:
            adapter = OpenAIChatAdapter(
                id=adapter_id,
                model=adapter_config.model,
                unit_price=adapter_config.unit_price,
                name=adapter_config.name,
            )
        else:
            adapter = EchoAdapter(
                id=adapter_id,
                name=adapter_config.name or adapter_id,
                unit_price=adapter_config.unit_price,
                units=adapter_config.units,
            )
        registry.register(adapter)
    return registry


def default_config() -> BillingConfig:
    """Configuration used when no file is given: SQLite store plus an echo adapter."""
    return BillingConfig(
        adapters={"echo": AdapterConfig(kind=AdapterKind.ECHO, unit_price=1, name="Echo")},
    )
