"""
Configuration Dataclasses

Type-safe configuration structures for the poller.
Ports, devices and register definitions are read once at startup
from a YAML file and treated as read-only afterwards.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError


class ConnectionType(str, Enum):
    """Transport used by a port"""
    RTU = "RTU"
    TCP = "TCP"
    TCP_RTU = "TCP_RTU"  # RTU framing over a TCP socket
    SIMULATOR = "SIMULATOR"


class FunctionCode(str, Enum):
    """Read primitive selected by a register definition"""
    HOLDING = "holding"
    INPUT = "input"
    COIL = "coil"
    DISCRETE = "discrete"


class DataType(str, Enum):
    """Register data types"""
    BOOL = "bool"
    INT16 = "int16"
    UINT16 = "uint16"
    INT32 = "int32"
    UINT32 = "uint32"
    FLOAT32 = "float32"
    FLOAT64 = "float64"


class ByteOrder(str, Enum):
    """Byte order inside a word, or word order inside a value"""
    BIG = "big"
    LITTLE = "little"


# Combined orders given as byte_order -> (byte_order, word_order).
# BADC keeps big bytes and reverses the words, CDAB keeps the words and
# swaps the bytes. A bare "LE" byte order is the legacy spelling of DCBA.
COMBINED_ORDERS: dict[str, tuple[ByteOrder, ByteOrder]] = {
    "ABCD": (ByteOrder.BIG, ByteOrder.BIG),
    "DCBA": (ByteOrder.LITTLE, ByteOrder.LITTLE),
    "BADC": (ByteOrder.BIG, ByteOrder.LITTLE),
    "CDAB": (ByteOrder.LITTLE, ByteOrder.BIG),
    "LE": (ByteOrder.LITTLE, ByteOrder.LITTLE),
}

_ORDER_ALIASES = {
    "big": ByteOrder.BIG,
    "be": ByteOrder.BIG,
    "little": ByteOrder.LITTLE,
    "le": ByteOrder.LITTLE,
}

DEFAULT_TIMEOUT_MS = 500
DEFAULT_RETRIES = 3
DEFAULT_SAVE_INTERVAL_MS = 30000
DEFAULT_POLL_INTERVAL_MS = 5000


@dataclass
class RegisterDefinition:
    """Modbus register definition"""
    key: str
    address: int
    category: str = "default"
    function_code: FunctionCode = FunctionCode.HOLDING
    data_type: DataType = DataType.UINT16
    byte_order: ByteOrder = ByteOrder.BIG
    word_order: ByteOrder = ByteOrder.BIG
    scale: float = 1
    decimals: int = 0
    bit_index: int | None = None
    unit: str = ""
    min_value: float | None = None
    max_value: float | None = None


@dataclass
class DeviceSpec:
    """Device entry as configured (input to Manager.add_device)"""
    slave_id: int
    name: str = ""
    registers: list[RegisterDefinition] = field(default_factory=list)
    save_interval: int = DEFAULT_SAVE_INTERVAL_MS
    timeout: int = DEFAULT_TIMEOUT_MS
    retries: int = DEFAULT_RETRIES
    log_data: bool = False
    is_active: bool = True
    port_is_active: bool = True


@dataclass
class PortConfig:
    """Physical port (serial line or TCP endpoint) and its devices"""
    name: str
    connection_type: ConnectionType = ConnectionType.RTU
    # RTU serial settings
    port: str = "COM1"
    baud_rate: int = 9600
    data_bits: int = 8
    stop_bits: int = 1
    parity: str = "none"          # none, even, odd
    # TCP settings
    host: str = "127.0.0.1"
    tcp_port: int = 502
    # Shared request policy
    timeout: int = DEFAULT_TIMEOUT_MS
    retries: int = DEFAULT_RETRIES
    is_active: bool = True
    devices: list[DeviceSpec] = field(default_factory=list)

    @property
    def key(self) -> str:
        """Identity of the physical transport"""
        if self.connection_type in (ConnectionType.TCP, ConnectionType.TCP_RTU):
            return f"{self.host}:{self.tcp_port}_{self.connection_type.value}"
        if self.connection_type == ConnectionType.SIMULATOR:
            return f"{self.name}_{self.connection_type.value}"
        return f"{self.port}_{self.connection_type.value}"


@dataclass
class StorageSettings:
    """Snapshot storage configuration"""
    db_path: str = "./data/snapshots.db"


@dataclass
class PollerConfig:
    """Complete poller configuration"""
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    storage: StorageSettings = field(default_factory=StorageSettings)
    ports: list[PortConfig] = field(default_factory=list)

    def get_active_ports(self) -> list[PortConfig]:
        """Ports that are enabled and have at least one enabled device"""
        return [
            p for p in self.ports
            if p.is_active and any(d.is_active for d in p.devices)
        ]


def parse_orders(byte_order: Any, word_order: Any) -> tuple[ByteOrder, ByteOrder]:
    """
    Resolve byte/word order settings, accepting aliases.

    A combined order (ABCD, DCBA, BADC, CDAB, or the legacy "LE") given
    as the byte order overrides the word order.
    """
    if isinstance(byte_order, str) and byte_order.upper() in COMBINED_ORDERS:
        return COMBINED_ORDERS[byte_order.upper()]

    def _one(value: Any, name: str) -> ByteOrder:
        if value is None:
            return ByteOrder.BIG
        if isinstance(value, ByteOrder):
            return value
        resolved = _ORDER_ALIASES.get(str(value).lower())
        if resolved is None:
            raise ConfigError(f"Invalid {name}: {value!r}")
        return resolved

    return _one(byte_order, "byte_order"), _one(word_order, "word_order")


def _enum(enum_cls: type[Enum], value: Any, what: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ConfigError(f"Invalid {what}: {value!r} (expected one of {allowed})")


def load_register(data: dict) -> RegisterDefinition:
    """Load RegisterDefinition from dictionary"""
    key = data.get("key", data.get("name"))
    if not key:
        raise ConfigError(f"Register without key: {data!r}")
    if "address" not in data:
        raise ConfigError(f"Register {key!r} has no address")

    byte_order, word_order = parse_orders(data.get("byte_order"), data.get("word_order"))

    bit_index = data.get("bit_index")
    if bit_index is not None and not 0 <= int(bit_index) <= 15:
        raise ConfigError(f"Register {key!r}: bit_index must be 0-15, got {bit_index}")

    return RegisterDefinition(
        key=str(key),
        address=int(data["address"]),
        category=data.get("category") or "default",
        function_code=_enum(
            FunctionCode, data.get("function_code", data.get("type", "holding")), "function_code"
        ),
        data_type=_enum(DataType, data.get("data_type", "uint16"), "data_type"),
        byte_order=byte_order,
        word_order=word_order,
        scale=data.get("scale", 1),
        decimals=int(data.get("decimals", 0)),
        bit_index=int(bit_index) if bit_index is not None else None,
        unit=data.get("unit") or "",
        min_value=data.get("min_value"),
        max_value=data.get("max_value"),
    )


def load_device_spec(
    data: dict,
    timeout: int = DEFAULT_TIMEOUT_MS,
    retries: int = DEFAULT_RETRIES,
    port_is_active: bool = True,
) -> DeviceSpec:
    """
    Load DeviceSpec from dictionary.

    Timeout and retries belong to the port and are copied onto the
    device. Register entries may be mappings or RegisterDefinitions.
    """
    if not isinstance(data, dict):
        raise ConfigError(f"Device entry must be a mapping, got {data!r}")
    if "slave_id" not in data:
        raise ConfigError(f"Device without slave_id: {data.get('name', '?')}")

    slave_id = data["slave_id"]
    if isinstance(slave_id, str):
        try:
            slave_id = int(slave_id)
        except ValueError:
            raise ConfigError(f"Device {data.get('name', '?')}: invalid slave_id {slave_id!r}")

    registers = []
    for r in data.get("registers") or []:
        if isinstance(r, RegisterDefinition):
            registers.append(r)
        elif isinstance(r, dict):
            registers.append(load_register(r))
        else:
            raise ConfigError(f"Register entry must be a mapping, got {r!r}")

    return DeviceSpec(
        slave_id=slave_id,
        name=data.get("name") or "",
        registers=registers,
        save_interval=int(data.get("save_interval", DEFAULT_SAVE_INTERVAL_MS)),
        timeout=timeout,
        retries=retries,
        log_data=data.get("log_data", False),
        is_active=data.get("is_active", True),
        port_is_active=port_is_active,
    )


def load_port_config(data: dict) -> PortConfig:
    """Load PortConfig (with its devices) from dictionary"""
    connection_type = _enum(
        ConnectionType, str(data.get("connection_type", "RTU")).upper(), "connection_type"
    )
    timeout = int(data.get("timeout", DEFAULT_TIMEOUT_MS))
    retries = int(data.get("retries", DEFAULT_RETRIES))
    is_active = data.get("is_active", True)

    devices = [
        load_device_spec(d, timeout=timeout, retries=retries, port_is_active=is_active)
        for d in data.get("devices") or []
    ]

    return PortConfig(
        name=data.get("name") or str(data.get("port", data.get("host", ""))),
        connection_type=connection_type,
        port=str(data.get("port", "COM1")),
        baud_rate=int(data.get("baud_rate", 9600)),
        data_bits=int(data.get("data_bits", 8)),
        stop_bits=int(data.get("stop_bits", 1)),
        parity=str(data.get("parity", "none")).lower(),
        host=data.get("host", "127.0.0.1"),
        tcp_port=int(data.get("tcp_port", 502)),
        timeout=timeout,
        retries=retries,
        is_active=is_active,
        devices=devices,
    )


def load_poller_config(data: dict) -> PollerConfig:
    """Load PollerConfig from dictionary (e.g., parsed YAML)"""
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")

    storage_data = data.get("storage") or {}

    return PollerConfig(
        poll_interval_ms=int(data.get("poll_interval_ms", DEFAULT_POLL_INTERVAL_MS)),
        storage=StorageSettings(
            db_path=storage_data.get("db_path", StorageSettings.db_path),
        ),
        ports=[load_port_config(p) for p in data.get("ports") or []],
    )


def load_config(config_path: str | Path) -> PollerConfig:
    """
    Load configuration from YAML file.

    Raises:
        ConfigError: file missing, unreadable, or invalid
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Error loading configuration {config_path}: {e}") from e

    return load_poller_config(data or {})
