"""
Common Utilities

Shared modules used across all services:
- config.py - Configuration dataclasses and YAML loading
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
- scheduler.py - Interval scheduler
- timestamp.py - Timestamp helpers
"""

from .config import (
    PollerConfig,
    PortConfig,
    DeviceSpec,
    RegisterDefinition,
    StorageSettings,
    ConnectionType,
    FunctionCode,
    DataType,
    ByteOrder,
    load_config,
    load_poller_config,
)
from .exceptions import (
    PollerError,
    ConfigError,
    ValidationError,
    DeviceError,
    ModbusConnectionError,
    ReadError,
    ReadTimeout,
    DecodeError,
    PersistenceError,
)
from .logging_setup import (
    setup_logging,
    get_service_logger,
    log_device_read,
    log_device_failure,
    log_device_data,
)

__all__ = [
    # Config
    "PollerConfig",
    "PortConfig",
    "DeviceSpec",
    "RegisterDefinition",
    "StorageSettings",
    "ConnectionType",
    "FunctionCode",
    "DataType",
    "ByteOrder",
    "load_config",
    "load_poller_config",
    # Exceptions
    "PollerError",
    "ConfigError",
    "ValidationError",
    "DeviceError",
    "ModbusConnectionError",
    "ReadError",
    "ReadTimeout",
    "DecodeError",
    "PersistenceError",
    # Logging
    "setup_logging",
    "get_service_logger",
    "log_device_read",
    "log_device_failure",
    "log_device_data",
]
