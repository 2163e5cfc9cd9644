"""
Custom Exception Classes for the Modbus Poller

Hierarchical exception structure for error handling across services.
Only configuration, registration and connection errors reach callers;
read, decode and persistence errors are recovered where they occur.
"""


class PollerError(Exception):
    """Base exception for all poller errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class ConfigError(PollerError):
    """Configuration-related errors"""

    def __init__(self, message: str, recoverable: bool = False):
        super().__init__(f"Config Error: {message}", recoverable)


class ValidationError(PollerError):
    """Malformed device spec at registration time"""

    def __init__(self, message: str, slave_id: int | None = None):
        self.slave_id = slave_id
        super().__init__(f"Validation Error: {message}", recoverable=False)


class DeviceError(PollerError):
    """Device communication errors"""

    def __init__(
        self,
        message: str,
        device_name: str | None = None,
        slave_id: int | None = None,
        recoverable: bool = True,
    ):
        self.device_name = device_name
        self.slave_id = slave_id
        super().__init__(message, recoverable)


class ModbusConnectionError(DeviceError):
    """Transport could not be opened"""

    def __init__(
        self,
        message: str,
        host: str | None = None,
        port: int | str | None = None,
    ):
        self.host = host
        self.port = port
        super().__init__(f"Connection Error: {message}", recoverable=False)


class ReadError(DeviceError):
    """Register read failed"""

    def __init__(
        self,
        message: str,
        device_name: str | None = None,
        slave_id: int | None = None,
        address: int | None = None,
    ):
        self.address = address
        super().__init__(message, device_name, slave_id, recoverable=True)


class ReadTimeout(ReadError):
    """Register read did not complete in time"""

    def __init__(
        self,
        device_name: str | None = None,
        slave_id: int | None = None,
        address: int | None = None,
    ):
        super().__init__("Timeout", device_name, slave_id, address)


class DecodeError(PollerError):
    """Raw words could not be converted to the requested type"""

    def __init__(self, message: str, data_type: str | None = None):
        self.data_type = data_type
        super().__init__(f"Decode Error: {message}", recoverable=True)


class PersistenceError(PollerError):
    """Snapshot could not be written to storage"""

    def __init__(self, message: str, collection: str | None = None):
        self.collection = collection
        super().__init__(f"Persistence Error: {message}", recoverable=True)
