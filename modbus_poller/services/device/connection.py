"""
Modbus Connection

Owns exactly one physical transport (serial port or TCP socket)
shared by every device on that port.

Only one request may be in flight per connection (the bus is
half-duplex). The connection does not lock: the single poll task
that drives it guarantees sequential access.
"""

from pymodbus import FramerType
from pymodbus.client import AsyncModbusSerialClient, AsyncModbusTcpClient

from modbus_poller.common.config import ConnectionType, PortConfig
from modbus_poller.common.exceptions import ModbusConnectionError
from modbus_poller.common.logging_setup import get_service_logger

logger = get_service_logger("device.connection")

# pymodbus parity codes
PARITY_CODES = {
    "none": "N",
    "n": "N",
    "even": "E",
    "e": "E",
    "odd": "O",
    "o": "O",
}


class Connection:
    """
    Async Modbus master connection (RTU serial, TCP, or RTU over TCP).

    Exposes the pymodbus client as `client` and the active slave
    address as `slave_id`; both are used by the Reader.
    """

    def __init__(self, config: PortConfig):
        self.config = config
        self.connection_type = config.connection_type
        self.timeout_ms = config.timeout
        self.slave_id = 1

        self._client: AsyncModbusSerialClient | AsyncModbusTcpClient | None = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected and self._client is not None

    @property
    def client(self) -> AsyncModbusSerialClient | AsyncModbusTcpClient | None:
        """Underlying pymodbus client (None while disconnected)"""
        return self._client

    @property
    def description(self) -> str:
        if self.connection_type == ConnectionType.RTU:
            return f"{self.config.port} ({self.config.baud_rate} baud, Modbus RTU)"
        if self.connection_type == ConnectionType.TCP_RTU:
            return f"{self.config.host}:{self.config.tcp_port} (Modbus RTU over TCP)"
        return f"{self.config.host}:{self.config.tcp_port} (Modbus TCP)"

    def set_slave_address(self, slave_id: int) -> None:
        """Select the device addressed by the next request"""
        self.slave_id = slave_id

    def set_timeout(self, timeout_ms: int) -> None:
        """Set the response timeout used by the client for the next request"""
        self.timeout_ms = timeout_ms
        # pymodbus waits comm_params.timeout_connect for every response
        comm_params = getattr(self._client, "comm_params", None)
        if comm_params is not None:
            comm_params.timeout_connect = timeout_ms / 1000

    def _create_client(self) -> AsyncModbusSerialClient | AsyncModbusTcpClient:
        timeout_s = self.config.timeout / 1000

        if self.connection_type == ConnectionType.RTU:
            parity = PARITY_CODES.get(self.config.parity.lower())
            if parity is None:
                raise ModbusConnectionError(
                    f"Unknown parity: {self.config.parity}",
                    port=self.config.port,
                )
            return AsyncModbusSerialClient(
                port=self.config.port,
                baudrate=self.config.baud_rate,
                bytesize=self.config.data_bits,
                parity=parity,
                stopbits=self.config.stop_bits,
                timeout=timeout_s,
                retries=0,
            )

        if self.connection_type == ConnectionType.TCP:
            return AsyncModbusTcpClient(
                host=self.config.host,
                port=self.config.tcp_port,
                timeout=timeout_s,
                retries=0,
            )

        if self.connection_type == ConnectionType.TCP_RTU:
            return AsyncModbusTcpClient(
                host=self.config.host,
                port=self.config.tcp_port,
                framer=FramerType.RTU,
                timeout=timeout_s,
                retries=0,
            )

        raise ModbusConnectionError(f"Unknown connection type: {self.connection_type}")

    async def connect(self) -> bool:
        """
        Open the transport.

        Raises:
            ModbusConnectionError: transport could not be opened
        """
        if self.is_connected:
            return True

        self._client = self._create_client()

        try:
            await self._client.connect()
        except Exception as e:
            self._client = None
            self._connected = False
            logger.error(f"Connection error to {self.description}: {e}")
            raise ModbusConnectionError(
                str(e), host=self.config.host, port=self.config.port
            ) from e

        if not self._client.connected:
            self._client = None
            self._connected = False
            raise ModbusConnectionError(
                f"Failed to connect to {self.description}",
                host=self.config.host,
                port=self.config.port,
            )

        self.set_timeout(self.config.timeout)
        self._connected = True
        logger.info(f"Connected to {self.description}")
        return True

    async def disconnect(self) -> None:
        """Close the transport. Idempotent, never raises."""
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.warning(f"Error closing {self.description}: {e}")
            self._client = None
        if self._connected:
            logger.info(f"Disconnected from {self.description}")
        self._connected = False

    def flush(self) -> None:
        """Discard pending input after a failed request (best effort)"""
        transport = getattr(self._client, "transport", None)
        serial = getattr(transport, "sync_serial", None)
        if serial is not None:
            serial.reset_input_buffer()


def create_connection(config: PortConfig) -> Connection:
    """Build the connection matching a port's connection type"""
    if config.connection_type == ConnectionType.SIMULATOR:
        from .simulator import SimulatorConnection
        return SimulatorConnection(config)
    return Connection(config)
