"""
Simulated Modbus Connection

Development-mode stand-in for a physical port. Answers reads with
plausible raw words generated from the port's register definitions,
so the whole decode/poll/save pipeline runs without hardware.

Values random-walk between reads: numeric registers drift by up to
5% of their range, booleans flip occasionally.
"""

import asyncio
import random
from dataclasses import dataclass, field

from modbus_poller.common.config import DataType, FunctionCode, PortConfig, RegisterDefinition
from .connection import Connection
from .decoder import encode

# Default value ranges when a register has no usable min/max
DEFAULT_RANGES: dict[str, tuple[float, float]] = {
    DataType.INT16: (-1000, 1000),
    DataType.UINT16: (0, 1000),
    DataType.INT32: (-10000, 10000),
    DataType.UINT32: (0, 10000),
    DataType.FLOAT32: (0, 100),
    DataType.FLOAT64: (0, 100),
}


@dataclass
class SimulatedResponse:
    """Mimics the parts of a pymodbus response the Reader uses"""
    registers: list[int] = field(default_factory=list)
    bits: list[bool] = field(default_factory=list)

    def isError(self) -> bool:  # noqa: N802 - pymodbus naming
        return False


class SimulatedClient:
    """Generates register contents for the definitions of one port"""

    def __init__(self, config: PortConfig, rng: random.Random | None = None):
        self._rng = rng or random.Random()
        self._last_values: dict[tuple[int, str, int, int | None], float | bool] = {}
        self._registers: dict[tuple[int, str, int], RegisterDefinition] = {}
        for device in config.devices:
            for register in device.registers:
                table = FunctionCode(register.function_code).value
                self._registers.setdefault((device.slave_id, table, register.address), register)
        self.connected = False

    async def connect(self) -> bool:
        self.connected = True
        return True

    def close(self) -> None:
        self.connected = False

    def _value_range(self, register: RegisterDefinition) -> tuple[float, float]:
        low, high = DEFAULT_RANGES.get(register.data_type, (0, 100))
        if register.min_value is not None and register.max_value is not None:
            span = register.max_value - register.min_value
            if span > 0.001:
                # Overshoot the bounds now and then so alarms can be exercised
                margin = span * 0.1
                low, high = register.min_value - margin, register.max_value + margin
        if register.data_type in (DataType.UINT16, DataType.UINT32):
            low = max(low, 0)
        return low, high

    def _next_bool(self, key: tuple, flip_chance: float) -> bool:
        last = self._last_values.get(key)
        if last is not None and self._rng.random() > flip_chance:
            return bool(last)
        value = self._rng.random() > 0.5
        self._last_values[key] = value
        return value

    def _next_number(self, key: tuple, register: RegisterDefinition) -> float:
        low, high = self._value_range(register)
        last = self._last_values.get(key)
        if last is not None and self._rng.random() > 0.1:
            change = (high - low) * 0.05 * (self._rng.random() * 2 - 1)
            value = min(high, max(low, float(last) + change))
        else:
            value = low + self._rng.random() * (high - low)
        self._last_values[key] = value
        return value

    def _words_for(self, slave_id: int, table: str, address: int, count: int) -> list[int]:
        register = self._registers.get((slave_id, table, address))
        key = (slave_id, table, address, register.bit_index if register else None)

        if register is None:
            return [self._rng.randrange(0, 1000) for _ in range(count)]

        if register.bit_index is not None:
            bit = self._next_bool(key, 0.3)
            return [(1 << register.bit_index) if bit else 0]

        if register.data_type == DataType.BOOL:
            return [1 if self._next_bool(key, 0.2) else 0]

        value = self._next_number(key, register)
        scale = register.scale or 1
        raw = value / scale
        if register.data_type not in (DataType.FLOAT32, DataType.FLOAT64):
            raw = round(raw)
        return encode(raw, register.data_type, register.byte_order, register.word_order)

    async def _read(self, table: str, address: int, count: int, device_id: int) -> SimulatedResponse:
        # Bus latency
        await asyncio.sleep(self._rng.random() * 0.05 + 0.01)
        if not self.connected:
            raise ConnectionError("Simulator is not connected")
        words = self._words_for(device_id, table, address, count)
        words = (words + [0] * count)[:count]
        if table in (FunctionCode.COIL.value, FunctionCode.DISCRETE.value):
            return SimulatedResponse(bits=[bool(w) for w in words])
        return SimulatedResponse(registers=words)

    async def read_holding_registers(self, address: int, count: int = 1, device_id: int = 1):
        return await self._read(FunctionCode.HOLDING.value, address, count, device_id)

    async def read_input_registers(self, address: int, count: int = 1, device_id: int = 1):
        return await self._read(FunctionCode.INPUT.value, address, count, device_id)

    async def read_coils(self, address: int, count: int = 1, device_id: int = 1):
        return await self._read(FunctionCode.COIL.value, address, count, device_id)

    async def read_discrete_inputs(self, address: int, count: int = 1, device_id: int = 1):
        return await self._read(FunctionCode.DISCRETE.value, address, count, device_id)


class SimulatorConnection(Connection):
    """Connection whose transport is a SimulatedClient"""

    def __init__(self, config: PortConfig, rng: random.Random | None = None):
        super().__init__(config)
        self._rng = rng

    @property
    def description(self) -> str:
        return f"simulator {self.config.name}"

    def _create_client(self) -> SimulatedClient:
        return SimulatedClient(self.config, self._rng)

    def flush(self) -> None:
        pass
