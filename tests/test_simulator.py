"""Tests for the simulated connection."""

from __future__ import annotations

import random

import pytest

from modbus_poller.common.config import (
    ByteOrder,
    ConnectionType,
    DataType,
    DeviceSpec,
    FunctionCode,
    PortConfig,
    RegisterDefinition,
)
from modbus_poller.services.device.models import Device
from modbus_poller.services.device.poller import Poller
from modbus_poller.services.device.reader import Reader
from modbus_poller.services.device.simulator import SimulatorConnection

REGISTERS = [
    RegisterDefinition(
        key="Temperature",
        address=10,
        category="parameters",
        function_code=FunctionCode.INPUT,
        data_type=DataType.FLOAT32,
        word_order=ByteOrder.LITTLE,
        decimals=1,
        unit="°C",
        min_value=20,
        max_value=80,
    ),
    RegisterDefinition(
        key="Pressure",
        address=0,
        category="parameters",
        data_type=DataType.INT16,
        scale=0.1,
        decimals=1,
        unit="bar",
        min_value=0,
        max_value=10,
    ),
    RegisterDefinition(
        key="Running",
        address=0,
        category="status",
        function_code=FunctionCode.COIL,
        data_type=DataType.BOOL,
    ),
    RegisterDefinition(key="Alarm", address=5, category="status", bit_index=2),
]


@pytest.fixture
def simulator() -> SimulatorConnection:
    config = PortConfig(
        name="bench",
        connection_type=ConnectionType.SIMULATOR,
        devices=[DeviceSpec(slave_id=4, name="pump1", registers=REGISTERS)],
    )
    return SimulatorConnection(config, rng=random.Random(7))


class TestSimulatorConnection:
    """Tests for SimulatorConnection."""

    @pytest.mark.asyncio
    async def test_connect_and_disconnect(self, simulator) -> None:
        assert await simulator.connect() is True
        assert simulator.is_connected is True
        assert simulator.description == "simulator bench"

        await simulator.disconnect()

        assert simulator.is_connected is False

    @pytest.mark.asyncio
    async def test_full_poll_produces_values_within_bounds(self, simulator) -> None:
        await simulator.connect()
        poller = Poller(Reader(simulator))
        device = Device(slave_id=4, name="pump1", registers=REGISTERS)

        for _ in range(5):
            outcome = await poller.poll_device(device)
            assert outcome.success is True

            temperature = device.data["parameters"]["Temperature"]
            # Bounds are widened by 10% of the span
            assert 14 <= temperature["value"] <= 86
            assert temperature["unit"] == "°C"

            pressure = device.data["parameters"]["Pressure"]["value"]
            assert -1.1 <= pressure <= 11.1

            assert isinstance(device.data["status"]["Running"]["value"], bool)
            assert isinstance(device.data["status"]["Alarm"]["value"], bool)

        await simulator.disconnect()

    @pytest.mark.asyncio
    async def test_unknown_register_still_answers(self, simulator) -> None:
        await simulator.connect()

        response = await simulator.client.read_holding_registers(300, count=2, device_id=9)

        assert len(response.registers) == 2
        assert response.isError() is False

    @pytest.mark.asyncio
    async def test_read_after_close_fails(self, simulator) -> None:
        await simulator.connect()
        client = simulator.client
        client.close()

        with pytest.raises(ConnectionError):
            await client.read_coils(0, count=1, device_id=4)
