"""Pytest configuration and fixtures for modbus_poller tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any

import pytest

from modbus_poller.common.config import (
    ConnectionType,
    DataType,
    FunctionCode,
    PortConfig,
    RegisterDefinition,
)
from modbus_poller.services.device.connection import Connection
from modbus_poller.services.device.models import Device
from modbus_poller.services.device.poller import Poller

# Outcome that makes the fake client never answer
HANG = object()


class FakeResponse:
    """Minimal stand-in for a pymodbus read response."""

    def __init__(
        self,
        registers: list[int] | None = None,
        bits: list[bool] | None = None,
        error: bool = False,
    ) -> None:
        self.registers = registers or []
        self.bits = bits or []
        self.error = error

    def isError(self) -> bool:  # noqa: N802 - pymodbus naming
        return self.error

    def __str__(self) -> str:
        return "ExceptionResponse(dev_id=1, function_code=131, exception_code=2)"


class FakeModbusClient:
    """Scripted async Modbus client.

    Outcomes are queued per (table, address). Each read consumes one
    outcome; the last outcome of a queue is repeated forever. An outcome
    is a list of words, a FakeResponse, an exception instance, or HANG.
    """

    HANG = HANG

    def __init__(self) -> None:
        self.responses: dict[tuple[str, int], list[Any]] = {}
        self.calls: list[tuple[str, int, int, int]] = []
        self.connected = True
        self.comm_params = SimpleNamespace(timeout_connect=0.5)

    def queue(self, table: str, address: int, *outcomes: Any) -> None:
        self.responses.setdefault((table, address), []).extend(outcomes)

    async def _respond(self, table: str, address: int, count: int, device_id: int) -> FakeResponse:
        self.calls.append((table, address, count, device_id))
        outcomes = self.responses.get((table, address))
        if not outcomes:
            raise OSError(f"No response from {table}:{address}")

        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if outcome is HANG:
            await asyncio.sleep(3600)
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, FakeResponse):
            return outcome
        if table in ("coil", "discrete"):
            return FakeResponse(bits=[bool(w) for w in outcome])
        return FakeResponse(registers=list(outcome))

    async def read_holding_registers(self, address: int, count: int = 1, device_id: int = 1):
        return await self._respond("holding", address, count, device_id)

    async def read_input_registers(self, address: int, count: int = 1, device_id: int = 1):
        return await self._respond("input", address, count, device_id)

    async def read_coils(self, address: int, count: int = 1, device_id: int = 1):
        return await self._respond("coil", address, count, device_id)

    async def read_discrete_inputs(self, address: int, count: int = 1, device_id: int = 1):
        return await self._respond("discrete", address, count, device_id)

    async def connect(self) -> bool:
        self.connected = True
        return True

    def close(self) -> None:
        self.connected = False


@pytest.fixture
def port_config() -> PortConfig:
    """TCP port used by most tests."""
    return PortConfig(name="test", connection_type=ConnectionType.TCP, host="10.0.0.5")


@pytest.fixture
def fake_client() -> FakeModbusClient:
    return FakeModbusClient()


@pytest.fixture
def connection(port_config: PortConfig, fake_client: FakeModbusClient) -> Connection:
    """Connection already 'open' on the fake client."""
    conn = Connection(port_config)
    conn._client = fake_client
    conn._connected = True
    return conn


@pytest.fixture(autouse=True)
def fast_poller(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop the bus-settle delays so poll cycles run instantly."""
    monkeypatch.setattr(Poller, "INTER_DEVICE_DELAY_S", 0)
    monkeypatch.setattr(Poller, "FAILURE_SETTLE_DELAY_S", 0)
    monkeypatch.setattr(Poller, "ERROR_DELAY_S", 0)


@pytest.fixture
def make_register() -> Callable[..., RegisterDefinition]:
    def _make(key: str = "Level", address: int = 0, **kwargs: Any) -> RegisterDefinition:
        kwargs.setdefault("category", "parameters")
        kwargs.setdefault("function_code", FunctionCode.HOLDING)
        kwargs.setdefault("data_type", DataType.UINT16)
        return RegisterDefinition(key=key, address=address, **kwargs)

    return _make


@pytest.fixture
def make_device(make_register: Callable[..., RegisterDefinition]) -> Callable[..., Device]:
    """Build a Device; defaults to boiler1 with a single Level register."""

    def _make(**kwargs: Any) -> Device:
        kwargs.setdefault("slave_id", 1)
        kwargs.setdefault("name", "boiler1")
        kwargs.setdefault("registers", [make_register(unit="мм")])
        kwargs.setdefault("timeout", 100)
        return Device(**kwargs)

    return _make
