"""Tests for the polling service and the command-line entry point."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from modbus_poller import main as cli
from modbus_poller.common.config import load_poller_config
from modbus_poller.services.device.service import PollingService
from modbus_poller.storage.local_db import SnapshotStore

CONFIG = {
    "poll_interval_ms": 20,
    "ports": [
        {
            "name": "bench",
            "connection_type": "SIMULATOR",
            "devices": [
                {
                    "name": "pump1",
                    "slave_id": 4,
                    "save_interval": 50,
                    "registers": [
                        {"key": "Pressure", "category": "parameters", "address": 0,
                         "data_type": "int16", "unit": "bar", "min_value": 0, "max_value": 10},
                    ],
                },
                {"name": "bad", "slave_id": 300},
                {"name": "standby", "slave_id": 5, "is_active": False},
            ],
        },
        {
            "name": "plc",
            "connection_type": "TCP",
            "host": "10.9.9.9",
            "devices": [{"name": "meter", "slave_id": 1}],
        },
        {
            "name": "spare",
            "connection_type": "SIMULATOR",
            "is_active": False,
            "devices": [{"name": "idle", "slave_id": 2}],
        },
    ],
}


def _refusing_tcp_client() -> MagicMock:
    client = MagicMock()
    client.connect = AsyncMock(return_value=False)
    client.connected = False
    return client


@pytest.fixture
def service(tmp_path: Path) -> PollingService:
    config = load_poller_config(CONFIG)
    return PollingService(config=config, store=SnapshotStore(tmp_path / "snapshots.db"))


class TestPollingService:
    """Tests for PollingService."""

    def test_requires_config(self) -> None:
        with pytest.raises(ValueError):
            PollingService()

    @pytest.mark.asyncio
    async def test_unreachable_port_is_skipped(self, service) -> None:
        with patch(
            "modbus_poller.services.device.connection.AsyncModbusTcpClient",
            return_value=_refusing_tcp_client(),
        ):
            started = await service.start_managers()

        assert started == 1
        manager = service.managers["bench_SIMULATOR"]
        # slave_id 300 is rejected, the rest of the port still starts
        assert [d.name for d in manager.devices] == ["pump1"]
        assert manager.is_polling is True

        await asyncio.sleep(0.15)
        status = service.get_status()
        pump = status["bench_SIMULATOR"]["devices"][0]
        assert pump["is_responding"] is True
        assert "Pressure" in pump["data"]["parameters"]

        await service.stop()
        assert service.managers == {}
        assert service.store.collection("pump1").count() >= 1

    @pytest.mark.asyncio
    async def test_inactive_devices_are_not_registered(self, service) -> None:
        with patch(
            "modbus_poller.services.device.connection.AsyncModbusTcpClient",
            return_value=_refusing_tcp_client(),
        ):
            await service.start_managers()

        manager = service.managers["bench_SIMULATOR"]
        assert manager.get_device("standby") is None
        assert all(d.save_timer is not None for d in manager.devices)

        await service.stop()

    @pytest.mark.asyncio
    async def test_start_runs_until_shutdown(self, service) -> None:
        with patch(
            "modbus_poller.services.device.connection.AsyncModbusTcpClient",
            return_value=_refusing_tcp_client(),
        ), patch.object(service, "_setup_signal_handlers"):
            task = asyncio.create_task(service.start())
            await asyncio.sleep(0.05)

            assert service.is_running is True
            assert len(service.managers) == 1

            service.request_shutdown()
            await asyncio.wait_for(task, timeout=2)

        assert service.is_running is False
        assert service.managers == {}

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, service) -> None:
        await service.stop()
        await service.stop()

        assert service.managers == {}


class TestMain:
    """Tests for the command-line entry point."""

    def test_missing_config(self, tmp_path: Path) -> None:
        assert cli.main(["--config", str(tmp_path / "missing.yaml")]) == 1

    def test_dry_run(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(
            "ports:\n"
            "  - name: line1\n"
            "    port: /dev/ttyUSB0\n"
            "    devices:\n"
            "      - name: boiler1\n"
            "        slave_id: 1\n"
            "        registers:\n"
            "          - {key: Level, address: 0, unit: мм}\n",
            encoding="utf-8",
        )

        assert cli.main(["--config", str(path), "--dry-run"]) == 0

        out = capsys.readouterr().out
        assert "line1 [RTU, active]" in out
        assert "boiler1 (ID: 1): 1 registers" in out
        assert "Dry run mode" in out

    def test_runs_service(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("ports: []\n", encoding="utf-8")

        with patch.object(cli, "main_async", new=AsyncMock()) as main_async:
            assert cli.main(["-c", str(path)]) == 0

        main_async.assert_awaited_once()
