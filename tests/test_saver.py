"""Tests for periodic snapshot saving."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from modbus_poller.common.exceptions import PersistenceError
from modbus_poller.services.device.saver import Saver
from modbus_poller.storage.local_db import SnapshotStore

LEVEL_DATA = {"parameters": {"Level": {"value": 150, "unit": "мм"}}}


@pytest.fixture
def store(tmp_path: Path) -> SnapshotStore:
    return SnapshotStore(tmp_path / "snapshots.db")


class TestSaveDeviceData:
    """Tests for Saver.save_device_data."""

    @pytest.mark.asyncio
    async def test_writes_snapshot(self, store, make_device) -> None:
        device = make_device(data=LEVEL_DATA)

        assert await Saver(store).save_device_data(device) is True

        rows = store.collection("boiler1").recent()
        assert len(rows) == 1
        assert rows[0]["slave_id"] == 1
        assert rows[0]["data"] == LEVEL_DATA
        assert rows[0]["date"]
        assert rows[0]["timestamp"].endswith("+00:00")
        assert device.last_save is not None

    @pytest.mark.asyncio
    async def test_skips_empty_data(self, store, make_device) -> None:
        device = make_device()

        assert await Saver(store).save_device_data(device) is False
        assert store.collection("boiler1").count() == 0

    @pytest.mark.asyncio
    async def test_skips_unresponsive_device_until_recovery(self, store, make_device) -> None:
        saver = Saver(store)
        device = make_device(data=LEVEL_DATA, fail_count=3, retries=3)

        assert await saver.save_device_data(device) is False

        device.fail_count = 0
        assert await saver.save_device_data(device) is True
        assert store.collection("boiler1").count() == 1

    @pytest.mark.asyncio
    async def test_degraded_device_still_saved(self, store, make_device) -> None:
        device = make_device(data=LEVEL_DATA, fail_count=2, retries=3)

        assert await Saver(store).save_device_data(device) is True

    @pytest.mark.asyncio
    async def test_storage_failure_is_logged_not_raised(self, make_device) -> None:
        collection = MagicMock()
        collection.insert = AsyncMock(side_effect=PersistenceError("disk full", collection="boiler1"))
        store = MagicMock()
        store.collection.return_value = collection
        device = make_device(data=LEVEL_DATA)

        assert await Saver(store).save_device_data(device) is False
        assert device.last_save is None

    @pytest.mark.asyncio
    async def test_unexpected_error_is_logged_not_raised(self, make_device) -> None:
        store = MagicMock()
        store.collection.side_effect = RuntimeError("boom")
        device = make_device(data=LEVEL_DATA)

        assert await Saver(store).save_device_data(device) is False


class TestSaveTimers:
    """Tests for per-device save timers."""

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, store, make_device) -> None:
        saver = Saver(store)
        device = make_device(data=LEVEL_DATA)

        saver.start_device_saving(device)
        timer = device.save_timer
        saver.start_device_saving(device)

        assert device.save_timer is timer
        assert timer.is_running is True

        saver.stop_device_saving(device)
        saver.stop_device_saving(device)

        assert device.save_timer is None
        assert timer.is_running is False

    @pytest.mark.asyncio
    async def test_timer_saves_periodically(self, store, make_device) -> None:
        saver = Saver(store)
        device = make_device(data=LEVEL_DATA, save_interval=50)

        saver.start_device_saving(device)
        # Nothing is written before the first full interval
        await asyncio.sleep(0.01)
        assert store.collection("boiler1").count() == 0

        await asyncio.sleep(0.25)
        saver.stop_all_saving([device])

        assert store.collection("boiler1").count() >= 2

    @pytest.mark.asyncio
    async def test_stop_all(self, store, make_device) -> None:
        saver = Saver(store)
        devices = [make_device(slave_id=1, name="a"), make_device(slave_id=2, name="b")]
        for device in devices:
            saver.start_device_saving(device)

        saver.stop_all_saving(devices)

        assert all(device.save_timer is None for device in devices)
