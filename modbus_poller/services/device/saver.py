"""
Snapshot Saver

Persists each device's last-known dataset on its own schedule.
Every device has an independent ScheduledLoop; the first save
happens one full save_interval after the timer starts.
"""

from modbus_poller.common.exceptions import PollerError
from modbus_poller.common.logging_setup import get_service_logger
from modbus_poller.common.scheduler import ScheduledLoop
from modbus_poller.common.timestamp import format_local, utc_now
from modbus_poller.storage.local_db import Snapshot, SnapshotStore
from .models import Device

logger = get_service_logger("device.saver")


class Saver:
    """Per-device periodic snapshot writer"""

    def __init__(self, store: SnapshotStore):
        self.store = store

    async def save_device_data(self, device: Device) -> bool:
        """
        Write one snapshot of the device's current dataset.

        Skipped when the dataset is empty or the device is flagged
        unresponsive. Storage errors are logged, never raised.

        Returns:
            True if a snapshot was written
        """
        data = device.data
        if not data:
            return False

        if device.fail_count >= device.retries:
            return False

        now = utc_now()
        snapshot = Snapshot(
            slave_id=device.slave_id,
            data=data,
            date=format_local(now),
            timestamp=now,
        )

        try:
            await self.store.collection(device.name).insert(snapshot)
        except PollerError as e:
            logger.error(f"Error saving data for {device.name}: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error saving data for {device.name}: {e}")
            return False

        device.last_save = now
        logger.debug(f"Saved snapshot for {device.name}")
        return True

    def start_device_saving(self, device: Device) -> None:
        """
        Start the device's save timer. No-op if already running.

        Raises:
            RuntimeError: called outside a running event loop
        """
        if device.save_timer is not None:
            return

        async def tick() -> None:
            await self.save_device_data(device)

        timer = ScheduledLoop(device.save_interval / 1000, tick, name=f"{device.name}.save")
        timer.start()
        device.save_timer = timer

    def stop_device_saving(self, device: Device) -> None:
        """Cancel the device's save timer. Idempotent."""
        if device.save_timer is not None:
            device.save_timer.stop()
            device.save_timer = None

    def stop_all_saving(self, devices: list[Device]) -> None:
        for device in devices:
            self.stop_device_saving(device)
