"""
Device Poller

Drives poll cycles across all devices sharing one connection.

- Devices are polled strictly one after another, registers in order
- A failed first register marks the whole device as failed and skips
  the rest of its registers
- Devices that failed `retries` times in a row are only probed once
  every PROBE_INTERVAL_S until they answer again
- A fresh dataset is built per cycle and swapped onto the device
  only when the cycle is complete
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable

from modbus_poller.common.logging_setup import (
    get_service_logger,
    log_device_data,
    log_device_failure,
)
from .models import Device, DeviceData, PollOutcome, ReadResult
from .reader import Reader

logger = get_service_logger("device.poller")


class Poller:
    """
    Sequential poller for the devices of one connection.

    Device states:
        healthy    fail_count < retries
        degraded   fail_count incrementing
        quiescent  fail_count >= retries, probed every PROBE_INTERVAL_S
    Any successful probe returns the device to healthy.
    """

    PROBE_INTERVAL_S = 60.0
    INTER_DEVICE_DELAY_S = 0.1     # let a shared serial bus settle
    FAILURE_SETTLE_DELAY_S = 0.1   # after a failed first register
    ERROR_DELAY_S = 0.2            # after an unexpected exception

    def __init__(self, reader: Reader, clock: Callable[[], float] = time.monotonic):
        self.reader = reader
        self._clock = clock

    @property
    def connection(self):
        return self.reader.connection

    def _record_failure(self, device: Device, error: str) -> None:
        device.fail_count += 1
        device.last_error = error
        log_device_failure(logger, device.name, device.fail_count, device.retries, error)

    @staticmethod
    def build_data(results: list[ReadResult]) -> DeviceData:
        """Group successful results by category, in read order"""
        data: DeviceData = {}
        for result in results:
            if not result.success:
                continue
            data.setdefault(result.category, {})[result.key] = result.to_entry()
        return data

    async def poll_device(self, device: Device) -> PollOutcome | None:
        """
        Poll every register of one device.

        Returns:
            PollOutcome, or None when the connection is down
        """
        if not self.connection.is_connected:
            logger.warning("No Modbus connection")
            return None

        try:
            results: list[ReadResult] = []

            for index, register in enumerate(device.registers):
                result = await self.reader.read_register(device, register)
                results.append(result)

                if index == 0 and not result.success:
                    self._record_failure(device, result.error or "Unknown error")
                    await asyncio.sleep(self.FAILURE_SETTLE_DELAY_S)
                    return PollOutcome(
                        success=False, device=device, results=results, error=result.error
                    )

            # Swap in the new dataset as a whole; failed reads are simply absent
            device.data = self.build_data(results)

            if device.fail_count > 0:
                logger.info(f"{device.name} - connection restored")

            device.fail_count = 0
            device.last_success = datetime.now(timezone.utc)
            device.last_error = None

            if device.log_data:
                log_device_data(logger, device.name, device.slave_id, device.data)

            return PollOutcome(success=True, device=device, results=results)

        except Exception as e:
            self._record_failure(device, str(e))
            return PollOutcome(success=False, device=device, error=str(e))

    def should_poll(self, device: Device) -> bool:
        """
        Apply the probe-backoff policy.

        Updates last_retry_attempt when a quiescent device is due
        for its probe.
        """
        if not device.is_active or not device.port_is_active:
            return False

        if device.fail_count < device.retries:
            return True

        now = self._clock()
        if (
            device.last_retry_attempt is not None
            and now - device.last_retry_attempt < self.PROBE_INTERVAL_S
        ):
            return False

        device.last_retry_attempt = now
        logger.debug(f"Probing unresponsive device {device.name}")
        return True

    async def poll_all_devices(self, devices: list[Device]) -> None:
        """Run one poll cycle over all devices, in registration order"""
        if not self.connection.is_connected:
            logger.warning("No connection, skipping poll cycle")
            return

        if not devices:
            logger.warning("No devices to poll")
            return

        # Iterate over a copy so add/remove during a cycle is harmless
        for device in list(devices):
            if not device.is_active or not device.port_is_active:
                continue

            if self.should_poll(device):
                try:
                    await self.poll_device(device)
                except Exception as e:
                    device.fail_count += 1
                    device.last_error = str(e)
                    logger.error(f"Unexpected error polling {device.name}: {e}")
                    await asyncio.sleep(self.ERROR_DELAY_S)

            await asyncio.sleep(self.INTER_DEVICE_DELAY_S)
