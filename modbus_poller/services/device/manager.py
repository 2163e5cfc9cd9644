"""
Modbus Manager

Composition root for one physical port: owns the device registry and
wires Connection -> Reader -> Poller -> Saver.
"""

import asyncio
from typing import Any

from modbus_poller.common.config import (
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_RETRIES,
    DEFAULT_SAVE_INTERVAL_MS,
    DEFAULT_TIMEOUT_MS,
    DeviceSpec,
    PortConfig,
    load_device_spec,
)
from modbus_poller.common.exceptions import ConfigError, ValidationError
from modbus_poller.common.logging_setup import get_service_logger
from modbus_poller.common.timestamp import to_iso
from modbus_poller.storage.local_db import SnapshotStore
from .connection import Connection, create_connection
from .models import Device, DeviceData
from .poller import Poller
from .reader import Reader
from .saver import Saver

logger = get_service_logger("device.manager")

MIN_SLAVE_ID = 1
MAX_SLAVE_ID = 247


class ModbusManager:
    """
    Lifecycle facade for the devices of one connection.

    Only one poll loop runs per manager. A loop started while the
    previous one is still finishing its cycle waits for it first.
    """

    def __init__(
        self,
        port_config: PortConfig,
        store: SnapshotStore,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        connection: Connection | None = None,
    ):
        self.port_config = port_config
        self.poll_interval_ms = poll_interval_ms

        self.connection = connection or create_connection(port_config)
        self.reader = Reader(self.connection)
        self.poller = Poller(self.reader)
        self.saver = Saver(store)

        self.devices: list[Device] = []

        self.is_polling = False
        self._poll_task: asyncio.Task | None = None
        self._in_cycle = False
        self._generation = 0

    async def connect(self) -> bool:
        """Open the port. Raises ModbusConnectionError on failure."""
        return await self.connection.connect()

    async def disconnect(self) -> None:
        """Stop all scheduled work, then close the port"""
        self.stop_polling()
        self.saver.stop_all_saving(self.devices)
        if self._poll_task is not None:
            # Let an in-flight cycle finish before the transport goes away
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
        await self.connection.disconnect()

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def add_device(self, spec: DeviceSpec | dict[str, Any]) -> Device:
        """
        Register a device and start its save timer.

        A mapping is loaded the way a configured device is, with this
        port's timeout and retries. Must be called from inside the
        running event loop, which owns the save timer.

        Raises:
            ValidationError: malformed mapping, or slave_id outside 1-247
            RuntimeError: no running event loop; nothing is registered
        """
        if isinstance(spec, dict):
            try:
                spec = load_device_spec(
                    spec,
                    timeout=self.port_config.timeout,
                    retries=self.port_config.retries,
                    port_is_active=self.port_config.is_active,
                )
            except (ConfigError, TypeError, ValueError) as e:
                raise ValidationError(f"Invalid device: {e}") from e

        slave_id = spec.slave_id
        if (
            not isinstance(slave_id, int)
            or isinstance(slave_id, bool)
            or not MIN_SLAVE_ID <= slave_id <= MAX_SLAVE_ID
        ):
            raise ValidationError(
                f"slave_id must be between {MIN_SLAVE_ID} and {MAX_SLAVE_ID}, got {slave_id!r}",
                slave_id=slave_id if isinstance(slave_id, int) else None,
            )

        device = Device(
            slave_id=slave_id,
            name=spec.name or f"Device_{slave_id}",
            registers=list(spec.registers),
            save_interval=spec.save_interval or DEFAULT_SAVE_INTERVAL_MS,
            timeout=spec.timeout or DEFAULT_TIMEOUT_MS,
            retries=spec.retries or DEFAULT_RETRIES,
            log_data=spec.log_data,
            is_active=spec.is_active,
            port_is_active=spec.port_is_active,
        )

        self.saver.start_device_saving(device)

        self.devices.append(device)
        logger.info(f"Added device: {device.name} (ID: {slave_id})")
        return device

    def remove_device(self, slave_id: int) -> bool:
        """Stop a device's save timer and drop it from the registry"""
        for index, device in enumerate(self.devices):
            if device.slave_id == slave_id:
                self.devices.pop(index)
                self.saver.stop_device_saving(device)
                logger.info(f"Removed device: {device.name}")
                return True
        return False

    def get_device(self, name: str) -> Device | None:
        return next((d for d in self.devices if d.name == name), None)

    def get_device_data(self, name: str) -> DeviceData | None:
        """Current dataset of a device, by name"""
        device = self.get_device(name)
        return device.data if device else None

    def update_device_status(
        self,
        device_name: str,
        is_active: bool | None = None,
        port_is_active: bool | None = None,
    ) -> bool:
        """Change the activity flags of one device"""
        device = self.get_device(device_name)
        if device is None:
            return False

        if is_active is not None:
            device.is_active = is_active
        if port_is_active is not None:
            device.port_is_active = port_is_active
        logger.info(
            f"Updated device {device_name}: is_active={device.is_active}, "
            f"port_is_active={device.port_is_active}"
        )
        return True

    def update_port_status_for_devices(self, port_is_active: bool) -> int:
        """Set port_is_active on every device of this port; returns changed count"""
        updated = 0
        for device in self.devices:
            if device.port_is_active != port_is_active:
                device.port_is_active = port_is_active
                updated += 1
        if updated:
            logger.info(f"Updated port state for {updated} devices: port_is_active={port_is_active}")
        return updated

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def start_polling(self) -> None:
        """Launch the poll loop. No-op if already polling."""
        if self.is_polling:
            return

        self.is_polling = True
        self._generation += 1
        previous = self._poll_task
        self._poll_task = asyncio.create_task(
            self._poll_loop(self._generation, previous),
            name=f"poll:{self.port_config.name}",
        )

    def stop_polling(self) -> None:
        """
        Prevent any further cycle from starting.

        A cycle already running is allowed to complete; a loop that is
        only waiting for its next cycle is cancelled.
        """
        self.is_polling = False
        if self._poll_task is not None and not self._in_cycle:
            self._poll_task.cancel()

    async def _poll_loop(self, generation: int, previous: asyncio.Task | None) -> None:
        if previous is not None and not previous.done():
            try:
                await asyncio.shield(previous)
            except asyncio.CancelledError:
                if not previous.cancelled():
                    raise

        while self.is_polling and generation == self._generation:
            self._in_cycle = True
            try:
                await self.poller.poll_all_devices(self.devices)
            except Exception as e:
                logger.error(f"Poll cycle error: {e}")
            finally:
                self._in_cycle = False

            if not self.is_polling or generation != self._generation:
                break
            await asyncio.sleep(self.poll_interval_ms / 1000)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_devices_status(self) -> list[dict[str, Any]]:
        """Read-only status projection of every device"""
        return [
            {
                "slave_id": device.slave_id,
                "name": device.name,
                "fail_count": device.fail_count,
                "last_success": to_iso(device.last_success),
                "last_error": device.last_error,
                "is_responding": device.is_responding,
                "data": device.data,
            }
            for device in self.devices
        ]
