"""
Polling Service

Top-level runtime: loads the configuration, builds one ModbusManager
per active port around a shared SnapshotStore, and keeps everything
running until a shutdown signal arrives.

A port that cannot be opened at startup is logged and skipped; the
remaining ports keep polling.
"""

import asyncio
import signal
from pathlib import Path

from modbus_poller.common.config import PollerConfig, load_config
from modbus_poller.common.exceptions import ModbusConnectionError, ValidationError
from modbus_poller.common.logging_setup import get_service_logger
from modbus_poller.storage.local_db import SnapshotStore
from .manager import ModbusManager

logger = get_service_logger("device.service")


class PollingService:
    """
    Owns every ModbusManager of the process.

    Lifecycle:
        start()  - open ports, register devices, start polling, then
                   wait for SIGINT/SIGTERM
        stop()   - stop polling and saving, close every port
    """

    def __init__(
        self,
        config: PollerConfig | None = None,
        config_path: str | Path | None = None,
        store: SnapshotStore | None = None,
    ):
        if config is None:
            if config_path is None:
                raise ValueError("PollingService needs a config or a config_path")
            config = load_config(config_path)

        self.config = config
        self.store = store or SnapshotStore(config.storage.db_path)
        self.managers: dict[str, ModbusManager] = {}

        self._running = False
        self._shutdown_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    async def start_managers(self) -> int:
        """
        Open each active port and start polling its devices.

        Returns:
            Number of ports that are polling
        """
        for port in self.config.get_active_ports():
            if port.key in self.managers:
                logger.warning(f"Duplicate port {port.key} ignored")
                continue

            manager = ModbusManager(
                port,
                self.store,
                poll_interval_ms=self.config.poll_interval_ms,
            )

            try:
                await manager.connect()
            except ModbusConnectionError as e:
                logger.error(f"Port {port.name} unavailable, skipping: {e}")
                continue

            for spec in port.devices:
                if not spec.is_active:
                    logger.info(f"Device {spec.name or spec.slave_id} is inactive, skipping")
                    continue
                try:
                    manager.add_device(spec)
                except ValidationError as e:
                    logger.error(f"Device {spec.name or spec.slave_id} rejected: {e}")

            manager.start_polling()
            self.managers[port.key] = manager
            logger.info(
                f"Polling {len(manager.devices)} devices on {manager.connection.description}",
                extra={"port": port.key, "device_count": len(manager.devices)},
            )

        return len(self.managers)

    async def start(self) -> None:
        """Start all managers and block until shutdown is requested"""
        logger.info("Starting Polling Service")
        self._running = True

        started = await self.start_managers()
        if not started:
            logger.warning("No port could be started")

        self._setup_signal_handlers()

        await self._shutdown_event.wait()
        await self.stop()

    async def stop(self) -> None:
        """Stop every manager. Idempotent."""
        if not self._running and not self.managers:
            return

        logger.info("Stopping Polling Service")
        self._running = False

        for key, manager in list(self.managers.items()):
            try:
                await manager.disconnect()
            except Exception as e:
                logger.error(f"Error stopping port {key}: {e}")
        self.managers.clear()

        logger.info("Polling Service stopped")

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    def get_status(self) -> dict:
        """Status of every device, grouped by port"""
        return {
            key: {
                "connected": manager.connection.is_connected,
                "polling": manager.is_polling,
                "devices": manager.get_devices_status(),
            }
            for key, manager in self.managers.items()
        }

    def _setup_signal_handlers(self) -> None:
        """Setup graceful shutdown signal handlers"""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._handle_shutdown)
            except NotImplementedError:
                signal.signal(sig, lambda s, f: self._handle_shutdown())

    def _handle_shutdown(self) -> None:
        """Handle shutdown signal"""
        logger.info("Received shutdown signal")
        self._shutdown_event.set()
