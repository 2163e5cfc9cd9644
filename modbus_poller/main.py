#!/usr/bin/env python3
"""
Modbus Poller - Main Entry Point

Loads the YAML configuration and runs the polling service until
interrupted.

Usage:
    modbus-poller                         # Use default config.yaml
    modbus-poller --config my.yaml        # Use custom config file
    modbus-poller --dry-run               # Print config and exit
"""

import argparse
import asyncio
import sys

from modbus_poller import __version__
from modbus_poller.common.config import PollerConfig, load_config
from modbus_poller.common.exceptions import PollerError
from modbus_poller.common.logging_setup import get_service_logger, set_log_level
from modbus_poller.services.device.service import PollingService

logger = get_service_logger("main")


def print_config_summary(config: PollerConfig) -> None:
    """Print a summary of the configuration."""
    print("\n" + "=" * 60)
    print(f"  MODBUS POLLER {__version__}")
    print("=" * 60)

    print(f"\n  Poll interval: {config.poll_interval_ms}ms")
    print(f"  Snapshot database: {config.storage.db_path}")

    print(f"\n  Ports:")
    for port in config.ports:
        state = "active" if port.is_active else "inactive"
        print(f"    - {port.name} [{port.connection_type.value}, {state}]")
        print(f"      timeout {port.timeout}ms, retries {port.retries}")
        for device in port.devices:
            flag = "" if device.is_active else " (inactive)"
            print(
                f"      * {device.name or f'Device_{device.slave_id}'} "
                f"(ID: {device.slave_id}){flag}: "
                f"{len(device.registers)} registers, save every {device.save_interval}ms"
            )

    active = config.get_active_ports()
    print(f"\n  Active ports: {len(active)}/{len(config.ports)}")
    print("=" * 60 + "\n")


async def main_async(config: PollerConfig) -> None:
    """Run the polling service until a shutdown signal arrives"""
    service = PollingService(config=config)
    try:
        await service.start()
    except asyncio.CancelledError:
        logger.info("Poller cancelled")
    finally:
        await service.stop()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Modbus RTU/TCP device poller")
    parser.add_argument(
        "--config", "-c",
        type=str,
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print configuration and exit without polling",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        set_log_level("DEBUG")

    try:
        config = load_config(args.config)
    except PollerError as e:
        logger.error(str(e))
        return 1

    print_config_summary(config)

    if args.dry_run:
        print("Dry run mode - exiting without polling")
        return 0

    logger.info("Starting poller...")
    print("Press Ctrl+C to stop\n")

    try:
        asyncio.run(main_async(config))
    except KeyboardInterrupt:
        print("\nStopped by user")
    return 0


if __name__ == "__main__":
    sys.exit(main())
