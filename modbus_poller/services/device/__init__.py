"""
Device Service - Modbus Polling

Responsibilities:
- Own one Modbus connection per physical port
- Poll devices register by register on a fixed interval
- Track device responsiveness and back off from silent devices
- Persist per-device snapshots on independent timers
"""

from .connection import Connection, create_connection
from .manager import ModbusManager
from .models import Device, PollOutcome, ReadResult
from .poller import Poller
from .reader import Reader
from .saver import Saver
from .service import PollingService

__all__ = [
    "Connection",
    "create_connection",
    "ModbusManager",
    "Device",
    "PollOutcome",
    "ReadResult",
    "Poller",
    "Reader",
    "Saver",
    "PollingService",
]
