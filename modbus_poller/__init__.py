"""
Modbus Poller

Polls Modbus RTU/TCP field devices on a fixed interval, keeps the
last-known value of every configured register, and periodically
persists per-device snapshots.
"""

__version__ = "1.0.0"
