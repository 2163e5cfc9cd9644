"""
Snapshot Storage

SQLite-backed, one table per device.
"""

from .local_db import DeviceCollection, Snapshot, SnapshotStore

__all__ = ["DeviceCollection", "Snapshot", "SnapshotStore"]
