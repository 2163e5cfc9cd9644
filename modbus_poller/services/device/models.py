"""
Device Models

Runtime records shared by the Reader, Poller, Saver and Manager.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypedDict

from modbus_poller.common.config import (
    DEFAULT_RETRIES,
    DEFAULT_SAVE_INTERVAL_MS,
    DEFAULT_TIMEOUT_MS,
    RegisterDefinition,
)
from modbus_poller.common.scheduler import ScheduledLoop


class BooleanValue(TypedDict):
    """Dataset entry for bool registers and bit-extracted flags"""
    value: bool | None


class NumericValue(TypedDict):
    """Dataset entry for numeric registers"""
    value: int | float | None
    unit: str


# category -> register key -> entry
DeviceData = dict[str, dict[str, BooleanValue | NumericValue]]


@dataclass
class Device:
    """
    A polled field device.

    Owned by the Manager. The Poller is the only writer of the
    counters and of `data`; `data` is always replaced as a whole,
    never mutated in place, so the Saver can read it at any time.
    """
    slave_id: int
    name: str
    registers: list[RegisterDefinition] = field(default_factory=list)
    save_interval: int = DEFAULT_SAVE_INTERVAL_MS  # ms
    timeout: int = DEFAULT_TIMEOUT_MS  # ms, per request
    retries: int = DEFAULT_RETRIES
    log_data: bool = False
    is_active: bool = True
    port_is_active: bool = True

    fail_count: int = 0
    last_success: datetime | None = None
    last_error: str | None = None
    last_save: datetime | None = None
    last_retry_attempt: float | None = None  # monotonic seconds
    data: DeviceData = field(default_factory=dict)

    save_timer: ScheduledLoop | None = field(default=None, repr=False)

    @property
    def is_responding(self) -> bool:
        return self.fail_count < self.retries


@dataclass
class ReadResult:
    """Outcome of one register read"""
    success: bool
    key: str
    category: str
    address: int
    data_type: str
    value: Any = None
    unit: str = ""
    min_value: float | None = None
    max_value: float | None = None
    bit_index: int | None = None
    raw_registers: list[int] | None = None
    error: str | None = None

    @property
    def is_boolean(self) -> bool:
        return self.data_type == "bool" or self.bit_index is not None

    def to_entry(self) -> BooleanValue | NumericValue:
        """Dataset entry for this result"""
        if self.is_boolean:
            return BooleanValue(value=self.value)
        return NumericValue(value=self.value, unit=self.unit or "")


@dataclass
class PollOutcome:
    """Outcome of one device poll"""
    success: bool
    device: Device
    results: list[ReadResult] = field(default_factory=list)
    error: str | None = None
    skipped: bool = False
