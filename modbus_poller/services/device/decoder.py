"""
Register Decoder

Pure conversion of raw 16-bit register words into typed values.
No I/O and no shared state; every function is safe to call from
any task.

Decode failures never raise: a register that cannot be decoded
yields None so the rest of the poll cycle carries on.
"""

import math
import struct
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from modbus_poller.common.config import ByteOrder, DataType
from modbus_poller.common.exceptions import DecodeError
from modbus_poller.common.logging_setup import get_service_logger

logger = get_service_logger("device.decoder")

REGISTER_COUNTS: dict[str, int] = {
    DataType.BOOL: 1,
    DataType.INT16: 1,
    DataType.UINT16: 1,
    DataType.INT32: 2,
    DataType.UINT32: 2,
    DataType.FLOAT32: 2,
    DataType.FLOAT64: 4,
}

# struct format for reading the packed big-endian buffer
_UNPACK_FORMATS: dict[str, str] = {
    DataType.INT32: ">i",
    DataType.UINT32: ">I",
    DataType.FLOAT32: ">f",
    DataType.FLOAT64: ">d",
}


def register_count(data_type: str) -> int:
    """Number of 16-bit words occupied by a data type. Unknown types use 1."""
    try:
        return REGISTER_COUNTS.get(DataType(data_type), 1)
    except ValueError:
        return 1


def _pack_words(words: list[int], byte_order: str, word_order: str) -> bytes:
    """Reassemble words into a big-endian byte buffer"""
    ordered = list(words)
    if word_order == ByteOrder.LITTLE:
        ordered.reverse()

    word_format = "<H" if byte_order == ByteOrder.LITTLE else ">H"
    return b"".join(struct.pack(word_format, w & 0xFFFF) for w in ordered)


def _decode_multi(words: list[int], data_type: str, byte_order: str, word_order: str) -> Any:
    count = REGISTER_COUNTS[data_type]
    if len(words) < count:
        raise DecodeError(
            f"{data_type} needs {count} registers, got {len(words)}",
            data_type=data_type,
        )

    buffer = _pack_words(words[:count], byte_order, word_order)
    try:
        value = struct.unpack(_UNPACK_FORMATS[data_type], buffer)[0]
    except struct.error as e:
        raise DecodeError(str(e), data_type=data_type) from e

    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return None
    return value


def decode(
    words: list[int] | None,
    data_type: str,
    byte_order: str = ByteOrder.BIG,
    word_order: str = ByteOrder.BIG,
) -> bool | int | float | None:
    """
    Convert raw register words to a typed value.

    Args:
        words: Raw 16-bit words (or 0/1 bits for coil/discrete reads)
        data_type: One of the DataType values
        byte_order: Byte order inside each word ("big" | "little")
        word_order: Word order of multi-word values ("big" | "little");
            "little" means the least significant word comes first

    Returns:
        Decoded value, or None when the words cannot be decoded
    """
    if not words:
        return None

    try:
        if data_type == DataType.BOOL:
            return words[0] != 0

        if data_type == DataType.INT16:
            value = words[0] & 0xFFFF
            return value - 0x10000 if value >= 0x8000 else value

        if data_type == DataType.UINT16:
            return words[0] & 0xFFFF

        if data_type in _UNPACK_FORMATS:
            return _decode_multi(list(words), DataType(data_type), byte_order, word_order)

        # Unknown types are returned raw instead of aborting the cycle
        return words[0]

    except (DecodeError, struct.error, TypeError, ValueError, IndexError) as e:
        logger.warning(f"Error decoding {data_type} from {words}: {e}")
        return None


def extract_bit(value: int | None, bit_index: int) -> bool | None:
    """Reduce a 16-bit word to one bit. None for a missing value or bad index."""
    if value is None:
        return None

    if bit_index < 0 or bit_index > 15:
        logger.warning(f"Invalid bit index: {bit_index} (must be 0-15)")
        return None

    return ((int(value) >> bit_index) & 1) == 1


def apply_scale_and_round(value: Any, scale: float = 1, decimals: int = 0) -> Any:
    """
    Multiply by scale and round to `decimals` fractional digits.

    Non-numeric values (None, bool) pass through unchanged.
    """
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
        return value

    if scale != 1:
        value = value * scale

    if isinstance(value, float) and not math.isfinite(value):
        return value

    # Halves round away from zero, not to even
    places = decimals if decimals and decimals > 0 else 0
    rounded = Decimal(str(value)).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
    return float(rounded) if places else int(rounded)


def encode(
    value: bool | int | float,
    data_type: str,
    byte_order: str = ByteOrder.BIG,
    word_order: str = ByteOrder.BIG,
) -> list[int]:
    """
    Convert a typed value to raw register words (inverse of decode).

    Raises:
        DecodeError: value does not fit the data type
    """
    try:
        if data_type == DataType.BOOL:
            return [1 if value else 0]

        if data_type in (DataType.INT16, DataType.UINT16):
            fmt = ">h" if data_type == DataType.INT16 else ">H"
            return [struct.unpack(">H", struct.pack(fmt, int(value)))[0]]

        if data_type in _UNPACK_FORMATS:
            fmt = _UNPACK_FORMATS[DataType(data_type)]
            if data_type in (DataType.INT32, DataType.UINT32):
                value = int(value)
            packed = struct.pack(fmt, value)
        else:
            raise DecodeError(f"Unknown data type: {data_type}", data_type=str(data_type))
    except struct.error as e:
        raise DecodeError(f"{value!r} does not fit {data_type}: {e}", data_type=str(data_type)) from e

    word_format = "<H" if byte_order == ByteOrder.LITTLE else ">H"
    words = [
        struct.unpack(word_format, packed[i:i + 2])[0]
        for i in range(0, len(packed), 2)
    ]
    if word_order == ByteOrder.LITTLE:
        words.reverse()
    return words
