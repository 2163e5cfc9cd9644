"""
Register Reader

Performs one typed read per register definition over a shared
Connection, bounded by an explicit timeout, and decodes the result.

Reads never raise: transport errors and timeouts come back as a
failed ReadResult.
"""

import asyncio

from modbus_poller.common.config import FunctionCode, RegisterDefinition
from modbus_poller.common.exceptions import ReadError, ReadTimeout
from modbus_poller.common.logging_setup import get_service_logger, log_device_read
from .connection import Connection
from .decoder import apply_scale_and_round, decode, extract_bit, register_count
from .models import Device, ReadResult

logger = get_service_logger("device.reader")


class Reader:
    """
    Reads single registers from devices on one connection.

    Sets the connection's active slave address before every request,
    which is only safe because the Poller never issues concurrent
    reads on the same connection.
    """

    # Added to the device timeout so that timeouts raised inside
    # pymodbus win over ours when both fire
    TIMEOUT_MARGIN_MS = 100

    def __init__(self, connection: Connection):
        self.connection = connection

    async def _read_words(self, register: RegisterDefinition, count: int) -> list[int]:
        """Issue the function-code-specific request and return raw words"""
        client = self.connection.client
        if client is None:
            raise ReadError("Not connected", address=register.address)

        slave_id = self.connection.slave_id
        function_code = FunctionCode(register.function_code)

        if function_code == FunctionCode.HOLDING:
            response = await client.read_holding_registers(
                register.address, count=count, device_id=slave_id
            )
        elif function_code == FunctionCode.INPUT:
            response = await client.read_input_registers(
                register.address, count=count, device_id=slave_id
            )
        elif function_code == FunctionCode.COIL:
            response = await client.read_coils(
                register.address, count=count, device_id=slave_id
            )
        else:
            response = await client.read_discrete_inputs(
                register.address, count=count, device_id=slave_id
            )

        if response.isError():
            raise ReadError(
                f"Modbus error: {response}",
                slave_id=slave_id,
                address=register.address,
            )

        if function_code in (FunctionCode.COIL, FunctionCode.DISCRETE):
            bits = getattr(response, "bits", None)
            if not bits:
                raise ReadError("Empty bit response", slave_id=slave_id, address=register.address)
            return [1 if b else 0 for b in bits[:count]]

        registers = getattr(response, "registers", None)
        if not registers:
            raise ReadError("Empty register response", slave_id=slave_id, address=register.address)
        return list(registers[:count])

    async def read_register(self, device: Device, register: RegisterDefinition) -> ReadResult:
        """
        Read and decode one register of one device.

        Args:
            device: Device being polled (supplies slave id and timeout)
            register: Register definition to read

        Returns:
            ReadResult with the decoded value, or with `error` set
        """
        try:
            self.connection.set_timeout(device.timeout)
            self.connection.set_slave_address(device.slave_id)
            count = register_count(register.data_type)

            deadline = (device.timeout + self.TIMEOUT_MARGIN_MS) / 1000
            try:
                words = await asyncio.wait_for(self._read_words(register, count), timeout=deadline)
            except asyncio.TimeoutError:
                raise ReadTimeout(device.name, device.slave_id, register.address)

            value = decode(words, register.data_type, register.byte_order, register.word_order)

            if register.bit_index is not None:
                value = extract_bit(value, register.bit_index)
            else:
                value = apply_scale_and_round(value, register.scale, register.decimals)

            log_device_read(logger, device.name, register.key, value, success=True)

            return ReadResult(
                success=True,
                key=register.key,
                category=register.category,
                address=register.address,
                data_type=register.data_type,
                value=value,
                unit=register.unit or "",
                min_value=register.min_value,
                max_value=register.max_value,
                bit_index=register.bit_index,
                raw_registers=words,
            )

        except Exception as e:
            self._flush()
            error = str(e) or e.__class__.__name__
            log_device_read(logger, device.name, register.key, None, success=False, error=error)

            return ReadResult(
                success=False,
                key=register.key,
                category=register.category,
                address=register.address,
                data_type=register.data_type,
                bit_index=register.bit_index,
                error=error,
            )

    def _flush(self) -> None:
        """Clear transport buffers after an error; flush failures are ignored"""
        try:
            if self.connection.is_connected:
                self.connection.flush()
        except Exception as e:
            logger.debug(f"Ignoring flush error: {e}")
