"""Resilient register-access client.

ResilientClient wraps one ModbusTransport. Every operation runs under the
client's lock, applies the unit id, and on a TransportError closes and
rebuilds the transport before trying again, up to MAX_ATTEMPTS attempts.

Unit id policy: the unit passed to a call wins; otherwise the endpoint's
configured ``server_id`` is used; otherwise the transport keeps whatever unit
id it was last given. The unit is applied before every attempt, so a rebuilt
transport always sees it.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar, Union

from regbridge.config import EndpointConfig
from regbridge.core.data_types import (
    REGISTER_KIND_PROPERTIES,
    RegisterKind,
    ValueType,
    is_bit_kind,
)
from regbridge.errors import (
    ClientClosedError,
    RetriesExhaustedError,
    TransportError,
    UnsupportedError,
)
from regbridge.transports.base import ModbusTransport
from regbridge.transports.factory import TransportFactory, open_transport
from regbridge.utils import codec

T = TypeVar("T")
Number = Union[int, float]
Operation = Callable[[ModbusTransport], Awaitable[T]]


def _typed_reader(value_type: ValueType):
    async def reader(self, offset: int, kind: RegisterKind = RegisterKind.HOLDING_REGISTER,
                     unit_id: Optional[int] = None):
        return await self.read_value(value_type, offset, kind, unit_id)

    reader.__name__ = f"read_{value_type.value}"
    reader.__doc__ = f"Read one {value_type.value} value at ``offset``."
    return reader


def _typed_writer(value_type: ValueType):
    async def writer(self, offset: int, value: Number, unit_id: Optional[int] = None) -> None:
        await self.write_value(value_type, offset, value, unit_id)

    writer.__name__ = f"write_{value_type.value}"
    writer.__doc__ = f"Write one {value_type.value} value to the holding registers at ``offset``."
    return writer


class ResilientClient:
    MAX_ATTEMPTS = 3

    def __init__(self, config: EndpointConfig, transport: ModbusTransport,
                 factory: TransportFactory = open_transport):
        self.config = config
        self._transport = transport
        self._factory = factory
        self._lock = asyncio.Lock()
        self._closed = False
        self.reconnects = 0
        self.logger = logging.getLogger(f"regbridge.client.{config.name}")
        self.logger.setLevel(config.level)

    @classmethod
    async def open(cls, config: EndpointConfig, factory: TransportFactory = open_transport) -> "ResilientClient":
        """Build the transport for ``config`` and return a client around it."""
        transport = await factory(config)
        client = cls(config, transport, factory)
        client.logger.info("Opened modbus client %s", config.describe())
        return client

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Close the transport. Closing an already closed client does nothing."""
        async with self._lock:
            if self._closed:
                return
            self._closed = True
            transport = self._transport
        self.logger.info("Closing modbus client")
        await transport.close()

    # --- Retry policy ---

    def _resolve_unit(self, unit_id: Optional[int]) -> Optional[int]:
        if unit_id is not None:
            return unit_id
        return self.config.server_id

    async def _reconnect(self) -> None:
        self.logger.warning("Re-initializing modbus client")
        try:
            await self._transport.close()
        except (TransportError, OSError) as e:
            self.logger.error("failed to close modbus client: %s", e)
        self.reconnects += 1
        self._transport = await self._factory(self.config)

    async def _execute(self, description: str, operation: Operation, unit_id: Optional[int] = None):
        """Run ``operation`` against the transport with bounded retry and reconnect.

        Raises:
            RetriesExhaustedError: every attempt failed
            ClientClosedError: the client was closed
            Any error raised while rebuilding the transport, immediately
        """
        async with self._lock:
            if self._closed:
                raise ClientClosedError(f"{self.name}: client is closed")
            unit = self._resolve_unit(unit_id)
            remaining = self.MAX_ATTEMPTS
            while True:
                if unit is not None:
                    self._transport.set_unit_id(unit)
                try:
                    return await operation(self._transport)
                except TransportError as e:
                    remaining -= 1
                    self.logger.debug("Failed to %s (unit %s): %s", description, unit, e)
                    if remaining <= 0:
                        raise RetriesExhaustedError(description, self.MAX_ATTEMPTS, e) from e
                    await self._reconnect()

    # --- Bits ---

    async def read_coils(self, offset: int, length: int, unit_id: Optional[int] = None) -> List[bool]:
        return await self._execute(
            f"read coils {offset}+{length}",
            lambda t: t.read_coils(offset, length),
            unit_id,
        )

    async def read_coil(self, offset: int, unit_id: Optional[int] = None) -> bool:
        return (await self.read_coils(offset, 1, unit_id))[0]

    async def read_discrete_inputs(self, offset: int, length: int, unit_id: Optional[int] = None) -> List[bool]:
        return await self._execute(
            f"read discrete inputs {offset}+{length}",
            lambda t: t.read_discrete_inputs(offset, length),
            unit_id,
        )

    async def read_discrete_input(self, offset: int, unit_id: Optional[int] = None) -> bool:
        return (await self.read_discrete_inputs(offset, 1, unit_id))[0]

    async def write_coil(self, offset: int, value: bool, unit_id: Optional[int] = None) -> None:
        await self._execute(
            f"write coil {offset}",
            lambda t: t.write_coil(offset, value),
            unit_id,
        )

    async def write_coils(self, offset: int, values: Sequence[bool], unit_id: Optional[int] = None) -> None:
        values = list(values)
        await self._execute(
            f"write coils {offset}+{len(values)}",
            lambda t: t.write_coils(offset, values),
            unit_id,
        )

    # --- Registers ---

    async def _read_registers(self, kind: RegisterKind, offset: int, length: int,
                              unit_id: Optional[int]) -> List[int]:
        if is_bit_kind(kind):
            raise UnsupportedError(f"register read from {REGISTER_KIND_PROPERTIES[kind].label}")
        return await self._execute(
            f"read {kind.value}s {offset}+{length}",
            lambda t: t.read_registers(offset, length, kind),
            unit_id,
        )

    async def read_holding_registers(self, offset: int, length: int, unit_id: Optional[int] = None) -> List[int]:
        return await self._read_registers(RegisterKind.HOLDING_REGISTER, offset, length, unit_id)

    async def read_input_registers(self, offset: int, length: int, unit_id: Optional[int] = None) -> List[int]:
        return await self._read_registers(RegisterKind.INPUT_REGISTER, offset, length, unit_id)

    async def write_holding_registers(self, offset: int, values: Sequence[int],
                                      unit_id: Optional[int] = None) -> None:
        values = list(values)
        await self._execute(
            f"write holding registers {offset}+{len(values)}",
            lambda t: t.write_registers(offset, values),
            unit_id,
        )

    # --- Generic block access ---

    async def read_block(self, kind: RegisterKind, offset: int, length: int,
                         unit_id: Optional[int] = None) -> List[Union[bool, int]]:
        """Read ``length`` coils/inputs/registers of ``kind`` starting at ``offset``."""
        if kind == RegisterKind.COIL:
            return await self.read_coils(offset, length, unit_id)
        if kind == RegisterKind.DISCRETE_INPUT:
            return await self.read_discrete_inputs(offset, length, unit_id)
        return await self._read_registers(kind, offset, length, unit_id)

    async def write_block(self, kind: RegisterKind, offset: int, values: Sequence[Union[bool, int]],
                          unit_id: Optional[int] = None) -> None:
        """Write ``values`` to ``kind``. Read-only kinds raise UnsupportedError."""
        if not REGISTER_KIND_PROPERTIES[kind].writable:
            raise UnsupportedError(f"write to {REGISTER_KIND_PROPERTIES[kind].label}")
        if kind == RegisterKind.COIL:
            await self.write_coils(offset, [bool(v) for v in values], unit_id)
        else:
            await self.write_holding_registers(offset, [int(v) for v in values], unit_id)

    # --- Typed values ---

    async def read_value(self, value_type: ValueType, offset: int,
                         kind: RegisterKind = RegisterKind.HOLDING_REGISTER,
                         unit_id: Optional[int] = None) -> Number:
        count = codec.register_count(value_type)
        regs = await self._read_registers(kind, offset, count, unit_id)
        # 8-bit values are truncated to the low byte; use read_bytes for the high byte
        return codec.decode(regs, value_type, self.config.byte_order, self.config.word_order)

    async def write_value(self, value_type: ValueType, offset: int, value: Number,
                          unit_id: Optional[int] = None) -> None:
        regs = codec.encode(value, value_type, self.config.byte_order, self.config.word_order)
        await self.write_holding_registers(offset, regs, unit_id)

    async def read_bytes(self, offset: int, length: int,
                         kind: RegisterKind = RegisterKind.HOLDING_REGISTER,
                         unit_id: Optional[int] = None) -> bytes:
        """Read ``length`` bytes with the endpoint's byte order applied."""
        regs = await self._read_registers(kind, offset, codec.registers_for_bytes(length), unit_id)
        return codec.registers_to_bytes(regs, self.config.byte_order)[:length]

    async def read_raw_bytes(self, offset: int, length: int,
                             kind: RegisterKind = RegisterKind.HOLDING_REGISTER,
                             unit_id: Optional[int] = None) -> bytes:
        """Read ``length`` bytes exactly as they appear on the wire."""
        regs = await self._read_registers(kind, offset, codec.registers_for_bytes(length), unit_id)
        return codec.registers_to_raw_bytes(regs)[:length]

    async def write_bytes(self, offset: int, data: bytes, unit_id: Optional[int] = None) -> None:
        regs = codec.bytes_to_registers(data, self.config.byte_order)
        await self.write_holding_registers(offset, regs, unit_id)

    read_uint8 = _typed_reader(ValueType.UINT8)
    read_int8 = _typed_reader(ValueType.INT8)
    read_uint16 = _typed_reader(ValueType.UINT16)
    read_int16 = _typed_reader(ValueType.INT16)
    read_uint32 = _typed_reader(ValueType.UINT32)
    read_int32 = _typed_reader(ValueType.INT32)
    read_uint64 = _typed_reader(ValueType.UINT64)
    read_int64 = _typed_reader(ValueType.INT64)
    read_float32 = _typed_reader(ValueType.FLOAT32)
    read_float64 = _typed_reader(ValueType.FLOAT64)

    write_uint8 = _typed_writer(ValueType.UINT8)
    write_int8 = _typed_writer(ValueType.INT8)
    write_uint16 = _typed_writer(ValueType.UINT16)
    write_int16 = _typed_writer(ValueType.INT16)
    write_uint32 = _typed_writer(ValueType.UINT32)
    write_int32 = _typed_writer(ValueType.INT32)
    write_uint64 = _typed_writer(ValueType.UINT64)
    write_int64 = _typed_writer(ValueType.INT64)
    write_float32 = _typed_writer(ValueType.FLOAT32)
    write_float64 = _typed_writer(ValueType.FLOAT64)
