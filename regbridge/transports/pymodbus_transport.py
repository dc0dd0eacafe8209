"""ModbusTransport backed by a pymodbus async client (TCP, RTU or ASCII)."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Sequence

from pymodbus.exceptions import ModbusException

from regbridge.core.data_types import REGISTER_KIND_PROPERTIES, RegisterKind
from regbridge.errors import TransportError, describe_modbus_response
from regbridge.utils import modbus_compat as mc

from .base import ModbusTransport

logger = logging.getLogger(__name__)


class PymodbusTransport(ModbusTransport):
    def __init__(self, client: Any, description: str, unit_id: Optional[int] = None):
        self._client = client
        self.description = description
        self.unit_id = unit_id

    @property
    def connected(self) -> bool:
        return bool(getattr(self._client, "connected", False))

    async def connect(self) -> None:
        logger.debug("Connecting to %s", self.description)
        try:
            ok = await self._client.connect()
        except (ModbusException, OSError, asyncio.TimeoutError) as e:
            raise TransportError(f"{self.description}: connect failed: {e}") from e
        if not ok:
            raise TransportError(f"{self.description}: unable to connect")
        logger.debug("Connected to %s", self.description)

    async def close(self) -> None:
        await mc.close_client(self._client)
        logger.debug("Closed %s", self.description)

    async def _request(self, awaitable_factory, what: str):
        try:
            rr = await awaitable_factory()
        except (ModbusException, OSError, asyncio.TimeoutError) as e:
            raise TransportError(f"{self.description}: {what} failed: {e}") from e
        if rr is None or (hasattr(rr, "isError") and rr.isError()):
            raise TransportError(f"{self.description}: {what} failed: {describe_modbus_response(rr)}")
        return rr

    async def _read(self, method_name: str, address: int, count: int):
        return await self._request(
            lambda: mc.call_read_method(self._client, method_name, address, count, self.unit_id),
            f"{method_name}({address}, {count})",
        )

    async def _write(self, method_name: str, address: int, values: Any):
        return await self._request(
            lambda: mc.call_write_method(self._client, method_name, address, values, self.unit_id),
            f"{method_name}({address})",
        )

    async def read_coils(self, address: int, count: int) -> List[bool]:
        rr = await self._read("read_coils", address, count)
        # pymodbus pads bits to a multiple of 8
        return [bool(b) for b in rr.bits[:count]]

    async def read_discrete_inputs(self, address: int, count: int) -> List[bool]:
        rr = await self._read("read_discrete_inputs", address, count)
        return [bool(b) for b in rr.bits[:count]]

    async def read_registers(self, address: int, count: int, kind: RegisterKind) -> List[int]:
        props = REGISTER_KIND_PROPERTIES[kind]
        if props.bit_based:
            raise ValueError(f"{props.label} are not registers")
        rr = await self._read(props.pymodbus_read_method, address, count)
        return list(rr.registers[:count])

    async def write_coil(self, address: int, value: bool) -> None:
        await self._write("write_coil", address, bool(value))

    async def write_coils(self, address: int, values: Sequence[bool]) -> None:
        await self._write("write_coils", address, [bool(v) for v in values])

    async def write_registers(self, address: int, values: Sequence[int]) -> None:
        await self._write("write_registers", address, [int(v) & 0xFFFF for v in values])
