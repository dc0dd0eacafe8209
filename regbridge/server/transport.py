"""Serve a RegisterStore over Modbus TCP, RTU or ASCII with pymodbus."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pymodbus.constants import ExcCodes
from pymodbus.datastore import ModbusBaseDeviceContext, ModbusServerContext
from pymodbus.server import ModbusSerialServer, ModbusTcpServer

from regbridge.config import TCP, EndpointConfig
from regbridge.core.data_types import RegisterKind
from regbridge.errors import TransportError
from regbridge.utils.modbus_compat import framer_for

from .store import RegisterStore

logger = logging.getLogger(__name__)


_FUNC_TO_KIND = {
    1: RegisterKind.COIL,
    2: RegisterKind.DISCRETE_INPUT,
    3: RegisterKind.HOLDING_REGISTER,
    4: RegisterKind.INPUT_REGISTER,
    5: RegisterKind.COIL,
    6: RegisterKind.HOLDING_REGISTER,
    15: RegisterKind.COIL,
    16: RegisterKind.HOLDING_REGISTER,
    22: RegisterKind.HOLDING_REGISTER,
    23: RegisterKind.HOLDING_REGISTER,
}


class StoreBackedContext(ModbusBaseDeviceContext):
    """Modbus device context that proxies requests into a RegisterStore."""

    def __init__(self, store: RegisterStore):
        super().__init__()
        self._store = store
        self.requests = 0
        self.errors = 0

    async def async_getValues(self, func_code: int, address: int, count: int = 1):
        self.requests += 1
        kind = _FUNC_TO_KIND.get(func_code)
        if kind is None:
            self.errors += 1
            return ExcCodes.ILLEGAL_FUNCTION
        try:
            return await self._store.read(kind, address, count)
        except ValueError:
            self.errors += 1
            logger.debug("illegal read address: func=%s addr=%s count=%s", func_code, address, count)
            return ExcCodes.ILLEGAL_ADDRESS

    async def async_setValues(self, func_code: int, address: int, values):
        self.requests += 1
        kind = _FUNC_TO_KIND.get(func_code)
        if kind is None:
            self.errors += 1
            return ExcCodes.ILLEGAL_FUNCTION
        if not isinstance(values, list):
            values = [values]
        try:
            await self._store.write(kind, address, values)
        except ValueError:
            self.errors += 1
            logger.debug("illegal write address: func=%s addr=%s count=%s", func_code, address, len(values))
            return ExcCodes.ILLEGAL_ADDRESS
        return None


class RegisterServer:
    """One Modbus server endpoint exposing a RegisterStore under its unit id.

    Several RegisterServers may share one store; each keeps its own request
    counters.
    """

    def __init__(self, endpoint: EndpointConfig, store: Optional[RegisterStore] = None):
        self.endpoint = endpoint
        self.store = store if store is not None else RegisterStore()
        self.unit_id = endpoint.server_id if endpoint.server_id is not None else 1
        self._device_context = StoreBackedContext(self.store)
        self._context = ModbusServerContext({self.unit_id: self._device_context}, single=False)
        self._server: Optional[ModbusTcpServer | ModbusSerialServer] = None

    @property
    def name(self) -> str:
        return self.endpoint.name

    @property
    def running(self) -> bool:
        return self._server is not None

    def _build_server(self):
        endpoint = self.endpoint
        if endpoint.scheme == TCP:
            host = endpoint.host or "0.0.0.0"
            logger.info("Starting modbus TCP server %s on %s:%s (unit %s)", self.name, host, endpoint.port, self.unit_id)
            return ModbusTcpServer(self._context, address=(host, endpoint.port))
        logger.info("Starting modbus %s server %s on %s @ %s baud (unit %s)",
                    endpoint.scheme.upper(), self.name, endpoint.device, endpoint.speed, self.unit_id)
        return ModbusSerialServer(
            self._context,
            framer=framer_for(endpoint.scheme),
            port=endpoint.device,
            baudrate=endpoint.speed,
            bytesize=endpoint.data_bits,
            parity=endpoint.parity,
            stopbits=endpoint.stop_bits,
        )

    async def start(self) -> None:
        """Start serving in the background.

        Raises:
            TransportError: the listener could not be opened
        """
        if self._server is not None:
            return
        server = self._build_server()
        try:
            await server.serve_forever(background=True)
        except (RuntimeError, OSError) as e:
            await server.shutdown()
            raise TransportError(f"{self.name}: cannot serve {self.endpoint.describe()}: {e}") from e
        self._server = server

    async def stop(self) -> None:
        if self._server is None:
            return
        logger.info("Stopping modbus server %s", self.name)
        server, self._server = self._server, None
        await server.shutdown()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "unit_id": self.unit_id,
            "requests": self._device_context.requests,
            "errors": self._device_context.errors,
        }
