from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional

import pytest

from regbridge.config import EndpointConfig
from regbridge.core.data_types import RegisterKind
from regbridge.errors import TransportError
from regbridge.transports.base import ModbusTransport


class FakeTransport(ModbusTransport):
    """In-memory transport recording every call.

    ``fail_times`` makes the next N operations raise TransportError.
    ``delay`` suspends inside each operation so concurrent callers would
    interleave if the client did not serialize them.
    """

    def __init__(self, name: str = "fake", registers: Optional[Dict[RegisterKind, Dict[int, int]]] = None,
                 fail_times: int = 0, delay: float = 0.0):
        self.name = name
        self.tables: Dict[RegisterKind, Dict[int, int]] = {kind: {} for kind in RegisterKind}
        for kind, values in (registers or {}).items():
            self.tables[kind].update(values)
        self.fail_times = fail_times
        self.delay = delay
        self.calls: List[tuple] = []
        self.writes: List[tuple] = []
        self.closed = False
        self.close_error: Optional[Exception] = None
        self.active = 0
        self.max_active = 0

    async def connect(self) -> None:
        pass

    async def close(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error

    async def _op(self, name: str, *args):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            self.calls.append((name, self.unit_id) + args)
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail_times > 0:
                self.fail_times -= 1
                raise TransportError(f"{self.name}: {name} failed")
        finally:
            self.active -= 1

    def _read(self, kind: RegisterKind, address: int, count: int):
        table = self.tables[kind]
        return [table.get(address + i, 0) for i in range(count)]

    async def read_coils(self, address, count):
        await self._op("read_coils", address, count)
        return [bool(v) for v in self._read(RegisterKind.COIL, address, count)]

    async def read_discrete_inputs(self, address, count):
        await self._op("read_discrete_inputs", address, count)
        return [bool(v) for v in self._read(RegisterKind.DISCRETE_INPUT, address, count)]

    async def read_registers(self, address, count, kind):
        await self._op("read_registers", address, count, kind)
        return self._read(kind, address, count)

    async def write_coil(self, address, value):
        await self.write_coils(address, [value])

    async def write_coils(self, address, values):
        values = [bool(v) for v in values]
        await self._op("write_coils", address, values)
        self.writes.append((RegisterKind.COIL, address, values, self.unit_id))
        for i, v in enumerate(values):
            self.tables[RegisterKind.COIL][address + i] = v

    async def write_registers(self, address, values):
        values = list(values)
        await self._op("write_registers", address, values)
        self.writes.append((RegisterKind.HOLDING_REGISTER, address, values, self.unit_id))
        for i, v in enumerate(values):
            self.tables[RegisterKind.HOLDING_REGISTER][address + i] = v


class FakeFactory:
    """TransportFactory handing out FakeTransports and counting opens."""

    def __init__(self, make: Optional[Callable[[EndpointConfig], FakeTransport]] = None):
        self._make = make or (lambda config: FakeTransport(config.name))
        self.opened: List[FakeTransport] = []
        self.failing: Dict[str, Exception] = {}

    async def __call__(self, config: EndpointConfig) -> FakeTransport:
        if config.name in self.failing:
            raise self.failing[config.name]
        transport = self._make(config)
        self.opened.append(transport)
        return transport

    @property
    def open_count(self) -> int:
        return sum(1 for t in self.opened if not t.closed)


def make_endpoint(name: str = "dev", server_id: Optional[int] = None, **kwargs) -> EndpointConfig:
    return EndpointConfig(name=name, endpoint="tcp://127.0.0.1:5020", server_id=server_id, **kwargs)


@pytest.fixture
def fake_factory() -> FakeFactory:
    return FakeFactory()
