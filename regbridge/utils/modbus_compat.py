"""Helper utilities for invoking pymodbus async clients across API variants."""
from __future__ import annotations

import inspect
from typing import Any, Optional

# pymodbus renamed the per-request unit keyword several times
UNIT_KW_OPTIONS = ('device_id', 'slave', 'unit', 'device', 'unit_id')


def _unit_kw(fn) -> Optional[str]:
    try:
        params = inspect.signature(fn).parameters
    except (TypeError, ValueError):
        return None
    for kw in UNIT_KW_OPTIONS:
        if kw in params:
            return kw
    return None


def call_read_method(client: Any, method_name: str, address: int, count: int, unit: Optional[int]):
    """Call ``client.<method_name>`` as a read; returns what the client returns.

    For async clients the result is an awaitable.
    """
    fn = getattr(client, method_name, None)
    if fn is None:
        raise AttributeError(f"Client does not support {method_name}")
    kw = _unit_kw(fn)
    if unit is not None and kw is not None:
        return fn(address, count=count, **{kw: unit})
    return fn(address, count=count)


def call_write_method(client: Any, method_name: str, address: int, values: Any, unit: Optional[int]):
    fn = getattr(client, method_name, None)
    if fn is None:
        raise AttributeError(f"Client does not support {method_name}")
    kw = _unit_kw(fn)
    if unit is not None and kw is not None:
        return fn(address, values, **{kw: unit})
    return fn(address, values)


def _import_clients():
    """Import the pymodbus async client constructors."""
    from pymodbus.client import AsyncModbusSerialClient, AsyncModbusTcpClient
    return AsyncModbusTcpClient, AsyncModbusSerialClient


def _import_framer_type():
    try:
        from pymodbus import FramerType
    except ImportError:
        from pymodbus.framer import FramerType
    return FramerType


def framer_for(kind: str):
    """Return the pymodbus framer for 'rtu', 'ascii' or 'tcp'."""
    FramerType = _import_framer_type()
    mapping = {
        'rtu': FramerType.RTU,
        'ascii': FramerType.ASCII,
        'tcp': FramerType.SOCKET,
    }
    if kind not in mapping:
        raise ValueError(f'no framer for transport kind "{kind}"')
    return mapping[kind]


def _filter_kwargs(ctor, params: dict) -> dict:
    """Drop parameters the constructor does not accept, and None values.

    Avoids unexpected keyword argument errors across pymodbus versions.
    """
    try:
        sig = inspect.signature(ctor)
        paramspecs = sig.parameters
    except (TypeError, ValueError):
        return {k: v for k, v in params.items() if v is not None}
    if any(p.kind == inspect.Parameter.VAR_KEYWORD for p in paramspecs.values()):
        return {k: v for k, v in params.items() if v is not None}
    allowed = [
        p for p in paramspecs.keys()
        if p != 'self' and paramspecs[p].kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
    ]
    return {k: v for k, v in params.items() if k in allowed and v is not None}


def create_client(kind: str = 'tcp', host: str | None = None, port: int | None = None, serial_port: str | None = None,
                  baudrate: int = 19200, bytesize: int = 8, parity: str = 'N', stopbits: int = 1,
                  timeout: float = 1.0, **kwargs) -> Any:
    """Create and return a pymodbus async client instance in a version-robust way.

    Args:
        kind: 'tcp', 'rtu' or 'ascii'
        host/port: for TCP clients
        serial_port, baudrate, bytesize, parity, stopbits: for serial clients
        timeout: seconds

    Retries and automatic reconnects are disabled; the caller owns that policy.
    """
    AsyncModbusTcpClient, AsyncModbusSerialClient = _import_clients()
    common = {'timeout': timeout, 'retries': 0, 'reconnect_delay': 0}
    common.update(kwargs)

    if kind == 'tcp':
        params = {'host': host, 'port': port}
        params.update(common)
        return AsyncModbusTcpClient(**_filter_kwargs(AsyncModbusTcpClient.__init__, params))

    if kind in ('rtu', 'ascii'):
        params = {
            'port': serial_port,
            'framer': framer_for(kind),
            'baudrate': baudrate,
            'bytesize': bytesize,
            'parity': parity,
            'stopbits': stopbits,
        }
        params.update(common)
        return AsyncModbusSerialClient(**_filter_kwargs(AsyncModbusSerialClient.__init__, params))

    raise ValueError('kind must be "tcp", "rtu" or "ascii"')


async def close_client(client: Any) -> None:
    """Close a pymodbus client; tolerates both sync and async close()."""
    if client is None:
        return
    close = getattr(client, 'close', None)
    if callable(close):
        result = close()
        if inspect.isawaitable(result):
            await result
