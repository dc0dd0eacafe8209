"""Build connected Modbus transports from endpoint descriptions.

The URI scheme selects the transport:

    tcp://host:port     Modbus TCP
    rtu:///dev/ttyUSB0  Modbus RTU over a serial line
    ascii:///dev/ttyS0  Modbus ASCII over a serial line

Construction only; retry policy lives in ResilientClient.
"""
from __future__ import annotations

import logging
from typing import Awaitable, Callable

from regbridge.config import RTU, ASCII, TCP, EndpointConfig
from regbridge.errors import ConfigError, TransportError
from regbridge.utils.modbus_compat import create_client

from .base import ModbusTransport
from .pymodbus_transport import PymodbusTransport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[EndpointConfig], Awaitable[ModbusTransport]]


def create_transport(config: EndpointConfig) -> PymodbusTransport:
    """Create an unconnected transport for ``config``."""
    scheme = config.scheme
    if scheme == TCP:
        client = create_client(kind="tcp", host=config.host, port=config.port, timeout=config.timeout)
    elif scheme in (RTU, ASCII):
        client = create_client(
            kind=scheme,
            serial_port=config.device,
            baudrate=config.speed,
            bytesize=config.data_bits,
            parity=config.parity,
            stopbits=config.stop_bits,
            timeout=config.timeout,
        )
    else:
        raise ConfigError(f"Unsupported URI scheme: {config.endpoint}")
    logger.debug("create_transport: %s -> %s", config.name, config.describe())
    return PymodbusTransport(client, description=f"{config.name} ({config.describe()})")


async def open_transport(config: EndpointConfig) -> ModbusTransport:
    """Create and connect a transport; the default TransportFactory.

    Raises:
        ConfigError: unsupported scheme
        TransportError: the transport could not be opened
    """
    transport = create_transport(config)
    try:
        await transport.connect()
    except TransportError:
        await transport.close()
        raise
    return transport
