from .base import ModbusTransport
from .factory import TransportFactory, create_transport, open_transport
from .pymodbus_transport import PymodbusTransport

__all__ = [
    "ModbusTransport",
    "PymodbusTransport",
    "TransportFactory",
    "create_transport",
    "open_transport",
]
