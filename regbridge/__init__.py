"""Resilient Modbus register access and endpoint-to-endpoint bridging."""

__version__ = "0.1.0"
