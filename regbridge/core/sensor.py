"""Poll a list of named register blocks from one endpoint."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from regbridge.config import SensorBlock, SensorConfig
from regbridge.core.client import ResilientClient
from regbridge.core.data_types import RegisterKind, ValueType
from regbridge.errors import ClientClosedError
from regbridge.transports.factory import TransportFactory, open_transport

logger = logging.getLogger(__name__)


class BlockSensor:
    def __init__(self, config: SensorConfig, factory: TransportFactory = open_transport):
        self.config = config
        self._factory = factory
        self.client: Optional[ResilientClient] = None

    async def start(self) -> "BlockSensor":
        if self.client is None:
            self.client = await ResilientClient.open(self.config.endpoint, self._factory)
            logger.info("Sensor started on %s with %d block(s)", self.config.endpoint.name, len(self.config.blocks))
        return self

    open = start

    async def close(self) -> None:
        client, self.client = self.client, None
        if client is not None:
            await client.close()

    async def __aenter__(self) -> "BlockSensor":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _read_block(self, block: SensorBlock, results: Dict[str, Any]) -> None:
        client = self.client
        if isinstance(block.type, RegisterKind):
            values = await client.read_block(block.type, block.offset, block.length)
            for i, value in enumerate(values):
                results[f"{block.name}_{i}"] = value
        elif block.type == ValueType.BYTES:
            results[block.name] = (await client.read_bytes(block.offset, block.length)).hex()
        elif block.type == ValueType.RAW_BYTES:
            results[block.name] = (await client.read_raw_bytes(block.offset, block.length)).hex()
        else:
            results[block.name] = await client.read_value(block.type, block.offset)

    async def readings(self) -> Dict[str, Any]:
        """Read every configured block.

        Bit and register blocks yield one ``<name>_<i>`` entry per unit, byte
        blocks a hex string and scalar blocks the decoded number. The first
        failing block aborts the call.
        """
        if self.client is None:
            raise ClientClosedError("sensor is not started")
        results: Dict[str, Any] = {}
        for block in self.config.blocks:
            await self._read_block(block, results)
        return results
