"""Own the endpoint clients and block workers of one bridge configuration."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterator, List, Optional

from regbridge.config import BridgeConfig, EndpointConfig
from regbridge.core.client import ResilientClient
from regbridge.errors import ClientBuildError, ConfigError, RegBridgeError
from regbridge.transports.factory import TransportFactory, open_transport

from .worker import BridgeWorker

logger = logging.getLogger(__name__)


class ClientRegistry:
    """Name -> ResilientClient mapping owned by one supervisor."""

    def __init__(self) -> None:
        self._clients: Dict[str, ResilientClient] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._clients

    def __len__(self) -> int:
        return len(self._clients)

    def __iter__(self) -> Iterator[ResilientClient]:
        return iter(list(self._clients.values()))

    def names(self) -> List[str]:
        return list(self._clients)

    def add(self, client: ResilientClient) -> None:
        if client.name in self._clients:
            raise ConfigError(f"duplicate endpoint name: {client.name}")
        self._clients[client.name] = client

    def get(self, name: str) -> ResilientClient:
        try:
            return self._clients[name]
        except KeyError:
            raise ConfigError(f"endpoint {name} not found") from None

    async def close_all(self) -> List[Exception]:
        """Close and forget every client; returns the errors raised while closing."""
        clients, self._clients = list(self._clients.values()), {}
        errors: List[Exception] = []
        for client in clients:
            try:
                await client.close()
            except (RegBridgeError, OSError) as e:
                logger.error("failed to close client %s: %s", client.name, e)
                errors.append(e)
        return errors


class BridgeSupervisor:
    def __init__(self, factory: TransportFactory = open_transport):
        self._factory = factory
        self.registry = ClientRegistry()
        self.workers: List[BridgeWorker] = []
        self.config: Optional[BridgeConfig] = None
        self.lock = asyncio.Lock()

    async def _build_clients(self, endpoints: List[EndpointConfig]) -> None:
        results = await asyncio.gather(
            *(ResilientClient.open(endpoint, self._factory) for endpoint in endpoints),
            return_exceptions=True,
        )
        errors: List[Exception] = []
        for endpoint, result in zip(endpoints, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error("failed to build client %s: %s", endpoint.name, result)
                errors.append(result)
                continue
            try:
                self.registry.add(result)
            except ConfigError as e:
                errors.append(e)
                await result.close()
        if errors:
            await self.registry.close_all()
            raise ClientBuildError(errors)

    def _validate_blocks(self, config: BridgeConfig) -> None:
        for block in config.blocks:
            block.validate()
            for ref in (block.src, block.dst):
                if ref not in self.registry:
                    raise ConfigError(f"block {block.name}: endpoint {ref} not found")

    async def _shutdown(self) -> List[Exception]:
        workers, self.workers = self.workers, []
        for worker in workers:
            worker.signal_stop()
        errors: List[Exception] = []
        for worker in workers:
            try:
                await worker.wait()
            except Exception as e:
                logger.error("worker %s exited with error: %s", worker.name, e)
                errors.append(e)
        return errors + await self.registry.close_all()

    async def reconfigure(self, config: BridgeConfig) -> None:
        """Replace the running bridge with ``config``.

        Raises:
            ClientBuildError: one or more endpoints could not be opened; no
                client is left open
            ConfigError: a block references an unknown endpoint or has an
                invalid kind mapping; no client is left open
        """
        async with self.lock:
            await self._shutdown()
            self.config = None
            self.registry = ClientRegistry()
            logger.info("Building %d endpoint client(s)", len(config.endpoints))
            await self._build_clients(config.endpoints)
            try:
                self._validate_blocks(config)
            except ConfigError:
                await self.registry.close_all()
                raise
            for block in config.blocks:
                worker = BridgeWorker(
                    block,
                    self.registry.get(block.src),
                    self.registry.get(block.dst),
                    config.interval,
                )
                worker.start()
                self.workers.append(worker)
            self.config = config
            logger.info("Bridge running: %d endpoint(s), %d block(s)", len(self.registry), len(self.workers))

    async def close(self) -> List[Exception]:
        """Stop every worker and close every client. Close errors are returned, not raised."""
        async with self.lock:
            errors = await self._shutdown()
            self.config = None
        if errors:
            logger.warning("Bridge closed with %d error(s)", len(errors))
        else:
            logger.info("Bridge closed")
        return errors

    def get_stats(self) -> Dict[str, Any]:
        workers = [worker.get_stats() for worker in self.workers]
        return {
            "endpoints": self.registry.names(),
            "reconnects": {client.name: client.reconnects for client in self.registry},
            "workers": workers,
            "iterations": sum(w["iterations"] for w in workers),
            "successes": sum(w["successes"] for w in workers),
            "failures": sum(w["read_failures"] + w["write_failures"] for w in workers),
        }
