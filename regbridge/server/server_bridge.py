"""Expose one shared RegisterStore through several server endpoints."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from regbridge.config import ServerConfig
from regbridge.errors import RegBridgeError, ServerStartError

from .store import RegisterStore, resolve_data_dir
from .transport import RegisterServer

logger = logging.getLogger(__name__)


class ServerBridge:
    """Every configured endpoint serves the same tables, so a write through
    one endpoint is visible to reads through all the others.

    With ``persist_data`` enabled the store is loaded from the data
    directory on start and saved back on stop.
    """

    def __init__(self, config: ServerConfig, store: Optional[RegisterStore] = None):
        self.config = config
        self.store = store if store is not None else RegisterStore()
        self.servers: Dict[str, RegisterServer] = {}
        self._data_dir: Optional[Path] = None
        self.lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return bool(self.servers)

    async def _stop_servers(self) -> List[Exception]:
        servers, self.servers = list(self.servers.values()), {}
        logger.info("Stopping %d server(s)", len(servers))
        errors: List[Exception] = []
        for server in servers:
            try:
                await server.stop()
            except (RegBridgeError, RuntimeError, OSError) as e:
                logger.error("failed to stop server %s: %s", server.name, e)
                errors.append(e)
        return errors

    async def start(self) -> None:
        """Load persisted data (when enabled) and start every endpoint.

        Raises:
            ConfigError: the configuration is invalid, or persistence is
                enabled but no data directory resolves
            ServerStartError: one or more endpoints failed to start; none is
                left running
        """
        async with self.lock:
            await self._stop_servers()
            self.config.validate()
            if self.config.persist_data:
                self._data_dir = resolve_data_dir(self.config.data_dir)
                await self.store.load(self._data_dir)

            servers = [RegisterServer(endpoint, self.store) for endpoint in self.config.endpoints]
            logger.info("Starting %d server(s)", len(servers))
            results = await asyncio.gather(*(server.start() for server in servers), return_exceptions=True)
            errors: List[Exception] = []
            for server, result in zip(servers, results):
                if isinstance(result, BaseException):
                    if not isinstance(result, Exception):
                        raise result
                    logger.error("failed to start server %s: %s", server.name, result)
                    errors.append(result)
                else:
                    self.servers[server.name] = server
            if errors:
                await self._stop_servers()
                raise ServerStartError(errors)
            logger.info("Started %d server(s)", len(self.servers))

    async def stop(self) -> List[Exception]:
        """Stop every endpoint, then persist the store when enabled.

        Stop errors are logged and returned, not raised.
        """
        async with self.lock:
            errors = await self._stop_servers()
            if self.config.persist_data and self._data_dir is not None:
                try:
                    await self.store.save(self._data_dir)
                except OSError as e:
                    logger.error("failed to persist register data: %s", e)
                    errors.append(e)
        return errors

    close = stop

    async def __aenter__(self) -> "ServerBridge":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {"active_servers": len(self.servers)}
        for name, server in self.servers.items():
            for key, value in server.get_stats().items():
                stats[f"{name}.{key}"] = value
        return stats
