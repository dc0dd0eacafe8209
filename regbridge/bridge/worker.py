"""Periodic block copy between two endpoints."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional

from regbridge.config import BridgeBlock
from regbridge.core.client import ResilientClient
from regbridge.core.data_types import BRIDGE_DESTINATIONS
from regbridge.errors import RegBridgeError

logger = logging.getLogger(__name__)


class WorkerState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class WorkerStats:
    iterations: int = 0
    successes: int = 0
    read_failures: int = 0
    write_failures: int = 0
    last_error: Optional[str] = None


class BridgeWorker:
    """Copies one block from ``src`` to ``dst`` every ``interval`` seconds.

    Stopping is cooperative: ``stop()`` sets an event that the wait loop
    observes. An iteration already in flight finishes its I/O; if the stop
    arrived during the read, the write is skipped.
    """

    def __init__(self, block: BridgeBlock, src: ResilientClient, dst: ResilientClient, interval: float):
        self.block = block
        self.src = src
        self.dst = dst
        self.interval = interval
        self.dst_kind = BRIDGE_DESTINATIONS[block.src_register]
        self.state = WorkerState.CREATED
        self.stats = WorkerStats()
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def name(self) -> str:
        return self.block.name

    def start(self) -> None:
        if self.state is not WorkerState.CREATED:
            raise RuntimeError(f"worker {self.name} already {self.state.value}")
        self.state = WorkerState.RUNNING
        self._task = asyncio.create_task(self._run(), name=f"bridge-worker-{self.name}")
        logger.info("Started worker %s every %.3fs", self.name, self.interval)

    async def iterate(self) -> bool:
        """Run one read-then-write pass. Returns True when both succeed."""
        block = self.block
        self.stats.iterations += 1
        try:
            values = await self.src.read_block(block.src_register, block.src_offset, block.length)
        except RegBridgeError as e:
            self.stats.read_failures += 1
            self.stats.last_error = str(e)
            logger.error("[%s] read from %s failed: %s", self.name, block.src, e)
            return False
        except Exception as e:
            self.stats.read_failures += 1
            self.stats.last_error = str(e)
            logger.exception("[%s] unexpected error reading from %s", self.name, block.src)
            return False

        if self._stop_event.is_set():
            logger.debug("[%s] stop requested, skipping write", self.name)
            return False

        try:
            await self.dst.write_block(self.dst_kind, block.dst_offset, values)
        except RegBridgeError as e:
            self.stats.write_failures += 1
            self.stats.last_error = str(e)
            logger.error("[%s] write to %s failed: %s", self.name, block.dst, e)
            return False
        except Exception as e:
            self.stats.write_failures += 1
            self.stats.last_error = str(e)
            logger.exception("[%s] unexpected error writing to %s", self.name, block.dst)
            return False

        self.stats.successes += 1
        logger.debug("[%s] copied %d value(s)", self.name, len(values))
        return True

    async def _run(self) -> None:
        try:
            while not self._stop_event.is_set():
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    await self.iterate()
        finally:
            self.state = WorkerState.STOPPED
            logger.info("Worker %s stopped", self.name)

    def signal_stop(self) -> None:
        self._stop_event.set()

    async def wait(self) -> None:
        if self._task is not None:
            await self._task
        else:
            self.state = WorkerState.STOPPED

    async def stop(self) -> None:
        self.signal_stop()
        await self.wait()

    def get_stats(self) -> Dict[str, Any]:
        stats = asdict(self.stats)
        stats["name"] = self.name
        stats["state"] = self.state.value
        return stats
