"""In-memory register tables served by RegisterServer."""
from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from regbridge.core.data_types import RegisterKind, is_bit_kind
from regbridge.errors import ConfigError

logger = logging.getLogger(__name__)

TABLE_SIZE = 65535
DATA_FILE = "registers.json"
DATA_DIR_ENV = "REGBRIDGE_DATA_DIR"


def resolve_data_dir(data_dir: Optional[str]) -> Path:
    """Return the persistence directory from ``data_dir`` or ``$REGBRIDGE_DATA_DIR``."""
    value = data_dir or os.environ.get(DATA_DIR_ENV, "")
    if not value:
        raise ConfigError(f"no data directory: set data_dir or {DATA_DIR_ENV}")
    path = Path(value)
    if not path.is_dir():
        raise ConfigError(f"data directory does not exist: {path}")
    return path


class RegisterStore:
    """Four fixed-size tables guarded by one asyncio.Lock."""

    def __init__(self, size: int = TABLE_SIZE):
        self.size = size
        self._lock = asyncio.Lock()
        self._tables: Dict[RegisterKind, List[Union[bool, int]]] = {}
        self._reset()

    def _reset(self) -> None:
        for kind in RegisterKind:
            fill: Union[bool, int] = False if is_bit_kind(kind) else 0
            self._tables[kind] = [fill] * self.size

    def _check_range(self, kind: RegisterKind, address: int, count: int) -> None:
        if count <= 0 or address < 0 or address + count > self.size:
            raise ValueError(f"{kind.value} range {address}+{count} outside 0..{self.size}")

    async def read(self, kind: RegisterKind, address: int, count: int) -> List[Union[bool, int]]:
        async with self._lock:
            self._check_range(kind, address, count)
            return list(self._tables[kind][address:address + count])

    async def write(self, kind: RegisterKind, address: int, values: Sequence[Union[bool, int]]) -> None:
        values = list(values)
        async with self._lock:
            self._check_range(kind, address, len(values))
            if is_bit_kind(kind):
                converted = [bool(v) for v in values]
            else:
                converted = [int(v) & 0xFFFF for v in values]
            self._tables[kind][address:address + len(values)] = converted

    async def save(self, directory: Union[str, Path]) -> Path:
        path = Path(directory) / DATA_FILE
        async with self._lock:
            document = {kind.value: list(table) for kind, table in self._tables.items()}
        path.write_text(json.dumps(document), encoding="utf-8")
        logger.info("Saved register data to %s", path)
        return path

    async def load(self, directory: Union[str, Path]) -> bool:
        """Load ``registers.json`` from ``directory``. Returns False when there is none."""
        path = Path(directory) / DATA_FILE
        if not path.exists():
            logger.info("No register data at %s, starting empty", path)
            return False
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigError(f"cannot parse {path}: {e}") from e
        async with self._lock:
            self._reset()
            for kind in RegisterKind:
                values = document.get(kind.value) or []
                table = self._tables[kind]
                count = min(len(values), self.size)
                if is_bit_kind(kind):
                    table[:count] = [bool(v) for v in values[:count]]
                else:
                    table[:count] = [int(v) & 0xFFFF for v in values[:count]]
        logger.info("Loaded register data from %s", path)
        return True
