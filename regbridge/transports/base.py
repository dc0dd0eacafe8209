from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from regbridge.core.data_types import RegisterKind


class ModbusTransport(ABC):
    """Narrow Modbus client interface used by ResilientClient.

    Implementations raise TransportError for any I/O failure. They are not
    safe for concurrent use; callers serialize access.
    """

    unit_id: Optional[int] = None

    def set_unit_id(self, unit_id: int) -> None:
        self.unit_id = unit_id

    @abstractmethod
    async def connect(self) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass

    @abstractmethod
    async def read_coils(self, address: int, count: int) -> List[bool]:
        pass

    @abstractmethod
    async def read_discrete_inputs(self, address: int, count: int) -> List[bool]:
        pass

    @abstractmethod
    async def read_registers(self, address: int, count: int, kind: RegisterKind) -> List[int]:
        pass

    @abstractmethod
    async def write_coil(self, address: int, value: bool) -> None:
        pass

    @abstractmethod
    async def write_coils(self, address: int, values: Sequence[bool]) -> None:
        pass

    @abstractmethod
    async def write_registers(self, address: int, values: Sequence[int]) -> None:
        pass
