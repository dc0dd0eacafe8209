from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from regbridge.errors import ConfigError


class RegisterKind(str, Enum):
    """Modbus data tables."""

    COIL = "coil"
    DISCRETE_INPUT = "discrete_input"
    HOLDING_REGISTER = "holding_register"
    INPUT_REGISTER = "input_register"


@dataclass(frozen=True)
class RegisterKindProperties:
    label: str
    writable: bool
    bit_based: bool
    read_function: int
    write_function: Optional[int]
    pymodbus_read_method: str
    pymodbus_write_method: Optional[str]


REGISTER_KIND_PROPERTIES: Dict[RegisterKind, RegisterKindProperties] = {
    RegisterKind.COIL: RegisterKindProperties(
        label="Coils",
        writable=True,
        bit_based=True,
        read_function=0x01,
        write_function=0x0F,
        pymodbus_read_method="read_coils",
        pymodbus_write_method="write_coils",
    ),
    RegisterKind.DISCRETE_INPUT: RegisterKindProperties(
        label="Discrete Inputs",
        writable=False,
        bit_based=True,
        read_function=0x02,
        write_function=None,
        pymodbus_read_method="read_discrete_inputs",
        pymodbus_write_method=None,
    ),
    RegisterKind.HOLDING_REGISTER: RegisterKindProperties(
        label="Holding Registers",
        writable=True,
        bit_based=False,
        read_function=0x03,
        write_function=0x10,
        pymodbus_read_method="read_holding_registers",
        pymodbus_write_method="write_registers",
    ),
    RegisterKind.INPUT_REGISTER: RegisterKindProperties(
        label="Input Registers",
        writable=False,
        bit_based=False,
        read_function=0x04,
        write_function=None,
        pymodbus_read_method="read_input_registers",
        pymodbus_write_method=None,
    ),
}


_REGISTER_KIND_ALIASES = {
    "coil": RegisterKind.COIL,
    "coils": RegisterKind.COIL,
    "c": RegisterKind.COIL,
    "discrete": RegisterKind.DISCRETE_INPUT,
    "discrete_input": RegisterKind.DISCRETE_INPUT,
    "discrete_inputs": RegisterKind.DISCRETE_INPUT,
    "di": RegisterKind.DISCRETE_INPUT,
    "holding": RegisterKind.HOLDING_REGISTER,
    "holding_register": RegisterKind.HOLDING_REGISTER,
    "holding_registers": RegisterKind.HOLDING_REGISTER,
    "hr": RegisterKind.HOLDING_REGISTER,
    "input": RegisterKind.INPUT_REGISTER,
    "input_register": RegisterKind.INPUT_REGISTER,
    "input_registers": RegisterKind.INPUT_REGISTER,
    "ir": RegisterKind.INPUT_REGISTER,
}


class ValueType(str, Enum):
    """Typed values stored in one or more 16-bit registers."""

    UINT8 = "uint8"
    INT8 = "int8"
    UINT16 = "uint16"
    INT16 = "int16"
    UINT32 = "uint32"
    INT32 = "int32"
    UINT64 = "uint64"
    INT64 = "int64"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    BYTES = "bytes"
    RAW_BYTES = "raw_bytes"


@dataclass(frozen=True)
class NumericFormat:
    width: int
    signed: bool
    is_float: bool = False

    @property
    def register_count(self) -> int:
        return max(1, self.width // 16)


NUMERIC_FORMATS: Dict[ValueType, NumericFormat] = {
    ValueType.UINT8: NumericFormat(8, signed=False),
    ValueType.INT8: NumericFormat(8, signed=True),
    ValueType.UINT16: NumericFormat(16, signed=False),
    ValueType.INT16: NumericFormat(16, signed=True),
    ValueType.UINT32: NumericFormat(32, signed=False),
    ValueType.INT32: NumericFormat(32, signed=True),
    ValueType.UINT64: NumericFormat(64, signed=False),
    ValueType.INT64: NumericFormat(64, signed=True),
    ValueType.FLOAT32: NumericFormat(32, signed=True, is_float=True),
    ValueType.FLOAT64: NumericFormat(64, signed=True, is_float=True),
}

_VALUE_TYPE_ALIASES = {
    "rawbytes": ValueType.RAW_BYTES,
    "raw": ValueType.RAW_BYTES,
}

# Per-request limits from the Modbus application protocol.
ADDRESS_SPACE = 65536
MAX_READ_BITS = 2000
MAX_READ_REGISTERS = 125
MAX_WRITE_COILS = 1968
MAX_WRITE_REGISTERS = 123

# Source kind -> the only destination kind a bridge block may write to.
BRIDGE_DESTINATIONS: Dict[RegisterKind, RegisterKind] = {
    RegisterKind.COIL: RegisterKind.COIL,
    RegisterKind.DISCRETE_INPUT: RegisterKind.COIL,
    RegisterKind.HOLDING_REGISTER: RegisterKind.HOLDING_REGISTER,
    RegisterKind.INPUT_REGISTER: RegisterKind.HOLDING_REGISTER,
}


def parse_register_kind(value: Optional[str]) -> RegisterKind:
    if isinstance(value, RegisterKind):
        return value
    if not value:
        raise ConfigError("register kind is required")
    if not isinstance(value, str):
        raise ConfigError(f"register kind must be a string, got {value!r}")
    kind = _REGISTER_KIND_ALIASES.get(value.strip().lower())
    if kind is None:
        raise ConfigError(f"Unknown register kind '{value}'")
    return kind


def parse_value_type(value: Optional[str]) -> ValueType:
    if isinstance(value, ValueType):
        return value
    if not value:
        raise ConfigError("value type is required")
    if not isinstance(value, str):
        raise ConfigError(f"value type must be a string, got {value!r}")
    key = value.strip().lower()
    alias = _VALUE_TYPE_ALIASES.get(key)
    if alias is not None:
        return alias
    try:
        return ValueType(key)
    except ValueError:
        raise ConfigError(f"Unknown value type '{value}'") from None


def is_bit_kind(kind: RegisterKind) -> bool:
    return REGISTER_KIND_PROPERTIES[kind].bit_based


def is_writable(kind: RegisterKind) -> bool:
    return REGISTER_KIND_PROPERTIES[kind].writable


def is_byte_type(value_type: ValueType) -> bool:
    return value_type in (ValueType.BYTES, ValueType.RAW_BYTES)


def validate_bridge_mapping(src: RegisterKind, dst: RegisterKind) -> None:
    """Raise ConfigError unless ``src`` may be bridged into ``dst``."""
    expected = BRIDGE_DESTINATIONS[src]
    if dst != expected:
        raise ConfigError(
            f"src_register is {src.value}, dst_register must be {expected.value} (got {dst.value})"
        )


def max_read_count(kind: RegisterKind) -> int:
    return MAX_READ_BITS if is_bit_kind(kind) else MAX_READ_REGISTERS


def max_write_count(kind: RegisterKind) -> int:
    return MAX_WRITE_COILS if is_bit_kind(kind) else MAX_WRITE_REGISTERS


def validate_request_range(kind: RegisterKind, offset: int, count: int, write: bool = False) -> None:
    """Raise ConfigError unless one request of ``count`` units at ``offset`` fits Modbus limits."""
    limit = max_write_count(kind) if write else max_read_count(kind)
    if count > limit:
        action = "write" if write else "read"
        raise ConfigError(f"length {count} exceeds the {action} limit of {limit} for {kind.value}s")
    if offset + count > ADDRESS_SPACE:
        raise ConfigError(f"{kind.value} range {offset}+{count} exceeds address space of {ADDRESS_SPACE}")
