"""Register codec for typed Modbus values.

Converts between ordered sequences of 16-bit register words and signed or
unsigned integers (8/16/32/64 bits), IEEE 754 floats (32/64 bits) and raw
byte payloads. Two orderings are applied:

    byte order: "big" or "little", which byte of each register is the most
                significant one
    word order: "high" or "low", whether the first register of a multi-register
                value holds the most significant word

All functions are pure and never perform I/O.
"""
from __future__ import annotations

import struct
from typing import List, Sequence, Union

from regbridge.core.data_types import NUMERIC_FORMATS, NumericFormat, ValueType
from regbridge.errors import CodecError, InvalidLengthError

BIG = "big"
LITTLE = "little"
HIGH = "high"
LOW = "low"

BYTE_ORDERS = (BIG, LITTLE)
WORD_ORDERS = (HIGH, LOW)

Number = Union[int, float]


def numeric_format(value_type: ValueType) -> NumericFormat:
    fmt = NUMERIC_FORMATS.get(value_type)
    if fmt is None:
        raise CodecError(f"{value_type.value} is not a numeric type")
    return fmt


def register_count(value_type: ValueType) -> int:
    """Number of registers a numeric value of ``value_type`` occupies."""
    return numeric_format(value_type).register_count


def normalize_byte_order(value: str) -> str:
    mapping = {"b": BIG, "big": BIG, "l": LITTLE, "little": LITTLE}
    result = mapping.get(str(value).lower())
    if result is None:
        raise CodecError(f"Unknown byte order: {value}")
    return result


def normalize_word_order(value: str) -> str:
    mapping = {"h": HIGH, "high": HIGH, "l": LOW, "low": LOW}
    result = mapping.get(str(value).lower())
    if result is None:
        raise CodecError(f"Unknown word order: {value}")
    return result


def _register_bytes(reg: int, byte_order: str) -> bytes:
    b = (reg & 0xFFFF).to_bytes(2, byteorder="big")
    if byte_order == LITTLE:
        b = b[::-1]
    return b


def _ordered_bytes(registers: Sequence[int], byte_order: str, word_order: str) -> bytes:
    regs = list(registers)
    if word_order == LOW:
        regs.reverse()
    return b"".join(_register_bytes(r, byte_order) for r in regs)


def _ordered_registers(data: bytes, byte_order: str, word_order: str) -> List[int]:
    regs = []
    for i in range(0, len(data), 2):
        chunk = data[i:i + 2]
        if byte_order == LITTLE:
            chunk = chunk[::-1]
        regs.append(int.from_bytes(chunk, byteorder="big"))
    if word_order == LOW:
        regs.reverse()
    return regs


def decode(
    registers: Sequence[int],
    value_type: ValueType,
    byte_order: str = BIG,
    word_order: str = HIGH,
) -> Number:
    """Decode ``registers`` into a single value of ``value_type``.

    Raises:
        InvalidLengthError: if the register count does not match the type
    """
    fmt = numeric_format(value_type)
    count = fmt.register_count
    if len(registers) != count:
        raise InvalidLengthError(count, len(registers))

    raw = _ordered_bytes(registers, byte_order, word_order)

    if fmt.is_float:
        return struct.unpack(">f" if fmt.width == 32 else ">d", raw)[0]

    if fmt.width == 8:
        # only the low byte is meaningful
        raw = raw[1:]
    return int.from_bytes(raw, byteorder="big", signed=fmt.signed)


def encode(
    value: Number,
    value_type: ValueType,
    byte_order: str = BIG,
    word_order: str = HIGH,
) -> List[int]:
    """Encode ``value`` into the registers of ``value_type``.

    Raises:
        CodecError: if the value is out of range for the type
    """
    fmt = numeric_format(value_type)

    if fmt.is_float:
        try:
            raw = struct.pack(">f" if fmt.width == 32 else ">d", float(value))
        except (struct.error, OverflowError, TypeError, ValueError) as e:
            raise CodecError(f"Cannot encode {value!r} as {value_type.value}: {e}") from e
        return _ordered_registers(raw, byte_order, word_order)

    if isinstance(value, bool) or not isinstance(value, int):
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        else:
            raise CodecError(f"{value_type.value} requires an integer, got {value!r}")

    if fmt.signed:
        lo, hi = -(1 << (fmt.width - 1)), (1 << (fmt.width - 1)) - 1
    else:
        lo, hi = 0, (1 << fmt.width) - 1
    if value < lo or value > hi:
        raise CodecError(f"Value {value} out of {value_type.value} range ({lo} to {hi})")

    raw = value.to_bytes(fmt.width // 8, byteorder="big", signed=fmt.signed)
    if fmt.width == 8:
        # zero-filled high byte
        raw = b"\x00" + raw
    return _ordered_registers(raw, byte_order, word_order)


def registers_to_bytes(registers: Sequence[int], byte_order: str = BIG) -> bytes:
    """Register payload as bytes with the per-register byte order applied."""
    return b"".join(_register_bytes(r, byte_order) for r in registers)


def registers_to_raw_bytes(registers: Sequence[int]) -> bytes:
    """Register payload as bytes in wire order, without any conversion."""
    return registers_to_bytes(registers, BIG)


def bytes_to_registers(data: bytes, byte_order: str = BIG) -> List[int]:
    """Pack bytes into registers; an odd trailing byte is zero-padded."""
    if len(data) % 2:
        data = bytes(data) + b"\x00"
    return _ordered_registers(data, byte_order, HIGH)


def registers_for_bytes(length: int) -> int:
    """Number of registers needed to carry ``length`` bytes."""
    return (length + 1) // 2
