"""Tests for regbridge.utils.codec."""

import math

import pytest

from regbridge.core.data_types import NUMERIC_FORMATS, ValueType
from regbridge.errors import CodecError, InvalidLengthError
from regbridge.utils import codec


class TestDecode:
    def test_uint32_word_order(self):
        assert codec.decode([0x0001, 0x0002], ValueType.UINT32, "big", "high") == 0x00010002
        assert codec.decode([0x0001, 0x0002], ValueType.UINT32, "big", "low") == 0x00020001

    def test_uint16_byte_order(self):
        assert codec.decode([0x1234], ValueType.UINT16) == 0x1234
        assert codec.decode([0x1234], ValueType.UINT16, byte_order="little") == 0x3412

    def test_int16_negative(self):
        assert codec.decode([0xFFFF], ValueType.INT16) == -1
        assert codec.decode([0x8000], ValueType.INT16) == -32768

    def test_uint8_uses_low_byte(self):
        assert codec.decode([0xAB12], ValueType.UINT8) == 0x12

    def test_int8_negative(self):
        assert codec.decode([0x00FF], ValueType.INT8) == -1

    def test_float32(self):
        # 1.0f == 0x3F800000
        assert codec.decode([0x3F80, 0x0000], ValueType.FLOAT32) == 1.0
        assert codec.decode([0x0000, 0x3F80], ValueType.FLOAT32, word_order="low") == 1.0

    def test_float64(self):
        assert codec.decode([0x3FF0, 0, 0, 0], ValueType.FLOAT64) == 1.0

    def test_int64_min(self):
        assert codec.decode([0x8000, 0, 0, 0], ValueType.INT64) == -(1 << 63)

    def test_wrong_length(self):
        with pytest.raises(InvalidLengthError) as excinfo:
            codec.decode([1], ValueType.UINT32)
        assert excinfo.value.expected == 2
        assert excinfo.value.actual == 1

    def test_bytes_type_is_not_numeric(self):
        with pytest.raises(CodecError):
            codec.decode([1], ValueType.BYTES)


class TestEncode:
    def test_uint32_word_order(self):
        assert codec.encode(0x00010002, ValueType.UINT32) == [0x0001, 0x0002]
        assert codec.encode(0x00010002, ValueType.UINT32, word_order="low") == [0x0002, 0x0001]

    def test_little_byte_order(self):
        assert codec.encode(0x1234, ValueType.UINT16, byte_order="little") == [0x3412]

    def test_int16_negative(self):
        assert codec.encode(-1, ValueType.INT16) == [0xFFFF]

    def test_int8_keeps_high_byte_zero(self):
        assert codec.encode(-1, ValueType.INT8) == [0x00FF]

    def test_integral_float_accepted(self):
        assert codec.encode(7.0, ValueType.UINT16) == [7]

    @pytest.mark.parametrize(
        "value,value_type",
        [
            (256, ValueType.UINT8),
            (-129, ValueType.INT8),
            (65536, ValueType.UINT16),
            (-1, ValueType.UINT16),
            (32768, ValueType.INT16),
            (1 << 32, ValueType.UINT32),
            (1 << 63, ValueType.INT64),
        ],
    )
    def test_out_of_range(self, value, value_type):
        with pytest.raises(CodecError, match="out of"):
            codec.encode(value, value_type)

    def test_non_integer_rejected(self):
        with pytest.raises(CodecError):
            codec.encode(1.5, ValueType.INT32)
        with pytest.raises(CodecError):
            codec.encode(True, ValueType.UINT16)


@pytest.mark.parametrize("byte_order", ["big", "little"])
@pytest.mark.parametrize("word_order", ["high", "low"])
@pytest.mark.parametrize(
    "value_type,value",
    [
        (ValueType.UINT8, 255),
        (ValueType.INT8, -128),
        (ValueType.UINT16, 65535),
        (ValueType.INT16, -32768),
        (ValueType.UINT32, 0xDEADBEEF),
        (ValueType.INT32, -(1 << 31)),
        (ValueType.UINT64, (1 << 64) - 1),
        (ValueType.INT64, (1 << 63) - 1),
        (ValueType.FLOAT64, -1234.5678),
    ]
    + [(value_type, 0) for value_type in NUMERIC_FORMATS]
    + [(value_type, -1) for value_type, fmt in NUMERIC_FORMATS.items() if fmt.signed],
)
def test_round_trip_boundaries(value_type, value, byte_order, word_order):
    regs = codec.encode(value, value_type, byte_order, word_order)
    assert len(regs) == codec.register_count(value_type)
    assert codec.decode(regs, value_type, byte_order, word_order) == value


def test_float32_round_trip_is_approximate():
    regs = codec.encode(3.14159, ValueType.FLOAT32, "little", "low")
    assert math.isclose(codec.decode(regs, ValueType.FLOAT32, "little", "low"), 3.14159, rel_tol=1e-6)


def test_bytes_helpers():
    assert codec.registers_to_bytes([0x4142, 0x4344]) == b"ABCD"
    assert codec.registers_to_bytes([0x4142], "little") == b"BA"
    assert codec.registers_to_raw_bytes([0x4142]) == b"AB"
    assert codec.bytes_to_registers(b"ABC") == [0x4142, 0x4300]
    assert codec.bytes_to_registers(b"AB", "little") == [0x4241]
    assert codec.registers_for_bytes(3) == 2
    assert codec.registers_for_bytes(4) == 2


def test_normalize_orders():
    assert codec.normalize_byte_order("L") == "little"
    assert codec.normalize_word_order("high") == "high"
    with pytest.raises(CodecError):
        codec.normalize_byte_order("middle")
