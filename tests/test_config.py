from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from regbridge.config import (
    EndpointConfig,
    bridge_config_from_dict,
    load_bridge_config,
    load_sensor_config,
    load_server_config,
    sensor_config_from_dict,
    server_config_from_dict,
)
from regbridge.core.data_types import RegisterKind, ValueType
from regbridge.errors import ConfigError

BRIDGE_YAML = """
update_time_ms: 250
endpoints:
  - name: A
    endpoint: tcp://10.0.0.1:502
    server_id: 3
  - name: B
    endpoint: tcp://10.0.0.2
    word_order: low
    log_level: debug
blocks:
  - src: A
    src_offset: 0
    src_register: holding_registers
    dst: B
    dst_offset: 10
    dst_register: holding_registers
    length: 4
"""


def _bridge(**overrides):
    raw = {
        "update_time_ms": 100,
        "endpoints": [
            {"name": "A", "endpoint": "tcp://127.0.0.1:5020"},
            {"name": "B", "endpoint": "tcp://127.0.0.1:5021"},
        ],
        "blocks": [
            {
                "src": "A", "src_offset": 0, "src_register": "coils",
                "dst": "B", "dst_offset": 0, "dst_register": "coils", "length": 1,
            }
        ],
    }
    raw.update(overrides)
    return raw


def test_load_bridge_yaml(tmp_path: Path) -> None:
    path = tmp_path / "bridge.yaml"
    path.write_text(BRIDGE_YAML, encoding="utf-8")

    cfg = load_bridge_config(path)

    assert cfg.interval == 0.25
    a, b = cfg.endpoints
    assert a.server_id == 3
    assert a.host == "10.0.0.1"
    assert b.port == 502
    assert b.word_order == "low"
    assert b.level == logging.DEBUG
    block = cfg.blocks[0]
    assert block.src_register is RegisterKind.HOLDING_REGISTER
    assert block.dst_offset == 10
    assert block.name == "A:0->B:10"


def test_load_bridge_json(tmp_path: Path) -> None:
    path = tmp_path / "bridge.json"
    path.write_text(json.dumps(_bridge()), encoding="utf-8")
    cfg = load_bridge_config(path)
    assert [e.name for e in cfg.endpoints] == ["A", "B"]


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_bridge_config(tmp_path / "nope.yaml")


def test_malformed_yaml(tmp_path: Path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("endpoints: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_bridge_config(path)


def test_duplicate_endpoint_names() -> None:
    raw = _bridge(endpoints=[
        {"name": "A", "endpoint": "tcp://127.0.0.1"},
        {"name": "A", "endpoint": "tcp://127.0.0.2"},
    ], blocks=[])
    with pytest.raises(ConfigError, match="duplicate"):
        bridge_config_from_dict(raw)


def test_dangling_block_reference() -> None:
    raw = _bridge()
    raw["blocks"][0]["dst"] = "C"
    with pytest.raises(ConfigError, match="not found"):
        bridge_config_from_dict(raw)


def test_invalid_block_mapping() -> None:
    raw = _bridge()
    raw["blocks"][0]["dst_register"] = "holding_registers"
    with pytest.raises(ConfigError, match="dst_register must be coil"):
        bridge_config_from_dict(raw)


def test_zero_length_block() -> None:
    raw = _bridge()
    raw["blocks"][0]["length"] = 0
    with pytest.raises(ConfigError):
        bridge_config_from_dict(raw)


@pytest.mark.parametrize(
    "register,length,src_offset,message",
    [
        ("coils", 2001, 0, "read limit of 2000"),
        ("coils", 1969, 0, "write limit of 1968"),
        ("holding_registers", 126, 0, "read limit of 125"),
        ("holding_registers", 124, 0, "write limit of 123"),
        ("input_registers", 10, 65530, "address space"),
    ],
)
def test_block_exceeds_request_limits(register, length, src_offset, message) -> None:
    raw = _bridge()
    dst_register = "coils" if register == "coils" else "holding_registers"
    raw["blocks"][0].update(
        src_register=register, dst_register=dst_register, length=length, src_offset=src_offset,
    )
    with pytest.raises(ConfigError, match=message):
        bridge_config_from_dict(raw)


def test_block_at_request_limits() -> None:
    raw = _bridge()
    raw["blocks"][0].update(length=1968, dst_offset=65536 - 1968)
    cfg = bridge_config_from_dict(raw)
    assert cfg.blocks[0].length == 1968


def test_block_dst_range_past_address_space() -> None:
    raw = _bridge()
    raw["blocks"][0].update(length=2, dst_offset=65535)
    with pytest.raises(ConfigError, match="address space"):
        bridge_config_from_dict(raw)


def test_non_string_register_kind() -> None:
    raw = _bridge()
    raw["blocks"][0]["src_register"] = 3
    with pytest.raises(ConfigError, match="must be a string"):
        bridge_config_from_dict(raw)


def test_update_time_required() -> None:
    raw = _bridge()
    del raw["update_time_ms"]
    with pytest.raises(ConfigError, match="update_time_ms"):
        bridge_config_from_dict(raw)


@pytest.mark.parametrize(
    "endpoint,kwargs,message",
    [
        ("udp://127.0.0.1", {}, "invalid scheme"),
        ("tcp://", {}, "requires a host"),
        ("tcp://127.0.0.1:0", {}, "non-zero"),
        ("rtu:///dev/does-not-exist", {"speed": 9600}, "no such device"),
        ("tcp://127.0.0.1", {"byte_order": "middle"}, "byte_order"),
        ("tcp://127.0.0.1", {"server_id": 300}, "server_id"),
        ("tcp://127.0.0.1", {"log_level": "chatty"}, "log level"),
    ],
)
def test_endpoint_validation(endpoint, kwargs, message) -> None:
    with pytest.raises(ConfigError, match=message):
        EndpointConfig(name="x", endpoint=endpoint, **kwargs).validate()


def test_serial_parameters(tmp_path: Path) -> None:
    device = tmp_path / "ttyFAKE"
    device.touch()
    rtu = EndpointConfig(name="r", endpoint=f"rtu://{device}", speed=9600)
    rtu.validate()
    assert rtu.device == str(device)
    assert rtu.is_serial

    with pytest.raises(ConfigError, match="speed"):
        EndpointConfig(name="r", endpoint=f"rtu://{device}").validate()
    with pytest.raises(ConfigError, match="parity"):
        EndpointConfig(name="r", endpoint=f"rtu://{device}", speed=9600, parity="X").validate()
    with pytest.raises(ConfigError, match="data_bits must be 7"):
        EndpointConfig(name="a", endpoint=f"ascii://{device}", speed=9600).validate()
    EndpointConfig(name="a", endpoint=f"ascii://{device}", speed=9600, data_bits=7).validate()


def test_load_sensor_config(tmp_path: Path) -> None:
    path = tmp_path / "sensor.json"
    path.write_text(json.dumps({
        "endpoint": {"name": "s", "endpoint": "tcp://127.0.0.1:5020"},
        "blocks": [
            {"name": "flags", "offset": 0, "length": 4, "type": "coils"},
            {"name": "temp", "offset": 10, "type": "float32"},
            {"name": "serial", "offset": 20, "length": 6, "type": "bytes"},
        ],
    }), encoding="utf-8")

    cfg = load_sensor_config(path)

    flags, temp, serial = cfg.blocks
    assert flags.type is RegisterKind.COIL
    assert temp.type is ValueType.FLOAT32
    assert serial.needs_length
    assert not temp.needs_length


def test_sensor_duplicate_block_names(tmp_path: Path) -> None:
    path = tmp_path / "sensor.json"
    path.write_text(json.dumps({
        "endpoint": {"name": "s", "endpoint": "tcp://127.0.0.1"},
        "blocks": [
            {"name": "x", "offset": 0, "type": "uint16"},
            {"name": "x", "offset": 1, "type": "uint16"},
        ],
    }), encoding="utf-8")
    with pytest.raises(ConfigError, match="duplicate"):
        load_sensor_config(path)


def test_sensor_unknown_type(tmp_path: Path) -> None:
    path = tmp_path / "sensor.json"
    path.write_text(json.dumps({
        "endpoint": {"name": "s", "endpoint": "tcp://127.0.0.1"},
        "blocks": [{"name": "x", "offset": 0, "type": "float16"}],
    }), encoding="utf-8")
    with pytest.raises(ConfigError, match="float16"):
        load_sensor_config(path)


@pytest.mark.parametrize(
    "block,message",
    [
        ({"name": "x", "offset": 0, "type": "coils", "length": 2001}, "read limit of 2000"),
        ({"name": "x", "offset": 0, "type": "bytes", "length": 252}, "read limit of 125"),
        ({"name": "x", "offset": 65533, "type": "float64"}, "address space"),
        ({"name": "x", "offset": 0, "type": 3}, "must be a string"),
    ],
)
def test_sensor_block_limits(block, message) -> None:
    raw = {"endpoint": {"name": "s", "endpoint": "tcp://127.0.0.1"}, "blocks": [block]}
    with pytest.raises(ConfigError, match=message):
        sensor_config_from_dict(raw)


def test_sensor_block_last_register() -> None:
    raw = {
        "endpoint": {"name": "s", "endpoint": "tcp://127.0.0.1"},
        "blocks": [{"name": "x", "offset": 65535, "type": "uint16"}],
    }
    assert sensor_config_from_dict(raw).blocks[0].offset == 65535


def test_load_server_config(tmp_path: Path) -> None:
    path = tmp_path / "server.yaml"
    path.write_text(
        "server:\n  endpoint: tcp://0.0.0.0:1502\n  server_id: 4\npersist_data: true\n"
        f"data_dir: {tmp_path}\n",
        encoding="utf-8",
    )
    cfg = load_server_config(path)
    (endpoint,) = cfg.endpoints
    assert endpoint.name == "server"
    assert endpoint.port == 1502
    assert endpoint.server_id == 4
    assert cfg.persist_data
    assert cfg.data_dir == str(tmp_path)


def test_server_config_endpoints() -> None:
    cfg = server_config_from_dict({
        "endpoints": [
            {"name": "net", "endpoint": "tcp://0.0.0.0:1502", "server_id": 1},
            {"name": "alt", "endpoint": "tcp://0.0.0.0:1503", "server_id": 2},
        ],
    })
    assert [e.name for e in cfg.endpoints] == ["net", "alt"]
    assert not cfg.persist_data


@pytest.mark.parametrize(
    "raw,message",
    [
        ({}, "endpoints is required"),
        ({"endpoints": []}, "endpoints is required"),
        ({"endpoints": ["tcp://0.0.0.0:1502"]}, "list of objects"),
        ({"endpoints": [{"endpoint": "tcp://0.0.0.0:1502"}]}, "name is required"),
        (
            {"endpoints": [
                {"name": "a", "endpoint": "tcp://0.0.0.0:1502"},
                {"name": "a", "endpoint": "tcp://0.0.0.0:1503"},
            ]},
            "duplicate endpoint name",
        ),
    ],
)
def test_server_config_errors(raw, message) -> None:
    with pytest.raises(ConfigError, match=message):
        server_config_from_dict(raw)
