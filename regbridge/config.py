from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlparse

import yaml

from regbridge.core.data_types import (
    RegisterKind,
    ValueType,
    is_byte_type,
    parse_register_kind,
    parse_value_type,
    validate_bridge_mapping,
    validate_request_range,
)
from regbridge.errors import ConfigError
from regbridge.utils.codec import BYTE_ORDERS, WORD_ORDERS, register_count, registers_for_bytes

TCP = "tcp"
RTU = "rtu"
ASCII = "ascii"
SERIAL_SCHEMES = (RTU, ASCII)
DEFAULT_TCP_PORT = 502

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(frozen=True, slots=True)
class EndpointConfig:
    """One Modbus endpoint. Immutable once a client is built from it."""

    name: str
    endpoint: str
    server_id: Optional[int] = None
    speed: int = 0
    data_bits: int = 8
    parity: str = "N"
    stop_bits: int = 1
    timeout_ms: int = 1000
    byte_order: str = "big"
    word_order: str = "high"
    log_level: str = "info"

    @property
    def scheme(self) -> str:
        return urlparse(self.endpoint).scheme.lower()

    @property
    def is_serial(self) -> bool:
        return self.scheme in SERIAL_SCHEMES

    @property
    def is_network(self) -> bool:
        return self.scheme == TCP

    @property
    def device(self) -> str:
        """Serial device path (``rtu:///dev/ttyUSB0`` -> ``/dev/ttyUSB0``)."""
        parsed = urlparse(self.endpoint)
        return parsed.path or parsed.netloc

    @property
    def host(self) -> Optional[str]:
        return urlparse(self.endpoint).hostname

    @property
    def port(self) -> int:
        return urlparse(self.endpoint).port or DEFAULT_TCP_PORT

    @property
    def timeout(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def level(self) -> int:
        return LOG_LEVELS[self.log_level.lower()]

    def describe(self) -> str:
        if self.is_serial:
            return f"{self.scheme.upper()} {self.device} @ {self.speed} {self.data_bits}{self.parity}{self.stop_bits}"
        return f"TCP {self.host}:{self.port}"

    def validate(self) -> None:
        if not self.endpoint:
            raise ConfigError(f"endpoint {self.name!r}: endpoint must be set")
        if self.log_level.lower() not in LOG_LEVELS:
            raise ConfigError(f"endpoint {self.name!r}: invalid log level {self.log_level!r}")
        if self.byte_order not in BYTE_ORDERS:
            raise ConfigError(f"endpoint {self.name!r}: byte_order must be 'big' or 'little'")
        if self.word_order not in WORD_ORDERS:
            raise ConfigError(f"endpoint {self.name!r}: word_order must be 'high' or 'low'")
        if self.timeout_ms <= 0:
            raise ConfigError(f"endpoint {self.name!r}: timeout_ms must be greater than 0")
        if self.server_id is not None and not 0 <= self.server_id <= 255:
            raise ConfigError(f"endpoint {self.name!r}: server_id must be between 0 and 255")
        parsed = urlparse(self.endpoint)
        scheme = parsed.scheme.lower()
        if scheme == TCP:
            if not parsed.hostname:
                raise ConfigError(f"endpoint {self.name!r}: tcp endpoint requires a host")
            try:
                port = parsed.port
            except ValueError as e:
                raise ConfigError(f"endpoint {self.name!r}: invalid endpoint {self.endpoint!r}: {e}") from e
            if port == 0:
                raise ConfigError(f"endpoint {self.name!r}: port must be non-zero")
        elif scheme in SERIAL_SCHEMES:
            self._validate_serial(scheme == RTU)
        else:
            raise ConfigError(f"endpoint {self.name!r}: invalid scheme {parsed.scheme!r}")

    def _validate_serial(self, is_rtu: bool) -> None:
        if not self.device or not os.path.exists(self.device):
            raise ConfigError(f"endpoint {self.name!r}: no such device {self.device!r}")
        if self.speed <= 0:
            raise ConfigError(f"endpoint {self.name!r}: speed must be non-zero")
        if self.parity not in ("N", "E", "O"):
            raise ConfigError(f"endpoint {self.name!r}: parity must be 'N', 'E', or 'O'")
        if is_rtu:
            if self.data_bits != 8:
                raise ConfigError(f"endpoint {self.name!r}: data_bits must be 8 for RTU")
            if self.stop_bits not in (1, 2):
                raise ConfigError(f"endpoint {self.name!r}: stop_bits must be 1 or 2")
        else:
            if self.data_bits != 7:
                raise ConfigError(f"endpoint {self.name!r}: data_bits must be 7 for ASCII")
            if self.stop_bits != 1:
                raise ConfigError(f"endpoint {self.name!r}: stop_bits must be 1 for ASCII")


@dataclass(slots=True)
class BridgeBlock:
    """A contiguous range copied from one endpoint to another."""

    src: str
    src_offset: int
    src_register: RegisterKind
    dst: str
    dst_offset: int
    dst_register: RegisterKind
    length: int
    name: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            self.name = f"{self.src}:{self.src_offset}->{self.dst}:{self.dst_offset}"

    def validate(self) -> None:
        if not self.src:
            raise ConfigError(f"block {self.name}: src is required")
        if not self.dst:
            raise ConfigError(f"block {self.name}: dst is required")
        if self.src_offset < 0:
            raise ConfigError(f"block {self.name}: src_offset must be non-negative")
        if self.dst_offset < 0:
            raise ConfigError(f"block {self.name}: dst_offset must be non-negative")
        if self.length <= 0:
            raise ConfigError(f"block {self.name}: length must be greater than 0")
        try:
            validate_bridge_mapping(self.src_register, self.dst_register)
            validate_request_range(self.src_register, self.src_offset, self.length)
            validate_request_range(self.dst_register, self.dst_offset, self.length, write=True)
        except ConfigError as e:
            raise ConfigError(f"block {self.name}: {e}") from None


@dataclass(slots=True)
class BridgeConfig:
    endpoints: List[EndpointConfig] = field(default_factory=list)
    update_time_ms: int = 1000
    blocks: List[BridgeBlock] = field(default_factory=list)

    @property
    def interval(self) -> float:
        return self.update_time_ms / 1000.0

    def validate(self) -> None:
        if not self.endpoints:
            raise ConfigError("endpoints is required")
        if self.update_time_ms <= 0:
            raise ConfigError("update_time_ms must be greater than 0")
        names = set()
        for i, endpoint in enumerate(self.endpoints):
            if not endpoint.name:
                raise ConfigError(f"endpoint {i}: name is required")
            endpoint.validate()
            if endpoint.name in names:
                raise ConfigError(f"duplicate endpoint name: {endpoint.name}")
            names.add(endpoint.name)
        for block in self.blocks:
            block.validate()
            if block.src not in names:
                raise ConfigError(f"block {block.name}: src {block.src} not found in endpoints")
            if block.dst not in names:
                raise ConfigError(f"block {block.name}: dst {block.dst} not found in endpoints")


@dataclass(slots=True)
class SensorBlock:
    """A named block read from a single endpoint."""

    name: str
    offset: int
    type: Union[RegisterKind, ValueType]
    length: int = 1

    @property
    def needs_length(self) -> bool:
        return isinstance(self.type, RegisterKind) or is_byte_type(self.type)

    def validate(self) -> None:
        if not self.name:
            raise ConfigError("block name is required")
        if self.offset < 0:
            raise ConfigError(f"block {self.name}: offset must be non-negative")
        if self.needs_length and self.length <= 0:
            raise ConfigError(f"block {self.name}: length must be greater than 0")
        if isinstance(self.type, RegisterKind):
            kind, count = self.type, self.length
        elif is_byte_type(self.type):
            kind, count = RegisterKind.HOLDING_REGISTER, registers_for_bytes(self.length)
        else:
            kind, count = RegisterKind.HOLDING_REGISTER, register_count(self.type)
        try:
            validate_request_range(kind, self.offset, count)
        except ConfigError as e:
            raise ConfigError(f"block {self.name}: {e}") from None


@dataclass(slots=True)
class SensorConfig:
    endpoint: EndpointConfig
    blocks: List[SensorBlock] = field(default_factory=list)

    def validate(self) -> None:
        self.endpoint.validate()
        if not self.blocks:
            raise ConfigError("blocks is required")
        seen = set()
        for block in self.blocks:
            block.validate()
            if block.name in seen:
                raise ConfigError(f"duplicate block name: {block.name}")
            seen.add(block.name)


@dataclass(slots=True)
class ServerConfig:
    """Server endpoints sharing one register store."""

    endpoints: List[EndpointConfig] = field(default_factory=list)
    persist_data: bool = False
    data_dir: Optional[str] = None

    def validate(self) -> None:
        if not self.endpoints:
            raise ConfigError("endpoints is required")
        names = set()
        for i, endpoint in enumerate(self.endpoints):
            if not endpoint.name:
                raise ConfigError(f"endpoint {i}: name is required")
            endpoint.validate()
            if endpoint.name in names:
                raise ConfigError(f"duplicate endpoint name: {endpoint.name}")
            names.add(endpoint.name)


def _read_document(path: Union[str, Path]) -> Dict[str, Any]:
    """Parse a YAML/JSON document into a dict."""
    file_path = Path(path)
    if not file_path.exists():
        raise ConfigError(f"configuration file not found: {file_path}")

    text = file_path.read_text(encoding="utf-8")
    try:
        if file_path.suffix.lower() in {".yaml", ".yml"}:
            raw = yaml.safe_load(text)
        else:
            raw = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"cannot parse {file_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError("Configuration must be an object/dict")
    return raw


def _required(data: Dict[str, Any], key: str, where: str) -> Any:
    if data.get(key) in (None, ""):
        raise ConfigError(f"{key} is required in {where}")
    return data[key]


def endpoint_from_dict(data: Dict[str, Any]) -> EndpointConfig:
    name = data.get("name", "")
    where = f"endpoint {name!r}" if name else "endpoint"
    try:
        server_id = data.get("server_id")
        return EndpointConfig(
            name=name,
            endpoint=_required(data, "endpoint", where),
            server_id=int(server_id) if server_id is not None else None,
            speed=int(data.get("speed", 0)),
            data_bits=int(data.get("data_bits", 8)),
            parity=str(data.get("parity", "N")).upper(),
            stop_bits=int(data.get("stop_bits", 1)),
            timeout_ms=int(data.get("timeout_ms", 1000)),
            byte_order=str(data.get("byte_order", data.get("endianness", "big"))).lower(),
            word_order=str(data.get("word_order", "high")).lower(),
            log_level=str(data.get("log_level", "info")).lower(),
        )
    except ConfigError:
        raise
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{where}: {e}") from e


def _bridge_block(data: Dict[str, Any], index: int) -> BridgeBlock:
    where = f"block {index}"
    try:
        return BridgeBlock(
            name=data.get("name", ""),
            src=_required(data, "src", where),
            src_offset=int(data.get("src_offset", 0)),
            src_register=parse_register_kind(_required(data, "src_register", where)),
            dst=_required(data, "dst", where),
            dst_offset=int(data.get("dst_offset", 0)),
            dst_register=parse_register_kind(_required(data, "dst_register", where)),
            length=int(_required(data, "length", where)),
        )
    except ConfigError:
        raise
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{where}: {e}") from e


def _sensor_block(data: Dict[str, Any], index: int) -> SensorBlock:
    where = f"block {index}"
    name = _required(data, "name", where)
    type_text = _required(data, "type", where)
    try:
        block_type: Union[RegisterKind, ValueType] = parse_register_kind(type_text)
    except ConfigError:
        block_type = parse_value_type(type_text)
    try:
        return SensorBlock(
            name=name,
            offset=int(data.get("offset", 0)),
            type=block_type,
            length=int(data.get("length", 1)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{where}: {e}") from e


def bridge_config_from_dict(raw: Dict[str, Any]) -> BridgeConfig:
    config = BridgeConfig(
        endpoints=[endpoint_from_dict(item) for item in raw.get("endpoints", []) or []],
        update_time_ms=int(raw.get("update_time_ms", 0)),
        blocks=[_bridge_block(item, i) for i, item in enumerate(raw.get("blocks", []) or [])],
    )
    config.validate()
    return config


def sensor_config_from_dict(raw: Dict[str, Any]) -> SensorConfig:
    endpoint = raw.get("endpoint")
    if not isinstance(endpoint, dict):
        raise ConfigError("endpoint is required")
    config = SensorConfig(
        endpoint=endpoint_from_dict(endpoint),
        blocks=[_sensor_block(item, i) for i, item in enumerate(raw.get("blocks", []) or [])],
    )
    config.validate()
    return config


def server_config_from_dict(raw: Dict[str, Any]) -> ServerConfig:
    """Build a ServerConfig from ``endpoints: [...]`` or a single ``server:`` mapping."""
    items = raw.get("endpoints")
    if items is None and isinstance(raw.get("server"), dict):
        items = [dict({"name": "server"}, **raw["server"])]
    if not isinstance(items, list) or not items:
        raise ConfigError("endpoints is required")
    if not all(isinstance(item, dict) for item in items):
        raise ConfigError("endpoints must be a list of objects")
    config = ServerConfig(
        endpoints=[endpoint_from_dict(item) for item in items],
        persist_data=bool(raw.get("persist_data", False)),
        data_dir=raw.get("data_dir"),
    )
    config.validate()
    return config


def load_bridge_config(path: Union[str, Path]) -> BridgeConfig:
    """Parse and validate a YAML/JSON bridge configuration file."""
    return bridge_config_from_dict(_read_document(path))


def load_sensor_config(path: Union[str, Path]) -> SensorConfig:
    return sensor_config_from_dict(_read_document(path))


def load_server_config(path: Union[str, Path]) -> ServerConfig:
    return server_config_from_dict(_read_document(path))
