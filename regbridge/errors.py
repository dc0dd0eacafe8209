"""Error taxonomy and Modbus exception code helpers.

Every error raised by regbridge derives from :class:`RegBridgeError` so
callers can catch the whole family in one place. Configuration and codec
errors are also ``ValueError`` subclasses.
"""
from __future__ import annotations

from typing import Any, List, Optional, Sequence

# Standard Modbus exception codes (Modbus Application Protocol)
MODBUS_EXCEPTION_CODES = {
    1: "Illegal Function",
    2: "Illegal Data Address",
    3: "Illegal Data Value",
    4: "Slave Device Failure",
    5: "Acknowledge",
    6: "Slave Device Busy",
    8: "Memory Parity Error",
    10: "Gateway Path Unavailable",
    11: "Gateway Target Device Failed to Respond",
}


class RegBridgeError(Exception):
    """Base class for all regbridge errors."""
    pass


class ConfigError(RegBridgeError, ValueError):
    """Invalid configuration. Never retried."""
    pass


class CodecError(RegBridgeError, ValueError):
    """Raised when a value cannot be encoded or decoded."""
    pass


class InvalidLengthError(CodecError):
    """Register slice does not have the length the value type requires."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"invalid length: expected {expected} registers, got {actual}")


class TransportError(RegBridgeError):
    """I/O failure on a Modbus transport (open, read or write)."""
    pass


class RetriesExhaustedError(RegBridgeError):
    """All attempts of a client operation failed."""

    def __init__(self, operation: str, attempts: int, last_error: Optional[BaseException] = None) -> None:
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        msg = f"retries exhausted: {operation} failed after {attempts} attempts"
        if last_error is not None:
            msg += f" (last error: {last_error})"
        super().__init__(msg)


class UnsupportedError(RegBridgeError):
    """The requested capability is not supported. Never retried."""

    def __init__(self, what: str) -> None:
        self.what = what
        super().__init__(f"unsupported: {what}")


class ClientClosedError(RegBridgeError):
    """Operation attempted on a client that was already closed."""
    pass


class ClientBuildError(RegBridgeError):
    """One or more endpoint clients failed to build.

    ``errors`` holds every failure, not just the first one.
    """

    def __init__(self, errors: Sequence[BaseException]) -> None:
        self.errors: List[BaseException] = list(errors)
        joined = "; ".join(str(e) for e in self.errors)
        super().__init__(f"failed to create {len(self.errors)} client(s): {joined}")


class ServerStartError(RegBridgeError):
    """One or more server endpoints failed to start; every started server was stopped again."""

    def __init__(self, errors: Sequence[BaseException]) -> None:
        self.errors: List[BaseException] = list(errors)
        joined = "; ".join(str(e) for e in self.errors)
        super().__init__(f"failed to start {len(self.errors)} server(s): {joined}")


def get_modbus_exception_text(code: Optional[int]) -> Optional[str]:
    """Return a human-readable description for a Modbus exception code.

    If `code` is None or unknown, returns None.
    """
    if code is None:
        return None
    try:
        return MODBUS_EXCEPTION_CODES.get(int(code))
    except (TypeError, ValueError):
        return None


def describe_modbus_response(rr: Any) -> str:
    """Return a concise description for a failed pymodbus response.

    Handles None (timeout), pymodbus error responses and unknown objects.
    """
    if rr is None:
        return "No response (timeout)"
    if hasattr(rr, "isError") and rr.isError():
        parts = [rr.__class__.__name__]
        exc_code = getattr(rr, "exception_code", None)
        if exc_code is not None:
            parts.append(f"exception_code={exc_code}")
            text = get_modbus_exception_text(exc_code)
            if text:
                parts.append(f"exception_text={text}")
        fc = getattr(rr, "function_code", None)
        if fc is not None:
            parts.append(f"function_code={fc}")
        return "; ".join(parts)
    return str(rr)
