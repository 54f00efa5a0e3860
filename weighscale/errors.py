"""
Weighscale Errors

Two layers of exceptions:

- Transport-level errors (TransportError and friends, ResponseTimeoutError,
  ResponseParseError, ScaleOverloadError) are raised by backends. They never
  reach callers of WeighingDevice directly.
- Public errors (WeighingError subclasses) are what the session engine raises.
  Every transport failure is wrapped into a DeviceFault that carries the
  device name, the operation and a FaultKind.
"""

from enum import Enum
from typing import Optional


class FaultKind(Enum):
    """Classification of a DeviceFault."""
    TRANSPORT_UNAVAILABLE = "transport unavailable"
    ACCESS_DENIED = "access denied"
    MEDIUM_MISSING = "medium missing"
    TIMEOUT = "timeout"
    PARSE_FAILURE = "parse failure"
    OVERLOAD = "overload"
    IO_ERROR = "i/o error"

    @property
    def is_fatal(self) -> bool:
        """Whether the fault leaves the transport unusable."""
        return self in _FATAL_KINDS


_FATAL_KINDS = {
    FaultKind.TRANSPORT_UNAVAILABLE,
    FaultKind.ACCESS_DENIED,
    FaultKind.MEDIUM_MISSING,
    FaultKind.IO_ERROR,
}


# ----- Transport level ----------------------------------------------------

class TransportError(Exception):
    """Base for failures of the byte-stream transport."""
    kind = FaultKind.IO_ERROR


class TransportNotOpenError(TransportError):
    kind = FaultKind.TRANSPORT_UNAVAILABLE


class AccessDeniedError(TransportError):
    """The port exists but is held by another process or not permitted."""
    kind = FaultKind.ACCESS_DENIED


class MediumMissingError(TransportError):
    """The port does not exist or the hardware went away."""
    kind = FaultKind.MEDIUM_MISSING


class TransportIOError(TransportError):
    kind = FaultKind.IO_ERROR


class ResponseTimeoutError(TimeoutError):
    """The device did not finish answering within the read timeout."""
    kind = FaultKind.TIMEOUT


class ResponseParseError(ValueError):
    """A response was received but could not be turned into a reading."""
    kind = FaultKind.PARSE_FAILURE

    def __init__(self, message: str, raw_response: str = ""):
        super().__init__(message)
        self.raw_response = raw_response


class ScaleOverloadError(Exception):
    """The scale reports a load beyond its capacity."""
    kind = FaultKind.OVERLOAD


def classify_fault(exc: BaseException) -> FaultKind:
    """Map any exception raised by a backend to a FaultKind."""
    kind = getattr(exc, "kind", None)
    if isinstance(kind, FaultKind):
        return kind
    if isinstance(exc, TimeoutError):
        return FaultKind.TIMEOUT
    if isinstance(exc, PermissionError):
        return FaultKind.ACCESS_DENIED
    if isinstance(exc, FileNotFoundError):
        return FaultKind.MEDIUM_MISSING
    return FaultKind.IO_ERROR


# ----- Public -------------------------------------------------------------

class WeighingError(Exception):
    """Base class for all errors raised by a WeighingDevice."""


class ConfigurationError(WeighingError, ValueError):
    """Malformed or incompatible configuration."""


class InvalidStateError(WeighingError):
    """An operation was attempted outside the required connection state."""

    def __init__(self, message: str, operation: str = "", device_name: str = ""):
        super().__init__(message)
        self.operation = operation
        self.device_name = device_name


class DeviceDisposedError(WeighingError):
    """The device has been closed with aclose()."""

    def __init__(self, device_name: str):
        super().__init__(f"Device {device_name} has been disposed")
        self.device_name = device_name


class UnsupportedOperationError(WeighingError, NotImplementedError):
    """The device variant does not support the requested operation."""


class DeviceFault(WeighingError):
    """
    A transport or protocol failure on a specific device.

    Attributes:
        device_name: Display name of the device
        operation: Public operation that failed (e.g. 'get weight')
        kind: FaultKind classification
        detail: Text of the underlying cause
        raw_response: Response text for parse failures, else None
    """

    def __init__(
        self,
        device_name: str,
        operation: str,
        kind: FaultKind,
        detail: str = "",
        raw_response: Optional[str] = None,
    ):
        message = f"Error during {operation} on device {device_name}: {kind.value}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)
        self.device_name = device_name
        self.operation = operation
        self.kind = kind
        self.detail = detail
        self.raw_response = raw_response

    @property
    def is_fatal(self) -> bool:
        return self.kind.is_fatal

    @classmethod
    def wrap(cls, device_name: str, operation: str, exc: BaseException) -> "DeviceFault":
        """Build a DeviceFault from a backend exception. Chain with 'raise ... from exc'."""
        return cls(
            device_name,
            operation,
            classify_fault(exc),
            detail=str(exc) or type(exc).__name__,
            raw_response=getattr(exc, "raw_response", None),
        )
