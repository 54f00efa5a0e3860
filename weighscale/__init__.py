"""
Weighscale Connection Library

Async client for weighing devices on a byte-stream (serial) transport.

This library provides:
- A session engine with a connection state machine, guards and events (WeighingDevice)
- Command/response framing over a silent-gap delimited serial line (SerialScaleBackend)
- Continuous reading in a background task with back-off on errors
- Simulated and demo scales for working without hardware
- Serial port discovery utilities
"""

from .backend import ScaleBackend
from .connection import connect_serial_scale, create_serial_scale, find_scale_ports, list_serial_ports
from .device import WeighingDevice
from .errors import (
    ConfigurationError,
    DeviceDisposedError,
    DeviceFault,
    FaultKind,
    InvalidStateError,
    UnsupportedOperationError,
    WeighingError,
)
from .models import (
    ConnectionConfig,
    ConnectionStatus,
    ConnectionType,
    FlowControl,
    Parity,
    StopBits,
    WeightReading,
    WeightUnit,
)
from .parsers import make_regex_parser, parse_weight_response
from .protocol import GENERIC_COMMANDS, ScaleCommands, SerialScaleBackend
from .simulation import DemoProgram, DemoScaleBackend, SimulatedScaleBackend

__version__ = "1.0.0"
__all__ = [
    "WeighingDevice",
    "ScaleBackend",
    "SerialScaleBackend",
    "SimulatedScaleBackend",
    "DemoScaleBackend",
    "DemoProgram",
    "ScaleCommands",
    "GENERIC_COMMANDS",
    "WeightReading",
    "WeightUnit",
    "ConnectionConfig",
    "ConnectionStatus",
    "ConnectionType",
    "Parity",
    "StopBits",
    "FlowControl",
    "WeighingError",
    "ConfigurationError",
    "InvalidStateError",
    "DeviceDisposedError",
    "UnsupportedOperationError",
    "DeviceFault",
    "FaultKind",
    "parse_weight_response",
    "make_regex_parser",
    "connect_serial_scale",
    "create_serial_scale",
    "find_scale_ports",
    "list_serial_ports",
]
