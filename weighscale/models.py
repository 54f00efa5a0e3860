"""
Weighscale Data Model

Plain value types shared by every device variant:
- WeightReading: one measurement (value, unit, stability, timestamp, metadata)
- ConnectionConfig: how to reach a device, transport-agnostic
- Enumerations for units, connection types, status and serial line settings
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .errors import ConfigurationError


class WeightUnit(Enum):
    """Units of weight measurement."""
    GRAM = "g"
    KILOGRAM = "kg"
    MILLIGRAM = "mg"
    TON = "t"
    POUND = "lb"
    OUNCE = "oz"

    @classmethod
    def from_symbol(cls, symbol: str) -> "WeightUnit":
        """
        Map a unit symbol as printed by a scale to a WeightUnit.

        Args:
            symbol: Unit text such as 'kg', 'G', 'lbs'

        Returns:
            Matching WeightUnit

        Raises:
            ValueError: If the symbol is not a known unit
        """
        key = symbol.strip().lower()
        unit = _UNIT_ALIASES.get(key)
        if unit is None:
            raise ValueError(f"Unknown weight unit: {symbol!r}")
        return unit

    @property
    def symbol(self) -> str:
        return self.value


_UNIT_ALIASES = {
    "g": WeightUnit.GRAM,
    "gr": WeightUnit.GRAM,
    "gram": WeightUnit.GRAM,
    "grams": WeightUnit.GRAM,
    "kg": WeightUnit.KILOGRAM,
    "kgs": WeightUnit.KILOGRAM,
    "mg": WeightUnit.MILLIGRAM,
    "t": WeightUnit.TON,
    "ton": WeightUnit.TON,
    "tons": WeightUnit.TON,
    "lb": WeightUnit.POUND,
    "lbs": WeightUnit.POUND,
    "oz": WeightUnit.OUNCE,
}


class ConnectionType(Enum):
    """Transport used to reach a weighing device."""
    SERIAL = "serial"
    NETWORK = "network"
    USB = "usb"
    BLUETOOTH = "bluetooth"
    CUSTOM = "custom"


class ConnectionStatus(Enum):
    """Device-wide connection state, changed only by the session engine."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class Parity(Enum):
    # Values are the pyserial PARITY_* constants
    NONE = "N"
    EVEN = "E"
    ODD = "O"
    MARK = "M"
    SPACE = "S"


class StopBits(Enum):
    # Values are the pyserial STOPBITS_* constants
    ONE = 1
    ONE_POINT_FIVE = 1.5
    TWO = 2


class FlowControl(Enum):
    NONE = "none"
    XON_XOFF = "xon_xoff"
    RTS_CTS = "rts_cts"
    RTS_CTS_XON_XOFF = "rts_cts_xon_xoff"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class WeightReading:
    """
    One weight measurement produced by a device.

    The timestamp is captured when the reading is constructed. Metadata is an
    open side channel (e.g. raw response text) and does not take part in
    equality.
    """
    value: Decimal
    unit: WeightUnit
    is_stable: bool = True
    timestamp: datetime = field(default_factory=_utcnow, compare=False)
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self):
        if not isinstance(self.value, Decimal):
            # Go through str() so floats keep their printed precision
            object.__setattr__(self, "value", Decimal(str(self.value)))

    def __str__(self) -> str:
        stability = "" if self.is_stable else " (unstable)"
        stamp = self.timestamp.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        return f"{self.value} {self.unit.symbol}{stability}, {stamp}"


@dataclass(frozen=True)
class ConnectionConfig:
    """
    Describes how to reach a weighing device.

    Serial line settings are only meaningful for ConnectionType.SERIAL;
    transport-specific extras go into additional_parameters.
    """
    type: ConnectionType
    connection_string: str = ""
    port: Optional[int] = None
    baud_rate: int = 9600
    data_bits: int = 8
    parity: Parity = Parity.NONE
    stop_bits: StopBits = StopBits.ONE
    flow_control: FlowControl = FlowControl.NONE
    connection_timeout_ms: int = 5000
    read_timeout_ms: int = 1000
    additional_parameters: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.type, ConnectionType):
            raise ConfigurationError(f"Invalid connection type: {self.type!r}")
        if self.connection_timeout_ms <= 0:
            raise ConfigurationError("connection_timeout_ms must be positive")
        if self.read_timeout_ms <= 0:
            raise ConfigurationError("read_timeout_ms must be positive")
        if self.type is ConnectionType.SERIAL:
            if self.baud_rate <= 0:
                raise ConfigurationError(f"Invalid baud rate: {self.baud_rate}")
            if not 5 <= self.data_bits <= 8:
                raise ConfigurationError(f"Data bits must be 5..8, got {self.data_bits}")
        if self.type is ConnectionType.NETWORK and self.port is None:
            raise ConfigurationError("Network connections need a port number")

    @property
    def connection_timeout(self) -> float:
        """Connection timeout in seconds."""
        return self.connection_timeout_ms / 1000.0

    @property
    def read_timeout(self) -> float:
        """Read timeout in seconds."""
        return self.read_timeout_ms / 1000.0

    @classmethod
    def serial(
        cls,
        port_name: str,
        baud_rate: int = 9600,
        data_bits: int = 8,
        parity: Parity = Parity.NONE,
        stop_bits: StopBits = StopBits.ONE,
        flow_control: FlowControl = FlowControl.NONE,
        **kwargs: Any,
    ) -> "ConnectionConfig":
        """Create a serial port configuration (e.g. 'COM3', '/dev/ttyUSB0')."""
        return cls(
            type=ConnectionType.SERIAL,
            connection_string=port_name,
            baud_rate=baud_rate,
            data_bits=data_bits,
            parity=parity,
            stop_bits=stop_bits,
            flow_control=flow_control,
            **kwargs,
        )

    @classmethod
    def network(cls, hostname: str, port: int, **kwargs: Any) -> "ConnectionConfig":
        """Create a TCP/IP configuration."""
        return cls(type=ConnectionType.NETWORK, connection_string=hostname, port=port, **kwargs)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConnectionConfig":
        """
        Build a configuration from a plain mapping (e.g. parsed JSON).

        Enum fields accept either enum members or their names/values
        ("serial", "EVEN", 1.5). Keys that are not config fields are kept in
        additional_parameters.
        """
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        extras: Dict[str, Any] = dict(data.get("additional_parameters") or {})

        for key, value in data.items():
            if key == "additional_parameters":
                continue
            if key not in known:
                extras[key] = value
                continue
            kwargs[key] = value

        if "type" not in kwargs:
            raise ConfigurationError("Connection config needs a 'type'")

        enum_fields = {
            "type": ConnectionType,
            "parity": Parity,
            "stop_bits": StopBits,
            "flow_control": FlowControl,
        }
        for key, enum_cls in enum_fields.items():
            if key in kwargs:
                kwargs[key] = _coerce_enum(enum_cls, kwargs[key])

        kwargs["additional_parameters"] = extras
        return cls(**kwargs)


def _coerce_enum(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        lookup = value.strip()
        for member in enum_cls:
            if member.name.lower() == lookup.lower():
                return member
            if isinstance(member.value, str) and member.value.lower() == lookup.lower():
                return member
    try:
        return enum_cls(value)
    except ValueError:
        raise ConfigurationError(f"Invalid {enum_cls.__name__} value: {value!r}") from None
