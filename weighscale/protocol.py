"""
Weighscale Serial Protocol

Request/response transport for scales on an RS-232/RS-485/USB-serial line:
- Opens the port with the line settings from a ConnectionConfig (pyserial)
- Sends line-terminated ASCII commands after discarding stale input
- Collects responses using silence-based framing (see weighscale.framing)
- Parses responses through an injected, device-specific function
- Streams readings for devices with a continuous output mode
"""

import errno
import logging
from dataclasses import asdict, dataclass
from typing import Callable, Dict, Optional

import anyio
import serial
from serial.serialutil import PortNotOpenError, SerialException, SerialTimeoutException

from .backend import ScaleBackend
from .errors import (
    AccessDeniedError,
    ConfigurationError,
    MediumMissingError,
    ResponseParseError,
    ResponseTimeoutError,
    TransportError,
    TransportIOError,
    TransportNotOpenError,
)
from .framing import MAX_RESPONSE_SIZE, POLL_INTERVAL, SETTLE_DELAY, collect_response, normalize_command
from .models import ConnectionConfig, ConnectionType, FlowControl, WeightReading

logger = logging.getLogger(__name__)

OPEN_SETTLE_DELAY = 0.5  # device initialisation time after the port opens

ParseFunction = Callable[[str], Optional[WeightReading]]

# (xonxoff, rtscts) per flow control mode
_FLOW_CONTROL = {
    FlowControl.NONE: (False, False),
    FlowControl.XON_XOFF: (True, False),
    FlowControl.RTS_CTS: (False, True),
    FlowControl.RTS_CTS_XON_XOFF: (True, True),
}

_ACCESS_DENIED_ERRNOS = {errno.EACCES, errno.EPERM, errno.EBUSY}
_MEDIUM_MISSING_ERRNOS = {errno.ENOENT, errno.ENODEV, errno.ENXIO}
_ACCESS_DENIED_TEXT = ("access is denied", "permission denied", "resource busy")
_MEDIUM_MISSING_TEXT = (
    "no such file",
    "cannot find the file",
    "filenotfounderror",
    "device disconnected",
    "returned no data",
)


@dataclass(frozen=True)
class ScaleCommands:
    """Command strings of one scale model. Empty streaming commands mean no continuous mode."""
    weight: str
    zero: str
    continuous_start: str = ""
    continuous_stop: str = ""


GENERIC_COMMANDS = ScaleCommands(weight="W", zero="Z", continuous_start="C", continuous_stop="S")


@dataclass
class TransportStats:
    """Transport statistics."""
    commands_sent: int = 0
    responses_received: int = 0
    empty_responses: int = 0
    timeouts: int = 0
    parse_failures: int = 0
    bytes_received: int = 0
    stale_bytes_discarded: int = 0


def translate_serial_error(exc: BaseException, port_name: str) -> TransportError:
    """
    Map a pyserial/OS exception to the transport error taxonomy.

    pyserial reports most failures as SerialException (an IOError) with the
    OS errno set on POSIX and only a message on Windows, so both are checked.
    """
    if isinstance(exc, TransportError):
        return exc
    if isinstance(exc, PortNotOpenError):
        return TransportNotOpenError(f"Port {port_name} is not open")

    code = getattr(exc, "errno", None)
    text = str(exc).lower()

    if (isinstance(exc, PermissionError) or code in _ACCESS_DENIED_ERRNOS
            or any(marker in text for marker in _ACCESS_DENIED_TEXT)):
        return AccessDeniedError(
            f"Access denied to port {port_name}. The port may be in use by another application: {exc}")

    if (isinstance(exc, FileNotFoundError) or code in _MEDIUM_MISSING_ERRNOS
            or any(marker in text for marker in _MEDIUM_MISSING_TEXT)):
        return MediumMissingError(
            f"Port {port_name} is not available. It may not exist or the hardware is not connected: {exc}")

    return TransportIOError(f"I/O error on port {port_name}: {exc}")


class SerialScaleBackend(ScaleBackend):
    """
    Scale backend speaking a line-oriented text protocol over pyserial.

    One command is in flight at a time: every round-trip and every
    continuous-mode receive attempt holds an anyio.Lock, so on-demand
    operations can be mixed with continuous reading.
    """

    def __init__(
        self,
        config: ConnectionConfig,
        name: str,
        manufacturer: str,
        model: str,
        parse: ParseFunction,
        commands: ScaleCommands = GENERIC_COMMANDS,
        supports_continuous_reading: bool = False,
        encoding: str = "ascii",
        probe_on_open: bool = True,
        open_settle_delay: float = OPEN_SETTLE_DELAY,
        settle_delay: float = SETTLE_DELAY,
        poll_interval: float = POLL_INTERVAL,
        max_response_size: int = MAX_RESPONSE_SIZE,
        serial_factory: Callable[[], serial.Serial] = serial.Serial,
    ):
        """
        Initialize a serial scale backend.

        Args:
            config: Serial connection configuration
            name: Display name of the device
            manufacturer: Manufacturer of the device
            model: Model of the device
            parse: Function turning a response into a reading (None if unparsable)
            commands: Command strings for weight, zero and streaming
            supports_continuous_reading: Whether the device has a streaming mode
            encoding: Text encoding on the wire (default: ASCII)
            probe_on_open: Send the weight command after opening and require a reply
            open_settle_delay: Seconds to wait after opening before talking
            settle_delay: Framing settle delay in seconds
            poll_interval: Framing silence gap in seconds
            max_response_size: Framing buffer ceiling in bytes
            serial_factory: Callable returning an unopened pyserial port
        """
        if config.type is not ConnectionType.SERIAL:
            raise ConfigurationError(
                f"{name} needs a serial connection configuration, got {config.type.value}")
        if supports_continuous_reading and not (commands.continuous_start and commands.continuous_stop):
            raise ConfigurationError(
                "Continuous reading commands must be provided if continuous reading is supported")
        if parse is None:
            raise ConfigurationError("A parse function is required")

        super().__init__(config)
        self.name = name
        self.manufacturer = manufacturer
        self.model = model
        self.parse = parse
        self.commands = commands
        self.encoding = encoding
        self.probe_on_open = probe_on_open
        self.open_settle_delay = open_settle_delay
        self.settle_delay = settle_delay
        self.poll_interval = poll_interval
        self.max_response_size = max_response_size
        self._supports_continuous = supports_continuous_reading
        self._serial_factory = serial_factory

        self.serial = None
        self._io_lock = anyio.Lock()
        self.stats = TransportStats()

    @property
    def port_name(self) -> str:
        return self.config.connection_string

    @property
    def supports_continuous_reading(self) -> bool:
        return self._supports_continuous

    @property
    def is_open(self) -> bool:
        return self.serial is not None and self.serial.is_open

    # ----- Lifecycle -----------------------------------------------------

    async def open(self) -> bool:
        """
        Open the serial port and check that a device answers.

        Returns:
            True if the port is open and (when probing) the device replied
        """
        if self.serial is not None:
            await self.close()

        port_name = self.port_name
        xonxoff, rtscts = _FLOW_CONTROL[self.config.flow_control]
        try:
            # Configure before opening so the settings apply on open()
            port = self._serial_factory()
            port.port = port_name
            port.baudrate = self.config.baud_rate
            port.bytesize = self.config.data_bits
            port.parity = self.config.parity.value
            port.stopbits = self.config.stop_bits.value
            port.xonxoff = xonxoff
            port.rtscts = rtscts
            port.timeout = 0  # non-blocking reads, framing does the timing
            port.write_timeout = self.config.read_timeout
            self.serial = port

            port.open()
            logger.info(f"Opened {port_name} at {self.config.baud_rate} baud")

            await anyio.sleep(self.open_settle_delay)

            if not self.probe_on_open:
                return True

            response = await self.send_command(self.commands.weight)
            if not response.strip():
                logger.warning(f"No response from device on {port_name}")
                self._release_port()
                return False
            return True

        except (TransportError, ResponseTimeoutError, ConfigurationError):
            self._release_port()
            raise
        except ValueError as e:
            self._release_port()
            raise ConfigurationError(f"Invalid serial settings for {port_name}: {e}") from e
        except (SerialException, OSError) as e:
            self._release_port()
            raise translate_serial_error(e, port_name) from e
        except BaseException:
            self._release_port()
            raise

    async def close(self) -> None:
        """Close the serial port. Failures are logged, never raised."""
        self._release_port()

    def _release_port(self) -> None:
        port, self.serial = self.serial, None
        if port is None:
            return
        try:
            if port.is_open:
                port.close()
                logger.info(f"Serial port {self.port_name} closed")
        except Exception as e:
            logger.warning(f"Error closing {self.port_name}: {e}")

    # ----- Command round-trips -------------------------------------------

    async def send_command(self, command: str, wait_for_data: bool = True) -> str:
        """
        Send a command and collect the response.

        Args:
            command: Command text; a line terminator is added if missing
            wait_for_data: Wait up to the read timeout for the first byte.
                Commands that may legitimately get no reply pass False.

        Returns:
            Decoded response text, possibly empty
        """
        async with self._io_lock:
            port = self._require_port()
            line = normalize_command(command)
            try:
                stale = port.in_waiting
                if stale:
                    self.stats.stale_bytes_discarded += stale
                    logger.debug(f"Discarding {stale} stale bytes before {command!r}")
                port.reset_input_buffer()
                port.write(line.encode(self.encoding))
                port.flush()
            except SerialTimeoutException as e:
                raise ResponseTimeoutError(f"Write timeout on {self.port_name}") from e
            except (SerialException, OSError) as e:
                raise translate_serial_error(e, self.port_name) from e

            self.stats.commands_sent += 1
            logger.debug(f"Sent command {line!r}")
            return await self._receive(wait_for_data)

    async def _receive(self, wait_for_data: bool) -> str:
        port = self._require_port()
        try:
            data = await collect_response(
                port,
                self.config.read_timeout,
                wait_for_data=wait_for_data,
                settle_delay=self.settle_delay,
                poll_interval=self.poll_interval,
                max_size=self.max_response_size,
            )
        except ResponseTimeoutError:
            self.stats.timeouts += 1
            raise
        except (SerialException, OSError) as e:
            raise translate_serial_error(e, self.port_name) from e

        self.stats.bytes_received += len(data)
        if data:
            self.stats.responses_received += 1
        else:
            self.stats.empty_responses += 1
        return data.decode(self.encoding, errors="replace")

    def _require_port(self):
        if self.serial is None or not self.serial.is_open:
            raise TransportNotOpenError(f"Serial port {self.port_name} is not open")
        return self.serial

    def _parse(self, response: str) -> WeightReading:
        try:
            reading = self.parse(response)
        except Exception as e:
            self.stats.parse_failures += 1
            raise ResponseParseError(
                f"Parse function failed on response {response!r}: {e}", raw_response=response) from e
        if reading is None:
            self.stats.parse_failures += 1
            raise ResponseParseError(
                f"Failed to parse weight reading from response: {response!r}", raw_response=response)
        return reading

    # ----- Extension points ----------------------------------------------

    async def read_once(self) -> WeightReading:
        response = await self.send_command(self.commands.weight)
        return self._parse(response)

    async def zero(self) -> None:
        await self.send_command(self.commands.zero, wait_for_data=False)

    async def send_raw(self, command: str) -> str:
        return await self.send_command(command)

    async def start_continuous(self) -> None:
        await self.send_command(self.commands.continuous_start, wait_for_data=False)
        logger.info(f"{self.name}: streaming mode started")

    async def next_continuous_reading(self) -> Optional[WeightReading]:
        """Single best-effort receive attempt while the device streams."""
        async with self._io_lock:
            response = await self._receive(wait_for_data=False)
        if not response.strip():
            return None
        try:
            return self._parse(response)
        except ResponseParseError as e:
            logger.debug(f"{self.name}: skipping unparsable stream data: {e}")
            return None

    async def stop_continuous(self) -> None:
        await self.send_command(self.commands.continuous_stop, wait_for_data=False)
        logger.info(f"{self.name}: streaming mode stopped")

    # ----- Statistics ----------------------------------------------------

    def get_stats(self) -> Dict[str, int]:
        """Get transport statistics."""
        return asdict(self.stats)

    def clear_stats(self):
        """Clear transport statistics."""
        self.stats = TransportStats()
